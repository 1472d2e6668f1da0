"""Idempotency registry: maps a client-supplied key to exactly one job.

reserve() is a single guarded INSERT. The primary key on idempotency_records
is the only arbiter: whoever inserts first owns the key, everyone else reads
the winner's job id back. There is no read-then-write window.
"""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.job import IdempotencyRecord
from app.services.errors import IdempotencyKeyConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    created: bool
    job_id: uuid.UUID


class IdempotencyRegistry:

    async def reserve(self, db: AsyncSession, key: str) -> Reservation:
        """Reserve `key` for a freshly allocated job id, or return the existing mapping.

        Must be the first write of the caller's transaction: on a duplicate key
        the transaction is rolled back. When created=True the caller adds the
        Course and Job rows and commits them together with the key.
        """
        job_id = uuid.uuid4()
        db.add(IdempotencyRecord(key=key, job_id=job_id))
        try:
            await db.flush()
            return Reservation(created=True, job_id=job_id)
        except IntegrityError:
            await db.rollback()

        result = await db.execute(select(IdempotencyRecord.job_id).where(IdempotencyRecord.key == key))
        existing = result.scalar_one_or_none()
        if existing is None:
            # Lost the insert race but the winner's row is not visible
            logger.warning(f"Idempotency key conflict for key={key!r}")
            raise IdempotencyKeyConflictError(
                f"Concurrent submission with idempotencyKey {key!r} did not complete"
            )
        return Reservation(created=False, job_id=existing)
