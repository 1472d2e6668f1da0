"""Error responses: every failure is rendered as {errorCode, errorMessage, suggestedFix, details}."""
import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.schemas.job import ErrorResponse
from app.services.errors import CourseGenError, ErrorCode, get_suggested_fix

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    body = ErrorResponse(
        error_code=code,
        error_message=message,
        suggested_fix=get_suggested_fix(code),
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, mode="json"))


def _validation_details(errors) -> list[dict]:
    """Keep location, message and type; drop raw input values."""
    return [
        {"loc": [str(p) for p in error.get("loc", ())], "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in errors
    ]


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _validation_details(exc.errors())
    logger.info(f"Rejected {request.method} {request.url.path}: {len(details)} validation error(s)")
    return _error_response(400, ErrorCode.VALIDATION_ERROR, "Request validation failed", details)


async def course_gen_exception_handler(request: Request, exc: CourseGenError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    return _error_response(exc.status_code, exc.code, exc.message or exc.code)
