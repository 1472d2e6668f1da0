"""Error taxonomy for course generation.

Every failure that reaches a job or an API response carries one of the stable
codes below. Polling clients get the code, the message and a static
suggested fix keyed by the code.
"""
from sqlalchemy.exc import SQLAlchemyError


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LLM_SCHEMA_INVALID = "LLM_SCHEMA_INVALID"
    LLM_PROVIDER_FAILURE = "LLM_PROVIDER_FAILURE"
    YOUTUBE_PROVIDER_FAILURE = "YOUTUBE_PROVIDER_FAILURE"
    DB_WRITE_FAILURE = "DB_WRITE_FAILURE"
    JOB_RUNNER_FAILURE = "JOB_RUNNER_FAILURE"
    IDEMPOTENCY_KEY_CONFLICT = "IDEMPOTENCY_KEY_CONFLICT"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    COURSE_NOT_FOUND = "COURSE_NOT_FOUND"
    LESSON_NOT_FOUND = "LESSON_NOT_FOUND"
    JOB_NOT_CANCELLABLE = "JOB_NOT_CANCELLABLE"


SUGGESTED_FIXES = {
    ErrorCode.VALIDATION_ERROR: "Check input parameters: topic length (3-200), timePerDay range (5-480), valid level",
    ErrorCode.LLM_SCHEMA_INVALID: "LLM returned content that failed validation. Retry; the pipeline falls back to generated placeholder content.",
    ErrorCode.LLM_PROVIDER_FAILURE: "Check GEMINI_API_KEY / OPENAI_API_KEY and the provider's rate limits. Verify the account has credits.",
    ErrorCode.YOUTUBE_PROVIDER_FAILURE: "Check YOUTUBE_API_KEY. This error is non-fatal; the module is left without video resources.",
    ErrorCode.DB_WRITE_FAILURE: "Database write failed. Check database connection and disk space.",
    ErrorCode.JOB_RUNNER_FAILURE: "Job runner encountered an unexpected error. Check job events and server logs for the stack trace.",
    ErrorCode.IDEMPOTENCY_KEY_CONFLICT: "Duplicate request with the same idempotencyKey raced another submission. Retry to get the existing job.",
    ErrorCode.JOB_NOT_FOUND: "Job ID does not exist.",
    ErrorCode.COURSE_NOT_FOUND: "Course ID does not exist or was deleted.",
    ErrorCode.LESSON_NOT_FOUND: "Lesson ID does not exist or was deleted.",
    ErrorCode.JOB_NOT_CANCELLABLE: "Only queued or running jobs can be cancelled.",
}

_DEFAULT_FIX = "Unknown error code. Check job events for details."


def get_suggested_fix(error_code: str | None) -> str:
    return SUGGESTED_FIXES.get(error_code or "", _DEFAULT_FIX)


class CourseGenError(Exception):
    """Base for classified failures. Subclasses pin the error code."""

    code: str = ErrorCode.JOB_RUNNER_FAILURE
    status_code: int = 500

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ContentSchemaInvalidError(CourseGenError):
    """Provider output failed structural validation."""
    code = ErrorCode.LLM_SCHEMA_INVALID


class ContentProviderError(CourseGenError):
    """Content provider was unreachable or returned an error."""
    code = ErrorCode.LLM_PROVIDER_FAILURE


class VideoProviderError(CourseGenError):
    code = ErrorCode.YOUTUBE_PROVIDER_FAILURE


class PersistenceWriteError(CourseGenError):
    code = ErrorCode.DB_WRITE_FAILURE


class IdempotencyKeyConflictError(CourseGenError):
    code = ErrorCode.IDEMPOTENCY_KEY_CONFLICT
    status_code = 409


class JobNotFoundError(CourseGenError):
    code = ErrorCode.JOB_NOT_FOUND
    status_code = 404


class CourseNotFoundError(CourseGenError):
    code = ErrorCode.COURSE_NOT_FOUND
    status_code = 404


class LessonNotFoundError(CourseGenError):
    code = ErrorCode.LESSON_NOT_FOUND
    status_code = 404


class JobNotCancellableError(CourseGenError):
    code = ErrorCode.JOB_NOT_CANCELLABLE
    status_code = 400


def safe_error_message(e: BaseException, fallback: str = "Job interrupted") -> str:
    """Extract a meaningful error message from an exception.

    Some exceptions (timeouts, cancellation races) produce an empty str(e).
    Falls back to the exception class name.
    """
    msg = str(e).strip()
    if not msg:
        msg = f"{type(e).__name__}: {fallback}"
    return msg


def classify_error(e: BaseException) -> tuple[str, str]:
    """Map an exception to (error_code, message) for persistence on a job."""
    if isinstance(e, CourseGenError):
        return e.code, safe_error_message(e)
    if isinstance(e, SQLAlchemyError):
        return ErrorCode.DB_WRITE_FAILURE, safe_error_message(e)
    return ErrorCode.JOB_RUNNER_FAILURE, safe_error_message(e)
