from fastapi import HTTPException

from fusion.schemas.fusion import ErrorOut
from fusion.services.image_generation import (
    FailureType,
    ImageReadError,
    classify_failure,
    user_message,
)
from fusion.services.image_generation.failure_types import HTTP_STATUS


def error_out(exc: BaseException) -> ErrorOut:
    """Map any exception to the fixed user-facing copy for its kind."""
    failure_type = classify_failure(exc)
    message = user_message(failure_type)
    if isinstance(exc, ImageReadError):
        # Unreadable upload: the raw reason is more useful than "Missing Images"
        return ErrorOut(kind=failure_type.value, title="Invalid Image", message=str(exc))
    return ErrorOut(kind=failure_type.value, title=message.title, message=message.message)


def http_error(exc: BaseException) -> HTTPException:
    failure_type = classify_failure(exc)
    return HTTPException(
        status_code=HTTP_STATUS.get(failure_type, HTTP_STATUS[FailureType.TRANSPORT]),
        detail=error_out(exc).model_dump(),
    )
