"""HTTP mapping for pipeline errors"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from dailyreel.core.errors import DailyReelError

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "NotAuthenticatedError": 401,
    "AuthRejectedError": 401,
    "DeviceAccessError": 403,
    "ResourceNotFoundError": 404,
    "BusyError": 409,
    "InvalidTransitionError": 409,
    "DurationExceededError": 422,
    "InvalidFileError": 422,
    "CompressionFailedError": 502,
    "DriveAPIError": 502,
    "UploadFailedError": 502,
    "MetadataPersistError": 502,
    "RemoteMutationError": 502,
    "LocalPersistError": 502,
}


def status_for_kind(kind: str) -> int:
    return ERROR_STATUS_CODES.get(kind, 500)


def error_body(kind: str, message: str, split_brain: bool = False) -> dict:
    return {"error": kind, "message": message, "split_brain": split_brain}


async def dailyreel_exception_handler(request: Request, exc: DailyReelError):
    status_code = status_for_kind(exc.kind)
    if status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.kind, exc.message, exc.split_brain)
    )
