"""Error taxonomy for the capture -> compress -> upload pipeline and folder operations

Every error carries a short user-facing ``message`` and a stable ``kind``
(the class name) so the upload state machine and the API can report it
without inspecting the exception type.

``split_brain`` marks the two errors raised after a remote resource was
created but the local database row was not written. Recovery for those is a
reconciliation pass (``POST /api/sync``), not a re-upload.
"""
from typing import Optional


class DailyReelError(Exception):
    """Base class for all pipeline errors"""

    default_message = "Something went wrong"
    split_brain = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


# --- Capture ---

class DeviceAccessError(DailyReelError):
    default_message = "Failed to access camera/microphone"


class DurationExceededError(DailyReelError):
    def __init__(self, duration: float, limit: float):
        self.duration = duration
        self.limit = limit
        super().__init__(
            f"Video must be {limit:g} seconds or less (selected video is {duration:.1f} seconds)"
        )


# --- Compression ---

class CompressionFailedError(DailyReelError):
    default_message = "Video compression failed"


class BusyError(DailyReelError):
    default_message = "A compression is already running. Wait for it to finish and try again."


# --- Upload ---

class NotAuthenticatedError(DailyReelError):
    default_message = "No Google Drive access token available. Please connect Google Drive first."


class AuthRejectedError(DailyReelError):
    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(
            message or
            "Google Drive access denied (invalid/expired token). "
            "Please re-authenticate with Google and grant Drive access."
        )


class DriveAPIError(DailyReelError):
    """Non-2xx response from the Drive API (retryable)"""

    def __init__(self, status_code: int, body: str = "", operation: str = "request"):
        self.status_code = status_code
        self.body = body
        self.operation = operation
        super().__init__(f"Drive {operation} failed: HTTP {status_code} - {body[:200]}")


class UploadFailedError(DailyReelError):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Upload failed after {attempts} attempt(s){detail}")


class MetadataPersistError(DailyReelError):
    split_brain = True

    def __init__(self, remote_file_id: str, cause: Optional[BaseException] = None):
        self.remote_file_id = remote_file_id
        self.cause = cause
        super().__init__(
            "Your video is safely stored in Google Drive but could not be added to your library yet. "
            "Run a sync to track it."
        )


# --- Folders ---

class RemoteMutationError(DailyReelError):
    def __init__(self, operation: str, status_code: Optional[int] = None, message: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        suffix = f" (HTTP {status_code})" if status_code else ""
        super().__init__(message or f"Failed to {operation} in Google Drive{suffix}")


class LocalPersistError(DailyReelError):
    """A local write failed; split-brain only when a remote change already happened"""

    def __init__(self, operation: str, remote_id: Optional[str] = None, cause: Optional[BaseException] = None):
        self.operation = operation
        self.remote_id = remote_id
        self.cause = cause
        self.split_brain = remote_id is not None
        if remote_id is not None:
            message = (
                f"Google Drive completed '{operation}' but the change could not be saved locally. "
                "Run a sync to repair it."
            )
        else:
            message = f"Failed to save '{operation}' locally"
        super().__init__(message)


# --- Lookups and state ---

class ResourceNotFoundError(DailyReelError, LookupError):
    def __init__(self, resource: str, resource_id: Optional[str]):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} not found")


class InvalidTransitionError(DailyReelError):
    default_message = "Invalid state transition"
