"""Custom exception classes for the upload subsystem."""


class UploadError(Exception):
    """
    Base exception class for all upload-related errors.
    """
    code = "UPLOAD_ERROR"


class ValidationError(UploadError):
    """
    Raised when a candidate file fails local policy checks.
    """
    code = "VALIDATION_ERROR"


class InvalidFileTypeError(ValidationError):
    """
    Raised when the declared content type is not an allowed video type.
    """
    code = "INVALID_FILE_TYPE"


class FileTooLargeError(ValidationError):
    """
    Raised when the declared size exceeds the 10 GiB ceiling.
    """
    code = "FILE_TOO_LARGE"


class InvalidFileSizeError(ValidationError):
    """
    Raised when the declared size is negative.
    """
    code = "INVALID_FILE_SIZE"


class SessionError(UploadError):
    """
    Raised when the remote upload session cannot be used (auth, quota, protocol).
    """
    code = "SESSION_ERROR"


class SessionExpiredError(SessionError):
    """
    Raised when the session is gone or no longer authorized.
    """
    code = "SESSION_EXPIRED"


class ContiguityMismatchError(SessionError):
    """
    Raised when the server's persisted offset disagrees with local bookkeeping.
    """
    code = "CONTIGUITY_MISMATCH"


class TransientNetworkError(UploadError):
    """
    Raised on timeouts, connection resets and retryable server replies.
    """
    code = "TRANSIENT_NETWORK_ERROR"


class RetryExhaustedError(TransientNetworkError):
    """
    Raised when a chunk keeps failing transiently past the retry budget.
    """
    code = "RETRY_EXHAUSTED"

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class InvalidTransitionError(UploadError):
    """
    Raised when a state machine transition is not legal from the current state.
    """
    code = "INVALID_TRANSITION"


class UploadNotFoundError(UploadError):
    """
    Raised when an upload id is not present in the registry.
    """
    code = "UPLOAD_NOT_FOUND"


class DuplicateUploadError(UploadError):
    """
    Raised when registering an id that is already tracked.
    """
    code = "DUPLICATE_UPLOAD"


class NotResumableError(UploadError):
    """
    Raised when a checkpoint carries no usable continuation point.
    """
    code = "NOT_RESUMABLE"


class UploadCancelledError(UploadError):
    """
    Raised inside an upload task when its cancel token fires.
    """
    code = "UPLOAD_CANCELLED"
