"""Custom exception classes for the upload transport."""


class UploadError(Exception):
    """
    Base exception class for all upload-related errors.
    """
    pass


class TransientUploadError(UploadError):
    """
    Raised on failures worth retrying: connection errors, timeouts,
    5xx responses and 423/429 from the tus server.
    """

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class FatalUploadError(UploadError):
    """
    Raised when the server rejects the upload in a way retrying cannot fix
    (4xx other than conflict/expired/locked/throttled).
    """

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class OffsetMismatchError(UploadError):
    """
    Raised on 409 Conflict: the server's Upload-Offset differs from ours.
    """
    pass


class UploadExpiredError(UploadError):
    """
    Raised when the upload URL is gone (404/410) and must be recreated.
    """
    pass


class UploadCancelledError(UploadError):
    """
    Raised inside a worker when its session was cancelled mid-transfer.
    """
    pass


class SessionNotFoundError(UploadError):
    """
    Raised when a session id is not present in the session store.
    """
    pass
