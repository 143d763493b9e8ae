# src/sac/errors.py


class SacError(Exception):
    """Base class for run-level failures."""


class ValidationError(SacError):
    """The remote reference is malformed; the user has to correct it."""


class NotFoundError(SacError):
    """The remote repository (or branch) does not exist or is not accessible."""


class FetchError(SacError):
    """A run-level request returned a non-2xx status."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class CancelledError(SacError):
    """The user aborted the run. Not a failure."""

    def __init__(self, message: str = "Operation cancelled by user"):
        super().__init__(message)


class TransientFileError(SacError):
    """A single file could not be read or fetched; the run continues without it."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class RunTimeoutError(SacError, TimeoutError):
    def __init__(self, message: str = "Processing timed out. Please try again with fewer files."):
        super().__init__(message)
