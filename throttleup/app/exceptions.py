"""Custom exceptions for the uploader."""


class ThrottleUpError(Exception):
    """Base class for uploader exceptions with a process exit code.

    All custom exceptions inherit from this class and define their
    exit_code so the command line entry point can map them uniformly.
    """
    exit_code: int = 1

    def __init__(self, message: str = "Upload error"):
        self.message = message
        super().__init__(message)


class SourceError(ThrottleUpError):
    """Raised when the input file or URL cannot be opened or read.

    Always raised before any upload request is issued.
    """

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"Error opening {location}: {reason}")


class UploadError(ThrottleUpError):
    """Raised when the remote API answers with an unexpected status.

    Carries the status code and response text so the caller can report
    whatever the remote call returned.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)


class ConfigurationError(ThrottleUpError):
    """Raised when command line flags or settings are invalid."""
    exit_code = 2
