from typing import Optional


class ExamClientError(Exception):
    """Base error; `message` is safe to show to the user"""

    retryable = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExamClientError):
    """Bad or missing user input (pairing code, role)"""


class TransportError(ExamClientError):
    """Network failure or realtime channel not connected"""


class ApiError(ExamClientError):
    """Backend answered with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    retryable = False


class TemplateUnavailableError(ExamClientError):
    """Template missing or inactive"""

    retryable = False


class AuthorizationError(ApiError):
    retryable = False


class AttemptFinishedError(ApiError):
    """The attempt is already completed or timed out"""

    retryable = False

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message, status_code=409)
        self.status = status
