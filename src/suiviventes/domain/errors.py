class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ReadOnlyModeError(AppError):
    pass


class AuthenticationError(AppError):
    pass


class RemoteBackendError(AppError):
    """Remote backend call failed; the message is safe to show to the user."""

    def __init__(self, message: str, *, status: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status = status
        self.detail = detail
