class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class DuplicateError(ValidationError):
    pass


class NotFoundError(AppError):
    pass


class AuthorizationError(AppError):
    pass


class BackendError(AppError):
    """The backing store rejected or failed a request."""


class StockConflictError(BackendError):
    pass
