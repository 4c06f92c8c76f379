"""
Application errors. Each carries the HTTP status it is answered with;
main.py turns them into {"error": message} responses.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Malformed or missing input."""
    status_code = 400


class InvalidDateError(ValidationError):
    def __init__(self, message: str = "Invalid date format"):
        super().__init__(message)


class NotFoundError(AppError):
    """The target entity, or an entity it references, does not exist."""
    status_code = 404


class UnauthorizedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class StorageError(AppError):
    """The database failed underneath an operation."""
    status_code = 500
