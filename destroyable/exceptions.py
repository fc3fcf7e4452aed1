class BaseDestroyableError(Exception):
    pass


class ValidationError(BaseDestroyableError):
    """Raised when something does not pass a validation check."""
