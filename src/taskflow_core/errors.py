"""Domain error taxonomy.

Every error here is an expected, caller-recoverable outcome. The API layer
maps each class to one HTTP status; nothing in this module is fatal to the
process.
"""


class TaskflowError(Exception):
    """Base class for domain errors carrying a human-readable message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskflowError):
    """Raised for missing or malformed input (empty title, bad team size, unknown role)."""
    pass


class AuthenticationError(TaskflowError):
    """Raised when the actor cannot be resolved or credentials do not match."""
    pass


class PermissionDeniedError(TaskflowError):
    """Raised when the actor's role or department does not allow the operation."""
    pass


class NotFoundError(TaskflowError):
    """Raised when an operation targets an id that does not exist."""
    pass


class ConflictError(TaskflowError):
    """Raised on unique-key collisions (project/task key, user login)."""
    pass


class ReferentialIntegrityError(TaskflowError):
    """Raised when deleting a row that other rows still reference."""
    pass
