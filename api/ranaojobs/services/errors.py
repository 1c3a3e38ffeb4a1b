class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation conflicts with the stored state."""


class RepositoryInvalidStateError(RepositoryConflictError):
    """Raised when an operation violates state transition rules."""


class RepositoryDuplicateError(RepositoryConflictError):
    """Raised when a uniqueness rule would be broken."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""
