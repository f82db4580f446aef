"""History store exceptions.

Every storage failure surfaces as a PersistenceError subclass, so sweeps can
catch storage problems per record without also swallowing transport errors.
"""


class PersistenceError(Exception):
    """Base exception for all history store errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialised or reached."""

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an operation requires a history record that does not exist.

    Lookups that may legitimately miss return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations and on disallowed status transitions."""

    pass
