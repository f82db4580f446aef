"""Persistence layer for notification history.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository
    - HistoryRepository: queries and updates on notification history

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError, RecordNotFoundError, DataIntegrityError

Example usage:
    >>> from trainee_notifications.persistence import init_database, get_session, HistoryRepository
    >>> init_database("sqlite:///./data/notifications.db")
    >>> with get_session() as session:
    ...     records = HistoryRepository(session).find_all_for_subject("47165")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import HistoryRepository

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "HistoryRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
