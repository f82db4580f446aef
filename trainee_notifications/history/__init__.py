"""History store service: the durable log of every notification attempt."""

from .service import HistoryStore

__all__ = ["HistoryStore"]
