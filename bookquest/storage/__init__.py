"""Storage adapters."""

from bookquest.storage.base import StatsSnapshot, StorageAdapter
from bookquest.storage.sql import SQLAlchemyStorage

__all__ = ["StorageAdapter", "StatsSnapshot", "SQLAlchemyStorage"]
