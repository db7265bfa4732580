"""Storage layer for alert persistence."""

from src.storage.database import Database

__all__ = ["Database"]
