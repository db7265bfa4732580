"""
Dependency injection for FastAPI endpoints.

The engine and broadcaster are created by the application lifespan (or
passed to ``create_app``) and registered here; routes receive them through
``Depends``. Tests override these providers via ``app.dependency_overrides``.
"""

from fastapi import HTTPException, status

from src.alerts.broadcaster import AlertBroadcaster
from src.alerts.engine import AlertEngine
from src.storage.database import Database

# Instances registered during app startup
_alert_engine: AlertEngine | None = None
_alert_broadcaster: AlertBroadcaster | None = None
_database: Database | None = None


def set_alert_engine(engine: AlertEngine | None) -> None:
    global _alert_engine
    _alert_engine = engine


def set_alert_broadcaster(broadcaster: AlertBroadcaster | None) -> None:
    global _alert_broadcaster
    _alert_broadcaster = broadcaster


def set_database(database: Database | None) -> None:
    global _database
    _database = database


async def get_alert_engine() -> AlertEngine:
    """
    Get the running alert engine.

    Raises:
        HTTPException: 503 if the engine has not been started.
    """
    if _alert_engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Alert engine not available",
        )
    return _alert_engine


def get_alert_broadcaster() -> AlertBroadcaster | None:
    """Get the WebSocket broadcaster (None when disabled)."""
    return _alert_broadcaster


async def get_database() -> Database | None:
    """Get the database (None when running with in-memory storage)."""
    return _database


def peek_alert_engine() -> AlertEngine | None:
    """The registered engine without raising (used by the health check)."""
    return _alert_engine
