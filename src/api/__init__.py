"""
FastAPI alert management service.

Provides a REST API over the alert engine:
- /thresholds - Threshold CRUD, enable/disable
- /rules - Alert rule CRUD
- /alerts - Alert listing, metrics, acknowledge/resolve/suppress
- /monitoring/check - On-demand evaluation pass
- /health - Service health check
- /ws/alerts - Real-time alert stream
"""

from src.api.app import create_app

__all__ = ["create_app"]
