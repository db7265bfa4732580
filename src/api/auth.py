"""
API authentication using the X-API-KEY header.

The WebSocket endpoint authenticates with an ``api_key`` query parameter
instead (browsers cannot set headers on the upgrade request); both paths
share ``is_valid_api_key``.
"""

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


def configured_api_keys() -> list[str]:
    """Configured keys, empty when auth is disabled."""
    raw = get_settings().api_keys
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def is_valid_api_key(api_key: str | None) -> bool:
    """True in dev mode (no keys configured) or when the key is known."""
    if not get_settings().api_keys:
        return True
    if api_key is None:
        return False
    keys = configured_api_keys()
    return bool(keys) and api_key in keys


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify the API key from the X-API-KEY header.

    Returns:
        The validated key, or ``"dev-mode"`` when no keys are configured.

    Raises:
        HTTPException: 401 if the key is missing or unknown.
    """
    if not get_settings().api_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )
    if not is_valid_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return api_key
