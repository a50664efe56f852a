"""Shared HTTP client utilities: reusable httpx client."""

import httpx

from nps_api.config import get_settings

# Module-level shared client (created lazily, lives for the process lifetime)
_client: httpx.AsyncClient | None = None

# Per-request ceiling; webhook calls pass their own timeout as well
DEFAULT_TIMEOUT = 15.0


def get_shared_client() -> httpx.AsyncClient:
    """Return a shared httpx.AsyncClient, creating it on first call."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
    return _client


async def close_shared_client() -> None:
    """Close the shared client (application shutdown)."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


def storage_headers() -> dict[str, str]:
    """Build standard storage API request headers.

    Includes the Authorization header only when an API key is configured.
    """
    settings = get_settings()
    headers: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if settings.storage_api_key:
        headers["Authorization"] = f"Bearer {settings.storage_api_key}"
    return headers


def storage_url(path: str) -> str:
    """Join *path* onto the configured storage API base URL."""
    base = get_settings().storage_api_url.rstrip("/")
    return f"{base}/{path.lstrip('/')}"
