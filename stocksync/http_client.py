"""Shared HTTP client — connection pooling for all outbound requests.

The process entry point (main.py lifespan, or the CLI scheduler) builds one
httpx.AsyncClient with build_http_client() and passes it into connectors.
Nothing in the package holds a module-level client.

Per-request timeout overrides via client.get(url, timeout=15).
"""

import httpx

_LIMITS = httpx.Limits(
    max_connections=50,
    max_keepalive_connections=20,
    keepalive_expiry=30,
)


def build_http_client(timeout: float | None = None, transport=None) -> httpx.AsyncClient:
    """Create the shared client. `transport` lets tests plug in httpx.MockTransport."""
    from .config import settings

    return httpx.AsyncClient(
        timeout=timeout or settings.http_timeout_seconds,
        limits=_LIMITS,
        follow_redirects=False,
        transport=transport,
    )


async def close_client(client: httpx.AsyncClient | None) -> None:
    """Shut down a shared client. Call from app lifespan shutdown."""
    if client is None:
        return
    try:
        await client.aclose()
    except RuntimeError:
        pass
