"""Shared request plumbing for the ERP and storefront connectors.

Connectors never retry on their own. They classify every response into a
value or one of the exceptions below; the adaptive concurrency controller
decides whether and when to try again.

  429            -> RateLimitedError (honours Retry-After)
  5xx / timeout  -> TransientError
  other 4xx      -> the connector's permanent error class
"""

import logging

import httpx

log = logging.getLogger("stocksync.connectors")


class RemoteError(Exception):
    """Base class for failures talking to an external system."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientError(RemoteError):
    """Retryable: timeout, connection drop, 5xx."""


class RateLimitedError(TransientError):
    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ErpError(RemoteError):
    """ERP rejected the call or reported Successful=false."""


class StorefrontError(RemoteError):
    """Storefront rejected the call (auth, validation, not found)."""


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class BaseApiClient:
    service = "remote"
    error_cls: type[RemoteError] = RemoteError

    def __init__(self, http: httpx.AsyncClient, timeout: float | None = None, controller=None):
        self.http = http
        self.timeout = timeout
        self.controller = controller

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.timeout is not None:
            kwargs.setdefault("timeout", self.timeout)
        try:
            resp = await self.http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.service} timeout: {e}") from e
        except httpx.TransportError as e:
            raise TransientError(f"{self.service} connection error: {e}") from e

        if resp.status_code == 429:
            raise RateLimitedError(f"{self.service} rate limited", retry_after=_retry_after(resp))
        if resp.status_code >= 500:
            raise TransientError(
                f"{self.service} {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code
            )
        if resp.status_code >= 400:
            raise self.error_cls(
                f"{self.service} {resp.status_code}: {resp.text[:300]}", status_code=resp.status_code
            )
        return resp

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request, gated by the controller's retry policy when one is attached."""
        if self.controller is None:
            return await self._send(method, url, **kwargs)
        return await self.controller.call(self._send, method, url, **kwargs)
