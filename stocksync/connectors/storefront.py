"""Storefront connector — WooCommerce-style REST API, HTTP Basic auth per site."""

import logging

import httpx

from ..schemas.storefront import StorefrontProduct
from .base import BaseApiClient, StorefrontError

log = logging.getLogger("stocksync.connectors.storefront")


class StorefrontClient(BaseApiClient):
    service = "storefront"
    error_cls = StorefrontError

    def __init__(
        self,
        http,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: float | None = None,
        controller=None,
    ):
        super().__init__(http, timeout=timeout, controller=controller)
        if not consumer_key or not consumer_secret:
            raise StorefrontError("Storefront credentials are not configured")
        self.base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(consumer_key, consumer_secret)

    @classmethod
    def for_site(cls, http, site, controller=None, timeout: float | None = None) -> "StorefrontClient":
        return cls(http, site.api_base, site.api_key, site.api_secret, timeout=timeout, controller=controller)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def find_by_sku(self, sku: str) -> StorefrontProduct | None:
        """Lookup by SKU. Returns a simple product, a variation, or None."""
        resp = await self._request("GET", self._url("products"), params={"sku": sku}, auth=self._auth)
        items = resp.json() or []
        if not items:
            return None
        products = [StorefrontProduct.model_validate(i) for i in items]
        for p in products:
            if p.sku == sku:
                return p
        return products[0]

    async def update(self, path: str, payload: dict) -> StorefrontProduct:
        resp = await self._request("PUT", self._url(path), json=payload, auth=self._auth)
        return StorefrontProduct.model_validate(resp.json())

    async def list_page(
        self,
        resource: str,
        page: int,
        per_page: int = 100,
        modified_after: str | None = None,
    ) -> tuple[list[dict], int]:
        """One page of orders/products ordered by modification time, oldest first.

        Returns (items, total_pages); total_pages is 0 when the header is missing.
        """
        params = {
            "page": page,
            "per_page": per_page,
            "orderby": "modified",
            "order": "asc",
            "status": "any",
        }
        if modified_after:
            params["modified_after"] = modified_after
            params["dates_are_gmt"] = "true"
        resp = await self._request("GET", self._url(resource), params=params, auth=self._auth)
        try:
            total_pages = int(resp.headers.get("X-WP-TotalPages", "0"))
        except ValueError:
            total_pages = 0
        return resp.json() or [], total_pages
