"""ERP connector — paged LoadBizObjects reads over the OpenApi/Invoke endpoint.

Every call is a POST carrying EngineCode/EngineSecret headers and a body of
{ActionName, SchemaCode, Filter|BizObjectId}. Responses wrap data in
{Successful, ErrorMessage, ReturnData}.
"""

import asyncio
import json
import logging

from ..schemas.erp import InventoryRow, SkuMappingRecord
from .base import BaseApiClient, ErpError

log = logging.getLogger("stocksync.connectors.erp")


def _page_filter(start: int, end: int) -> str:
    return json.dumps(
        {
            "FromRowNum": start,
            "ToRowNum": end,
            "RequireCount": False,
            "ReturnItems": [],
            "SortByCollection": [],
            "Matcher": {"Type": "And", "Matchers": []},
        }
    )


class ErpClient(BaseApiClient):
    service = "erp"
    error_cls = ErpError

    def __init__(
        self,
        http,
        engine_code: str,
        engine_secret: str,
        base_url: str,
        page_size: int = 500,
        page_delay: float = 0.5,
        timeout: float | None = None,
        controller=None,
        sleep=asyncio.sleep,
    ):
        super().__init__(http, timeout=timeout, controller=controller)
        if not engine_code or not engine_secret:
            raise ErpError("ERP credentials are not configured")
        self.base_url = base_url
        self.page_size = min(page_size, 500)
        self.page_delay = page_delay
        self._headers = {
            "EngineCode": engine_code,
            "EngineSecret": engine_secret,
            "Content-Type": "application/json",
        }
        self._sleep = sleep

    @classmethod
    def from_settings(cls, http, settings, controller=None) -> "ErpClient":
        return cls(
            http,
            settings.erp_engine_code,
            settings.erp_engine_secret,
            settings.erp_base_url,
            page_size=settings.erp_page_size,
            page_delay=settings.erp_page_delay_ms / 1000,
            timeout=settings.http_timeout_seconds,
            controller=controller,
        )

    async def _invoke(self, body: dict) -> dict:
        resp = await self._request("POST", self.base_url, headers=self._headers, json=body)
        try:
            data = resp.json()
        except ValueError as e:
            raise ErpError(f"ERP returned non-JSON body: {resp.text[:200]}") from e
        if not data.get("Successful"):
            raise ErpError(data.get("ErrorMessage") or "ERP call failed")
        return data.get("ReturnData") or {}

    async def load_objects(self, schema_code: str) -> list[dict]:
        """Read every object of a schema, page by page, until a short page."""
        objects: list[dict] = []
        start = 0
        while True:
            data = await self._invoke(
                {
                    "ActionName": "LoadBizObjects",
                    "SchemaCode": schema_code,
                    "Filter": _page_filter(start, start + self.page_size),
                }
            )
            page = data.get("BizObjectArray") or []
            objects.extend(page)
            if len(page) < self.page_size:
                break
            start += self.page_size
            await self._sleep(self.page_delay)
        log.info(f"ERP {schema_code}: loaded {len(objects)} objects")
        return objects

    async def load_object(self, schema_code: str, object_id: str) -> dict | None:
        data = await self._invoke(
            {"ActionName": "LoadBizObject", "SchemaCode": schema_code, "BizObjectId": object_id}
        )
        return data.get("BizObject")

    async def warehouse_names(self, schema_code: str, warehouse_ids) -> dict[str, str]:
        """Resolve warehouse ids to display names. Lookup failures fall back to the id label."""
        names: dict[str, str] = {}
        ids = [w for w in dict.fromkeys(warehouse_ids) if w]
        if not ids:
            return names

        async def _lookup(wid):
            obj = await self.load_object(schema_code, wid)
            return (obj or {}).get("Name")

        if self.controller is not None:
            outcomes = await self.controller.run(ids, _lookup)
            for outcome in outcomes:
                if outcome.error is not None:
                    log.warning(f"Warehouse lookup failed for {outcome.item}: {outcome.error}")
                elif outcome.value:
                    names[outcome.item] = outcome.value
        else:
            for wid in ids:
                name = await _lookup(wid)
                if name:
                    names[wid] = name
        return names

    async def fetch_inventory(
        self, inventory_schema: str, warehouse_schema: str, shortfall_field: str = ""
    ) -> list[InventoryRow]:
        raw = await self.load_objects(inventory_schema)
        names = await self.warehouse_names(
            warehouse_schema, [str(o.get("F0000007") or "") for o in raw]
        )
        rows = []
        for obj in raw:
            row = InventoryRow.from_biz_object(obj, names, shortfall_field)
            if row is not None:
                rows.append(row)
        dropped = len(raw) - len(rows)
        if dropped:
            log.info(f"ERP inventory: dropped {dropped} rows without code or quantity")
        return rows

    async def fetch_sku_mappings(self, mapping_schema: str) -> list[SkuMappingRecord]:
        raw = await self.load_objects(mapping_schema)
        records = []
        for obj in raw:
            rec = SkuMappingRecord.from_biz_object(obj)
            if rec is not None:
                records.append(rec)
        return records
