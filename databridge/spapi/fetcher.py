from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Protocol

from databridge.services.marketplaces import MarketplaceGroup
from databridge.spapi.client import SpApiClientPool
from databridge.spapi.constants import ORDERS_REPORT_TYPE
from databridge.spapi.polling import ReportPollPolicy, wait_for_report
from databridge.spapi.records import (
    InventoryRecord,
    OrderRecord,
    normalize_inventory_summary,
    normalize_order_rows,
)

logger = logging.getLogger(__name__)


class ReportFetcher(Protocol):
    def fetch_inventory_snapshot(self, group: MarketplaceGroup) -> list[InventoryRecord]: ...

    def fetch_orders(self, group: MarketplaceGroup, start: datetime, end: datetime) -> list[OrderRecord]: ...


def _next_token(response: dict[str, Any]) -> str | None:
    return (
        response.get("nextToken")
        or (response.get("pagination") or {}).get("nextToken")
        or ((response.get("payload") or {}).get("pagination") or {}).get("nextToken")
    )


def _summaries(response: dict[str, Any]) -> list[dict[str, Any]]:
    return (response.get("payload") or {}).get("inventorySummaries") or response.get("inventorySummaries") or []


class SpApiReportFetcher:
    def __init__(
        self,
        clients: SpApiClientPool | None = None,
        poll_policy: ReportPollPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.clients = clients or SpApiClientPool()
        self.poll_policy = poll_policy or ReportPollPolicy.from_settings()
        self.sleep = sleep

    def fetch_inventory_snapshot(self, group: MarketplaceGroup) -> list[InventoryRecord]:
        marketplace = group.representative
        client = self.clients.get(group.credential)

        records: list[InventoryRecord] = []
        next_token: str | None = None
        while True:
            response = client.get_inventory_summaries(marketplace.marketplace_id, next_token)
            summaries = _summaries(response)
            for summary in summaries:
                record = normalize_inventory_summary(summary, marketplace.marketplace_id)
                if record is not None:
                    records.append(record)

            next_token = _next_token(response)
            logger.info(f"[SP-API] Inventory batch: {len(summaries)} items, hasMore: {bool(next_token)}")
            if not next_token:
                break

        logger.info(f"[SP-API] Fetched {len(records)} inventory items for {marketplace.country_code}")
        return records

    def fetch_orders(self, group: MarketplaceGroup, start: datetime, end: datetime) -> list[OrderRecord]:
        client = self.clients.get(group.credential)
        logger.info(
            f"[SP-API] Requesting orders report for {group.label}: {start.isoformat()} - {end.isoformat()}"
        )

        report_id = client.create_report(ORDERS_REPORT_TYPE, group.marketplace_ids, start, end)
        document = wait_for_report(client, report_id, self.poll_policy, sleep=self.sleep)
        rows = client.download_document(document)

        orders = normalize_order_rows(rows, group.members)
        logger.info(f"[SP-API] Parsed {len(orders)} order items for {group.label} ({len(rows)} rows)")
        return orders
