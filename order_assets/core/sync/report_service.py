"""
Fleet-wide image sync health report.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from order_assets.config import settings
from order_assets.core.orders.order_store import OrderStore
from order_assets.core.sync.validation_service import ConsistencyValidator

logger = logging.getLogger("order_assets.sync.report")


class FleetReportGenerator:
    """
    Validates every order and aggregates the outcome.

    One order failing validation is listed under ``orders_with_issues`` with
    its error and does not stop the sweep.
    """

    def __init__(
        self,
        validator: ConsistencyValidator,
        order_store: OrderStore,
        order_delay_seconds: Optional[float] = None,
    ):
        self.validator = validator
        self.order_store = order_store
        self.order_delay_seconds = (
            settings.report_order_delay_seconds if order_delay_seconds is None else order_delay_seconds
        )

    async def generate_report(self) -> Dict[str, Any]:
        orders = await self.order_store.get_orders()
        report: Dict[str, Any] = {
            "total_orders": len(orders),
            "checked_orders": 0,
            "synced_orders": 0,
            "unsynced_orders": 0,
            "orders_with_issues": [],
            "summary": {
                "total_images": 0,
                "total_missing_images": 0,
                "total_extra_images": 0,
            },
            "generated_at": datetime.utcnow().isoformat(),
        }
        logger.info(f"Generating image sync report for {len(orders)} orders")

        for position, order in enumerate(orders):
            try:
                validation = await self.validator.validate(order["id"])
            except Exception as e:
                logger.error(f"Validation failed for order {order.get('order_number')}: {e}")
                report["orders_with_issues"].append({
                    "order_id": order.get("id"),
                    "order_number": order.get("order_number"),
                    "error": str(e),
                })
            else:
                report["checked_orders"] += 1
                if validation.is_in_sync:
                    report["synced_orders"] += 1
                else:
                    report["unsynced_orders"] += 1
                    report["orders_with_issues"].append({
                        "order_id": validation.order_id,
                        "order_number": validation.order_number,
                        "issues": {
                            "missing": list(validation.missing),
                            "extra": list(validation.extra),
                        },
                    })
                report["summary"]["total_images"] += len(validation.actual_refs)
                report["summary"]["total_missing_images"] += len(validation.missing)
                report["summary"]["total_extra_images"] += len(validation.extra)

            if self.order_delay_seconds and position < len(orders) - 1:
                await asyncio.sleep(self.order_delay_seconds)

        logger.info(
            f"Image sync report: {report['synced_orders']} in sync, "
            f"{report['unsynced_orders']} drifted, "
            f"{len(report['orders_with_issues'])} with issues"
        )
        return report
