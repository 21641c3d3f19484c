#!/usr/bin/env python3
"""
Check order folders against their configurations, optionally repairing drift.

Usage:
    # Fleet report (read-only)
    python -m order_assets.core.commands.check_order_images

    # Validate a single order
    python -m order_assets.core.commands.check_order_images --order-id order-123

    # Repair drift for one order or for every drifted order
    python -m order_assets.core.commands.check_order_images --fix --order-id order-123
    python -m order_assets.core.commands.check_order_images --fix
"""

import argparse
import asyncio
import json
import logging
from typing import Optional

from order_assets.core.database.database_service import DatabaseService
from order_assets.core.orders.link_store import SqlTemporaryLinkStore
from order_assets.core.orders.order_store import SqlOrderStore
from order_assets.core.shared.lock_service import get_lock_service
from order_assets.core.storage.minio_service import get_asset_store
from order_assets.services.order_image_service import OrderImageService, build_order_image_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def check_order_images(
    service: OrderImageService,
    fix: bool = False,
    order_id: Optional[str] = None,
) -> int:
    """
    Report or repair drift.

    Returns:
        Process exit code (0 when everything is, or ends up, in sync)
    """
    if order_id:
        if fix:
            result = await service.auto_fix_order_image_sync(order_id)
        else:
            result = await service.validate_order_folder_sync(order_id)
        print(json.dumps(result, indent=2, default=str))
        ok = result.get("success") and (fix or result.get("is_in_sync"))
        return 0 if ok else 1

    result = await service.generate_order_images_report()
    if not result["success"]:
        logger.error(result["message"])
        return 1

    report = result["report"]
    logger.info(result["message"])
    if not fix:
        print(json.dumps(report, indent=2, default=str))
        return 0 if not report["orders_with_issues"] else 1

    failures = 0
    for issue in report["orders_with_issues"]:
        repair = await service.auto_fix_order_image_sync(issue["order_id"])
        if repair.get("success"):
            logger.info(f"Order {issue['order_number']}: {repair['message']}")
        else:
            failures += 1
            logger.error(f"Order {issue['order_number']}: {repair.get('message')}")

    logger.info(f"Repaired {len(report['orders_with_issues']) - failures} orders, {failures} failures")
    return 0 if failures == 0 else 1


async def run(fix: bool, order_id: Optional[str]) -> int:
    database_service = DatabaseService()
    try:
        service = build_order_image_service(
            store=get_asset_store(),
            order_store=SqlOrderStore(database_service),
            link_store=SqlTemporaryLinkStore(database_service),
            lock_service=get_lock_service(),
        )
        return await check_order_images(service, fix=fix, order_id=order_id)
    finally:
        await database_service.close()


def main():
    parser = argparse.ArgumentParser(description="Check order image folders for drift")
    parser.add_argument(
        "--fix",
        action="store_true",
        help="Repair drift instead of only reporting it"
    )
    parser.add_argument(
        "--order-id",
        default=None,
        help="Limit the check to one order"
    )
    args = parser.parse_args()

    raise SystemExit(asyncio.run(run(fix=args.fix, order_id=args.order_id)))


if __name__ == "__main__":
    main()
