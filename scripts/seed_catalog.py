"""Load a supplier JSON file into the Redis supplier catalog.

Input format: a JSON list of supplier records, or an object with a
"suppliers" key (see data/sample_suppliers.json). Records are upserted by
supplier_id, so re-running the script is safe.
"""

import asyncio
import logging
from pathlib import Path

import redis.asyncio as redis

from services.catalog.store import RedisCatalogStore, load_suppliers_from_json
from services.shared.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def seed_catalog(path: Path, store: RedisCatalogStore, dry_run: bool = False) -> int:
    """Upsert every supplier in a JSON file.

    Args:
        path: Supplier JSON file
        store: Target catalog
        dry_run: Validate the file without writing

    Returns:
        Number of suppliers loaded
    """
    if not path.exists():
        raise FileNotFoundError(f"Supplier file not found: {path}")

    suppliers = load_suppliers_from_json(path)
    logger.info(f"Loaded {len(suppliers)} suppliers from {path}")

    if dry_run:
        for supplier in suppliers:
            logger.info(f"  {supplier.supplier_id}: {supplier.company_name} ({supplier.status})")
        return len(suppliers)

    return await store.upsert_suppliers(suppliers)


async def main(path: Path, redis_url: str | None, dry_run: bool) -> None:
    settings = get_settings()
    url = redis_url or settings.redis_url
    client = redis.from_url(url, decode_responses=True)
    try:
        store = RedisCatalogStore(client, history_limit=settings.catalog_history_limit)
        count = await seed_catalog(path, store, dry_run=dry_run)
        logger.info(f"Seeded {count} suppliers into {url}" if not dry_run else "Dry run complete")
    finally:
        await client.aclose()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed the supplier catalog")
    parser.add_argument(
        "--file",
        type=Path,
        default=Path("data/sample_suppliers.json"),
        help="Supplier JSON file",
    )
    parser.add_argument(
        "--redis-url",
        default=None,
        help="Redis URL (defaults to APP_REDIS_URL)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the file without writing to Redis",
    )

    args = parser.parse_args()
    asyncio.run(main(args.file, args.redis_url, args.dry_run))
