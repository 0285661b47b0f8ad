"""Supplier catalog and match history storage.

Two backends share the CatalogStore protocol:
- InMemoryCatalogStore: process-local, optionally seeded from a JSON file
- RedisCatalogStore: suppliers in a hash, history and feedback in capped lists

Backend failures surface as CatalogUnavailable so callers can fail the run.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import redis.asyncio as redis
from pydantic import BaseModel, Field, ValidationError
from redis.exceptions import RedisError

from services.matching.schema import Supplier
from services.shared.config import Settings

logger = logging.getLogger(__name__)

SUPPLIERS_KEY = "catalog:suppliers"
MATCHES_KEY = "catalog:matches:{document_id}"
FEEDBACK_KEY = "catalog:feedback:{document_id}"


class CatalogUnavailable(Exception):
    """The catalog backend could not be read or written."""


class MatchRecord(BaseModel):
    """One persisted ranking run for a document.

    Attributes:
        document_id: Ranked document
        matched_at: When the ranking ran
        dialect: Dialect of the ranked requirement
        solicitation_number: Solicitation identifier, if known
        summary: Aggregate statistics of the run
        matches: Summaries of the persisted top results, best first
    """

    document_id: str
    matched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    dialect: str | None = None
    solicitation_number: str | None = None
    summary: dict[str, Any] = Field(default_factory=dict)
    matches: list[dict[str, Any]] = Field(default_factory=list)


class FeedbackRecord(BaseModel):
    """Human feedback on a supplier match."""

    feedback_id: str
    document_id: str
    supplier_id: str
    label: str
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CatalogStore(Protocol):
    """Storage contract used by the matching service."""

    async def list_active_suppliers(self) -> list[Supplier]: ...

    async def append_match_history(self, record: MatchRecord) -> None: ...

    async def get_match_history(self, document_id: str) -> list[MatchRecord]: ...

    async def append_feedback(self, record: FeedbackRecord) -> None: ...

    async def health_check(self) -> bool: ...


class InMemoryCatalogStore:
    """Process-local catalog, used for development and tests."""

    def __init__(self, suppliers: list[Supplier] | None = None, history_limit: int = 20) -> None:
        self.history_limit = history_limit
        self._suppliers: dict[str, Supplier] = {}
        self._matches: dict[str, list[MatchRecord]] = {}
        self._feedback: dict[str, list[FeedbackRecord]] = {}
        self.upsert_suppliers(suppliers or [])

    def upsert_suppliers(self, suppliers: list[Supplier]) -> int:
        for supplier in suppliers:
            self._suppliers[supplier.supplier_id] = supplier
        return len(suppliers)

    async def list_active_suppliers(self) -> list[Supplier]:
        return [s for s in self._suppliers.values() if s.status == "active"]

    async def append_match_history(self, record: MatchRecord) -> None:
        history = self._matches.setdefault(record.document_id, [])
        history.insert(0, record)
        del history[self.history_limit :]

    async def get_match_history(self, document_id: str) -> list[MatchRecord]:
        """Stored runs for a document, newest first."""
        return list(self._matches.get(document_id, []))

    async def append_feedback(self, record: FeedbackRecord) -> None:
        self._feedback.setdefault(record.document_id, []).append(record)

    async def get_feedback(self, document_id: str) -> list[FeedbackRecord]:
        return list(self._feedback.get(document_id, []))

    async def health_check(self) -> bool:
        return True


class RedisCatalogStore:
    """Redis-backed catalog.

    Suppliers are JSON values in a hash keyed by supplier id; match history
    is a per-document list trimmed to `history_limit` entries, newest first.
    """

    def __init__(self, client: redis.Redis, history_limit: int = 20) -> None:
        self.client = client
        self.history_limit = history_limit

    async def upsert_suppliers(self, suppliers: list[Supplier]) -> int:
        if not suppliers:
            return 0
        mapping = {s.supplier_id: s.model_dump_json() for s in suppliers}
        try:
            await self.client.hset(SUPPLIERS_KEY, mapping=mapping)
        except RedisError as e:
            raise CatalogUnavailable(f"Failed to write suppliers: {e}") from e
        logger.info(f"Upserted {len(suppliers)} suppliers into {SUPPLIERS_KEY}")
        return len(suppliers)

    async def list_active_suppliers(self) -> list[Supplier]:
        try:
            raw = await self.client.hgetall(SUPPLIERS_KEY)
        except RedisError as e:
            raise CatalogUnavailable(f"Failed to read suppliers: {e}") from e

        suppliers = []
        for supplier_id, payload in raw.items():
            try:
                supplier = Supplier.model_validate_json(payload)
            except ValidationError as e:
                logger.warning(f"Skipping malformed supplier {supplier_id}: {e}")
                continue
            if supplier.status == "active":
                suppliers.append(supplier)
        suppliers.sort(key=lambda s: s.supplier_id)
        return suppliers

    async def append_match_history(self, record: MatchRecord) -> None:
        key = MATCHES_KEY.format(document_id=record.document_id)
        try:
            await self.client.lpush(key, record.model_dump_json())
            await self.client.ltrim(key, 0, self.history_limit - 1)
        except RedisError as e:
            raise CatalogUnavailable(f"Failed to store match history: {e}") from e

    async def get_match_history(self, document_id: str) -> list[MatchRecord]:
        """Stored runs for a document, newest first."""
        key = MATCHES_KEY.format(document_id=document_id)
        try:
            raw = await self.client.lrange(key, 0, -1)
        except RedisError as e:
            raise CatalogUnavailable(f"Failed to read match history: {e}") from e
        return [MatchRecord.model_validate_json(payload) for payload in raw]

    async def append_feedback(self, record: FeedbackRecord) -> None:
        key = FEEDBACK_KEY.format(document_id=record.document_id)
        try:
            await self.client.rpush(key, record.model_dump_json())
        except RedisError as e:
            raise CatalogUnavailable(f"Failed to store feedback: {e}") from e

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Catalog health check failed: {e}")
            return False


def load_suppliers_from_json(path: str | Path) -> list[Supplier]:
    """Load supplier records from a JSON list (or an object with a 'suppliers' key).

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file does not hold supplier records
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("suppliers", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of suppliers in {path}")
    return [Supplier.model_validate(entry) for entry in data]


def create_catalog_store(settings: Settings) -> InMemoryCatalogStore | RedisCatalogStore:
    """Build the configured catalog backend.

    Args:
        settings: Application settings

    Returns:
        InMemoryCatalogStore (seeded when a seed path is set) or RedisCatalogStore
    """
    if settings.catalog_backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        logger.info(f"Using Redis catalog at {settings.redis_url}")
        return RedisCatalogStore(client, history_limit=settings.catalog_history_limit)

    suppliers: list[Supplier] = []
    if settings.catalog_seed_path:
        suppliers = load_suppliers_from_json(settings.catalog_seed_path)
        logger.info(f"Seeded in-memory catalog with {len(suppliers)} suppliers")
    return InMemoryCatalogStore(suppliers, history_limit=settings.catalog_history_limit)
