"""Unit tests for the matching service.

Tests cover:
- Inline supplier suggestions with threshold and limit
- Pipeline ranking, persistence and event publishing
- Match lookups and feedback
"""

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from services.catalog.store import (
    CatalogUnavailable,
    InMemoryCatalogStore,
    load_suppliers_from_json,
)
from services.events.publisher import EventPublisher, SuppliersRankedEvent
from services.extraction.schema import (
    ComplianceFlags,
    DeliveryLocation,
    RequirementItem,
    StructuredRequirement,
)
from services.matching.config import MatchingConfig
from services.matching.engine import SupplierRankingEngine
from services.matching.service import (
    INLINE_DIALECT,
    MatchingService,
    build_inline_requirement,
)
from services.shared.config import Settings

SAMPLE_SUPPLIERS = Path(__file__).parents[2] / "data" / "sample_suppliers.json"


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(_env_file=None)


@pytest.fixture
def store() -> InMemoryCatalogStore:
    """Catalog seeded with the sample suppliers."""
    return InMemoryCatalogStore(load_suppliers_from_json(SAMPLE_SUPPLIERS))


@pytest.fixture
def publisher() -> AsyncMock:
    """Mock event publisher."""
    return AsyncMock(spec=EventPublisher)


@pytest.fixture
def items() -> list[RequirementItem]:
    return [RequirementItem(name="Nutanix NX-3060 nodes", part_number="NX-3060", quantity=4)]


@pytest.fixture
def requirement() -> StructuredRequirement:
    """Extracted Nutanix requirement delivered to West Virginia."""
    return StructuredRequirement(
        document_id="doc-1",
        dialect="SEWP",
        confidence=0.9,
        extracted_at=datetime.now(UTC),
        solicitation_number="SEWP-2024-0142",
        subject="SEWP V RFQ - Nutanix HCI refresh",
        body="TAA compliance required. HUBZone set-aside.",
        compliance=ComplianceFlags(taa_required=True, brand_restrictions=["nutanix"]),
        delivery_location=DeliveryLocation(city="Kearneysville", state="WV"),
    )


def ranked_results(*scores: float) -> list[MagicMock]:
    results = []
    for index, score in enumerate(scores):
        result = MagicMock()
        result.composite_score = score
        result.supplier_id = f"S{index}"
        results.append(result)
    return results


class TestSuggest:
    """Test inline supplier suggestions."""

    @pytest.mark.asyncio
    async def test_suggest_from_catalog(
        self, settings: Settings, store: InMemoryCatalogStore, items: list[RequirementItem]
    ) -> None:
        """Suggestions are ranked best first and respect the threshold."""
        service = MatchingService(settings, store)

        suggestions = await service.suggest(
            items,
            ComplianceFlags(taa_required=True, brand_restrictions=["nutanix"]),
            DeliveryLocation(city="Kearneysville", state="WV"),
        )

        scores = [s.composite_score for s in suggestions]
        assert 0 < len(suggestions) <= settings.suggestion_limit
        assert scores == sorted(scores, reverse=True)
        assert all(score >= settings.suggestion_min_score for score in scores)

    @pytest.mark.asyncio
    async def test_threshold_and_limit(
        self, settings: Settings, store: InMemoryCatalogStore
    ) -> None:
        """Results below the suggestion threshold are dropped, then the limit applies."""
        engine = MagicMock(spec=SupplierRankingEngine)
        engine.config = MatchingConfig(suggestion_min_score=0.4, suggestion_limit=2)
        engine.rank_suppliers.return_value = ranked_results(0.9, 0.7, 0.5, 0.3)
        service = MatchingService(settings, store, engine=engine)

        suggestions = await service.suggest([RequirementItem(name="Switch")])

        assert [s.composite_score for s in suggestions] == [0.9, 0.7]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, settings: Settings, items: list[RequirementItem]) -> None:
        """No suppliers means no suggestions."""
        service = MatchingService(settings, InMemoryCatalogStore())

        assert await service.suggest(items) == []

    @pytest.mark.asyncio
    async def test_catalog_unavailable(
        self, settings: Settings, items: list[RequirementItem]
    ) -> None:
        """Catalog failures propagate to the caller."""
        store = AsyncMock()
        store.list_active_suppliers.side_effect = CatalogUnavailable("down")
        service = MatchingService(settings, store)

        with pytest.raises(CatalogUnavailable):
            await service.suggest(items)

    def test_inline_requirement(self, items: list[RequirementItem]) -> None:
        """Inline requests become a synthetic requirement."""
        requirement = build_inline_requirement(items, preferences=DeliveryLocation(state="MD"))

        assert requirement.dialect == INLINE_DIALECT
        assert requirement.document_id.startswith("inline-")
        assert requirement.items == items
        assert requirement.compliance == ComplianceFlags()
        assert requirement.delivery_location is not None
        assert requirement.delivery_location.state == "MD"


class TestRankForDocument:
    """Test pipeline ranking."""

    @pytest.mark.asyncio
    async def test_persists_and_publishes(
        self,
        settings: Settings,
        store: InMemoryCatalogStore,
        publisher: AsyncMock,
        requirement: StructuredRequirement,
    ) -> None:
        """Qualified matches are stored and announced."""
        service = MatchingService(settings, store, publisher=publisher)

        outcome = await service.rank_for_document(requirement)

        assert len(outcome.results) <= settings.pipeline_top_n
        assert all(r.composite_score >= settings.pipeline_min_score for r in outcome.results)
        assert outcome.record.dialect == "SEWP"
        assert outcome.record.summary["total_suppliers"] == 3

        history = await store.get_match_history("doc-1")
        assert history[0].matches == outcome.record.matches

        event = publisher.publish.call_args.args[0]
        assert isinstance(event, SuppliersRankedEvent)
        assert event.match_count == len(outcome.results)

    @pytest.mark.asyncio
    async def test_nothing_qualifies(
        self, settings: Settings, publisher: AsyncMock, requirement: StructuredRequirement
    ) -> None:
        """A run with no qualifying matches is still recorded."""
        engine = MagicMock(spec=SupplierRankingEngine)
        engine.config = MatchingConfig(pipeline_min_score=0.5)
        engine.rank_suppliers.return_value = ranked_results(0.4, 0.2)
        engine.match_summary.return_value = {"total_suppliers": 2}
        store = InMemoryCatalogStore()
        service = MatchingService(settings, store, engine=engine, publisher=publisher)

        outcome = await service.rank_for_document(requirement)

        assert outcome.results == []
        assert outcome.record.matches == []
        event = publisher.publish.call_args.args[0]
        assert event.top_score == 0.0
        assert len(await store.get_match_history("doc-1")) == 1


class TestLookupsAndFeedback:
    """Test match lookups and feedback."""

    @pytest.mark.asyncio
    async def test_get_matches_not_found(self, settings: Settings) -> None:
        """Unknown documents report found=False."""
        service = MatchingService(settings, InMemoryCatalogStore())

        lookup = await service.get_matches("doc-unknown")

        assert lookup.found is False
        assert lookup.matches == []

    @pytest.mark.asyncio
    async def test_get_matches_latest_run(
        self,
        settings: Settings,
        store: InMemoryCatalogStore,
        requirement: StructuredRequirement,
    ) -> None:
        """The newest stored run is returned."""
        service = MatchingService(settings, store)
        outcome = await service.rank_for_document(requirement)

        lookup = await service.get_matches("doc-1")

        assert lookup.found is True
        assert lookup.matched_at == outcome.record.matched_at
        assert lookup.matches == outcome.record.matches

    @pytest.mark.asyncio
    async def test_submit_feedback(self, settings: Settings) -> None:
        """Feedback is stored with a generated id."""
        store = InMemoryCatalogStore()
        service = MatchingService(settings, store)

        record = await service.submit_feedback("doc-1", "SUPP-A", "good_match", rating=5)

        assert record.feedback_id.startswith("FB-")
        assert await store.get_feedback("doc-1") == [record]

    @pytest.mark.asyncio
    async def test_feedback_rating_range(self, settings: Settings) -> None:
        """Ratings outside 1-5 are rejected."""
        service = MatchingService(settings, InMemoryCatalogStore())

        with pytest.raises(ValidationError):
            await service.submit_feedback("doc-1", "SUPP-A", "bad_match", rating=6)
