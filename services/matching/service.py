"""Matching service: supplier suggestions, pipeline ranking, history and feedback.

The ranking engine is synchronous and CPU-bound; it runs in a worker thread
so the event loop stays responsive.
"""

import asyncio
import logging
import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from services.catalog.store import CatalogStore, FeedbackRecord, MatchRecord
from services.events.publisher import EventPublisher, LoggingEventPublisher, SuppliersRankedEvent
from services.extraction.schema import (
    ComplianceFlags,
    DeliveryLocation,
    RequirementItem,
    StructuredRequirement,
)
from services.matching.config import MatchingConfig
from services.matching.engine import SupplierMatchResult, SupplierRankingEngine
from services.shared.config import Settings

logger = logging.getLogger(__name__)

INLINE_DIALECT = "INLINE"


class MatchLookup(BaseModel):
    """Latest stored ranking for a document.

    Attributes:
        document_id: Requested document
        found: False when no ranking has been stored
        matched_at: When the returned ranking ran
        matches: Summaries of the stored top results, best first
        summary: Aggregate statistics of the stored run
    """

    document_id: str
    found: bool
    matched_at: datetime | None = None
    matches: list[dict] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict)


class RankingOutcome(BaseModel):
    """Result of ranking suppliers for a classified document."""

    record: MatchRecord
    results: list[SupplierMatchResult]


class MatchingService:
    """Entry point for suggestions, pipeline ranking, match lookups and feedback."""

    def __init__(
        self,
        settings: Settings,
        store: CatalogStore,
        engine: SupplierRankingEngine | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        """Initialize service.

        Args:
            settings: Application settings
            store: Supplier catalog and match history
            engine: Ranking engine (built from settings when omitted)
            publisher: Event publisher (logs events when omitted)
        """
        self.settings = settings
        self.store = store
        self.engine = engine or SupplierRankingEngine(MatchingConfig.from_settings(settings))
        self.publisher = publisher or LoggingEventPublisher()

    @property
    def config(self) -> MatchingConfig:
        return self.engine.config

    async def suggest(
        self,
        items: list[RequirementItem],
        requirements: ComplianceFlags | None = None,
        preferences: DeliveryLocation | None = None,
    ) -> list[SupplierMatchResult]:
        """Rank catalog suppliers against inline request fields.

        Args:
            items: Requested items
            requirements: Compliance requirements
            preferences: Preferred delivery location

        Returns:
            At most `suggestion_limit` results with a composite at or above
            `suggestion_min_score`, best first

        Raises:
            CatalogUnavailable: If the catalog cannot be read
        """
        requirement = build_inline_requirement(items, requirements, preferences)
        suppliers = await self.store.list_active_suppliers()
        if not suppliers:
            logger.info("No active suppliers in catalog")
            return []

        ranked = await asyncio.to_thread(self.engine.rank_suppliers, requirement, suppliers)
        threshold = self.config.suggestion_min_score
        suggestions = [result for result in ranked if result.composite_score >= threshold][
            : self.config.suggestion_limit
        ]

        logger.info(
            f"Generated {len(suggestions)} suggestions from {len(suppliers)} suppliers "
            f"(threshold={self.config.suggestion_min_score})"
        )
        return suggestions

    async def rank_for_document(self, requirement: StructuredRequirement) -> RankingOutcome:
        """Rank suppliers for an extracted requirement and persist the top matches.

        Keeps results with a composite at or above `pipeline_min_score`, at
        most `pipeline_top_n` of them, then stores and announces the run.

        Raises:
            CatalogUnavailable: If the catalog cannot be read or written
        """
        suppliers = await self.store.list_active_suppliers()
        ranked = await asyncio.to_thread(self.engine.rank_suppliers, requirement, suppliers)

        qualified = [
            result for result in ranked if result.composite_score >= self.config.pipeline_min_score
        ][: self.config.pipeline_top_n]

        record = MatchRecord(
            document_id=requirement.document_id,
            dialect=requirement.dialect,
            solicitation_number=requirement.solicitation_number,
            summary=self.engine.match_summary(ranked),
            matches=[result.summary() for result in qualified],
        )
        await self.store.append_match_history(record)

        await self.publisher.publish(
            SuppliersRankedEvent(
                document_id=requirement.document_id,
                match_count=len(qualified),
                top_score=qualified[0].composite_score if qualified else 0.0,
                top_matches=record.matches[:3],
            )
        )

        logger.info(
            f"Stored {len(qualified)} of {len(ranked)} matches for {requirement.document_id} "
            f"(threshold={self.config.pipeline_min_score})"
        )
        return RankingOutcome(record=record, results=qualified)

    async def get_matches(self, document_id: str) -> MatchLookup:
        """Latest stored ranking for a document; found=False when there is none."""
        history = await self.store.get_match_history(document_id)
        if not history:
            return MatchLookup(document_id=document_id, found=False)

        latest = history[0]
        return MatchLookup(
            document_id=document_id,
            found=True,
            matched_at=latest.matched_at,
            matches=latest.matches,
            summary=latest.summary,
        )

    async def submit_feedback(
        self,
        document_id: str,
        supplier_id: str,
        label: str,
        rating: int | None = None,
        comment: str | None = None,
    ) -> FeedbackRecord:
        """Append feedback on a match to the history.

        Raises:
            pydantic.ValidationError: If rating is outside 1-5
            CatalogUnavailable: If the history cannot be written
        """
        record = FeedbackRecord(
            feedback_id=f"FB-{uuid.uuid4().hex[:12]}",
            document_id=document_id,
            supplier_id=supplier_id,
            label=label,
            rating=rating,
            comment=comment,
        )
        await self.store.append_feedback(record)
        logger.info(f"Stored feedback {record.feedback_id} for {document_id}/{supplier_id}")
        return record


def build_inline_requirement(
    items: list[RequirementItem],
    requirements: ComplianceFlags | None = None,
    preferences: DeliveryLocation | None = None,
) -> StructuredRequirement:
    """Synthetic requirement for the suggestion path."""
    return StructuredRequirement(
        document_id=f"inline-{uuid.uuid4().hex[:12]}",
        dialect=INLINE_DIALECT,
        confidence=1.0,
        extracted_at=datetime.now(UTC),
        extraction_method="inline",
        items=items,
        compliance=requirements or ComplianceFlags(),
        delivery_location=preferences,
    )
