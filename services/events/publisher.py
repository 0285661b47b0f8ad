"""Pipeline event publishing.

Events are published as JSON envelopes on a Redis pub/sub channel:

    {"event_type": "DocumentClassified", "occurred_at": "...", "payload": {...}}

LoggingEventPublisher is used when Redis is not configured.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, ClassVar

import redis.asyncio as redis
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from services.extraction.schema import StructuredRequirement, ValidationResult
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class PipelineEvent(BaseModel):
    """Base class for pipeline events."""

    event_type: ClassVar[str] = "PipelineEvent"

    document_id: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def envelope(self) -> dict[str, Any]:
        """JSON-serializable envelope for the event channel."""
        payload = self.model_dump(mode="json", exclude={"occurred_at"})
        return {
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": payload,
        }


class DocumentClassifiedEvent(PipelineEvent):
    """A document was dispatched, extracted and validated."""

    event_type: ClassVar[str] = "DocumentClassified"

    dialect: str
    confidence: float
    solicitation_number: str | None = None
    contract_vehicle: str | None = None
    validation_status: str
    requires_manual_review: bool
    key_fields: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(
        cls, requirement: StructuredRequirement, validation: ValidationResult
    ) -> "DocumentClassifiedEvent":
        return cls(
            document_id=requirement.document_id,
            dialect=requirement.dialect,
            confidence=requirement.confidence,
            solicitation_number=requirement.solicitation_number,
            contract_vehicle=requirement.contract_vehicle,
            validation_status="valid" if validation.is_valid else "invalid",
            requires_manual_review=validation.recommended_action == "manual_review",
            key_fields={
                "agency": requirement.agency,
                "procurement_type": requirement.procurement_type,
                "business_certifications": requirement.compliance.business_certifications,
                "compliance_requirements": requirement.compliance.compliance_requirements,
                "requirements": requirement.requirement_lines[:5],
                "deadlines": requirement.deadlines,
            },
        )


class SuppliersRankedEvent(PipelineEvent):
    """Suppliers were ranked and the top matches persisted."""

    event_type: ClassVar[str] = "SuppliersRanked"

    match_count: int
    top_score: float
    top_matches: list[dict[str, Any]] = Field(default_factory=list)


class EventPublisher(ABC):
    """Publishes pipeline events."""

    @abstractmethod
    async def publish(self, event: PipelineEvent) -> None:
        """Publish one event.

        Publishing failures are logged, not raised.
        """
        pass


class LoggingEventPublisher(EventPublisher):
    """Writes events to the log."""

    async def publish(self, event: PipelineEvent) -> None:
        logger.info(f"Event {event.event_type} for {event.document_id}: {event.envelope()}")


class RedisEventPublisher(EventPublisher):
    """Publishes event envelopes on a Redis pub/sub channel."""

    def __init__(self, client: redis.Redis, channel: str) -> None:
        self.client = client
        self.channel = channel

    async def publish(self, event: PipelineEvent) -> None:
        message = json_envelope(event)
        try:
            receivers = await self.client.publish(self.channel, message)
            logger.debug(
                f"Published {event.event_type} for {event.document_id} "
                f"to {self.channel} ({receivers} receivers)"
            )
        except RedisError as e:
            logger.error(f"Failed to publish {event.event_type} for {event.document_id}: {e}")


def json_envelope(event: PipelineEvent) -> str:
    """Serialized event envelope."""
    return json.dumps(event.envelope())


def create_event_publisher(settings: Settings) -> EventPublisher:
    """Redis publisher when the queue is enabled, logging publisher otherwise."""
    if settings.queue_enabled:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisEventPublisher(client, settings.event_channel)
    return LoggingEventPublisher()
