"""Async task definitions for the solicitation pipeline.

Uses arq (async Redis queue) for background task processing. Each stage
enqueues the next one under a deterministic job id, so a redelivered stage
does not duplicate downstream work:

    ingest_document -> classify:<document_id> -> rank:<document_id>

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from arq import Retry
from arq.connections import RedisSettings
from pydantic import BaseModel

from services.catalog.store import CatalogUnavailable, create_catalog_store
from services.classification.service import (
    ClassificationService,
    create_classification_service,
)
from services.events.publisher import (
    DocumentClassifiedEvent,
    EventPublisher,
    RedisEventPublisher,
)
from services.extraction.schema import Document, StructuredRequirement
from services.ingestion.email_parser import parse_email_document
from services.matching.service import MatchingService
from services.shared.config import Settings, get_settings
from services.storage.service import StorageService

logger = logging.getLogger(__name__)

JOB_TTL_SECONDS = 86400


class JobResult(BaseModel):
    """Result of a background job.

    Attributes:
        job_id: Job identifier
        status: Job status (processing, completed, failed)
        document_id: Document being processed
        data: Stage output (if completed)
        error: Error message (if failed)
        created_at: Job start timestamp
        completed_at: Job completion timestamp
    """

    job_id: str
    status: str
    document_id: str
    data: dict[str, Any] | None = None
    error: str | None = None
    created_at: str
    completed_at: str | None = None


def classify_job_id(document_id: str) -> str:
    return f"classify:{document_id}"


def rank_job_id(document_id: str) -> str:
    return f"rank:{document_id}"


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def _save(redis: Any, result: JobResult) -> None:
    await redis.set(f"job:{result.job_id}", result.model_dump_json(), ex=JOB_TTL_SECONDS)


async def ingest_document(ctx: dict[str, Any], document_ref: str) -> dict[str, Any]:
    """Read a raw document from storage, parse it and enqueue classification.

    Args:
        ctx: arq context (contains redis connection)
        document_ref: Object store key of the raw email

    Returns:
        JobResult as dict
    """
    settings: Settings = ctx.get("settings") or get_settings()
    storage_service: StorageService = ctx.get("storage_service") or StorageService(settings)
    redis = ctx["redis"]

    logger.info(f"Ingesting document {document_ref}")
    raw = await asyncio.to_thread(storage_service.get_document, document_ref)
    document = parse_email_document(raw, document_ref, settings.document_body_max_chars)

    job_id = classify_job_id(document.document_id)
    await redis.enqueue_job(
        "classify_document", document.model_dump(mode="json"), _job_id=job_id
    )

    result = JobResult(
        job_id=f"ingest:{document.document_id}",
        status="completed",
        document_id=document.document_id,
        data={"next_job": job_id, "subject": document.subject},
        created_at=_now(),
        completed_at=_now(),
    )
    await _save(redis, result)
    return result.model_dump()


async def classify_document(ctx: dict[str, Any], document: dict[str, Any]) -> dict[str, Any]:
    """Dispatch, extract and validate a document, then enqueue ranking.

    Args:
        ctx: arq context
        document: Document as JSON-compatible dict

    Returns:
        JobResult as dict
    """
    settings: Settings = ctx.get("settings") or get_settings()
    classification_service: ClassificationService = ctx.get(
        "classification_service"
    ) or create_classification_service(settings)
    publisher: EventPublisher = ctx["publisher"]
    redis = ctx["redis"]

    parsed = Document.model_validate(document)
    result = JobResult(
        job_id=classify_job_id(parsed.document_id),
        status="processing",
        document_id=parsed.document_id,
        created_at=_now(),
    )
    await _save(redis, result)

    try:
        classification = await asyncio.to_thread(classification_service.classify, parsed)
    except Exception as e:
        logger.exception(f"Classification of {parsed.document_id} failed: {e}")
        result.status = "failed"
        result.error = str(e)
        result.completed_at = _now()
        await _save(redis, result)
        return result.model_dump()

    await publisher.publish(
        DocumentClassifiedEvent.from_result(classification.requirement, classification.validation)
    )

    next_job = rank_job_id(parsed.document_id)
    await redis.enqueue_job(
        "rank_document_suppliers",
        classification.requirement.model_dump(mode="json"),
        _job_id=next_job,
    )

    result.status = "completed"
    result.data = {
        "dialect": classification.requirement.dialect,
        "confidence": classification.requirement.confidence,
        "recommended_action": classification.validation.recommended_action,
        "next_job": next_job,
    }
    result.completed_at = _now()
    await _save(redis, result)
    logger.info(f"Job {result.job_id} completed with status: {result.status}")
    return result.model_dump()


async def rank_document_suppliers(
    ctx: dict[str, Any], requirement: dict[str, Any]
) -> dict[str, Any]:
    """Rank catalog suppliers for an extracted requirement and persist the top matches.

    An unavailable catalog is retried by arq with a growing delay.

    Args:
        ctx: arq context
        requirement: StructuredRequirement as JSON-compatible dict

    Returns:
        JobResult as dict
    """
    matching_service: MatchingService = ctx["matching_service"]
    redis = ctx["redis"]

    parsed = StructuredRequirement.model_validate(requirement)
    result = JobResult(
        job_id=rank_job_id(parsed.document_id),
        status="processing",
        document_id=parsed.document_id,
        created_at=_now(),
    )

    try:
        outcome = await matching_service.rank_for_document(parsed)
    except CatalogUnavailable as e:
        logger.warning(f"Catalog unavailable ranking {parsed.document_id}: {e}")
        raise Retry(defer=ctx.get("job_try", 1) * 5) from e

    result.status = "completed"
    result.data = {
        "match_count": len(outcome.results),
        "top_score": outcome.results[0].composite_score if outcome.results else 0.0,
    }
    result.completed_at = _now()
    await _save(redis, result)
    logger.info(f"Job {result.job_id} completed with status: {result.status}")
    return result.model_dump()


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook - initialize services.

    Called once when worker starts. Initializes shared services
    to avoid re-creating them for each job.
    """
    logger.info("Initializing worker services...")
    settings = get_settings()
    publisher = RedisEventPublisher(ctx["redis"], settings.event_channel)
    ctx["settings"] = settings
    ctx["storage_service"] = StorageService(settings)
    ctx["classification_service"] = create_classification_service(settings)
    ctx["publisher"] = publisher
    ctx["matching_service"] = MatchingService(
        settings, create_catalog_store(settings), publisher=publisher
    )
    logger.info("Worker services initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook - cleanup resources."""
    logger.info("Worker shutting down...")


class WorkerSettings:
    """arq worker settings.

    Defines the worker configuration including:
    - Task functions to register
    - Redis connection settings
    - Job timeout settings
    """

    functions = [ingest_document, classify_document, rank_document_suppliers]
    on_startup = startup
    on_shutdown = shutdown

    # These will be set from environment
    redis_settings: RedisSettings | None = None
    max_jobs = 10
    job_timeout = 300

    @classmethod
    def get_redis_settings(cls) -> RedisSettings:
        """Get Redis settings from configuration."""
        return RedisSettings.from_dsn(get_settings().redis_url)
