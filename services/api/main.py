"""FastAPI application for supplier matching.

Endpoints:
- Health, readiness and Prometheus metrics
- Supplier suggestions for inline requirements
- Stored match results per document
- Match feedback
- Synchronous document classification, optionally followed by ranking

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import asyncio
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.api import metrics
from services.catalog.store import CatalogUnavailable, create_catalog_store
from services.classification.service import create_classification_service
from services.events.publisher import DocumentClassifiedEvent, create_event_publisher
from services.extraction.base import ExtractionError
from services.extraction.factory import DialectScore
from services.extraction.schema import (
    ComplianceFlags,
    DeliveryLocation,
    Document,
    RequirementItem,
    StructuredRequirement,
    ValidationResult,
)
from services.matching.engine import SupplierMatchResult
from services.matching.service import MatchingService, MatchLookup
from services.shared.config import get_settings

settings = get_settings()
app = FastAPI(
    title="Bid Matching Platform",
    description="Procurement solicitation classification and supplier ranking API",
    version=settings.service_version,
)

classification_service = create_classification_service(settings)
event_publisher = create_event_publisher(settings)
catalog_store = create_catalog_store(settings)
matching_service = MatchingService(settings, catalog_store, publisher=event_publisher)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


@app.exception_handler(CatalogUnavailable)
async def catalog_unavailable_handler(request: Request, exc: CatalogUnavailable) -> JSONResponse:
    """Answer 503 when the supplier catalog cannot be reached."""
    metrics.catalog_unavailable_total.inc()
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": f"Supplier catalog unavailable: {exc}"},
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class SuggestRequest(BaseModel):
    """Inline requirement for supplier suggestions."""

    items: list[RequirementItem] = Field(..., min_length=1)
    requirements: ComplianceFlags | None = None
    preferences: DeliveryLocation | None = None


class Suggestion(BaseModel):
    """One suggested supplier."""

    supplier_id: str
    company_name: str
    composite_score: float
    confidence: float
    strategy_scores: dict[str, float]
    strengths: list[str]
    weaknesses: list[str]
    recommendations: list[str]
    blocking_omissions: list[str]
    business_certifications: list[str]
    capabilities: list[str]

    @classmethod
    def from_result(cls, result: SupplierMatchResult) -> "Suggestion":
        return cls(
            supplier_id=result.supplier.supplier_id,
            company_name=result.supplier.company_name,
            composite_score=result.composite_score,
            confidence=result.confidence,
            strategy_scores={name: s.score for name, s in result.strategy_scores.items()},
            strengths=result.strengths,
            weaknesses=result.weaknesses,
            recommendations=result.recommendations,
            blocking_omissions=result.blocking_omissions,
            business_certifications=list(result.supplier.business_certifications),
            capabilities=list(result.supplier.capabilities),
        )


class SuggestResponse(BaseModel):
    """Supplier suggestions, best first."""

    suggestions: list[Suggestion]
    threshold: float


class FeedbackRequest(BaseModel):
    """Feedback on a supplier match."""

    document_id: str = Field(..., min_length=1)
    supplier_id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1, description="e.g. relevant, not_relevant, awarded")
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = None


class FeedbackResponse(BaseModel):
    """Stored feedback acknowledgement."""

    feedback_id: str
    status: str


class ClassifyResponse(BaseModel):
    """Classification outcome, with ranked matches when requested."""

    requirement: StructuredRequirement
    validation: ValidationResult
    scores: list[DialectScore]
    matches: list[dict[str, Any]] | None = None


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
async def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint; ready when the supplier catalog is reachable."""
    return ReadinessResponse(ready=await catalog_store.health_check())


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/suppliers/suggest", response_model=SuggestResponse, tags=["Suppliers"])
async def suggest_suppliers(request: SuggestRequest) -> SuggestResponse:
    """Rank catalog suppliers against inline items and requirements.

    ## Usage Example

    ```bash
    curl -X POST "http://localhost:8000/api/v1/suppliers/suggest" \\
      -H "Content-Type: application/json" \\
      -d '{"items": [{"name": "Nutanix NX-3060 node", "quantity": 4}],
           "requirements": {"taa_required": true},
           "preferences": {"state": "WV"}}'
    ```

    Results are filtered at the suggestion threshold and capped at the
    suggestion limit. Returns 503 if the catalog is unavailable.
    """
    results = await matching_service.suggest(
        request.items, request.requirements, request.preferences
    )
    metrics.supplier_suggestions_returned.observe(len(results))
    return SuggestResponse(
        suggestions=[Suggestion.from_result(result) for result in results],
        threshold=matching_service.config.suggestion_min_score,
    )


@app.get(
    "/api/v1/documents/{document_id}/matches", response_model=MatchLookup, tags=["Documents"]
)
async def get_document_matches(document_id: str) -> MatchLookup:
    """Latest stored supplier matches for a document.

    Returns 200 with `found: false` and no matches when the document has
    not been ranked.
    """
    return await matching_service.get_matches(document_id)


@app.post(
    "/api/v1/suppliers/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Suppliers"],
)
async def submit_feedback(request: FeedbackRequest) -> FeedbackResponse:
    """Record feedback on a supplier match. Rating must be 1-5 when given."""
    record = await matching_service.submit_feedback(
        document_id=request.document_id,
        supplier_id=request.supplier_id,
        label=request.label,
        rating=request.rating,
        comment=request.comment,
    )
    metrics.feedback_submitted_total.labels(label=request.label).inc()
    return FeedbackResponse(feedback_id=record.feedback_id, status="stored")


@app.post("/api/v1/documents/classify", response_model=ClassifyResponse, tags=["Documents"])
async def classify_document(
    document: Document,
    rank: bool = Query(False, description="Rank catalog suppliers for the extracted requirement"),
) -> ClassifyResponse:
    """Classify and extract a solicitation, optionally ranking suppliers.

    ## Error Handling

    - Returns 500 if the selected extractor fails
    - Returns 503 if ranking is requested and the catalog is unavailable
    - Model service failures do not fail the request; they surface as
      `model_error` and a validation warning
    """
    try:
        result = await asyncio.to_thread(classification_service.classify, document)
    except ExtractionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Extraction failed ({e.dialect}): {e}",
        ) from e

    await event_publisher.publish(
        DocumentClassifiedEvent.from_result(result.requirement, result.validation)
    )

    matches = None
    if rank:
        outcome = await matching_service.rank_for_document(result.requirement)
        matches = outcome.record.matches

    return ClassifyResponse(
        requirement=result.requirement,
        validation=result.validation,
        scores=result.scores,
        matches=matches,
    )
