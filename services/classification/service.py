"""Classification service: dispatch a document, extract it, validate the result.

Industry standard approach based on:
- Factory Pattern for extractor selection (see services.extraction.factory)
- Validation results that separate hard errors from soft warnings
"""

import logging

from prometheus_client import Counter, Histogram
from pydantic import BaseModel

from services.extraction.factory import DialectScore, ExtractorDispatcher
from services.extraction.schema import Document, StructuredRequirement, ValidationResult
from services.inference.base import InferenceProvider
from services.inference.factory import create_inference_provider
from services.shared.config import Settings

logger = logging.getLogger(__name__)


# Prometheus metrics for classification
documents_classified_total = Counter(
    "documents_classified_total",
    "Documents classified, by selected dialect and validation outcome",
    ["dialect", "outcome"],  # outcome: proceed, manual_review
)

dispatch_confidence_histogram = Histogram(
    "dispatch_confidence",
    "Confidence of the selected extractor",
    ["dialect"],
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)


class ClassificationResult(BaseModel):
    """Outcome of classifying one document.

    Attributes:
        requirement: Extracted structured requirement
        validation: Quality assessment of the extraction
        scores: Confidence of every registered extractor
    """

    requirement: StructuredRequirement
    validation: ValidationResult
    scores: list[DialectScore]


class ClassificationService:
    """Runs the dispatch → extract → validate sequence for a document."""

    def __init__(
        self,
        settings: Settings,
        inference: InferenceProvider | None = None,
        dispatcher: ExtractorDispatcher | None = None,
    ) -> None:
        """Initialize service.

        Args:
            settings: Application settings
            inference: Model service (ignored when a dispatcher is given)
            dispatcher: Pre-built dispatcher, mainly for tests
        """
        self.settings = settings
        self.dispatcher = dispatcher or ExtractorDispatcher(settings, inference)

    def classify(self, document: Document) -> ClassificationResult:
        """Classify and extract a document.

        Args:
            document: Inbound document

        Returns:
            ClassificationResult

        Raises:
            ExtractionError: If the selected extractor fails unexpectedly
        """
        scores = self.dispatcher.score_all(document)
        extractor = self.dispatcher.select(document)

        requirement = extractor.extract(document)
        validation = extractor.validate(requirement)

        documents_classified_total.labels(
            dialect=requirement.dialect, outcome=validation.recommended_action
        ).inc()
        dispatch_confidence_histogram.labels(dialect=requirement.dialect).observe(
            requirement.confidence
        )

        if validation.errors:
            logger.warning(
                f"Document {document.document_id} needs manual review: {validation.errors}"
            )
        logger.info(
            f"Classified {document.document_id} as {requirement.dialect} "
            f"(valid={validation.is_valid}, warnings={len(validation.warnings)})"
        )
        return ClassificationResult(requirement=requirement, validation=validation, scores=scores)


def create_classification_service(settings: Settings) -> ClassificationService:
    """Build a ClassificationService with the configured model service."""
    return ClassificationService(settings, inference=create_inference_provider(settings))
