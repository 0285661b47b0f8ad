"""Extractor registry and dispatcher.

Implements Factory Pattern for extractor selection with an ordered registry.
Every registered extractor scores each document; the highest confidence wins,
ties keep registration order, and a weak best score falls back to the generic
extractor.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from pydantic import BaseModel

from services.extraction.base import BidExtractor
from services.extraction.generic_extractor import GenericExtractor
from services.extraction.gsa_extractor import GSAExtractor
from services.extraction.nasa_extractor import NASAExtractor
from services.extraction.schema import Document
from services.extraction.sewp_extractor import SEWPExtractor
from services.inference.base import InferenceProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)

FALLBACK_DIALECT = "GENERIC"


class DialectScore(BaseModel):
    """Confidence of one extractor for one document."""

    dialect: str
    confidence: float


class DialectAnalysis(BaseModel):
    """Debug view of one extractor's verdict on a document."""

    confidence: float | None = None
    error: str | None = None


class ExtractorRegistry:
    """Ordered registry of extractor classes.

    Registration order is the tie-break order used by the dispatcher.
    """

    _extractors: dict[str, type[BidExtractor]] = {
        "SEWP": SEWPExtractor,
        "NASA": NASAExtractor,
        "GSA": GSAExtractor,
        "GENERIC": GenericExtractor,
    }

    @classmethod
    def register(cls, dialect: str, extractor_class: type[BidExtractor]) -> None:
        """Register a new extractor (appended after existing ones).

        Args:
            dialect: Dialect tag
            extractor_class: Class implementing BidExtractor
        """
        cls._extractors[dialect] = extractor_class
        logger.info(f"Registered extractor: {dialect}")

    @classmethod
    def unregister(cls, dialect: str) -> None:
        """Remove an extractor; the generic fallback cannot be removed."""
        if dialect == FALLBACK_DIALECT:
            raise ValueError("The generic fallback extractor cannot be unregistered")
        cls._extractors.pop(dialect, None)

    @classmethod
    def get_extractor_class(cls, dialect: str) -> type[BidExtractor]:
        """Get extractor class by dialect tag.

        Raises:
            ValueError: If dialect not found in registry
        """
        key = dialect.upper()
        if key not in cls._extractors:
            available = ", ".join(cls._extractors.keys())
            raise ValueError(f"Unknown dialect: '{dialect}'. Available dialects: {available}")
        return cls._extractors[key]

    @classmethod
    def list_dialects(cls) -> list[str]:
        """List registered dialect tags in registration order."""
        return list(cls._extractors.keys())


class ExtractorDispatcher:
    """Chooses exactly one extractor per document."""

    def __init__(self, settings: Settings, inference: InferenceProvider | None = None) -> None:
        """Instantiate every registered extractor.

        Args:
            settings: Application settings (dispatch floor, retry policy)
            inference: Model service shared by all extractors
        """
        self.settings = settings
        self.inference = inference
        self._extractors: dict[str, BidExtractor] = {
            dialect: ExtractorRegistry.get_extractor_class(dialect)(settings, inference)
            for dialect in ExtractorRegistry.list_dialects()
        }

    @property
    def extractors(self) -> list[BidExtractor]:
        """Extractors in registration order."""
        return list(self._extractors.values())

    def score_all(self, document: Document) -> list[DialectScore]:
        """Confidence of every extractor, in registration order."""
        return [
            DialectScore(dialect=dialect, confidence=extractor.confidence(document))
            for dialect, extractor in self._extractors.items()
        ]

    def select(self, document: Document) -> BidExtractor:
        """Pick the extractor with the highest confidence.

        Ties keep registration order. When the best confidence is below the
        dispatch floor, the generic extractor is forced.

        Args:
            document: Inbound document

        Returns:
            Selected extractor
        """
        scores = self.score_all(document)
        best = scores[0]
        for candidate in scores[1:]:
            if candidate.confidence > best.confidence:
                best = candidate

        score_vector = ", ".join(f"{s.dialect}={s.confidence:.2f}" for s in scores)
        if best.confidence < self.settings.dispatch_floor:
            logger.info(
                f"Dispatch {document.document_id}: [{score_vector}] below floor "
                f"{self.settings.dispatch_floor}, using {FALLBACK_DIALECT}"
            )
            return self._extractors[FALLBACK_DIALECT]

        logger.info(f"Dispatch {document.document_id}: [{score_vector}] -> {best.dialect}")
        return self._extractors[best.dialect]

    def create_by_dialect(self, dialect: str) -> BidExtractor:
        """Create a fresh extractor for an explicit dialect tag.

        Raises:
            ValueError: If dialect not registered
        """
        extractor_class = ExtractorRegistry.get_extractor_class(dialect)
        return extractor_class(self.settings, self.inference)

    def analyze(self, document: Document) -> dict[str, DialectAnalysis]:
        """Confidence of every extractor with per-extractor error capture.

        Debugging aid: a failing heuristic is reported instead of raised.
        """
        analysis: dict[str, DialectAnalysis] = {}
        for dialect, extractor in self._extractors.items():
            try:
                analysis[dialect] = DialectAnalysis(confidence=extractor.confidence(document))
            except Exception as e:
                logger.warning(f"{dialect} confidence failed for {document.document_id}: {e}")
                analysis[dialect] = DialectAnalysis(error=str(e))
        return analysis
