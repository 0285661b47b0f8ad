"""Unit tests for extractor registry, dispatcher and classification service.

Tests cover:
- Registry lookups and registration order
- Highest-confidence selection with registration-order ties
- Dispatch floor fallback to the generic extractor
- Per-extractor analysis with error capture
- Classification dispatch → extract → validate sequence
"""

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest

from services.classification.service import (
    ClassificationResult,
    ClassificationService,
    create_classification_service,
)
from services.extraction.base import BidExtractor
from services.extraction.factory import ExtractorDispatcher, ExtractorRegistry
from services.extraction.generic_extractor import GenericExtractor
from services.extraction.gsa_extractor import GSAExtractor
from services.extraction.nasa_extractor import NASAExtractor
from services.extraction.schema import Document, StructuredRequirement, ValidationResult
from services.extraction.sewp_extractor import SEWPExtractor
from services.shared.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Create test settings with inference disabled."""
    return Settings(_env_file=None, inference_enabled=False)


@pytest.fixture
def restore_registry() -> Generator[None, None, None]:
    """Restore the class-level registry after a test mutates it."""
    original = dict(ExtractorRegistry._extractors)
    yield
    ExtractorRegistry._extractors.clear()
    ExtractorRegistry._extractors.update(original)


@pytest.fixture
def nasa_document() -> Document:
    """NASA SEWP request with an empty body."""
    return Document(
        document_id="doc-nasa",
        subject="NASA SEWP Request for Quote - Flight Software Servers",
        sender="procurement@nasa.gov",
    )


class TestExtractorRegistry:
    """Test the ordered extractor registry."""

    def test_default_order(self) -> None:
        """Registration order is SEWP, NASA, GSA, GENERIC."""
        assert ExtractorRegistry.list_dialects() == ["SEWP", "NASA", "GSA", "GENERIC"]

    def test_lookup_is_case_insensitive(self) -> None:
        """Dialect tags are looked up in upper case."""
        assert ExtractorRegistry.get_extractor_class("nasa") is NASAExtractor
        assert ExtractorRegistry.get_extractor_class("GSA") is GSAExtractor

    def test_unknown_dialect(self) -> None:
        """Unknown dialects raise ValueError listing the available ones."""
        with pytest.raises(ValueError, match="Available dialects: SEWP, NASA, GSA, GENERIC"):
            ExtractorRegistry.get_extractor_class("DOD")

    def test_register_appends(self, restore_registry: None) -> None:
        """New extractors are added after existing ones."""

        class DoDExtractor(GenericExtractor):
            @property
            def dialect_tag(self) -> str:
                return "DOD"

        ExtractorRegistry.register("DOD", DoDExtractor)

        assert ExtractorRegistry.list_dialects()[-1] == "DOD"
        assert ExtractorRegistry.get_extractor_class("dod") is DoDExtractor

    def test_unregister(self, restore_registry: None) -> None:
        """Specialized extractors can be removed."""
        ExtractorRegistry.unregister("GSA")

        assert "GSA" not in ExtractorRegistry.list_dialects()

    def test_generic_cannot_be_unregistered(self) -> None:
        """The fallback extractor is always registered."""
        with pytest.raises(ValueError, match="cannot be unregistered"):
            ExtractorRegistry.unregister("GENERIC")


class TestExtractorDispatcher:
    """Test extractor selection."""

    def test_instantiates_every_extractor(self, settings: Settings) -> None:
        """One extractor instance per registered dialect, in order."""
        dispatcher = ExtractorDispatcher(settings)

        assert [e.dialect_tag for e in dispatcher.extractors] == [
            "SEWP",
            "NASA",
            "GSA",
            "GENERIC",
        ]

    def test_score_all(self, settings: Settings, nasa_document: Document) -> None:
        """Every extractor is scored in registration order."""
        scores = ExtractorDispatcher(settings).score_all(nasa_document)
        by_dialect = {s.dialect: s.confidence for s in scores}

        assert [s.dialect for s in scores] == ["SEWP", "NASA", "GSA", "GENERIC"]
        assert by_dialect["SEWP"] == pytest.approx(0.4)
        assert by_dialect["NASA"] == pytest.approx(0.9)
        assert by_dialect["GSA"] == 0.0
        assert by_dialect["GENERIC"] == pytest.approx(0.25)

    def test_selects_highest_confidence(self, settings: Settings, nasa_document: Document) -> None:
        """The NASA extractor wins a NASA procurement mentioning SEWP."""
        extractor = ExtractorDispatcher(settings).select(nasa_document)

        assert isinstance(extractor, NASAExtractor)

    def test_tie_keeps_registration_order(self, settings: Settings) -> None:
        """Equal confidences resolve to the earlier-registered extractor."""
        dispatcher = ExtractorDispatcher(settings)
        document = Document(document_id="doc-tie")

        with (
            patch.object(dispatcher._extractors["SEWP"], "confidence", return_value=0.7),
            patch.object(dispatcher._extractors["NASA"], "confidence", return_value=0.7),
            patch.object(dispatcher._extractors["GSA"], "confidence", return_value=0.2),
            patch.object(dispatcher._extractors["GENERIC"], "confidence", return_value=0.2),
        ):
            extractor = dispatcher.select(document)

        assert isinstance(extractor, SEWPExtractor)

    def test_below_floor_forces_generic(self, settings: Settings) -> None:
        """A best confidence below the floor selects the generic extractor."""
        dispatcher = ExtractorDispatcher(settings)
        document = Document(document_id="doc-weak")

        with (
            patch.object(dispatcher._extractors["SEWP"], "confidence", return_value=0.09),
            patch.object(dispatcher._extractors["NASA"], "confidence", return_value=0.05),
            patch.object(dispatcher._extractors["GSA"], "confidence", return_value=0.0),
            patch.object(dispatcher._extractors["GENERIC"], "confidence", return_value=0.01),
        ):
            extractor = dispatcher.select(document)

        assert isinstance(extractor, GenericExtractor)

    def test_floor_is_configurable(self, nasa_document: Document) -> None:
        """A higher floor sends even the NASA document to the generic extractor."""
        settings = Settings(_env_file=None, inference_enabled=False, dispatch_floor=0.95)

        extractor = ExtractorDispatcher(settings).select(nasa_document)

        assert isinstance(extractor, GenericExtractor)

    def test_create_by_dialect(self, settings: Settings) -> None:
        """Explicit dialect tags bypass scoring."""
        dispatcher = ExtractorDispatcher(settings)

        extractor = dispatcher.create_by_dialect("gsa")

        assert isinstance(extractor, GSAExtractor)
        assert extractor is not dispatcher._extractors["GSA"]

    def test_create_by_unknown_dialect(self, settings: Settings) -> None:
        """Unknown dialect tags raise ValueError."""
        with pytest.raises(ValueError, match="Unknown dialect"):
            ExtractorDispatcher(settings).create_by_dialect("DOD")

    def test_analyze_captures_errors(self, settings: Settings, nasa_document: Document) -> None:
        """A failing heuristic is reported, not raised."""
        dispatcher = ExtractorDispatcher(settings)

        with patch.object(
            dispatcher._extractors["GSA"], "confidence", side_effect=RuntimeError("regex blew up")
        ):
            analysis = dispatcher.analyze(nasa_document)

        assert analysis["NASA"].confidence == pytest.approx(0.9)
        assert analysis["GSA"].confidence is None
        assert analysis["GSA"].error == "regex blew up"


class TestClassificationService:
    """Test the classification service."""

    def test_classify_sewp_document(self, settings: Settings) -> None:
        """A SEWP request is classified, extracted and validated."""
        service = ClassificationService(settings)
        document = Document(
            document_id="doc-sewp",
            subject="SEWP V Request for Quote RFQ #SEWP-2024-0142",
            sender="rfq@sewp.gov",
            body="SEWP V Request for Quote\n- Nutanix NX-3060 nodes, Qty: 4\nTAA compliance",
        )

        result = service.classify(document)

        assert isinstance(result, ClassificationResult)
        assert result.requirement.dialect == "SEWP"
        assert result.requirement.solicitation_number == "SEWP-2024-0142"
        assert result.validation.recommended_action == "proceed"
        assert [s.dialect for s in result.scores] == ["SEWP", "NASA", "GSA", "GENERIC"]

    def test_classify_flags_manual_review(self, settings: Settings) -> None:
        """Validation errors are surfaced as manual review."""
        service = ClassificationService(settings)
        document = Document(
            document_id="doc-gsa",
            subject="GSA schedule pricing question",
            sender="buyer@gsa.gov",
            body="Please confirm your GSA schedule pricing.",
        )

        result = service.classify(document)

        assert result.requirement.dialect == "GSA"
        assert result.validation.is_valid is False
        assert result.validation.recommended_action == "manual_review"

    def test_classify_uses_injected_dispatcher(self, settings: Settings) -> None:
        """The selected extractor's extract and validate are both called."""
        requirement = MagicMock(spec=StructuredRequirement)
        requirement.dialect = "SEWP"
        requirement.confidence = 0.8
        validation = ValidationResult(is_valid=True, recommended_action="proceed")
        extractor = MagicMock(spec=BidExtractor)
        extractor.extract.return_value = requirement
        extractor.validate.return_value = validation
        dispatcher = MagicMock(spec=ExtractorDispatcher)
        dispatcher.score_all.return_value = []
        dispatcher.select.return_value = extractor
        document = Document(document_id="doc-1")

        service = ClassificationService(settings, dispatcher=dispatcher)
        with patch("services.classification.service.ClassificationResult") as mock_result:
            service.classify(document)

        extractor.extract.assert_called_once_with(document)
        extractor.validate.assert_called_once_with(requirement)
        mock_result.assert_called_once_with(
            requirement=requirement, validation=validation, scores=[]
        )

    def test_factory_without_inference(self, settings: Settings) -> None:
        """Disabled inference yields rule-only extractors."""
        service = create_classification_service(settings)

        assert all(e.inference is None for e in service.dispatcher.extractors)
