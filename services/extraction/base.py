"""Abstract base class for dialect-specific solicitation extractors.

Every extractor runs the same two phases:

1. Rule phase: regex/keyword extraction over subject, sender and body.
2. Model phase: structured extraction through an InferenceProvider, retried
   on transient failures and abandoned (never fatal) when it cannot complete.

The two outputs are merged with a dialect-specific precedence and normalized
into a StructuredRequirement.

Based on Template Method Pattern:
https://refactoring.guru/design-patterns/template-method/python
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from prometheus_client import Counter, Histogram
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.prompts import build_extraction_prompt
from services.extraction.schema import (
    ComplianceFlags,
    ContactInfo,
    DeliveryLocation,
    Document,
    RequirementItem,
    StructuredRequirement,
    ValidationResult,
)
from services.inference.base import InferenceError, InferenceProvider, TransientServiceError
from services.shared.config import Settings

logger = logging.getLogger(__name__)


# Prometheus metrics for extraction
extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "Time spent extracting a structured requirement",
    ["dialect"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

model_phase_failures_total = Counter(
    "extraction_model_phase_failures_total",
    "Model-based extraction phases abandoned",
    ["dialect", "reason"],  # unconfigured, transient, error
)


# Flat field names produced by both phases, grouped by destination
RECORD_FIELDS = {
    "solicitation_number",
    "contract_vehicle",
    "agency",
    "procurement_type",
    "items",
    "deadlines",
    "delivery_location",
    "delivery_timeframe",
    "requirement_lines",
    "attachments",
}
COMPLIANCE_FIELDS = set(ComplianceFlags.model_fields)
CONTACT_FIELDS = {"contracting_officer", "point_of_contact", "phone", "emails"}

_STRING_FIELDS = {
    "solicitation_number",
    "contract_vehicle",
    "agency",
    "procurement_type",
    "delivery_timeframe",
    "contracting_officer",
    "point_of_contact",
    "phone",
}
_LIST_FIELDS = {
    "deadlines",
    "requirement_lines",
    "attachments",
    "emails",
    "brand_restrictions",
    "business_certifications",
    "security_clearances",
    "security_requirements",
    "compliance_requirements",
}
_BOOL_FIELDS = {"taa_required", "epeat_required", "authorized_reseller_required"}

STRING_ARRAY = {"type": "array", "items": {"type": "string"}}

# Target properties shared by every dialect; extractors add their own
COMMON_MODEL_PROPERTIES: dict[str, Any] = {
    "solicitation_number": {"type": ["string", "null"]},
    "contract_vehicle": {"type": ["string", "null"]},
    "agency": {"type": ["string", "null"]},
    "procurement_type": {"type": ["string", "null"]},
    "items": {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "part_number": {"type": ["string", "null"]},
                "quantity": {"type": ["number", "null"]},
                "unit": {"type": ["string", "null"]},
                "description": {"type": ["string", "null"]},
            },
            "required": ["name"],
        },
    },
    "deadlines": STRING_ARRAY,
    "brand_restrictions": STRING_ARRAY,
    "business_certifications": STRING_ARRAY,
    "compliance_requirements": STRING_ARRAY,
    "security_requirements": STRING_ARRAY,
    "taa_required": {"type": ["boolean", "null"]},
    "delivery_location": {
        "type": ["object", "null"],
        "properties": {"city": {"type": ["string", "null"]}, "state": {"type": ["string", "null"]}},
    },
    "delivery_timeframe": {"type": ["string", "null"]},
    "evaluation_criteria": STRING_ARRAY,
}


# Rule-phase vocabularies
BULLET_LINE = re.compile(r"^[\-\*\d+\.\)]")
EMAIL_ADDRESS = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE = re.compile(r"(?:phone|tel|telephone)\s*:?\s*([0-9\-\(\)\s\+\.]{7,})", re.IGNORECASE)
PART_NUMBER_PATTERNS = [
    re.compile(r"\bsw-[a-z]{3}-[a-z]{3}-[a-z]{2}\b", re.IGNORECASE),
    re.compile(r"\b[0-9]{3,6}-[0-9]{3,6}\b"),
    re.compile(r"\b[a-z]{2,4}-[0-9]{3,6}\b", re.IGNORECASE),
]
QUANTITY_PATTERNS = [
    re.compile(r"\b(?:qty|quantity)\s*[:\-]?\s*(\d+(?:\.\d+)?)\s*([a-z]+)?", re.IGNORECASE),
    re.compile(
        r"^\s*(?:[\-\*]\s*)?(\d+(?:\.\d+)?)\s*(x|ea|each|units?|licenses?|nodes?)\b",
        re.IGNORECASE,
    ),
]

BUSINESS_CERTIFICATIONS: list[tuple[str, re.Pattern[str]]] = [
    ("HUBZone", re.compile(r"\bhub\s?zone\b", re.IGNORECASE)),
    ("SDVOSB", re.compile(r"\bsdvosb\b|service[\s-]disabled veteran", re.IGNORECASE)),
    ("8(a)", re.compile(r"\b(?:8|eight)\(a\)", re.IGNORECASE)),
    ("WOSB", re.compile(r"\b(?:ed)?wosb\b|women[\s-]owned", re.IGNORECASE)),
    ("SDB", re.compile(r"\bsdb\b|small disadvantaged business", re.IGNORECASE)),
    ("VOSB", re.compile(r"\bvosb\b|veteran[\s-]owned", re.IGNORECASE)),
    ("Small Business", re.compile(r"\bsmall business\b", re.IGNORECASE)),
]

BRANDS: dict[str, re.Pattern[str]] = {
    "nutanix": re.compile(r"\bnutanix\b", re.IGNORECASE),
    "cisco": re.compile(r"\bcisco\b", re.IGNORECASE),
    "dell": re.compile(r"\bdell\b", re.IGNORECASE),
    "hp": re.compile(r"\bhp\b|\bhewlett[\s-]packard\b|\bhpe\b", re.IGNORECASE),
    "microsoft": re.compile(r"\bmicrosoft\b", re.IGNORECASE),
    "vmware": re.compile(r"\bvmware\b", re.IGNORECASE),
}

COMPLIANCE_CLAUSES: list[tuple[str, tuple[str, ...]]] = [
    ("TAA Compliant", ("taa compliance", "taa compliant", "trade agreement")),
    ("Buy American Act", ("buy american",)),
    ("Berry Amendment", ("berry amendment",)),
    ("Section 508 Accessibility", ("section 508",)),
]

SECURITY_REQUIREMENTS: list[tuple[str, tuple[str, ...]]] = [
    ("FIPS 140-2 Certification", ("fips 140-2", "fips-140-2")),
    ("Common Criteria Evaluation", ("common criteria",)),
    ("ITAR Compliance", ("itar",)),
    ("Export Control Compliance", ("export control",)),
    ("NIST 800 Series Compliance", ("nist 800",)),
]

SECURITY_CLEARANCES: list[tuple[str, tuple[str, ...]]] = [
    ("Top Secret Clearance", ("top secret",)),
    ("Secret Clearance", ("secret clearance",)),
    ("Public Trust", ("public trust",)),
    ("Security Clearance Required", ("security clearance", "clearance required")),
]

STATE_CODE = re.compile(r"^[A-Z]{2}$")
CITY_STATE = re.compile(r"([A-Za-z][A-Za-z .'\-]+?),\s*([A-Z]{2})\b")


class ExtractionError(Exception):
    """Unexpected failure while extracting a document.

    Attributes:
        dialect: Tag of the extractor that failed
    """

    def __init__(self, dialect: str, message: str) -> None:
        super().__init__(f"{dialect} extraction failed: {message}")
        self.dialect = dialect


class BidExtractor(ABC):
    """Abstract base class for dialect-specific extractors.

    Subclasses provide the dialect tag, the confidence heuristic, the rule
    phase and the validation rules. The model phase and normalization are
    shared.
    """

    # Populated model fields override rule fields when True
    model_precedence: bool = False
    extraction_method: str = "hybrid"
    # Dialect-specific target properties merged into COMMON_MODEL_PROPERTIES
    model_properties: dict[str, Any] = {}

    def __init__(self, settings: Settings, inference: InferenceProvider | None = None) -> None:
        """Initialize extractor.

        Args:
            settings: Application settings
            inference: Model service for the model phase (None runs rules only)
        """
        self.settings = settings
        self.inference = inference

    @property
    @abstractmethod
    def dialect_tag(self) -> str:
        """Dialect identifier (e.g., 'SEWP', 'NASA', 'GENERIC')."""
        pass

    @abstractmethod
    def confidence(self, document: Document) -> float:
        """Score how likely this extractor is the right one for the document.

        Args:
            document: Inbound document

        Returns:
            Confidence in [0, 1]
        """
        pass

    @abstractmethod
    def extract_rule_fields(self, document: Document) -> dict[str, Any]:
        """Run the rule phase.

        Returns:
            Flat field mapping (record, compliance, contact and dialect keys)
        """
        pass

    @abstractmethod
    def validate(self, record: StructuredRequirement) -> ValidationResult:
        """Assess the quality of an extraction produced by this extractor."""
        pass

    def model_schema(self) -> dict[str, Any]:
        """JSON schema sent to the model service."""
        return {
            "type": "object",
            "properties": {**COMMON_MODEL_PROPERTIES, **self.model_properties},
        }

    def extract(self, document: Document) -> StructuredRequirement:
        """Extract a structured requirement from a document.

        Args:
            document: Inbound document

        Returns:
            StructuredRequirement tagged with this extractor's dialect

        Raises:
            ExtractionError: On any unexpected failure
        """
        start_time = time.time()
        try:
            rule_fields = self.extract_rule_fields(document)
            model_fields, model_confidence, model_error = self._run_model_phase(document)

            if self.model_precedence:
                merged = merge_fields(model_fields, rule_fields)
            else:
                merged = merge_fields(rule_fields, model_fields)

            record = self._build_record(document, merged, model_confidence, model_error)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"{self.dialect_tag} extraction failed for {document.document_id}: {e}")
            raise ExtractionError(self.dialect_tag, str(e)) from e
        finally:
            extraction_duration_seconds.labels(dialect=self.dialect_tag).observe(
                time.time() - start_time
            )

        logger.info(
            f"Extracted {document.document_id} as {self.dialect_tag} "
            f"(confidence={record.confidence:.2f}, model_confidence={record.model_confidence:.2f})"
        )
        return record

    def _run_model_phase(self, document: Document) -> tuple[dict[str, Any], float, str | None]:
        """Run the model phase with bounded retry.

        Returns:
            Tuple of (coerced fields, model confidence, error message or None)
        """
        if self.inference is None:
            model_phase_failures_total.labels(dialect=self.dialect_tag, reason="unconfigured").inc()
            return {}, 0.0, "Model service not configured"

        schema = self.model_schema()
        prompt = build_extraction_prompt(document, self.dialect_tag, schema)
        retrying = Retrying(
            retry=retry_if_exception_type(TransientServiceError),
            stop=stop_after_attempt(self.settings.inference_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.settings.inference_backoff_initial,
                max=self.settings.inference_backoff_max,
                jitter=self.settings.inference_backoff_jitter,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            result = retrying(self.inference.infer, prompt, schema)
        except TransientServiceError as e:
            logger.warning(
                f"Model phase abandoned for {document.document_id} after "
                f"{self.settings.inference_max_attempts} attempts: {e}"
            )
            model_phase_failures_total.labels(dialect=self.dialect_tag, reason="transient").inc()
            return {}, 0.0, str(e)
        except InferenceError as e:
            logger.warning(f"Model phase failed for {document.document_id}: {e}")
            model_phase_failures_total.labels(dialect=self.dialect_tag, reason="error").inc()
            return {}, 0.0, str(e)
        except Exception as e:
            logger.exception(f"Unexpected model phase failure for {document.document_id}: {e}")
            model_phase_failures_total.labels(dialect=self.dialect_tag, reason="error").inc()
            return {}, 0.0, str(e) or type(e).__name__

        return coerce_model_fields(result.parsed), result.confidence, None

    def _build_record(
        self,
        document: Document,
        fields: dict[str, Any],
        model_confidence: float,
        model_error: str | None,
    ) -> StructuredRequirement:
        """Normalize merged flat fields into a StructuredRequirement."""
        record_fields = {
            key: value
            for key, value in fields.items()
            if key in RECORD_FIELDS and value is not None
        }
        compliance = ComplianceFlags(
            **{key: value for key, value in fields.items() if key in COMPLIANCE_FIELDS}
        )
        contacts = ContactInfo(
            **{key: value for key, value in fields.items() if key in CONTACT_FIELDS}
        )
        dialect_fields = {
            key: value
            for key, value in fields.items()
            if key not in RECORD_FIELDS | COMPLIANCE_FIELDS | CONTACT_FIELDS
        }
        record_fields["attachments"] = _unique(
            list(document.attachments) + list(record_fields.get("attachments", []))
        )

        return StructuredRequirement(
            document_id=document.document_id,
            dialect=self.dialect_tag,
            confidence=self.confidence(document),
            extracted_at=datetime.now(UTC),
            extraction_method=self.extraction_method,
            subject=document.subject,
            sender=document.sender,
            recipient=document.recipient,
            body=document.body,
            contacts=contacts,
            compliance=compliance,
            dialect_fields=dialect_fields,
            model_confidence=model_confidence,
            model_error=model_error,
            **record_fields,
        )

    def common_rule_fields(self, document: Document) -> dict[str, Any]:
        """Rule-phase fields every dialect extracts the same way."""
        text = f"{document.subject}\n{document.body}"
        text_lower = text.lower()
        compliance_requirements = match_labels(text_lower, COMPLIANCE_CLAUSES)
        timeframe, location = extract_delivery(document.body)

        return {
            "items": extract_line_items(document.body),
            "deadlines": extract_deadlines(document.body),
            "delivery_timeframe": timeframe,
            "delivery_location": location,
            "business_certifications": extract_business_certifications(text),
            "brand_restrictions": extract_brands(text),
            "compliance_requirements": compliance_requirements,
            "security_requirements": match_labels(text_lower, SECURITY_REQUIREMENTS),
            "security_clearances": match_labels(text_lower, SECURITY_CLEARANCES),
            "taa_required": "TAA Compliant" in compliance_requirements
            or re.search(r"\btaa\b", text_lower) is not None,
            "epeat_required": "epeat" in text_lower,
            "authorized_reseller_required": "authorized reseller" in text_lower
            or "authorized partner" in text_lower,
            **extract_contacts(document.body),
        }

    def build_validation(
        self, errors: list[str], warnings: list[str], score: float
    ) -> ValidationResult:
        """Assemble a ValidationResult; only errors force manual review."""
        result = ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            validation_score=score,
            recommended_action="manual_review" if errors else "proceed",
        )
        if errors or warnings:
            logger.debug(f"{self.dialect_tag} validation: errors={errors} warnings={warnings}")
        return result


def is_populated(value: Any) -> bool:
    """True for values that should win a merge (not None, empty or False)."""
    if value is None or value is False:
        return False
    if isinstance(value, str | list | dict | tuple | set) and len(value) == 0:
        return False
    return True


def merge_fields(primary: dict[str, Any], secondary: dict[str, Any]) -> dict[str, Any]:
    """Merge two flat field maps; populated primary values take precedence.

    Args:
        primary: Fields that win when populated
        secondary: Fields used when the primary value is missing or empty

    Returns:
        Merged field map
    """
    merged = dict(secondary)
    for key, value in primary.items():
        if is_populated(value) or key not in merged:
            merged[key] = value
    return merged


def coerce_model_fields(parsed: dict[str, Any]) -> dict[str, Any]:
    """Drop model values whose type does not fit the target field.

    Unknown keys pass through unchanged and end up in dialect_fields.
    """
    fields: dict[str, Any] = {}
    for key, value in parsed.items():
        if value is None:
            continue
        if key in _STRING_FIELDS:
            if isinstance(value, str):
                fields[key] = value.strip()
            elif isinstance(value, int | float) and not isinstance(value, bool):
                fields[key] = str(value)
        elif key in _LIST_FIELDS:
            if isinstance(value, str):
                value = [value]
            if isinstance(value, list):
                fields[key] = [str(v).strip() for v in value if v is not None and str(v).strip()]
        elif key in _BOOL_FIELDS:
            if isinstance(value, bool):
                fields[key] = value
        elif key == "items":
            if isinstance(value, list):
                fields[key] = [item for item in (_coerce_item(v) for v in value) if item]
        elif key == "delivery_location":
            if isinstance(value, dict):
                fields[key] = _coerce_location(value)
        else:
            fields[key] = value
        if key in fields:
            continue
        logger.debug(f"Discarding model value for '{key}': unexpected type {type(value).__name__}")
    return fields


def _coerce_item(value: Any) -> RequirementItem | None:
    if not isinstance(value, dict):
        return None
    name = value.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    quantity = value.get("quantity")
    try:
        quantity = float(quantity) if quantity is not None else None
    except (TypeError, ValueError):
        quantity = None

    def _text(key: str) -> str | None:
        item = value.get(key)
        return str(item) if item is not None else None

    return RequirementItem(
        name=name.strip(),
        part_number=_text("part_number"),
        quantity=quantity,
        unit=_text("unit"),
        description=_text("description"),
    )


def _coerce_location(value: dict[str, Any]) -> DeliveryLocation | None:
    city = value.get("city") if isinstance(value.get("city"), str) else None
    state = value.get("state") if isinstance(value.get("state"), str) else None
    if state is not None:
        state = state.strip().upper() if STATE_CODE.match(state.strip().upper()) else None
    if not city and not state:
        return None
    return DeliveryLocation(city=city, state=state, raw=value.get("raw") or None)


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def contains_any(text: str, terms: tuple[str, ...] | list[str]) -> bool:
    """True if any of the (lowercase) terms occurs in text."""
    return any(term in text for term in terms)


def match_labels(text_lower: str, table: list[tuple[str, tuple[str, ...]]]) -> list[str]:
    """Return every label whose keywords occur in the lowercased text."""
    return [label for label, terms in table if contains_any(text_lower, terms)]


def extract_business_certifications(text: str) -> list[str]:
    """Canonical set-aside / business certification tags mentioned in text."""
    return [tag for tag, pattern in BUSINESS_CERTIFICATIONS if pattern.search(text)]


def extract_brands(text: str) -> list[str]:
    """Known brand names mentioned in text (lowercase)."""
    return [brand for brand, pattern in BRANDS.items() if pattern.search(text)]


def extract_bullet_lines(body: str) -> list[str]:
    """Bulleted or numbered lines of the body."""
    lines = []
    for line in body.split("\n"):
        trimmed = line.strip()
        if trimmed and BULLET_LINE.match(trimmed):
            lines.append(trimmed)
    return lines


def extract_section_lines(body: str) -> list[str]:
    """Bulleted lines inside requirement / specification / scope-of-work sections."""
    lines = []
    in_section = False
    for line in body.split("\n"):
        trimmed = line.strip()
        lowered = trimmed.lower()
        if contains_any(lowered, ("requirement", "specification", "scope of work")):
            in_section = True
            continue
        if in_section and trimmed and BULLET_LINE.match(trimmed):
            lines.append(trimmed)
        if in_section and trimmed == "":
            in_section = False
    return lines


def extract_attachment_references(body: str, pattern: re.Pattern[str]) -> list[str]:
    """Attachment names referenced in the body."""
    return [match.group(1).strip() for match in pattern.finditer(body) if match.group(1).strip()]


def extract_line_items(body: str) -> list[RequirementItem]:
    """Line items: bulleted lines carrying a quantity or a part number."""
    items = []
    for line in extract_bullet_lines(body):
        quantity = None
        unit = None
        for pattern in QUANTITY_PATTERNS:
            match = pattern.search(line)
            if match:
                quantity = float(match.group(1))
                unit = match.group(2).lower() if match.group(2) else None
                break

        part_number = None
        for pattern in PART_NUMBER_PATTERNS:
            match = pattern.search(line)
            if match:
                part_number = match.group(0).upper()
                break

        if quantity is None and part_number is None:
            continue
        name = re.sub(r"^[\-\*\d\.\)\s]+", "", line).strip() or line
        items.append(
            RequirementItem(name=name, part_number=part_number, quantity=quantity, unit=unit)
        )
    return items


def extract_deadlines(body: str) -> list[str]:
    """Due dates and deadlines stated in the body."""
    patterns = [
        r"due\s+(?:date|by)?\s*:?\s*([^\n]+)",
        r"proposal\s+(?:must\s+)?(?:be\s+)?(?:submitted\s+)?(?:by|due)\s*:?\s*([^\n]+)",
        r"deadline\s*:?\s*([^\n]+)",
        r"(?:responses?|quotes?)\s+(?:are\s+)?due\s*:?\s*([^\n]+)",
    ]
    deadlines = []
    for pattern in patterns:
        match = re.search(pattern, body, re.IGNORECASE)
        if match and match.group(1).strip():
            deadlines.append(match.group(1).strip())
    return _unique(deadlines)


def extract_contacts(body: str) -> dict[str, Any]:
    """Contracting officer, point of contact, phone and email addresses."""
    contacts: dict[str, Any] = {}

    match = re.search(r"contracting\s+officer\s*:?\s*([^\n]+)", body, re.IGNORECASE)
    if match:
        contacts["contracting_officer"] = match.group(1).strip()

    match = re.search(r"(?:point\s+of\s+contact|\bpoc\b)\s*:?\s*([^\n]+)", body, re.IGNORECASE)
    if match:
        contacts["point_of_contact"] = match.group(1).strip()

    match = PHONE.search(body)
    if match:
        contacts["phone"] = match.group(1).strip()

    contacts["emails"] = _unique(EMAIL_ADDRESS.findall(body))
    return contacts


def extract_delivery(body: str) -> tuple[str | None, DeliveryLocation | None]:
    """Delivery timeframe and delivery location."""
    timeframe = None
    match = re.search(
        r"deliver(?:y)?\s+(?:within\s+)?(\d+)\s+(days?|weeks?|months?)", body, re.IGNORECASE
    )
    if match:
        timeframe = f"{match.group(1)} {match.group(2)}"

    location = None
    match = re.search(r"deliver(?:y)?\s+(?:to|location)\s*:?\s*([^\n]+)", body, re.IGNORECASE)
    if match:
        raw = match.group(1).strip()
        city_state = CITY_STATE.search(raw)
        if city_state:
            location = DeliveryLocation(
                city=city_state.group(1).strip(), state=city_state.group(2), raw=raw
            )
        else:
            location = DeliveryLocation(raw=raw)
    return timeframe, location
