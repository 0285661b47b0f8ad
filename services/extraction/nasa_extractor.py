"""Extractor for NASA center procurements.

Covers NASA-specific identifiers (procurement numbers, centers), security and
qualification requirements, and delivery/performance terms. Rule fields take
precedence over model fields.
"""

import re
from typing import Any

from services.extraction.base import (
    STRING_ARRAY,
    BidExtractor,
    contains_any,
    extract_attachment_references,
    extract_bullet_lines,
    match_labels,
)
from services.extraction.schema import Document, StructuredRequirement, ValidationResult

SUBJECT_NUMBER = re.compile(r"(?:RFQ|RFP|Quote)\s*#?\s*([A-Z0-9\-]*\d[A-Z0-9\-]*)", re.IGNORECASE)
BODY_NUMBER = re.compile(
    r"(?:procurement|solicitation|quote)\s*(?:number|#)\s*:?\s*([A-Z0-9\-]*\d[A-Z0-9\-]*)",
    re.IGNORECASE,
)
NASA_NUMBER = re.compile(r"NASA-\d{4}-\d{3}", re.IGNORECASE)
ATTACHMENT_REFERENCE = re.compile(r"attachments?\s*\d*[:\-]?\s*([^\n]+)", re.IGNORECASE)
UPTIME = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*uptime", re.IGNORECASE)
RESPONSE_TIME = re.compile(r"response\s+time[:\s]+([^\n]+)", re.IGNORECASE)

NASA_CENTERS = {
    "jpl": "Jet Propulsion Laboratory (JPL)",
    "goddard": "Goddard Space Flight Center",
    "johnson": "Johnson Space Center",
    "kennedy": "Kennedy Space Center",
    "langley": "Langley Research Center",
    "glenn": "Glenn Research Center",
    "ames": "Ames Research Center",
    "marshall": "Marshall Space Flight Center",
    "stennis": "Stennis Space Center",
    "armstrong": "Armstrong Flight Research Center",
}

QUALIFICATIONS: list[tuple[str, tuple[str, ...]]] = [
    ("Space-Qualified Components", ("space-qualified", "space qualified")),
    ("Radiation Hardened", ("radiation hardened", "rad-hard")),
    ("Military Standard Compliance", ("mil-std", "military standard")),
    ("Flight Hardware Qualified", ("flight hardware",)),
    ("Mission Critical Grade", ("mission critical",)),
]


class NASAExtractor(BidExtractor):
    """Extractor for procurements issued by NASA centers."""

    model_properties = {
        "nasa_center": {"type": ["string", "null"]},
        "mission_context": {
            "type": ["object", "null"],
            "properties": {
                "mission_type": {"type": ["string", "null"]},
                "mission_name": {"type": ["string", "null"]},
                "spacecraft": {"type": ["string", "null"]},
            },
        },
        "space_qualification": STRING_ARRAY,
        "testing_requirements": STRING_ARRAY,
        "estimated_value": {"type": ["string", "null"]},
    }

    @property
    def dialect_tag(self) -> str:
        return "NASA"

    def confidence(self, document: Document) -> float:
        """Additive evidence score over subject, sender and body, capped at 1.0."""
        subject = document.subject.lower()
        sender = document.sender.lower()
        body = document.body.lower()

        score = 0.0
        if "nasa.gov" in sender:
            score += 0.4
        if "nasa" in subject:
            score += 0.3
        if "sewp" in subject:
            score += 0.2
        if "nasa" in body:
            score += 0.2

        if contains_any(body, ("space-qualified", "space qualified")):
            score += 0.3
        if contains_any(body, ("fips 140-2", "fips-140-2")):
            score += 0.2
        if contains_any(body, ("security clearance", "clearance required")):
            score += 0.2
        if contains_any(body, ("itar", "export control")):
            score += 0.2
        if contains_any(body, ("jpl", "goddard", "johnson space center")):
            score += 0.3

        if contains_any(body, ("national aeronautics", "space administration")):
            score += 0.2
        if contains_any(body, ("mission critical", "flight hardware")):
            score += 0.2
        if contains_any(body, ("radiation hardened", "mil-std")):
            score += 0.2

        return min(score, 1.0)

    def extract_rule_fields(self, document: Document) -> dict[str, Any]:
        body_lower = document.body.lower()

        return {
            **self.common_rule_fields(document),
            "contract_vehicle": detect_contract_vehicle(f"{document.body} {document.subject}"),
            "agency": "National Aeronautics and Space Administration (NASA)",
            "solicitation_number": extract_procurement_number(document.subject, document.body),
            "requirement_lines": extract_bullet_lines(document.body),
            "attachments": extract_attachment_references(document.body, ATTACHMENT_REFERENCE),
            "nasa_center": extract_nasa_center(document.body, document.sender),
            "qualification_requirements": match_labels(body_lower, QUALIFICATIONS),
            "performance_requirements": extract_performance_requirements(document.body),
        }

    def validate(self, record: StructuredRequirement) -> ValidationResult:
        errors: list[str] = []
        warnings = []

        if not record.solicitation_number:
            warnings.append("Procurement number not found")
        if not record.dialect_fields.get("nasa_center"):
            warnings.append("NASA center/facility not identified")
        if not record.compliance.security_requirements:
            warnings.append("No security requirements identified")
        if not record.requirement_lines:
            warnings.append("No technical requirements extracted")
        if record.confidence < 0.5:
            warnings.append("Low confidence score for NASA extractor")
        if record.model_error:
            warnings.append(f"Model-based extraction unavailable: {record.model_error}")

        return self.build_validation(errors, warnings, 1.0 if not errors else 0.5)


def detect_contract_vehicle(text: str) -> str:
    """Contract vehicle named in text, defaulting to a direct NASA award."""
    lowered = text.lower()
    if contains_any(lowered, ("sewp v", "sewp 5")):
        return "SEWP V"
    if "sewp" in lowered:
        return "SEWP"
    if "gsa" in lowered:
        return "GSA"
    if "cio-sp3" in lowered:
        return "CIO-SP3"
    return "NASA Direct"


def extract_procurement_number(subject: str, body: str) -> str | None:
    """Procurement number from the subject, then body labels, then NASA-YYYY-NNN."""
    match = SUBJECT_NUMBER.search(subject)
    if match:
        return match.group(1)

    match = BODY_NUMBER.search(body)
    if match:
        return match.group(1)

    match = NASA_NUMBER.search(body)
    if match:
        return match.group(0).upper()
    return None


def extract_nasa_center(body: str, sender: str) -> str | None:
    """NASA center named in the body or sender address."""
    body_lower = body.lower()
    sender_lower = sender.lower()
    for key, center in NASA_CENTERS.items():
        if re.search(rf"\b{key}\b", body_lower) or key in sender_lower:
            return center
    return None


def extract_performance_requirements(body: str) -> dict[str, str]:
    """Uptime and response time commitments."""
    requirements = {}
    match = UPTIME.search(body)
    if match:
        requirements["uptime"] = f"{match.group(1)}%"
    match = RESPONSE_TIME.search(body)
    if match:
        requirements["response_time"] = match.group(1).strip()
    return requirements
