"""Extractor for SEWP V (Solutions for Enterprise-Wide Procurement) solicitations.

Rule fields take precedence over model fields: SEWP requests carry a
machine-readable section whose values are more reliable than model output.
"""

import re
from typing import Any

from services.extraction.base import (
    STRING_ARRAY,
    BidExtractor,
    contains_any,
    extract_attachment_references,
    extract_bullet_lines,
)
from services.extraction.schema import Document, StructuredRequirement, ValidationResult

RFQ_NUMBER = re.compile(r"RFQ\s*#?\s*([A-Z0-9\-]*\d[A-Z0-9\-]*)", re.IGNORECASE)
ATTACHMENT_REFERENCE = re.compile(r"attachments?\s*\d*[:\-]?\s*([^\n]+)", re.IGNORECASE)
MACHINE_READABLE_LINE = re.compile(r"^\s*([A-Za-z][A-Za-z /&()\-]{1,40}?)\s*:\s*(.+?)\s*$")


class SEWPExtractor(BidExtractor):
    """Extractor for NASA SEWP V requests for quote."""

    model_properties = {
        "technical_specifications": STRING_ARRAY,
        "delivery_requirements": {"type": ["string", "null"]},
    }

    @property
    def dialect_tag(self) -> str:
        return "SEWP"

    def confidence(self, document: Document) -> float:
        """Additive evidence score over subject, sender and body, capped at 1.0."""
        subject = document.subject.lower()
        sender = document.sender.lower()
        body = document.body.lower()

        score = 0.0
        if contains_any(subject, ("sewp v", "sewp 5")):
            score += 0.4
        if contains_any(subject, ("rfq", "request for quote")):
            score += 0.2
        if contains_any(sender, ("nasa.gov", "sewp")):
            score += 0.2
        if "sewp v request for quote" in body:
            score += 0.3
        if "machine readable section" in body:
            score += 0.3
        if "contract vehicle" in body:
            score += 0.1
        if contains_any(body, ("taa compliance", "trade agreement")):
            score += 0.1
        if contains_any(body, ("hubzone", "sdvosb", "8(a)")):
            score += 0.1

        return min(score, 1.0)

    def extract_rule_fields(self, document: Document) -> dict[str, Any]:
        rfq_match = RFQ_NUMBER.search(document.subject)

        return {
            **self.common_rule_fields(document),
            "contract_vehicle": "SEWP V",
            "solicitation_number": rfq_match.group(1) if rfq_match else None,
            "procurement_type": "RFQ",
            "requirement_lines": extract_bullet_lines(document.body),
            "attachments": extract_attachment_references(document.body, ATTACHMENT_REFERENCE),
            "machine_readable": extract_machine_readable_section(document.body),
        }

    def validate(self, record: StructuredRequirement) -> ValidationResult:
        errors = []
        warnings = []

        if not record.solicitation_number:
            errors.append("RFQ number not found in subject line")
        if not record.requirement_lines:
            warnings.append("No technical requirements extracted")
        if not record.compliance.compliance_requirements:
            warnings.append("No compliance requirements found")
        if record.confidence < 0.5:
            warnings.append("Low confidence score for SEWP extractor")
        if record.model_error:
            warnings.append(f"Model-based extraction unavailable: {record.model_error}")

        return self.build_validation(errors, warnings, 1.0 if not errors else 0.5)


def extract_machine_readable_section(body: str) -> dict[str, str]:
    """Key/value pairs following a 'machine readable section' marker.

    The section ends at the first blank line after at least one pair.
    """
    lines = body.split("\n")
    start = None
    for index, line in enumerate(lines):
        if "machine readable section" in line.lower():
            start = index + 1
            break
    if start is None:
        return {}

    section: dict[str, str] = {}
    for line in lines[start:]:
        if not line.strip():
            if section:
                break
            continue
        match = MACHINE_READABLE_LINE.match(line)
        if match:
            key = re.sub(r"[^a-z0-9]+", "_", match.group(1).lower()).strip("_")
            section[key] = match.group(2)
    return section
