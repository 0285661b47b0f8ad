"""Extractor for GSA Multiple Award Schedule orders posted through eBuy.

Recognizes eBuy RFQ identifiers, Special Item Numbers (SINs), schedule
contract numbers and BPA calls. Rule fields take precedence over model fields.
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
from services.extraction.generic_extractor import detect_agency, detect_procurement_type
from services.extraction.schema import Document, StructuredRequirement, ValidationResult

EBUY_RFQ = re.compile(r"\b(RF[QI]\d{6,8})\b", re.IGNORECASE)
LABELLED_RFQ = re.compile(
    r"RFQ\s*(?:#|number|id)?\s*:?\s*([A-Z0-9\-]*\d[A-Z0-9\-]*)", re.IGNORECASE
)
SIN = re.compile(
    r"\bSIN\s*[:#]?\s*(\d{3,6}[A-Z]{0,4}"
    r"(?:[\s,/]+(?:and\s+)?\d{3,6}[A-Z]{0,4})*)"
)
SIN_VALUE = re.compile(r"\d{3,6}[A-Z]{0,4}")
SCHEDULE_CONTRACT = re.compile(r"\b(GS-\d{2}[A-Z]-[A-Z0-9]{4,6}|47Q[A-Z0-9]{10,14})\b")
ATTACHMENT_REFERENCE = re.compile(r"attachments?\s*\d*[:\-]?\s*([^\n]+)", re.IGNORECASE)
BPA = re.compile(r"\bbpa\b|blanket purchase agreement", re.IGNORECASE)

GSA_AGENCY = "General Services Administration (GSA)"


class GSAExtractor(BidExtractor):
    """Extractor for GSA schedule RFQs and BPA calls."""

    model_properties = {
        "sin_numbers": STRING_ARRAY,
        "schedule_contract_number": {"type": ["string", "null"]},
        "ordering_agency": {"type": ["string", "null"]},
        "quote_close_date": {"type": ["string", "null"]},
        "set_aside": {"type": ["string", "null"]},
    }

    @property
    def dialect_tag(self) -> str:
        return "GSA"

    def confidence(self, document: Document) -> float:
        """Additive evidence score over subject, sender and body, capped at 1.0."""
        subject = document.subject.lower()
        sender = document.sender.lower()
        body = document.body.lower()

        score = 0.0
        if "gsa.gov" in sender:
            score += 0.4
        if contains_any(subject, ("gsa", "ebuy")):
            score += 0.3
        if contains_any(body, ("gsa schedule", "multiple award schedule", "gsa mas")):
            score += 0.2
        if "ebuy" in body:
            score += 0.3
        if SIN.search(document.body):
            score += 0.2
        if "gsa advantage" in body:
            score += 0.1
        if BPA.search(document.body):
            score += 0.1

        return min(score, 1.0)

    def extract_rule_fields(self, document: Document) -> dict[str, Any]:
        text = f"{document.subject}\n{document.body}"
        is_bpa = BPA.search(document.body) is not None

        return {
            **self.common_rule_fields(document),
            "contract_vehicle": "GSA BPA" if is_bpa else "GSA MAS",
            "agency": detect_agency(document.sender, document.body) or GSA_AGENCY,
            "procurement_type": detect_procurement_type(text) or "RFQ",
            "solicitation_number": extract_ebuy_number(document.subject, document.body),
            "requirement_lines": extract_bullet_lines(document.body),
            "attachments": extract_attachment_references(document.body, ATTACHMENT_REFERENCE),
            "sin_numbers": extract_sins(document.body),
            "schedule_contract_number": extract_schedule_contract(document.body),
            "bpa_call": is_bpa,
        }

    def validate(self, record: StructuredRequirement) -> ValidationResult:
        errors = []
        warnings = []

        if not record.solicitation_number:
            errors.append("eBuy RFQ number not found")
        if not record.dialect_fields.get("sin_numbers"):
            warnings.append("No Special Item Numbers (SINs) identified")
        if not record.requirement_lines and not record.items:
            warnings.append("No requirements extracted")
        if record.confidence < 0.5:
            warnings.append("Low confidence score for GSA extractor")
        if record.model_error:
            warnings.append(f"Model-based extraction unavailable: {record.model_error}")

        return self.build_validation(errors, warnings, 1.0 if not errors else 0.5)


def extract_ebuy_number(subject: str, body: str) -> str | None:
    """eBuy RFQ/RFI id (e.g. RFQ1234567), then a labelled RFQ number."""
    for text in (subject, body):
        match = EBUY_RFQ.search(text)
        if match:
            return match.group(1).upper()
    for text in (subject, body):
        match = LABELLED_RFQ.search(text)
        if match:
            return match.group(1)
    return None


def extract_sins(body: str) -> list[str]:
    """Special Item Numbers listed after 'SIN' labels."""
    sins: list[str] = []
    for match in SIN.finditer(body):
        for value in SIN_VALUE.findall(match.group(1)):
            if value not in sins:
                sins.append(value)
    return sins


def extract_schedule_contract(body: str) -> str | None:
    """GSA schedule contract number (GS-35F-XXXXX or 47Q... formats)."""
    match = SCHEDULE_CONTRACT.search(body)
    return match.group(1) if match else None
