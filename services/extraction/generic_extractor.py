"""Fallback extractor for general government procurement solicitations.

Rule coverage is shallow; populated model fields take precedence
over rule fields for this dialect.
"""

import re
from typing import Any

from services.extraction.base import (
    STRING_ARRAY,
    BidExtractor,
    contains_any,
    extract_attachment_references,
    extract_section_lines,
)
from services.extraction.schema import Document, StructuredRequirement, ValidationResult

SUBJECT_NUMBER = re.compile(
    r"(?:solicitation|rfp|rfq|rfi)\s*#?\s*([A-Z0-9\-_]*\d[A-Z0-9\-_]*)", re.IGNORECASE
)
BODY_NUMBERS = [
    re.compile(r"solicitation\s*(?:number|#)\s*:?\s*([A-Z0-9\-_]*\d[A-Z0-9\-_]*)", re.IGNORECASE),
    re.compile(
        r"(?:reference|\bref)\s*(?:number|#)\s*:?\s*([A-Z0-9\-_]*\d[A-Z0-9\-_]*)", re.IGNORECASE
    ),
]
ATTACHMENT_REFERENCE = re.compile(
    r"\b(?:attachment|document|file)s?\s*\d*\s*[:\-]\s*([^\n]+)", re.IGNORECASE
)

CONTRACT_VEHICLES: list[tuple[str, tuple[str, ...]]] = [
    ("GSA Schedule", ("gsa schedules", "gsa schedule")),
    ("SEWP", ("sewp",)),
    ("CIO-SP3", ("cio-sp3",)),
    ("OASIS", ("oasis",)),
    ("Alliant 2", ("alliant 2",)),
    ("8(a) STARS", ("8(a) stars",)),
]

PROCUREMENT_TYPES: list[tuple[str, re.Pattern[str]]] = [
    ("RFP", re.compile(r"request for proposal|\brfp\b")),
    ("RFQ", re.compile(r"request for quot|\brfq\b")),
    ("RFI", re.compile(r"request for information|\brfi\b")),
    ("IFB", re.compile(r"invitation for bid|\bifb\b")),
    ("BAA", re.compile(r"broad agency announcement|\bbaa\b")),
]

SENDER_AGENCIES: list[tuple[tuple[str, ...], str]] = [
    (("gsa.gov",), "General Services Administration (GSA)"),
    (("nasa.gov",), "National Aeronautics and Space Administration (NASA)"),
    (("dod.gov", "army.mil", "navy.mil", "af.mil"), "Department of Defense (DoD)"),
    (("dhs.gov",), "Department of Homeland Security (DHS)"),
    (("va.gov",), "Department of Veterans Affairs (VA)"),
    (("hhs.gov",), "Department of Health and Human Services (HHS)"),
    (("treasury.gov",), "Department of Treasury"),
    (("energy.gov",), "Department of Energy (DOE)"),
]

BODY_AGENCIES: list[tuple[str, str]] = [
    ("department of defense", "Department of Defense (DoD)"),
    ("homeland security", "Department of Homeland Security (DHS)"),
    ("veterans affairs", "Department of Veterans Affairs (VA)"),
    ("general services administration", "General Services Administration (GSA)"),
]


class GenericExtractor(BidExtractor):
    """Fallback extractor for solicitations no specialized extractor claims."""

    model_precedence = True
    extraction_method = "hybrid-model-heavy"
    model_properties = {
        "key_topics": STRING_ARRAY,
        "budget_range": {"type": ["string", "null"]},
        "performance_period": {"type": ["string", "null"]},
        "submission_instructions": STRING_ARRAY,
    }

    @property
    def dialect_tag(self) -> str:
        return "GENERIC"

    def confidence(self, document: Document) -> float:
        """Base 0.1 plus government/procurement evidence.

        Halved when a specialized dialect is likely, capped at 0.8.
        """
        subject = document.subject.lower()
        sender = document.sender.lower()
        body = document.body.lower()

        score = 0.1
        if ".gov" in sender:
            score += 0.2
        if contains_any(subject, ("rfp", "rfi", "rfq")):
            score += 0.2
        if "request for" in subject:
            score += 0.2

        if "gsa.gov" in sender or "gsa" in body:
            score += 0.2
        if "dod.gov" in sender or "department of defense" in body:
            score += 0.2
        if contains_any(body, ("federal", "government")):
            score += 0.1

        if contains_any(body, ("procurement", "solicitation")):
            score += 0.1
        if contains_any(body, ("contract", "vendor")):
            score += 0.1
        if contains_any(body, ("proposal", "quotation")):
            score += 0.1

        if "nasa.gov" in sender or "sewp" in body:
            score *= 0.5

        return min(score, 0.8)

    def extract_rule_fields(self, document: Document) -> dict[str, Any]:
        combined = f"{document.subject} {document.body}"

        return {
            **self.common_rule_fields(document),
            "contract_vehicle": detect_contract_vehicle(combined),
            "procurement_type": detect_procurement_type(combined),
            "agency": detect_agency(document.sender, document.body),
            "solicitation_number": extract_solicitation_number(document.subject, document.body),
            "requirement_lines": extract_section_lines(document.body),
            "attachments": extract_attachment_references(document.body, ATTACHMENT_REFERENCE),
        }

    def validate(self, record: StructuredRequirement) -> ValidationResult:
        errors: list[str] = []
        warnings = []

        if not record.procurement_type:
            warnings.append("Procurement type not identified")
        if not record.agency:
            warnings.append("Government agency not identified")
        if not record.solicitation_number:
            warnings.append("Solicitation number not found")
        if not record.requirement_lines:
            warnings.append("No basic requirements extracted")
        if record.confidence < 0.2:
            warnings.append("Very low confidence score for generic extractor")
        if record.model_error:
            warnings.append(f"Model-based extraction unavailable: {record.model_error}")

        if errors:
            score = 0.4
        elif warnings:
            score = 0.7
        else:
            score = 1.0
        return self.build_validation(errors, warnings, score)


def detect_contract_vehicle(text: str) -> str:
    """Contract vehicle or program named in text."""
    lowered = text.lower()
    for vehicle, terms in CONTRACT_VEHICLES:
        if contains_any(lowered, terms):
            return vehicle
    return "Government Direct"


def detect_procurement_type(text: str) -> str | None:
    """Procurement instrument (RFP, RFQ, RFI, IFB, BAA), None when not stated."""
    lowered = text.lower()
    for procurement_type, pattern in PROCUREMENT_TYPES:
        if pattern.search(lowered):
            return procurement_type
    return None


def detect_agency(sender: str, body: str) -> str | None:
    """Issuing agency from the sender domain, then from body mentions."""
    sender_lower = sender.lower()
    for domains, agency in SENDER_AGENCIES:
        if contains_any(sender_lower, domains):
            return agency

    body_lower = body.lower()
    for phrase, agency in BODY_AGENCIES:
        if phrase in body_lower:
            return agency
    return None


def extract_solicitation_number(subject: str, body: str) -> str | None:
    """Solicitation number from the subject, then labelled body references."""
    match = SUBJECT_NUMBER.search(subject)
    if match:
        return match.group(1)
    for pattern in BODY_NUMBERS:
        match = pattern.search(body)
        if match:
            return match.group(1)
    return None
