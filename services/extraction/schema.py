"""Data models for inbound solicitation documents and extraction output.

A Document is the parsed inbound email. A StructuredRequirement is the
dialect-independent record produced from it by exactly one extractor.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """Inbound procurement solicitation, immutable once received."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(..., min_length=1, description="Unique document identifier")
    subject: str = Field("", description="Subject line")
    sender: str = Field("", description="Sender address")
    recipient: str = Field("", description="Recipient address")
    body: str = Field("", description="Body text (possibly truncated)")
    attachments: list[str] = Field(default_factory=list, description="Attachment filenames")
    source_ref: str | None = Field(None, description="Object store key of the raw document")
    received_at: datetime | None = Field(None, description="Time the document was received")


class RequirementItem(BaseModel):
    """A requested line item."""

    name: str
    part_number: str | None = None
    quantity: float | None = None
    unit: str | None = None
    description: str | None = None


class ContactInfo(BaseModel):
    """Solicitation contacts found in the document."""

    contracting_officer: str | None = None
    point_of_contact: str | None = None
    phone: str | None = None
    emails: list[str] = Field(default_factory=list)


class DeliveryLocation(BaseModel):
    """Delivery destination; state is a two-letter postal code when known."""

    city: str | None = None
    state: str | None = None
    raw: str | None = None


class ComplianceFlags(BaseModel):
    """Compliance requirements the supplier is evaluated against."""

    taa_required: bool = False
    epeat_required: bool = False
    authorized_reseller_required: bool = False
    brand_restrictions: list[str] = Field(default_factory=list)
    business_certifications: list[str] = Field(default_factory=list)
    security_clearances: list[str] = Field(default_factory=list)
    security_requirements: list[str] = Field(default_factory=list)
    compliance_requirements: list[str] = Field(default_factory=list)


class StructuredRequirement(BaseModel):
    """Normalized extraction output, independent of source dialect.

    Never mutated after creation; re-extraction produces a new record.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    dialect: str = Field(..., description="Tag of the extractor that produced the record")
    confidence: float = Field(..., ge=0, le=1, description="Extractor confidence for the document")
    extracted_at: datetime
    extraction_method: str = "hybrid"

    subject: str = ""
    sender: str = ""
    recipient: str = ""
    body: str = ""

    solicitation_number: str | None = None
    contract_vehicle: str | None = None
    agency: str | None = None
    procurement_type: str | None = None

    items: list[RequirementItem] = Field(default_factory=list)
    deadlines: list[str] = Field(default_factory=list)
    contacts: ContactInfo = Field(default_factory=ContactInfo)
    compliance: ComplianceFlags = Field(default_factory=ComplianceFlags)
    delivery_location: DeliveryLocation | None = None
    delivery_timeframe: str | None = None
    requirement_lines: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)

    dialect_fields: dict[str, Any] = Field(default_factory=dict)

    model_confidence: float = Field(0.0, ge=0, le=1)
    model_error: str | None = None

    def search_text(self) -> str:
        """Flatten the free-text parts of the record for keyword matching."""
        parts: list[str] = [self.subject, self.body]
        parts.extend(self.requirement_lines)
        for item in self.items:
            parts.append(item.name)
            if item.description:
                parts.append(item.description)
            if item.part_number:
                parts.append(item.part_number)
        return " ".join(part for part in parts if part)

    def comparable_fields(self) -> dict[str, Any]:
        """Field values excluding timestamps, used for idempotence checks."""
        return self.model_dump(exclude={"extracted_at"})


class ValidationResult(BaseModel):
    """Quality assessment of an extraction.

    Attributes:
        is_valid: False only when hard errors are present
        errors: Hard errors (e.g. missing dialect-critical identifier)
        warnings: Soft warnings that annotate but do not block
        validation_score: Coarse quality score (0-1)
        recommended_action: 'proceed' or 'manual_review'
    """

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    validation_score: float = Field(1.0, ge=0, le=1)
    recommended_action: Literal["proceed", "manual_review"] = "proceed"
