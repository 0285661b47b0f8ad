"""Data models for catalog suppliers.

Suppliers are owned by the catalog store and treated as read-only input by
the matching strategies. Every attribute beyond id and name is optional.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ComplianceDetails(BaseModel):
    """Trade compliance, environmental and security attributes."""

    taa_compliant: bool | None = None
    epeat_levels: list[str] = Field(default_factory=list, description="Gold / Silver / Bronze")
    security_clearance: list[str] = Field(
        default_factory=list, description="Clearance tiers, e.g. CSOFT, CNET, CSAT, C"
    )
    government_certifications: list[str] = Field(default_factory=list)


class Address(BaseModel):
    """Postal address; state is a two-letter postal code."""

    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class GeographicCapabilities(BaseModel):
    """Home state, served regions, delivery footprint and support tier."""

    state: str | None = None
    regions: list[str] = Field(default_factory=list)
    delivery_locations: list[str] = Field(default_factory=list)
    support_coverage: str | None = Field(
        None, description="24/7 Federal, 24/7, Business Hours, Regional or Best Effort"
    )


class GovernmentContract(BaseModel):
    """A past government award."""

    contract_number: str | None = None
    agency: str | None = None
    value: float | None = None
    performance_period: str | None = None
    rating: str | None = None


class PastPerformance(BaseModel):
    """Federal and program contract history."""

    federal_contract_history: bool | None = None
    sewp_experience: bool | None = None
    nasa_experience: bool | None = None
    gsa_schedule: str | bool | None = Field(None, description="Schedule number or flag")
    government_contracts: list[GovernmentContract] = Field(default_factory=list)


class BusinessInfo(BaseModel):
    """Company profile."""

    business_size: str | None = None
    employee_count: int | None = None
    headquarters: Address | None = None


class ContactPerson(BaseModel):
    """Named supplier contact."""

    name: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None


class SupplierContact(BaseModel):
    """Supplier contacts by role."""

    primary_contact: ContactPerson | None = None
    technical_contact: ContactPerson | None = None
    contracts_contact: ContactPerson | None = None


class Supplier(BaseModel):
    """Catalog supplier record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    supplier_id: str = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    business_certifications: list[str] = Field(default_factory=list)
    compliance_details: ComplianceDetails | None = None
    authorized_reseller: dict[str, bool] = Field(
        default_factory=dict, description="Brand (lowercase) to authorization flag"
    )
    capabilities: list[str] = Field(default_factory=list, description="Technical capability tags")
    geographic_capabilities: GeographicCapabilities | None = None
    past_performance: PastPerformance | None = None
    business_info: BusinessInfo | None = None
    contact: SupplierContact | None = None
    compliance_status: str | None = None
    status: Literal["active", "inactive"] = "active"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("authorized_reseller", mode="before")
    @classmethod
    def brands_lowercase(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(brand).lower(): flag for brand, flag in v.items()}
        return v

    def is_authorized_for(self, brand: str) -> bool:
        """True if the supplier is an authorized reseller for the brand."""
        return bool(self.authorized_reseller.get(brand.lower(), False))

    @property
    def home_state(self) -> str | None:
        """Declared home state, if any."""
        if self.geographic_capabilities is None:
            return None
        return self.geographic_capabilities.state

    @property
    def headquarters_state(self) -> str | None:
        """Headquarters state, if any."""
        if self.business_info is None or self.business_info.headquarters is None:
            return None
        return self.business_info.headquarters.state
