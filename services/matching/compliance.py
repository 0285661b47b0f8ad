"""Compliance filter strategy for government contracting requirements.

Scores TAA compliance, EPEAT tier, business certifications, security
clearance, federal experience and brand authorization. Each sub-factor has a
fixed point allocation; the score is earned points over applicable points.

A missing mandatory TAA certificate or an unauthorized restricted brand is a
critical failure: that sub-factor earns nothing and is listed under
`blocking_omissions`, but the supplier stays in the ranking.
"""

import re
from typing import Any

from services.extraction.base import extract_brands, extract_business_certifications
from services.extraction.schema import StructuredRequirement
from services.matching.base import MatchingStrategy, MatchScore, requirement_text
from services.matching.config import COMPLIANCE_STRATEGY
from services.matching.schema import Supplier

# Point allocation per sub-factor
TAA_POINTS = 0.3
EPEAT_POINTS = 0.15
CERTIFICATION_POINTS = 0.2
CLEARANCE_POINTS = 0.1
EXPERIENCE_POINTS = 0.15
RESELLER_POINTS = 0.1

EPEAT_TIERS = {"Gold": 1.0, "Silver": 0.8, "Bronze": 0.6}

CERTIFICATION_VALUES = {
    "HUBZone": 1.0,
    "SDVOSB": 1.0,
    "8(a)": 1.0,
    "WOSB": 0.8,
    "SDB": 0.6,
    "VOSB": 0.4,
    "Small Business": 0.3,
}
# Catalog spellings mapped onto canonical certification tags
CERTIFICATION_ALIASES = {
    "VET": "VOSB",
    "EDWOSB": "WOSB",
    "8A": "8(a)",
    "SMALL": "Small Business",
}
SET_ASIDE_BONUS = 1.2

CLEARANCE_TIERS = {"CSOFT": 1.0, "CNET": 0.8, "CSAT": 0.6, "C": 0.4}
SECURITY_BONUS = 1.2

EXPERIENCE_POINTS_TABLE = {
    "federal_contract_history": 0.3,
    "sewp_experience": 0.4,
    "nasa_experience": 0.2,
    "gsa_schedule": 0.1,
}

TAA_MENTION = re.compile(r"\btaa\b|trade agreements? act")
SECURITY_MENTION = re.compile(r"security|clearance|classified")


class ComplianceFilterStrategy(MatchingStrategy):
    """Scores suppliers against government compliance requirements."""

    @property
    def name(self) -> str:
        return COMPLIANCE_STRATEGY

    def score(self, requirement: StructuredRequirement, supplier: Supplier) -> MatchScore:
        text = requirement_text(requirement)
        details: dict[str, Any] = {
            "breakdown": {},
            "requirements_met": [],
            "requirements_missed": [],
            "blocking_omissions": [],
        }
        earned = 0.0
        available = 0.0

        # 1. TAA compliance (critical, only when mandated)
        taa_score = 1.0 if _taa_compliant(supplier) else 0.0
        details["taa_compliance"] = taa_score
        if requires_taa(requirement, text):
            if taa_score == 0:
                details["requirements_missed"].append("TAA Compliance Required")
                details["blocking_omissions"].append("TAA compliance")
            else:
                details["requirements_met"].append("TAA Compliance Verified")
            details["breakdown"]["taa_compliance"] = (
                f"TAA Compliance: {'PASS' if taa_score else 'FAIL'}"
            )
            earned += taa_score * TAA_POINTS
            available += TAA_POINTS

        # 2. EPEAT tier (only when mandated)
        epeat_score, epeat_level = _epeat_tier(supplier)
        details["epeat_compliance"] = epeat_score
        if requirement.compliance.epeat_required or "epeat" in text:
            if epeat_score > 0:
                details["requirements_met"].append(f"EPEAT Compliance: {epeat_level}")
            else:
                details["requirements_missed"].append("EPEAT Compliance Required")
            details["breakdown"]["epeat_compliance"] = f"EPEAT Compliance: {epeat_score:.0%}"
            earned += epeat_score * EPEAT_POINTS
            available += EPEAT_POINTS

        # 3. Business certifications
        certification_score = self._certification_score(requirement, text, supplier)
        details["business_certifications"] = certification_score
        details["breakdown"]["business_certifications"] = (
            f"Business Certifications: {certification_score:.0%}"
        )
        if certification_score > 0:
            details["requirements_met"].append(
                f"Business Certifications: {', '.join(supplier.business_certifications)}"
            )
        earned += certification_score * CERTIFICATION_POINTS
        available += CERTIFICATION_POINTS

        # 4. Security clearance
        clearance_score = self._clearance_score(requirement, text, supplier)
        details["security_clearance"] = clearance_score
        details["breakdown"]["security_clearance"] = f"Security Clearance: {clearance_score:.0%}"
        if clearance_score > 0 and supplier.compliance_details is not None:
            details["requirements_met"].append(
                f"Security Clearance: {', '.join(supplier.compliance_details.security_clearance)}"
            )
        earned += clearance_score * CLEARANCE_POINTS
        available += CLEARANCE_POINTS

        # 5. Federal contract experience
        experience_score = _experience_score(supplier)
        details["federal_experience"] = experience_score
        details["breakdown"]["federal_experience"] = f"Federal Experience: {experience_score:.0%}"
        if experience_score > 0:
            details["requirements_met"].append("Federal Contract Experience Verified")
        earned += experience_score * EXPERIENCE_POINTS
        available += EXPERIENCE_POINTS

        # 6. Authorized reseller (critical when a restricted brand is unauthorized)
        reseller_score, unauthorized = self._reseller_score(requirement, text, supplier)
        details["authorized_reseller"] = reseller_score
        details["breakdown"]["authorized_reseller"] = f"Authorized Reseller: {reseller_score:.0%}"
        if unauthorized:
            details["requirements_missed"].append("Authorized Reseller Status Required")
            details["blocking_omissions"].extend(
                f"Authorized reseller: {brand}" for brand in unauthorized
            )
        elif reseller_score > 0:
            details["requirements_met"].append("Authorized Reseller Status Verified")
        earned += reseller_score * RESELLER_POINTS
        available += RESELLER_POINTS

        final_score = earned / available if available > 0 else 0.0
        details["critical_failures"] = len(details["blocking_omissions"])
        details["overall_compliance"] = overall_status(final_score, details["critical_failures"])

        return MatchScore.partial_match(
            final_score, _data_confidence(supplier), self.name, details
        )

    def _certification_score(
        self, requirement: StructuredRequirement, text: str, supplier: Supplier
    ) -> float:
        held = _canonical_tags(supplier.business_certifications)
        if not held:
            return 0.0

        required = _canonical_tags(requirement.compliance.business_certifications)
        required.update(extract_business_certifications(text))

        if required:
            overlap = held & required
            # Every tracked program is a small business program
            if "Small Business" in required:
                overlap |= held
            if not overlap:
                return 0.0
            best = max(CERTIFICATION_VALUES[tag] for tag in overlap)
            return min(1.0, best * SET_ASIDE_BONUS)

        return max(CERTIFICATION_VALUES[tag] for tag in held)

    def _clearance_score(
        self, requirement: StructuredRequirement, text: str, supplier: Supplier
    ) -> float:
        if supplier.compliance_details is None:
            return 0.0

        tiers = {c.upper() for c in supplier.compliance_details.security_clearance}
        score = max((CLEARANCE_TIERS.get(t, 0.0) for t in tiers), default=0.0)

        mentions_security = (
            bool(requirement.compliance.security_clearances)
            or bool(requirement.compliance.security_requirements)
            or SECURITY_MENTION.search(text) is not None
        )
        if mentions_security:
            score = min(1.0, score * SECURITY_BONUS)
        return score

    def _reseller_score(
        self, requirement: StructuredRequirement, text: str, supplier: Supplier
    ) -> tuple[float, list[str]]:
        """Fraction of named brands authorized, plus restricted brands not authorized."""
        restricted = [b.lower() for b in requirement.compliance.brand_restrictions]
        named = list(dict.fromkeys(restricted + extract_brands(text)))
        if not named:
            return 0.5, []

        unauthorized = [brand for brand in restricted if not supplier.is_authorized_for(brand)]
        if unauthorized:
            return 0.0, unauthorized

        authorized = sum(1 for brand in named if supplier.is_authorized_for(brand))
        return authorized / len(named), []


def requires_taa(requirement: StructuredRequirement, text: str) -> bool:
    """True if the requirement mandates TAA compliance."""
    return requirement.compliance.taa_required or TAA_MENTION.search(text) is not None


def normalize_certification(value: str) -> str | None:
    """Map a certification spelling onto its canonical tag (None if unknown)."""
    stripped = value.strip()
    for tag in CERTIFICATION_VALUES:
        if stripped.lower() == tag.lower():
            return tag
    alias = CERTIFICATION_ALIASES.get(stripped.upper())
    if alias:
        return alias
    detected = extract_business_certifications(stripped)
    return detected[0] if detected else None


def overall_status(score: float, critical_failures: int) -> str:
    """Overall compliance label."""
    if critical_failures > 0:
        return "NON_COMPLIANT"
    if score >= 0.8:
        return "FULLY_COMPLIANT"
    if score >= 0.6:
        return "PARTIALLY_COMPLIANT"
    return "INSUFFICIENT_COMPLIANCE"


def _canonical_tags(values: list[str]) -> set[str]:
    tags = set()
    for value in values:
        tag = normalize_certification(value)
        if tag is not None:
            tags.add(tag)
    return tags


def _taa_compliant(supplier: Supplier) -> bool:
    return supplier.compliance_details is not None and bool(
        supplier.compliance_details.taa_compliant
    )


def _epeat_tier(supplier: Supplier) -> tuple[float, str]:
    if supplier.compliance_details is None:
        return 0.0, "None"
    levels = {level.capitalize() for level in supplier.compliance_details.epeat_levels}
    for level, value in EPEAT_TIERS.items():
        if level in levels:
            return value, level
    return 0.0, "None"


def _experience_score(supplier: Supplier) -> float:
    history = supplier.past_performance
    if history is None:
        return 0.0
    score = sum(
        points for attr, points in EXPERIENCE_POINTS_TABLE.items() if getattr(history, attr)
    )
    return min(1.0, score)


def _data_confidence(supplier: Supplier) -> float:
    """Share of compliance-relevant supplier sections that carry data."""
    sections = [
        (
            supplier.compliance_details is not None,
            supplier.compliance_details is not None
            and supplier.compliance_details.taa_compliant is not None,
        ),
        (bool(supplier.business_certifications), bool(supplier.business_certifications)),
        (
            supplier.past_performance is not None,
            supplier.past_performance is not None
            and supplier.past_performance.federal_contract_history is not None,
        ),
        (bool(supplier.authorized_reseller), bool(supplier.authorized_reseller)),
    ]
    present = sum(1 for is_present, _ in sections if is_present)
    informative = sum(1 for _, has_data in sections if has_data)
    return informative / present if present else 0.5
