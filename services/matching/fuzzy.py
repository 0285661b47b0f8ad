"""Fuzzy/technical matching strategy.

Combines five sub-scores with fixed internal weights: supplier name overlap
with item text (0.2, only when items exist), brand authorization (0.3),
capability tags inferred from requirement keywords (0.3), part-number
presence (0.1) and domain keyword overlap (0.1).
"""

import re
from typing import Any

from services.extraction.base import PART_NUMBER_PATTERNS, extract_brands
from services.extraction.schema import StructuredRequirement
from services.matching.base import MatchingStrategy, MatchScore, requirement_text
from services.matching.config import FUZZY_STRATEGY
from services.matching.schema import Supplier

NAME_WEIGHT = 0.2
BRAND_WEIGHT = 0.3
CAPABILITY_WEIGHT = 0.3
PART_NUMBER_WEIGHT = 0.1
KEYWORD_WEIGHT = 0.1

NAME_STOP_WORDS = {
    "inc",
    "llc",
    "corp",
    "company",
    "solutions",
    "technologies",
    "systems",
    "group",
    "federal",
    "government",
}

# Capability tags inferred from requirement wording
CAPABILITY_RULES: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (
        re.compile(r"nutanix|hyper-?converged|\bhci\b"),
        ("NUTANIX_RESELLER", "HYPER_CONVERGED_INFRASTRUCTURE"),
    ),
    (re.compile(r"24/7|\bsupport\b|maintenance"), ("24_7_SUPPORT",)),
    (
        re.compile(r"professional services|installation|implementation"),
        ("PROFESSIONAL_SERVICES",),
    ),
]

DOMAIN_KEYWORDS = [
    "federal",
    "government",
    "enterprise",
    "solutions",
    "technology",
    "tech",
    "infrastructure",
    "cloud",
    "security",
    "networking",
    "data",
    "storage",
]


class FuzzyMatchingStrategy(MatchingStrategy):
    """Matches suppliers on name, brands, capabilities, part numbers and keywords."""

    @property
    def name(self) -> str:
        return FUZZY_STRATEGY

    def score(self, requirement: StructuredRequirement, supplier: Supplier) -> MatchScore:
        text = requirement_text(requirement)
        brands = named_brands(requirement, text)
        details: dict[str, Any] = {"breakdown": {}, "brands": brands}

        total = 0.0
        weights_used = 0.0

        if requirement.items:
            name_score = name_similarity(text, supplier)
            details["name_match"] = name_score
            details["breakdown"]["name_match"] = f"Company name similarity: {name_score:.0%}"
            total += name_score * NAME_WEIGHT
            weights_used += NAME_WEIGHT

        brand_score = brand_match(brands, supplier)
        details["brand_match"] = brand_score
        details["breakdown"]["brand_match"] = f"Brand authorization match: {brand_score:.0%}"
        total += brand_score * BRAND_WEIGHT
        weights_used += BRAND_WEIGHT

        required_capabilities = infer_capabilities(text)
        capability_score = capability_match(required_capabilities, supplier)
        details["capability_match"] = capability_score
        details["required_capabilities"] = required_capabilities
        details["breakdown"]["capability_match"] = (
            f"Technical capability match: {capability_score:.0%}"
        )
        total += capability_score * CAPABILITY_WEIGHT
        weights_used += CAPABILITY_WEIGHT

        part_number_score = part_number_match(text, brands, supplier)
        details["part_number_match"] = part_number_score
        details["breakdown"]["part_number_match"] = (
            f"Part number familiarity: {part_number_score:.0%}"
        )
        total += part_number_score * PART_NUMBER_WEIGHT
        weights_used += PART_NUMBER_WEIGHT

        keyword_score = keyword_match(text, supplier)
        details["keyword_match"] = keyword_score
        details["breakdown"]["keyword_match"] = f"Keyword relevance: {keyword_score:.0%}"
        total += keyword_score * KEYWORD_WEIGHT
        weights_used += KEYWORD_WEIGHT

        final_score = total / weights_used if weights_used > 0 else 0.0
        return MatchScore.partial_match(final_score, min(1.0, weights_used), self.name, details)


def named_brands(requirement: StructuredRequirement, text: str) -> list[str]:
    """Brands restricted by the requirement or mentioned in its text."""
    restricted = [brand.lower() for brand in requirement.compliance.brand_restrictions]
    return list(dict.fromkeys(restricted + extract_brands(text)))


def name_similarity(text: str, supplier: Supplier) -> float:
    """Share of distinctive supplier name terms found in the requirement text."""
    terms = [
        term
        for term in re.split(r"\s+", supplier.company_name.lower())
        if len(term) > 3 and term.strip(".,") not in NAME_STOP_WORDS
    ]
    if not terms:
        return 0.0
    return sum(1 for term in terms if term.strip(".,") in text) / len(terms)


def brand_match(brands: list[str], supplier: Supplier) -> float:
    """Near-binary brand authorization score; neutral when no brand is named."""
    if not brands:
        return 0.5
    authorized = sum(1 for brand in brands if supplier.is_authorized_for(brand))
    if authorized == len(brands):
        return 1.0
    if authorized == 0:
        return 0.1
    return authorized / len(brands)


def infer_capabilities(text: str) -> list[str]:
    """Capability tags implied by the requirement wording."""
    required: list[str] = []
    for pattern, tags in CAPABILITY_RULES:
        if pattern.search(text):
            required.extend(tag for tag in tags if tag not in required)
    return required


def capability_match(required: list[str], supplier: Supplier) -> float:
    """Share of inferred capability tags the supplier declares."""
    if not required:
        return 0.7
    declared = {capability.upper() for capability in supplier.capabilities}
    return sum(1 for tag in required if tag in declared) / len(required)


def part_number_match(text: str, brands: list[str], supplier: Supplier) -> float:
    """Weak positive signal for part numbers in the requirement."""
    if not any(pattern.search(text) for pattern in PART_NUMBER_PATTERNS):
        return 0.5
    if any(supplier.is_authorized_for(brand) for brand in brands):
        return 0.8
    return 0.6


def keyword_match(text: str, supplier: Supplier) -> float:
    """Share of requirement domain keywords also present in the supplier profile."""
    supplier_text = f"{supplier.company_name} {' '.join(supplier.capabilities)}".lower()
    supplier_text = supplier_text.replace("_", " ")

    in_requirement = [keyword for keyword in DOMAIN_KEYWORDS if keyword in text]
    if not in_requirement:
        return 0.5
    matched = sum(1 for keyword in in_requirement if keyword in supplier_text)
    return matched / len(in_requirement)
