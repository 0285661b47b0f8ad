"""Geographic matching strategy.

Scores a supplier on how well its home state, served regions, delivery
footprint, headquarters and support tier fit the delivery destination.
"""

from typing import Any

from services.extraction.schema import DeliveryLocation, StructuredRequirement
from services.matching.base import MatchingStrategy, MatchScore
from services.matching.config import GEOGRAPHIC_STRATEGY
from services.matching.regions import (
    CITY_STATES,
    STATE_REGIONS,
    are_neighbors,
    find_location,
    same_macro_region,
    state_code,
)
from services.matching.schema import Supplier

STATE_WEIGHT = 0.3
REGION_WEIGHT = 0.25
DELIVERY_WEIGHT = 0.2
PROXIMITY_WEIGHT = 0.15
SUPPORT_WEIGHT = 0.1

SUPPORT_TIERS = {
    "24/7 federal": 1.0,
    "24/7": 0.9,
    "business hours": 0.7,
    "regional": 0.5,
    "best effort": 0.3,
}


class GeographicStrategy(MatchingStrategy):
    """Matches suppliers on delivery location and regional support."""

    @property
    def name(self) -> str:
        return GEOGRAPHIC_STRATEGY

    def score(self, requirement: StructuredRequirement, supplier: Supplier) -> MatchScore:
        location = delivery_location(requirement)
        if location is None or location.state is None:
            return MatchScore.partial_match(
                0.5,
                0.3,
                self.name,
                {
                    "message": "No delivery location specified",
                    "breakdown": {"no_location": "Using neutral geographic scoring"},
                },
            )

        details: dict[str, Any] = {
            "breakdown": {},
            "delivery_location": location.model_dump(exclude_none=True),
        }
        components = [
            ("state_match", "State match", STATE_WEIGHT, state_match(location, supplier)),
            ("region_match", "Region match", REGION_WEIGHT, region_match(location, supplier)),
            (
                "delivery_match",
                "Delivery capability",
                DELIVERY_WEIGHT,
                delivery_capability(location, supplier),
            ),
            ("proximity", "Proximity", PROXIMITY_WEIGHT, proximity(location, supplier)),
            ("support_coverage", "Support coverage", SUPPORT_WEIGHT, support_coverage(supplier)),
        ]

        total = 0.0
        max_score = 0.0
        for key, label, weight, value in components:
            details[key] = value
            details["breakdown"][key] = f"{label}: {value:.1%}"
            total += value * weight
            max_score += weight

        details["matched_locations"] = matched_locations(location, supplier)
        details["supported_regions"] = (
            list(supplier.geographic_capabilities.regions)
            if supplier.geographic_capabilities
            else []
        )

        final_score = total / max_score if max_score > 0 else 0.0
        return MatchScore.partial_match(final_score, _data_confidence(supplier), self.name, details)


def delivery_location(requirement: StructuredRequirement) -> DeliveryLocation | None:
    """Delivery destination: the structured field first, then the free text."""
    structured = requirement.delivery_location
    if structured is not None:
        code = state_code(structured.state) if structured.state else None
        if code is None and structured.city:
            code = CITY_STATES.get(structured.city.strip().lower())
        if code is None and structured.raw:
            found = find_location(structured.raw)
            if found is not None:
                return found
        if code is not None:
            return DeliveryLocation(city=structured.city, state=code, raw=structured.raw)

    return find_location(requirement.search_text())


def state_match(location: DeliveryLocation, supplier: Supplier) -> float:
    home = supplier.home_state
    if not home or not location.state:
        return 0.0
    home = state_code(home) or home.upper()
    if home == location.state:
        return 1.0
    if are_neighbors(location.state, home):
        return 0.7
    if same_macro_region(location.state, home):
        return 0.6
    return 0.2


def region_match(location: DeliveryLocation, supplier: Supplier) -> float:
    geo = supplier.geographic_capabilities
    if geo is None or not geo.regions:
        return 0.0
    declared = {region.lower() for region in geo.regions}
    delivery_regions = STATE_REGIONS.get(location.state or "", [])
    return 1.0 if any(region.lower() in declared for region in delivery_regions) else 0.0


def delivery_capability(location: DeliveryLocation, supplier: Supplier) -> float:
    geo = supplier.geographic_capabilities
    if geo is None or not geo.delivery_locations:
        return 0.0

    city = location.city.lower() if location.city else None
    state_match_found = False
    for entry in geo.delivery_locations:
        if city and city in entry.lower():
            return 1.0
        if _covers_state(entry, location.state or ""):
            state_match_found = True
    return 0.8 if state_match_found else 0.2


def proximity(location: DeliveryLocation, supplier: Supplier) -> float:
    """Headquarters distance class: same, adjacent, regional or distant."""
    headquarters = supplier.headquarters_state
    if not headquarters or not location.state:
        return 0.5
    headquarters = state_code(headquarters) or headquarters.upper()
    if headquarters == location.state:
        return 1.0
    if are_neighbors(location.state, headquarters):
        return 0.8
    if same_macro_region(location.state, headquarters):
        return 0.6
    return 0.3


def support_coverage(supplier: Supplier) -> float:
    geo = supplier.geographic_capabilities
    if geo is None or not geo.support_coverage:
        return 0.0
    return SUPPORT_TIERS.get(geo.support_coverage.strip().lower(), 0.5)


def matched_locations(location: DeliveryLocation, supplier: Supplier) -> list[str]:
    geo = supplier.geographic_capabilities
    if geo is None:
        return []
    matches = []
    if geo.state and state_code(geo.state) == location.state:
        matches.append(f"State: {geo.state}")
    city = location.city.lower() if location.city else None
    for entry in geo.delivery_locations:
        if _covers_state(entry, location.state or "") or (city and city in entry.lower()):
            matches.append(f"Delivery: {entry}")
    return matches


def _covers_state(entry: str, code: str) -> bool:
    if not code:
        return False
    if state_code(entry) == code:
        return True
    found = find_location(entry)
    return found is not None and found.state == code


def _data_confidence(supplier: Supplier) -> float:
    present = 0
    available = 0
    geo = supplier.geographic_capabilities
    if geo is not None:
        available += 3
        present += sum(1 for value in (geo.state, geo.regions, geo.delivery_locations) if value)
    if supplier.business_info is not None and supplier.business_info.headquarters is not None:
        available += 1
        if supplier.business_info.headquarters.state:
            present += 1
    return present / available if available else 0.5
