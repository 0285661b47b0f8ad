"""Multi-strategy supplier ranking engine.

Runs every applicable strategy for each supplier, combines the scores into a
weighted composite and ranks suppliers by it. Suppliers are evaluated
concurrently on a bounded thread pool; results are sorted afterwards so the
ranking does not depend on completion order.
"""

import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from functools import partial
from typing import Any, Protocol

from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from services.extraction.schema import StructuredRequirement
from services.matching.base import MatchingStrategy, MatchScore, StrategyError, clamp
from services.matching.compliance import ComplianceFilterStrategy
from services.matching.config import (
    COMPLIANCE_STRATEGY,
    FUZZY_STRATEGY,
    GEOGRAPHIC_STRATEGY,
    MatchingConfig,
)
from services.matching.fuzzy import FuzzyMatchingStrategy
from services.matching.geographic import GeographicStrategy
from services.matching.schema import Supplier

logger = logging.getLogger(__name__)


# Prometheus metrics for ranking
ranking_duration_histogram = Histogram(
    "supplier_ranking_duration_seconds",
    "Time spent ranking a supplier set for one requirement",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

strategy_errors_total = Counter(
    "matching_strategy_errors_total",
    "Strategy evaluations that raised and were excluded from the composite",
    ["strategy"],
)

STRENGTH_THRESHOLD = 0.8
WEAKNESS_THRESHOLD = 0.3
RECOMMENDATION_THRESHOLD = 0.5

RECOMMENDATIONS = {
    COMPLIANCE_STRATEGY: "Review compliance certifications and government experience",
    GEOGRAPHIC_STRATEGY: "Consider delivery logistics and regional support capabilities",
    FUZZY_STRATEGY: "Verify technical capabilities and brand authorizations",
}


class StrategyFailure(BaseModel):
    """A strategy that raised while scoring one supplier."""

    strategy: str
    error: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SupplierMatchResult(BaseModel):
    """Aggregated strategy scores for one supplier.

    Attributes:
        supplier: The evaluated supplier
        strategy_scores: Score per strategy that returned
        composite_score: Weighted mean over returned strategies (0-1)
        confidence: Mean confidence of returned strategies (0-1)
        errors: Strategies that failed for this supplier
        strengths: Strategies scoring at or above 0.8
        weaknesses: Strategies scoring at or below 0.3
        recommendations: Follow-ups for strategies scoring below 0.5
    """

    supplier: Supplier
    strategy_scores: dict[str, MatchScore] = Field(default_factory=dict)
    composite_score: float = Field(0.0, ge=0, le=1)
    confidence: float = Field(0.0, ge=0, le=1)
    errors: list[StrategyFailure] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def supplier_id(self) -> str:
        return self.supplier.supplier_id

    @property
    def blocking_omissions(self) -> list[str]:
        """Critical failures reported by the compliance strategy."""
        compliance = self.strategy_scores.get(COMPLIANCE_STRATEGY)
        if compliance is None:
            return []
        return list(compliance.details.get("blocking_omissions", []))

    def summary(self) -> dict[str, Any]:
        """Compact view for listings and events."""
        return {
            "supplier_id": self.supplier.supplier_id,
            "company_name": self.supplier.company_name,
            "composite_score": self.composite_score,
            "confidence": self.confidence,
            "compliance_status": self.supplier.compliance_status,
            "state": self.supplier.home_state,
            "strengths": self.strengths[:3],
            "blocking_omissions": self.blocking_omissions,
            "has_errors": bool(self.errors),
        }

    def detailed_breakdown(self) -> dict[str, Any]:
        """Full explanation of the match."""
        return {
            "supplier": {
                "id": self.supplier.supplier_id,
                "name": self.supplier.company_name,
                "business_certifications": list(self.supplier.business_certifications),
                "compliance_status": self.supplier.compliance_status,
                "state": self.supplier.home_state,
            },
            "scoring": {
                "composite_score": self.composite_score,
                "confidence": self.confidence,
                "strategy_scores": {
                    name: score.model_dump(mode="json")
                    for name, score in self.strategy_scores.items()
                },
            },
            "analysis": {
                "strengths": self.strengths,
                "weaknesses": self.weaknesses,
                "recommendations": self.recommendations,
            },
            "errors": [error.model_dump(mode="json") for error in self.errors],
        }


class WeightAdjuster(Protocol):
    """Produces an adjusted matching configuration (e.g. from feedback)."""

    def adjust(self, config: MatchingConfig) -> MatchingConfig: ...


def default_strategies(config: MatchingConfig) -> list[MatchingStrategy]:
    """Compliance, fuzzy and geographic strategies sharing one configuration."""
    return [
        ComplianceFilterStrategy(config),
        FuzzyMatchingStrategy(config),
        GeographicStrategy(config),
    ]


class SupplierRankingEngine:
    """Ranks suppliers against a structured requirement.

    The engine owns the MatchingConfig; every strategy it runs reads its
    weight from that same configuration.
    """

    def __init__(
        self,
        config: MatchingConfig | None = None,
        strategies: list[MatchingStrategy] | None = None,
        weight_adjuster: WeightAdjuster | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            config: Weights and thresholds (defaults when omitted)
            strategies: Strategies to run (compliance, fuzzy and geographic when omitted)
            weight_adjuster: Optional hook applied once to the configuration
        """
        config = config or MatchingConfig()
        if weight_adjuster is not None:
            config = weight_adjuster.adjust(config)
        self.config = config

        self._strategies: list[MatchingStrategy] = []
        for strategy in strategies if strategies is not None else default_strategies(config):
            self.add_strategy(strategy)

    @property
    def strategies(self) -> list[MatchingStrategy]:
        """Active strategies, in evaluation order."""
        return list(self._strategies)

    def add_strategy(self, strategy: MatchingStrategy) -> None:
        """Add a copy of a strategy bound to the engine's configuration.

        The instance passed in is left untouched, so one strategy object can
        seed several engines with different weights.

        Raises:
            TypeError: If the object is not a MatchingStrategy
        """
        if not isinstance(strategy, MatchingStrategy):
            raise TypeError(f"Expected MatchingStrategy, got {type(strategy).__name__}")
        strategy = copy.copy(strategy)
        strategy.config = self.config
        self._strategies.append(strategy)

    def remove_strategy(self, name: str) -> None:
        """Remove every strategy with the given name."""
        self._strategies = [s for s in self._strategies if s.name != name]

    def match_supplier(
        self, requirement: StructuredRequirement, supplier: Supplier
    ) -> SupplierMatchResult:
        """Evaluate one supplier with every applicable strategy.

        A strategy that raises, while checking applicability or while scoring,
        is recorded on the result and excluded from the composite.
        """
        scores: dict[str, MatchScore] = {}
        errors: list[StrategyFailure] = []

        for strategy in self._strategies:
            try:
                if not strategy.applies_to(requirement):
                    continue
                scores[strategy.name] = strategy.evaluate(requirement, supplier)
            except StrategyError as e:
                logger.error(f"Strategy failed for supplier {supplier.supplier_id}: {e}")
                strategy_errors_total.labels(strategy=e.strategy).inc()
                errors.append(StrategyFailure(strategy=e.strategy, error=e.reason))

        composite, confidence = self._composite(scores)
        strengths, weaknesses, recommendations = analyze_scores(scores)

        return SupplierMatchResult(
            supplier=supplier,
            strategy_scores=scores,
            composite_score=composite,
            confidence=confidence,
            errors=errors,
            strengths=strengths,
            weaknesses=weaknesses,
            recommendations=recommendations,
        )

    def rank_suppliers(
        self, requirement: StructuredRequirement, suppliers: list[Supplier]
    ) -> list[SupplierMatchResult]:
        """Evaluate all suppliers and sort by composite score, highest first.

        Ties keep the input order.
        """
        if not suppliers:
            return []

        start_time = time.time()
        workers = min(self.config.max_workers, len(suppliers))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(partial(self.match_supplier, requirement), suppliers))

        results.sort(key=lambda result: result.composite_score, reverse=True)

        duration = time.time() - start_time
        ranking_duration_histogram.observe(duration)
        logger.info(
            f"Ranked {len(results)} suppliers for {requirement.document_id} "
            f"in {duration:.3f}s (top={results[0].composite_score:.3f})"
        )
        return results

    def top_n(
        self,
        requirement: StructuredRequirement,
        suppliers: list[Supplier],
        n: int | None = None,
    ) -> list[SupplierMatchResult]:
        """Best n matches (pipeline_top_n by default)."""
        limit = n if n is not None else self.config.pipeline_top_n
        return self.rank_suppliers(requirement, suppliers)[:limit]

    def filter_by_threshold(
        self,
        requirement: StructuredRequirement,
        suppliers: list[Supplier],
        min_score: float | None = None,
    ) -> list[SupplierMatchResult]:
        """Ranked matches with a composite at or above min_score."""
        threshold = min_score if min_score is not None else self.config.pipeline_min_score
        return [
            result
            for result in self.rank_suppliers(requirement, suppliers)
            if result.composite_score >= threshold
        ]

    def match_summary(self, results: list[SupplierMatchResult]) -> dict[str, Any]:
        """Aggregate statistics over a set of results."""
        if not results:
            return {
                "total_suppliers": 0,
                "average_score": 0.0,
                "top_score": 0.0,
                "strategy_summary": {},
            }

        composites = [result.composite_score for result in results]
        strategy_summary: dict[str, Any] = {}
        for strategy in self._strategies:
            values = [
                result.strategy_scores[strategy.name].score
                for result in results
                if strategy.name in result.strategy_scores
            ]
            if values:
                strategy_summary[strategy.name] = {
                    "average_score": sum(values) / len(values),
                    "top_score": max(values),
                    "weight": strategy.weight,
                    "applicable_count": len(values),
                }

        return {
            "total_suppliers": len(results),
            "average_score": sum(composites) / len(composites),
            "top_score": max(composites),
            "strategy_summary": strategy_summary,
        }

    def _composite(self, scores: dict[str, MatchScore]) -> tuple[float, float]:
        if not scores:
            return 0.0, 0.0

        weighted = 0.0
        total_weight = 0.0
        for name, match in scores.items():
            weight = self.config.weight_for(name)
            weighted += match.score * weight
            total_weight += weight

        composite = weighted / total_weight if total_weight > 0 else 0.0
        confidence = sum(match.confidence for match in scores.values()) / len(scores)
        return clamp(composite), clamp(confidence)


def analyze_scores(scores: dict[str, MatchScore]) -> tuple[list[str], list[str], list[str]]:
    """Strengths, weaknesses and recommendations for a set of strategy scores."""
    strengths: list[str] = []
    weaknesses: list[str] = []
    recommendations: list[str] = []

    for name, match in scores.items():
        if match.score >= STRENGTH_THRESHOLD:
            strengths.append(f"{name}: {match.score:.1%}")
        elif match.score <= WEAKNESS_THRESHOLD:
            weaknesses.append(f"{name}: {match.score:.1%}")

        if match.score < RECOMMENDATION_THRESHOLD and name in RECOMMENDATIONS:
            recommendations.append(RECOMMENDATIONS[name])

    return strengths, weaknesses, recommendations
