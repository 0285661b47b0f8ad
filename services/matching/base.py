"""Abstract base class for supplier matching strategies.

A strategy is a stateless scorer of one (requirement, supplier) pair. Weights
live in the injected MatchingConfig rather than on the strategy.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from services.extraction.schema import StructuredRequirement
from services.matching.config import MatchingConfig
from services.matching.schema import Supplier


class StrategyError(Exception):
    """A matching strategy failed for one supplier.

    Attributes:
        strategy: Name of the failing strategy
        reason: Message of the underlying failure
    """

    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(f"{strategy}: {reason}")
        self.strategy = strategy
        self.reason = reason


def clamp(value: float) -> float:
    """Clamp a value into [0, 1]."""
    return min(max(float(value), 0.0), 1.0)


class MatchScore(BaseModel):
    """Normalized result of one strategy for one supplier.

    Attributes:
        score: Match quality (0-1)
        confidence: Confidence in the score (0-1)
        details: Strategy-specific explanation
        strategy: Name of the originating strategy
        timestamp: When the score was computed
    """

    score: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)
    details: dict[str, Any] = Field(default_factory=dict)
    strategy: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def perfect_match(cls, strategy: str, details: dict[str, Any] | None = None) -> "MatchScore":
        return cls(score=1.0, confidence=1.0, details=details or {}, strategy=strategy)

    @classmethod
    def no_match(cls, strategy: str, details: dict[str, Any] | None = None) -> "MatchScore":
        return cls(score=0.0, confidence=1.0, details=details or {}, strategy=strategy)

    @classmethod
    def partial_match(
        cls,
        score: float,
        confidence: float,
        strategy: str,
        details: dict[str, Any] | None = None,
    ) -> "MatchScore":
        """Build a score, clamping score and confidence into [0, 1]."""
        return cls(
            score=clamp(score),
            confidence=clamp(confidence),
            details=details or {},
            strategy=strategy,
        )


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies.

    Implementations:
    - ComplianceFilterStrategy: Government compliance requirements
    - FuzzyMatchingStrategy: Brand, capability and keyword overlap
    - GeographicStrategy: Delivery location and support coverage
    """

    def __init__(self, config: MatchingConfig | None = None) -> None:
        """Initialize strategy.

        Args:
            config: Matching configuration holding the strategy weight
        """
        self.config = config or MatchingConfig()

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier used in results, metrics and the weight table."""
        pass

    @property
    def weight(self) -> float:
        """Weight of this strategy in the composite score."""
        return self.config.weight_for(self.name)

    @abstractmethod
    def score(self, requirement: StructuredRequirement, supplier: Supplier) -> MatchScore:
        """Score one supplier against one requirement.

        Must not raise for suppliers missing optional attributes.
        """
        pass

    def is_applicable(self, requirement: StructuredRequirement) -> bool:
        """Whether this strategy should run for the requirement."""
        return True

    def applies_to(self, requirement: StructuredRequirement) -> bool:
        """Run `is_applicable`, wrapping any failure in StrategyError."""
        try:
            return self.is_applicable(requirement)
        except Exception as e:
            raise StrategyError(self.name, f"applicability check failed: {e}") from e

    def evaluate(self, requirement: StructuredRequirement, supplier: Supplier) -> MatchScore:
        """Run `score`, wrapping any failure in StrategyError."""
        try:
            return self.score(requirement, supplier)
        except Exception as e:
            raise StrategyError(self.name, str(e)) from e


def requirement_text(requirement: StructuredRequirement) -> str:
    """Lowercased searchable text of a requirement."""
    return requirement.search_text().lower()
