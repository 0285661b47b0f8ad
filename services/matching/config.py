"""Matching configuration: the single source of strategy weights and thresholds.

Owned by the ranking engine and injected into every strategy, so the weight a
strategy reports and the weight used in the composite cannot drift apart.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from services.shared.config import Settings

COMPLIANCE_STRATEGY = "compliance_filter"
FUZZY_STRATEGY = "fuzzy_matching"
GEOGRAPHIC_STRATEGY = "geographic"

DEFAULT_STRATEGY_WEIGHTS = {
    COMPLIANCE_STRATEGY: 0.4,
    FUZZY_STRATEGY: 0.3,
    GEOGRAPHIC_STRATEGY: 0.3,
}


class MatchingConfig(BaseModel):
    """Strategy weights and ranking thresholds.

    Attributes:
        strategy_weights: Weight per strategy name (sum must not exceed 1.0)
        default_weight: Weight of strategies missing from the table
        pipeline_min_score: Minimum composite persisted by the document pipeline
        pipeline_top_n: Results persisted per document
        suggestion_min_score: Minimum composite returned by suggestions
        suggestion_limit: Maximum number of suggestions
        max_workers: Threads used to score suppliers concurrently
    """

    model_config = ConfigDict(frozen=True)

    strategy_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_STRATEGY_WEIGHTS)
    )
    default_weight: float = Field(0.2, ge=0, le=1)
    pipeline_min_score: float = Field(0.5, ge=0, le=1)
    pipeline_top_n: int = Field(5, ge=1)
    suggestion_min_score: float = Field(0.1, ge=0, le=1)
    suggestion_limit: int = Field(10, ge=1)
    max_workers: int = Field(8, ge=1)

    @model_validator(mode="after")
    def weights_in_range(self) -> "MatchingConfig":
        for name, weight in self.strategy_weights.items():
            if weight < 0 or weight > 1:
                raise ValueError(f"Weight for '{name}' must be between 0 and 1, got {weight}")
        total = sum(self.strategy_weights.values())
        if total > 1.0 + 1e-9:
            raise ValueError(f"Strategy weights must sum to at most 1.0, got {total:.3f}")
        return self

    def weight_for(self, strategy_name: str) -> float:
        """Weight of a strategy, falling back to the default weight."""
        return self.strategy_weights.get(strategy_name, self.default_weight)

    @classmethod
    def from_settings(cls, settings: Settings) -> "MatchingConfig":
        """Build the configuration from application settings."""
        return cls(
            pipeline_min_score=settings.pipeline_min_score,
            pipeline_top_n=settings.pipeline_top_n,
            suggestion_min_score=settings.suggestion_min_score,
            suggestion_limit=settings.suggestion_limit,
            max_workers=settings.matching_max_workers,
        )
