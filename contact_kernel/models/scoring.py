"""Scoring weights and per-factor breakdowns."""

from typing import Dict

from pydantic import BaseModel, Field


class ScoringWeights(BaseModel):
    """Coefficients for the five importance factors."""

    frequency: float = Field(ge=0, default=0.25)
    recency: float = Field(ge=0, default=0.30)
    response_rate: float = Field(ge=0, default=0.20)
    meeting_frequency: float = Field(ge=0, default=0.15)
    manual_priority: float = Field(ge=0, default=0.10)

    @property
    def total(self) -> float:
        return sum(self.model_dump().values())

    def normalized(self) -> Dict[str, float]:
        """Weights rescaled to sum to 1. All-zero weights stay zero."""
        values = self.model_dump()
        total = sum(values.values())
        if total <= 0:
            return {name: 0.0 for name in values}
        return {name: weight / total for name, weight in values.items()}


class FactorScores(BaseModel):
    """Normalized [0, 1] value of each factor for one contact."""

    frequency: float = 0.0
    recency: float = 0.0
    response_rate: float = 0.0
    meeting_frequency: float = 0.0
    manual_priority: float = 0.0
