"""Pydantic models for the scoring engine."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class ScoreLevel(str, Enum):
    """Qualitative band for a 0-100 score."""

    EXCELLENT = "excellent"  # 80-100
    GOOD = "good"  # 60-79
    MODERATE = "moderate"  # 40-59
    POOR = "poor"  # 0-39


# Lower bound of each band, highest first. Bands are [bound, next_bound).
SCORE_BANDS: list[tuple[int, ScoreLevel]] = [
    (80, ScoreLevel.EXCELLENT),
    (60, ScoreLevel.GOOD),
    (40, ScoreLevel.MODERATE),
    (0, ScoreLevel.POOR),
]


class RiskLevel(str, Enum):
    """Feasibility risk derived from the feasibility score."""

    LOW = "low"  # 75-100
    MEDIUM = "medium"  # 40-74
    HIGH = "high"  # 0-39


RISK_BANDS: list[tuple[int, RiskLevel]] = [
    (75, RiskLevel.LOW),
    (40, RiskLevel.MEDIUM),
    (0, RiskLevel.HIGH),
]


class FactorScore(BaseModel):
    """Contribution of one input to a weighted score."""

    weight: float = Field(..., ge=0, description="Weight of this input")
    normalized: float = Field(..., ge=0, le=1, description="Answer mapped to [0, 1]")


class ScoreResult(BaseModel):
    """Weighted score over a set of answers."""

    score: int = Field(..., ge=0, le=100, description="Weighted score out of 100")
    level: ScoreLevel = Field(..., description="Qualitative band for the score")
    factors: dict[str, FactorScore] = Field(
        default_factory=dict, description="Inputs that contributed, by id"
    )
    excluded: list[str] = Field(
        default_factory=list, description="Inputs left out because they had no usable answer"
    )


class FeasibilityScore(ScoreResult):
    """Feasibility score plus the risk level the scoping gate shows."""

    risk: RiskLevel = Field(..., description="Risk level derived from the score")


class RiskMitigation(BaseModel):
    """A feasibility risk and how to mitigate it."""

    risk: str
    impact: Literal["low", "medium", "high"]
    mitigation: str
    examples: list[str] = Field(default_factory=list)
