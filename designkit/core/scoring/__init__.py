"""Scoring engine.

Pure functions that turn typed answers into 0-100 scores:
- Feasibility: scoping constraints, weighted by importance
- Suitability: data suitability checklist, equal weights
- Infrastructure: technical infrastructure assessment

Usage:
    from designkit.core.scoring import score_suitability

    result = score_suitability(state.suitability_checks)
    print(f"{result.score}% ({result.level.value})")
"""

from designkit.core.scoring.feasibility import feasibility_risks, score_feasibility
from designkit.core.scoring.infrastructure import INFRASTRUCTURE_CATEGORIES, score_infrastructure
from designkit.core.scoring.suitability import score_suitability
from designkit.core.scoring.types import (
    FeasibilityScore,
    RiskLevel,
    RiskMitigation,
    ScoreLevel,
    ScoreResult,
)
from designkit.core.scoring.weighted import ScoreInput, compute_weighted_score, level_for_score

__all__ = [
    "compute_weighted_score",
    "level_for_score",
    "score_feasibility",
    "score_infrastructure",
    "score_suitability",
    "feasibility_risks",
    "FeasibilityScore",
    "INFRASTRUCTURE_CATEGORIES",
    "RiskLevel",
    "RiskMitigation",
    "ScoreInput",
    "ScoreLevel",
    "ScoreResult",
]
