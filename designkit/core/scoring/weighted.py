"""Weighted score computation shared by every score type.

score = round(100 * sum(w_i * normalize(a_i)) / sum(w_i))

Inputs without an answer, or whose answer cannot be normalized, are left out
of both sums, so an absent input never counts as zero.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from designkit.core.scoring.types import (
    SCORE_BANDS,
    FactorScore,
    ScoreLevel,
    ScoreResult,
)


@dataclass(frozen=True)
class ScoreInput:
    """One weighted input of a score.

    ``normalize`` maps an answer to [0, 1], or returns None when the answer
    is not scorable.
    """

    id: str
    weight: float
    normalize: Callable[[Any], Optional[float]]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def level_for_score(score: int) -> ScoreLevel:
    """Map a score onto its band."""
    for lower_bound, level in SCORE_BANDS:
        if score >= lower_bound:
            return level
    return ScoreLevel.POOR


def compute_weighted_score(inputs: list[ScoreInput], answers: Mapping[str, Any]) -> ScoreResult:
    """
    Compute a weighted score from answers.

    Args:
        inputs: Weighted inputs of the score type
        answers: Answers keyed by input id

    Returns:
        ScoreResult. With no eligible input the score is 0 and the level poor.
    """
    factors: dict[str, FactorScore] = {}
    excluded: list[str] = []
    numerator = 0.0
    denominator = 0.0

    for item in inputs:
        if item.weight <= 0:
            continue
        answer = answers.get(item.id)
        normalized = item.normalize(answer) if answer is not None else None
        if normalized is None or math.isnan(normalized):
            excluded.append(item.id)
            continue

        normalized = min(1.0, max(0.0, float(normalized)))
        factors[item.id] = FactorScore(weight=item.weight, normalized=normalized)
        numerator += item.weight * normalized
        denominator += item.weight

    score = round_half_up(100 * numerator / denominator) if denominator > 0 else 0
    score = min(100, max(0, score))

    return ScoreResult(
        score=score,
        level=level_for_score(score),
        factors=factors,
        excluded=excluded,
    )


def mapping_normalizer(mapping: Mapping[Any, float]) -> Callable[[Any], Optional[float]]:
    """Normalizer that looks answers up in a fixed table."""

    def normalize(answer: Any) -> Optional[float]:
        key = answer.value if hasattr(answer, "value") else answer
        return mapping.get(key)

    return normalize


def ordinal_normalizer(
    options: list[str],
    best_first: bool = False,
    unknown: Optional[float] = None,
) -> Callable[[Any], Optional[float]]:
    """Normalizer that scores an option by its position in ``options``.

    Options are ordered worst to best unless ``best_first`` is set.
    """
    span = len(options) - 1

    def normalize(answer: Any) -> Optional[float]:
        if answer == "unknown":
            return unknown
        if answer not in options:
            return None
        if span == 0:
            return 1.0
        index = options.index(answer)
        return (span - index) / span if best_first else index / span

    return normalize
