"""Data suitability scoring over the suitability checklist."""

from designkit.core.schemas_project import SuitabilityAnswer, SuitabilityCheck
from designkit.core.scoring.types import ScoreResult
from designkit.core.scoring.weighted import ScoreInput, compute_weighted_score, mapping_normalizer

SUITABILITY_VALUES: dict[str, float] = {
    SuitabilityAnswer.YES.value: 1.0,
    SuitabilityAnswer.UNKNOWN.value: 0.4,
    SuitabilityAnswer.NO.value: 0.0,
}

_normalize_answer = mapping_normalizer(SUITABILITY_VALUES)


def score_suitability(checks: list[SuitabilityCheck]) -> ScoreResult:
    """Equal-weight score over the checklist answers."""
    inputs = [ScoreInput(id=check.id, weight=1.0, normalize=_normalize_answer) for check in checks]
    answers = {check.id: check.answer for check in checks}
    return compute_weighted_score(inputs, answers)
