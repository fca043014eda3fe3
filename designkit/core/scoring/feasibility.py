"""Feasibility scoring over the scoping constraints.

Critical constraints weigh 3, important 2, moderate 1. Select constraints are
scored by the position of their value in the option list, toggles are all or
nothing, and an explicit "unknown" counts as halfway.
"""

from typing import Any, Optional

from designkit.core.project_defaults import DESCENDING_CONSTRAINTS
from designkit.core.schemas_project import (
    UNKNOWN_CONSTRAINT_VALUE,
    Constraint,
    ConstraintImportance,
    ConstraintType,
)
from designkit.core.scoring.types import (
    RISK_BANDS,
    FeasibilityScore,
    RiskLevel,
    RiskMitigation,
)
from designkit.core.scoring.weighted import ScoreInput, compute_weighted_score, ordinal_normalizer

IMPORTANCE_WEIGHTS: dict[ConstraintImportance, float] = {
    ConstraintImportance.CRITICAL: 3.0,
    ConstraintImportance.IMPORTANT: 2.0,
    ConstraintImportance.MODERATE: 1.0,
}

UNKNOWN_FEASIBILITY = 0.5


def _toggle_normalizer(answer: Any) -> Optional[float]:
    if answer == UNKNOWN_CONSTRAINT_VALUE:
        return UNKNOWN_FEASIBILITY
    if isinstance(answer, bool):
        return 1.0 if answer else 0.0
    return None


def constraint_input(constraint: Constraint, weight: float | None = None) -> ScoreInput:
    """Build the score input for one constraint."""
    if weight is None:
        weight = IMPORTANCE_WEIGHTS[constraint.importance]

    if constraint.type == ConstraintType.SELECT:
        normalize = ordinal_normalizer(
            constraint.options or [],
            best_first=constraint.id in DESCENDING_CONSTRAINTS,
            unknown=UNKNOWN_FEASIBILITY,
        )
    else:
        normalize = _toggle_normalizer

    return ScoreInput(id=constraint.id, weight=weight, normalize=normalize)


def risk_for_score(score: int) -> RiskLevel:
    for lower_bound, risk in RISK_BANDS:
        if score >= lower_bound:
            return risk
    return RiskLevel.HIGH


def score_feasibility(
    constraints: list[Constraint],
    weights: dict[str, float] | None = None,
) -> FeasibilityScore:
    """
    Score project feasibility from the constraint answers.

    Args:
        constraints: Current constraints
        weights: Optional per-constraint weight overrides

    Returns:
        FeasibilityScore with band, risk level and per-factor breakdown
    """
    weights = weights or {}
    inputs = [constraint_input(c, weights.get(c.id)) for c in constraints]
    answers = {c.id: c.value for c in constraints}

    result = compute_weighted_score(inputs, answers)
    return FeasibilityScore(**result.model_dump(), risk=risk_for_score(result.score))


def feasibility_risks(constraints: list[Constraint]) -> list[RiskMitigation]:
    """Risks implied by the constraint answers, highest impact first."""
    values = {c.id: c.value for c in constraints}
    mitigations: list[RiskMitigation] = []

    if values.get("ai-experience") in ("none", "beginner"):
        mitigations.append(RiskMitigation(
            risk="Limited Technical Expertise",
            impact="high",
            mitigation="Consider partnerships, training programs, or hiring consultants to bridge skill gaps",
            examples=[
                "Partner with a local university's AI program",
                "Hire part-time AI consultants for guidance",
                "Invest in team training before project starts",
                "Use no-code/low-code AI platforms initially",
            ],
        ))

    if values.get("budget") == "limited":
        mitigations.append(RiskMitigation(
            risk="Insufficient Budget",
            impact="high",
            mitigation="Start with a smaller pilot project or seek additional funding sources",
            examples=[
                "Apply for technology grants for nonprofits",
                "Use free cloud credits from major providers",
                "Focus on pre-trained models to reduce costs",
                "Partner with organizations for resource sharing",
            ],
        ))

    if values.get("stakeholder-support") == "low":
        mitigations.append(RiskMitigation(
            risk="Stakeholder Resistance",
            impact="medium",
            mitigation="Develop a comprehensive change management and communication strategy",
            examples=[
                "Create clear communication about AI benefits",
                "Involve stakeholders in design process",
                "Start with pilot programs to demonstrate value",
                "Provide training and support during transition",
            ],
        ))

    if values.get("internet") is False or values.get("compute") == "local":
        mitigations.append(RiskMitigation(
            risk="Technical Infrastructure Gaps",
            impact="medium",
            mitigation="Leverage cloud services and establish reliable connectivity solutions",
            examples=[
                "Start with cloud-based development environment",
                "Implement offline-capable solutions for poor connectivity",
                "Use managed AI services to reduce infrastructure needs",
                "Plan for hybrid cloud-local deployment",
            ],
        ))

    return mitigations
