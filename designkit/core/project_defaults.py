"""Default project state for a newly seen project identifier."""

from designkit.core.schemas_project import (
    Constraint,
    ConstraintImportance,
    ConstraintType,
    Phase,
    PhaseId,
    PhaseStatus,
    ProjectState,
    SuitabilityCheck,
)

# ============================================================================
# Phases
# ============================================================================

PHASE_NAMES: dict[PhaseId, str] = {
    PhaseId.REFLECTION: "Reflection",
    PhaseId.SCOPING: "Scoping",
    PhaseId.DEVELOPMENT: "Development",
    PhaseId.EVALUATION: "Evaluation",
}

PHASE_STEP_COUNTS: dict[PhaseId, int] = {
    PhaseId.REFLECTION: 7,
    PhaseId.SCOPING: 5,
    PhaseId.DEVELOPMENT: 6,
    PhaseId.EVALUATION: 4,
}


def default_phases() -> list[Phase]:
    """Fresh phase list: reflection in progress, the rest not started."""
    return [
        Phase(
            id=phase_id,
            name=PHASE_NAMES[phase_id],
            status=PhaseStatus.IN_PROGRESS if phase_id == PhaseId.REFLECTION else PhaseStatus.NOT_STARTED,
            progress=0,
            total_steps=PHASE_STEP_COUNTS[phase_id],
            completed_steps=0,
        )
        for phase_id in PhaseId
    ]


# ============================================================================
# Feasibility constraints
# ============================================================================

# (id, label, category, importance, options or None for toggles, default)
_CONSTRAINT_CATALOG: list[tuple[str, str, str, ConstraintImportance, list[str] | None, str | bool]] = [
    ("budget", "Project Budget", "resources", ConstraintImportance.CRITICAL,
     ["limited", "moderate", "substantial", "unlimited"], "limited"),
    ("time", "Project Timeline", "resources", ConstraintImportance.CRITICAL,
     ["short-term", "medium-term", "long-term", "ongoing"], "medium-term"),
    ("team-size", "Team Size", "resources", ConstraintImportance.IMPORTANT,
     ["individual", "small", "medium", "large"], "small"),
    ("compute", "Computing Resources", "technical", ConstraintImportance.CRITICAL,
     ["local", "cloud", "hybrid", "enterprise"], "cloud"),
    ("internet", "Reliable Internet Connection", "technical", ConstraintImportance.IMPORTANT, None, True),
    ("infrastructure", "Local Technology Setup", "technical", ConstraintImportance.IMPORTANT, None, True),
    ("ai-experience", "AI/ML Experience", "expertise", ConstraintImportance.CRITICAL,
     ["none", "beginner", "intermediate", "advanced"], "beginner"),
    ("technical-skills", "Technical Skills", "expertise", ConstraintImportance.IMPORTANT,
     ["limited", "moderate", "good", "excellent"], "moderate"),
    ("learning-capacity", "Learning & Training Capacity", "expertise", ConstraintImportance.IMPORTANT, None, True),
    ("stakeholder-support", "Stakeholder Buy-in", "organizational", ConstraintImportance.CRITICAL,
     ["low", "moderate", "high", "champion"], "moderate"),
    ("change-management", "Change Management Readiness", "organizational",
     ConstraintImportance.IMPORTANT, None, False),
    ("data-governance", "Data Governance", "organizational", ConstraintImportance.IMPORTANT,
     ["none", "developing", "established", "mature"], "developing"),
    ("regulatory-compliance", "Regulatory Requirements", "external", ConstraintImportance.CRITICAL,
     ["minimal", "moderate", "strict", "complex"], "moderate"),
    ("partnerships", "External Partnerships", "external", ConstraintImportance.MODERATE, None, False),
    ("sustainability", "Long-term Sustainability Plan", "external", ConstraintImportance.IMPORTANT, None, False),
]

# Constraints whose first option is the most favourable one
DESCENDING_CONSTRAINTS = frozenset({"regulatory-compliance"})


def default_constraints() -> list[Constraint]:
    return [
        Constraint(
            id=cid,
            label=label,
            value=default,
            type=ConstraintType.SELECT if options else ConstraintType.TOGGLE,
            options=options,
            importance=importance,
            category=category,
        )
        for cid, label, category, importance, options, default in _CONSTRAINT_CATALOG
    ]


# ============================================================================
# Suitability checks
# ============================================================================


def default_suitability_checks() -> list[SuitabilityCheck]:
    return [
        SuitabilityCheck(id="clean", question="Is the data clean and usable?"),
        SuitabilityCheck(id="representative", question="Is it representative and fair?"),
        SuitabilityCheck(id="privacy", question="Are there privacy/ethical concerns?"),
        SuitabilityCheck(id="quality", question="Is the data quality sufficient?"),
    ]


def default_project_state() -> ProjectState:
    """State used the first time a project identifier is seen."""
    return ProjectState(
        phases=default_phases(),
        active_phase_id=PhaseId.REFLECTION,
        constraints=default_constraints(),
        suitability_checks=default_suitability_checks(),
    )
