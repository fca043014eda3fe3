"""Pydantic schemas for the project state aggregate."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Enums
# ============================================================================


class PhaseId(str, Enum):
    """Wizard phases, in their fixed order."""
    REFLECTION = "reflection"
    SCOPING = "scoping"
    DEVELOPMENT = "development"
    EVALUATION = "evaluation"


class PhaseStatus(str, Enum):
    """Lifecycle status of a single phase."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ConstraintType(str, Enum):
    """How a feasibility constraint is answered."""
    SELECT = "select"
    TOGGLE = "toggle"


class ConstraintImportance(str, Enum):
    """How much a constraint weighs in the feasibility score."""
    CRITICAL = "critical"
    IMPORTANT = "important"
    MODERATE = "moderate"


class SuitabilityAnswer(str, Enum):
    """Answer to a data suitability question."""
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


class ScopingDecision(str, Enum):
    """Outcome of the final feasibility gate in scoping."""
    PROCEED = "proceed"
    REVISE = "revise"


# Sentinel identifier for sessions that have not been saved remotely
DRAFT_PROJECT_ID = "draft"

# Constraint answer accepted for both select and toggle constraints
UNKNOWN_CONSTRAINT_VALUE = "unknown"


# ============================================================================
# Phase
# ============================================================================


class Phase(BaseModel):
    """One ordered stage of the wizard."""

    id: PhaseId
    name: str
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    progress: int = Field(default=0, ge=0, le=100, description="Percent complete")
    total_steps: int = Field(..., gt=0, description="Number of steps in the phase")
    completed_steps: int = Field(default=0, ge=0, description="Steps completed so far")

    @model_validator(mode="after")
    def _check_invariants(self) -> "Phase":
        if self.completed_steps > self.total_steps:
            raise ValueError(
                f"completed_steps ({self.completed_steps}) exceeds total_steps ({self.total_steps})"
            )
        if self.status == PhaseStatus.COMPLETED and self.progress != 100:
            raise ValueError("a completed phase must have progress 100")
        if self.status == PhaseStatus.NOT_STARTED and self.completed_steps != 0:
            raise ValueError("a not-started phase cannot have completed steps")
        return self

    def evolve(self, **changes: Any) -> "Phase":
        """Return a validated copy with ``changes`` applied."""
        return Phase.model_validate({**self.model_dump(), **changes})


# ============================================================================
# Scoping inputs
# ============================================================================


class Constraint(BaseModel):
    """One feasibility input (budget, team size, connectivity, ...)."""

    id: str
    label: str
    value: str | bool
    type: ConstraintType
    options: Optional[list[str]] = None
    importance: ConstraintImportance = ConstraintImportance.IMPORTANT
    category: Optional[str] = Field(None, description="Feasibility category the constraint belongs to")

    @model_validator(mode="after")
    def _check_value(self) -> "Constraint":
        if self.type == ConstraintType.SELECT and not self.options:
            raise ValueError(f"select constraint {self.id} needs options")
        # Either kind may be answered "unknown" when the user cannot say yet
        if self.value == UNKNOWN_CONSTRAINT_VALUE:
            return self
        if self.type == ConstraintType.SELECT:
            if not isinstance(self.value, str) or self.value not in self.options:
                raise ValueError(
                    f"{self.value!r} is not one of {self.options} for constraint {self.id}"
                )
        elif not isinstance(self.value, bool):
            raise ValueError(f"toggle constraint {self.id} needs a boolean value")
        return self


class SuitabilityCheck(BaseModel):
    """One data/ethics suitability judgment."""

    id: str
    question: str
    answer: SuitabilityAnswer = SuitabilityAnswer.UNKNOWN
    description: str = ""


class UseCase(BaseModel):
    """A candidate AI use case offered during scoping."""

    id: str
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    selected: bool = False


class Dataset(BaseModel):
    """A dataset chosen for the selected use case."""

    id: str
    title: str
    source: str = ""
    format: str = ""
    size: str = ""
    license: str = ""
    description: str = ""
    columns: list[str] = Field(default_factory=list)
    sample_rows: list[list[str]] = Field(default_factory=list)


# ============================================================================
# Ethics
# ============================================================================


class EthicalConsideration(BaseModel):
    """An AI-generated ethical consideration the user must review."""

    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    priority: Literal["low", "medium", "high"] = "medium"
    acknowledged: bool = False


class QuestionFlag(BaseModel):
    """An issue the server raised against one reflection answer."""

    question_key: str
    issue: str
    severity: Literal["low", "medium", "high"] = "medium"


class EthicalAssessment(BaseModel):
    """Server-side assessment returned when reflection is submitted."""

    ethical_score: float = Field(default=0.0, description="Score reported by the server")
    proceed_recommendation: bool = False
    summary: str = ""
    actionable_recommendations: list[str] = Field(default_factory=list)
    question_flags: list[QuestionFlag] = Field(default_factory=list)
    threshold_met: bool = False
    can_proceed: bool = False


# ============================================================================
# Aggregate
# ============================================================================


class ProjectState(BaseModel):
    """Aggregate root for one project's wizard session."""

    phases: list[Phase]
    active_phase_id: PhaseId = PhaseId.REFLECTION
    constraints: list[Constraint] = Field(default_factory=list)
    suitability_checks: list[SuitabilityCheck] = Field(default_factory=list)

    # Per-phase answers and selections
    project_prompt: str = ""
    project_files: list[str] = Field(default_factory=list)
    reflection_answers: dict[str, str] = Field(default_factory=dict)
    selected_use_case: Optional[UseCase] = None
    selected_dataset: Optional[Dataset] = None
    scoping_final_decision: Optional[ScopingDecision] = None
    technical_infrastructure: dict[str, str] = Field(
        default_factory=dict, description="Infrastructure category -> chosen option"
    )
    selected_solution: Optional[dict[str, Any]] = None

    ethical_considerations: list[EthicalConsideration] = Field(default_factory=list)
    ethical_acknowledgement: bool = False

    @model_validator(mode="after")
    def _check_phase_order(self) -> "ProjectState":
        ids = [phase.id for phase in self.phases]
        if ids != list(PhaseId):
            raise ValueError(
                f"phases must be exactly {[p.value for p in PhaseId]} in order, got {[i.value for i in ids]}"
            )
        # No phase starts before every earlier phase is completed
        for index, phase in enumerate(self.phases):
            if phase.status == PhaseStatus.NOT_STARTED:
                continue
            open_before = [p.id.value for p in self.phases[:index] if p.status != PhaseStatus.COMPLETED]
            if open_before:
                raise ValueError(f"{phase.id.value} is {phase.status.value} but {open_before[0]} is not completed")
        active_index = ids.index(self.active_phase_id)
        if any(p.status != PhaseStatus.COMPLETED for p in self.phases[:active_index]):
            raise ValueError(f"active phase {self.active_phase_id.value} is locked")
        constraint_ids = [c.id for c in self.constraints]
        if len(set(constraint_ids)) != len(constraint_ids):
            raise ValueError("constraint ids must be unique")
        return self

    def get_phase(self, phase_id: PhaseId | str) -> Phase:
        """Look up a phase by id."""
        pid = PhaseId(phase_id)
        return next(phase for phase in self.phases if phase.id == pid)

    def evolve(self, **changes: Any) -> "ProjectState":
        """Return a validated copy with ``changes`` applied.

        Raises pydantic.ValidationError when the result breaks an invariant,
        leaving ``self`` untouched.
        """
        data = self.model_dump()
        for key, value in changes.items():
            data[key] = value.model_dump() if isinstance(value, BaseModel) else value
        return ProjectState.model_validate(data)


class SyncMetadata(BaseModel):
    """Provenance of the cached copy of a project."""

    last_sync: Optional[datetime] = Field(None, description="updated_at of the last adopted remote snapshot")
    version: int = Field(default=0, ge=0, description="Remote version of the last adopted snapshot")


class ProjectSnapshot(BaseModel):
    """Authoritative remote record for a project."""

    project_id: str
    updated_at: Optional[datetime] = None
    version: int = 0
    fields: dict[str, Any] = Field(
        default_factory=dict, description="ProjectState fields present in the remote payload"
    )

    @classmethod
    def from_payload(cls, project_id: str, payload: dict[str, Any]) -> "ProjectSnapshot":
        """Split a remote payload into provenance and state fields."""
        body = dict(payload)
        updated_at = body.pop("updated_at", None)
        version = body.pop("version", 0) or 0
        body.pop("project_id", None)
        body.pop("id", None)
        return cls(project_id=project_id, updated_at=updated_at, version=version, fields=body)
