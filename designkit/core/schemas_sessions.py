"""Pydantic schemas for session API requests and responses."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from designkit.core.schemas_project import (
    Dataset,
    EthicalAssessment,
    EthicalConsideration,
    PhaseId,
    PhaseStatus,
    ProjectState,
    SuitabilityAnswer,
    UseCase,
)
from designkit.core.scoring import FeasibilityScore, RiskMitigation, ScoreResult


class PhaseProgressRequest(BaseModel):
    """Request body for recomputing a phase's progress from step counts."""

    completed: int = Field(..., ge=0, description="Steps completed")
    total: int = Field(..., gt=0, description="Steps in the phase")


class PhaseStatusRequest(BaseModel):
    """Request body for setting a phase's status explicitly."""

    status: PhaseStatus
    progress: int = Field(..., ge=0, le=100, description="Percent complete")


class PhaseStepsRequest(BaseModel):
    """Request body for resizing a phase."""

    total_steps: int = Field(..., gt=0, description="New number of steps")


class ConstraintValueRequest(BaseModel):
    value: str | bool = Field(..., description="Option for select constraints, boolean for toggles")


class SuitabilityAnswerRequest(BaseModel):
    answer: SuitabilityAnswer
    description: Optional[str] = Field(None, description="Optional note on the answer")


class ReflectionAnswerRequest(BaseModel):
    text: str = Field(..., description="Answer text")


class InfrastructureAnswerRequest(BaseModel):
    option: str = Field(..., description="Option id within the category")


class PhaseCompletionRequest(BaseModel):
    """Request body for a server-validated phase completion."""

    answers: dict[str, str] = Field(default_factory=dict, description="Answers submitted for validation")


class AcknowledgeRequest(BaseModel):
    acknowledged_ids: list[str] = Field(..., min_length=1, description="Consideration ids to acknowledge")


class SelectUseCaseRequest(BaseModel):
    use_case: Optional[UseCase] = None


class SelectDatasetRequest(BaseModel):
    dataset: Optional[Dataset] = None


class SelectSolutionRequest(BaseModel):
    solution: Optional[dict[str, Any]] = None


class ProjectPromptRequest(BaseModel):
    prompt: str = ""
    files: Optional[list[str]] = Field(None, description="Replace the uploaded file names when given")


class MutationResponse(BaseModel):
    """Outcome of a session mutation."""

    applied: bool = Field(..., description="Whether the state changed")
    reason: Optional[str] = Field(None, description="Why nothing changed, when applicable")
    all_completed: bool = Field(False, description="Whether every phase is completed")
    active_phase_id: PhaseId
    assessment: Optional[EthicalAssessment] = None


class ScoresResponse(BaseModel):
    """Current scores derived from the session state."""

    feasibility: FeasibilityScore
    suitability: ScoreResult
    infrastructure: ScoreResult
    risks: list[RiskMitigation] = Field(default_factory=list)


class SessionResponse(BaseModel):
    """Full session view for the UI."""

    project_id: str
    state: ProjectState
    phases: list[dict[str, Any]] = Field(..., description="Navigation overview of all phases")
    all_completed: bool


class EthicalConsiderationsResponse(BaseModel):
    considerations: list[EthicalConsideration]
    acknowledged: bool


class UseCaseSearchResponse(BaseModel):
    use_cases: list[UseCase]
    stale: bool = Field(False, description="True when a newer search superseded this one")
