"""API endpoints over project sessions."""

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from designkit.core.config import get_settings
from designkit.core.errors import EngineError, PhaseLocked, RemoteActionFailed, RemoteFetchFailed, ValidationError
from designkit.core.logging import get_logger
from designkit.core.schemas_sessions import (
    AcknowledgeRequest,
    ConstraintValueRequest,
    EthicalConsiderationsResponse,
    InfrastructureAnswerRequest,
    MutationResponse,
    PhaseCompletionRequest,
    PhaseProgressRequest,
    PhaseStatusRequest,
    PhaseStepsRequest,
    ProjectPromptRequest,
    ReflectionAnswerRequest,
    ScoresResponse,
    SelectDatasetRequest,
    SelectSolutionRequest,
    SelectUseCaseRequest,
    SessionResponse,
    SuitabilityAnswerRequest,
    UseCaseSearchResponse,
)
from designkit.core.session import MutationResult, ProjectSession, SessionRegistry
from designkit.db.project_cache import build_store
from designkit.services.design_api import DesignApiClient

logger = get_logger(__name__)

router = APIRouter()


@lru_cache
def get_registry() -> SessionRegistry:
    """Process-wide session registry."""
    settings = get_settings()
    store = build_store(settings.CACHE_DIR, max_bytes=settings.CACHE_MAX_BYTES)
    return SessionRegistry(store, DesignApiClient(), settings)


async def get_session(project_id: str, registry: SessionRegistry = Depends(get_registry)) -> ProjectSession:
    return await registry.open(project_id)


def _status_code_for(error: EngineError) -> int:
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, PhaseLocked):
        return 409
    if isinstance(error, (RemoteActionFailed, RemoteFetchFailed)):
        return 502
    return 500


def _respond(session: ProjectSession, result: MutationResult) -> MutationResponse:
    """Map a mutation result to a response, raising for errors."""
    if result.error is not None:
        raise HTTPException(status_code=_status_code_for(result.error), detail=str(result.error))
    return MutationResponse(
        applied=result.applied,
        reason=result.reason,
        all_completed=result.all_completed,
        active_phase_id=session.active_phase_id,
        assessment=result.assessment,
    )


# ============================================================================
# Session view
# ============================================================================


@router.get("/{project_id}", response_model=SessionResponse)
async def get_session_state(project_id: str, session: ProjectSession = Depends(get_session)) -> SessionResponse:
    """
    Get the session state, reconciled with the remote record on first open.

    Args:
        project_id: Project identifier ("draft" for unsaved projects)

    Returns:
        SessionResponse with state and phase overview
    """
    return SessionResponse(
        project_id=session.project_id,
        state=session.get_state(),
        phases=session.phase_overview(),
        all_completed=session.all_phases_completed(),
    )


@router.get("/{project_id}/scores", response_model=ScoresResponse)
async def get_scores(session: ProjectSession = Depends(get_session)) -> ScoresResponse:
    return ScoresResponse(
        feasibility=session.feasibility_score(),
        suitability=session.suitability_score(),
        infrastructure=session.infrastructure_score(),
        risks=session.feasibility_risks(),
    )


@router.post("/{project_id}/flush")
async def flush_session(session: ProjectSession = Depends(get_session)) -> dict:
    """Write pending changes to the local cache now."""
    error = session.flush()
    return {"persisted": error is None, "detail": str(error) if error else None}


# ============================================================================
# Phases
# ============================================================================


@router.post("/{project_id}/phases/{phase_id}/activate", response_model=MutationResponse)
async def activate_phase(phase_id: str, session: ProjectSession = Depends(get_session)) -> MutationResponse:
    return _respond(session, session.set_active_phase(phase_id))


@router.post("/{project_id}/phases/{phase_id}/complete", response_model=MutationResponse)
async def complete_phase(
    phase_id: str,
    request: Optional[PhaseCompletionRequest] = None,
    session: ProjectSession = Depends(get_session),
) -> MutationResponse:
    """
    Complete a phase after the remote service validates it.

    Draft projects complete locally. A negative assessment leaves the phase
    open and returns the assessment with reason "assessment_blocked".
    """
    answers = request.answers if request is not None else {}
    result = await session.complete_phase_validated(phase_id, answers)
    return _respond(session, result)


@router.patch("/{project_id}/phases/{phase_id}/progress", response_model=MutationResponse)
async def update_progress(
    phase_id: str, request: PhaseProgressRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.update_phase_progress(phase_id, request.completed, request.total))


@router.patch("/{project_id}/phases/{phase_id}/status", response_model=MutationResponse)
async def update_status(
    phase_id: str, request: PhaseStatusRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.update_phase_status(phase_id, request.status, request.progress))


@router.patch("/{project_id}/phases/{phase_id}/steps", response_model=MutationResponse)
async def update_steps(
    phase_id: str, request: PhaseStepsRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.update_phase_steps(phase_id, request.total_steps))


# ============================================================================
# Answers
# ============================================================================


@router.put("/{project_id}/reflection/{question_key}", response_model=MutationResponse)
async def set_reflection_answer(
    question_key: str, request: ReflectionAnswerRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.set_reflection_answer(question_key, request.text))


@router.put("/{project_id}/constraints/{constraint_id}", response_model=MutationResponse)
async def set_constraint(
    constraint_id: str, request: ConstraintValueRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.set_constraint(constraint_id, request.value))


@router.put("/{project_id}/suitability/{check_id}", response_model=MutationResponse)
async def set_suitability(
    check_id: str, request: SuitabilityAnswerRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.set_suitability_answer(check_id, request.answer, request.description))


@router.put("/{project_id}/infrastructure/{category}", response_model=MutationResponse)
async def set_infrastructure(
    category: str, request: InfrastructureAnswerRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.set_technical_infrastructure(category, request.option))


@router.put("/{project_id}/prompt", response_model=MutationResponse)
async def set_prompt(request: ProjectPromptRequest, session: ProjectSession = Depends(get_session)) -> MutationResponse:
    return _respond(session, session.set_project_brief(request.prompt, request.files))


@router.put("/{project_id}/selections/use-case", response_model=MutationResponse)
async def select_use_case(
    request: SelectUseCaseRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.select_use_case(request.use_case))


@router.put("/{project_id}/selections/dataset", response_model=MutationResponse)
async def select_dataset(
    request: SelectDatasetRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.select_dataset(request.dataset))


@router.put("/{project_id}/selections/solution", response_model=MutationResponse)
async def select_solution(
    request: SelectSolutionRequest, session: ProjectSession = Depends(get_session)
) -> MutationResponse:
    return _respond(session, session.select_solution(request.solution))


# ============================================================================
# Remote-backed content
# ============================================================================


@router.get("/{project_id}/use-cases", response_model=UseCaseSearchResponse)
async def search_use_cases(
    query: str = Query("", description="Free-text filter for use cases"),
    session: ProjectSession = Depends(get_session),
) -> UseCaseSearchResponse:
    use_cases = await session.search_use_cases(query)
    if use_cases is None:
        return UseCaseSearchResponse(use_cases=[], stale=True)
    return UseCaseSearchResponse(use_cases=use_cases)


def _considerations(session: ProjectSession) -> EthicalConsiderationsResponse:
    state = session.get_state()
    return EthicalConsiderationsResponse(
        considerations=state.ethical_considerations, acknowledged=state.ethical_acknowledgement
    )


@router.get("/{project_id}/ethical-considerations", response_model=EthicalConsiderationsResponse)
async def get_ethical_considerations(session: ProjectSession = Depends(get_session)) -> EthicalConsiderationsResponse:
    result = await session.load_ethical_considerations()
    if result.error is not None:
        # The cached list keeps serving when the fetch fails
        logger.warning(f"Serving cached ethical considerations for {session.project_id}: {result.error}")
    return _considerations(session)


@router.post("/{project_id}/ethical-considerations/refresh", response_model=EthicalConsiderationsResponse)
async def refresh_ethical_considerations(
    session: ProjectSession = Depends(get_session),
) -> EthicalConsiderationsResponse:
    _respond(session, await session.refresh_ethical_considerations())
    return _considerations(session)


@router.post("/{project_id}/ethical-considerations/acknowledge", response_model=EthicalConsiderationsResponse)
async def acknowledge_ethical_considerations(
    request: AcknowledgeRequest, session: ProjectSession = Depends(get_session)
) -> EthicalConsiderationsResponse:
    _respond(session, await session.acknowledge_ethical_considerations(request.acknowledged_ids))
    return _considerations(session)
