"""
Phase State Machine for the project wizard

Handles phase transitions, access gating and progress bookkeeping.
All functions are pure over a phase list: they return a new list inside a
result object and never raise for expected domain conditions.

Linear phase flow:
  REFLECTION → SCOPING → DEVELOPMENT → EVALUATION
"""

from dataclasses import dataclass
from typing import Optional

import pydantic

from designkit.core.errors import EngineError, PhaseLocked, ValidationError
from designkit.core.logging import get_logger
from designkit.core.schemas_project import Phase, PhaseId, PhaseStatus
from designkit.core.scoring.weighted import round_half_up

logger = get_logger(__name__)


# Phase order for linear progression
PHASE_ORDER: list[PhaseId] = [
    PhaseId.REFLECTION,
    PhaseId.SCOPING,
    PhaseId.DEVELOPMENT,
    PhaseId.EVALUATION,
]


# ============================================================================
# Results
# ============================================================================


@dataclass
class PhaseUpdate:
    """Outcome of an operation on the phase list."""
    phases: list[Phase]
    applied: bool
    error: Optional[EngineError] = None
    reason: Optional[str] = None


@dataclass
class PhaseTransition(PhaseUpdate):
    """Outcome of an operation that may also move the active phase."""
    active_phase_id: PhaseId = PhaseId.REFLECTION
    all_completed: bool = False


# ============================================================================
# Ordering helpers
# ============================================================================


def _parse_phase_id(phase_id: PhaseId | str) -> Optional[PhaseId]:
    try:
        return PhaseId(phase_id)
    except ValueError:
        return None


def get_phase_index(phase: PhaseId) -> int:
    """Get the index of a phase in the linear progression."""
    try:
        return PHASE_ORDER.index(phase)
    except ValueError:
        return -1


def get_next_phase(current_phase: PhaseId) -> Optional[PhaseId]:
    """Get the next phase in the linear progression."""
    current_index = get_phase_index(current_phase)
    if 0 <= current_index < len(PHASE_ORDER) - 1:
        return PHASE_ORDER[current_index + 1]
    return None


def get_previous_phase(current_phase: PhaseId) -> Optional[PhaseId]:
    """Get the previous phase in the linear progression."""
    current_index = get_phase_index(current_phase)
    if current_index > 0:
        return PHASE_ORDER[current_index - 1]
    return None


def _find(phases: list[Phase], phase_id: PhaseId) -> Optional[Phase]:
    return next((p for p in phases if p.id == phase_id), None)


def _replace(phases: list[Phase], updated: Phase) -> list[Phase]:
    return [updated if p.id == updated.id else p for p in phases]


# ============================================================================
# Gating
# ============================================================================


def find_blocking_phase(phases: list[Phase], phase_id: PhaseId | str) -> Optional[PhaseId]:
    """First earlier phase that is not completed, or None when access is open."""
    target = _parse_phase_id(phase_id)
    if target is None:
        return None

    for earlier in PHASE_ORDER[: get_phase_index(target)]:
        phase = _find(phases, earlier)
        if phase is None or phase.status != PhaseStatus.COMPLETED:
            return earlier
    return None


def can_access(phases: list[Phase], phase_id: PhaseId | str) -> bool:
    """
    Whether a phase may be opened.

    The first phase is always accessible; any other phase only once every
    phase before it is completed. Derived from ``phases`` on every call.
    """
    if _parse_phase_id(phase_id) is None:
        return False
    return find_blocking_phase(phases, phase_id) is None


def all_phases_completed(phases: list[Phase]) -> bool:
    return bool(phases) and all(p.status == PhaseStatus.COMPLETED for p in phases)


def set_active_phase(
    phases: list[Phase],
    active_phase_id: PhaseId,
    phase_id: PhaseId | str,
) -> PhaseTransition:
    """Move the active phase, refusing locked phases."""
    target = _parse_phase_id(phase_id)
    if target is None:
        return PhaseTransition(
            phases=phases,
            applied=False,
            error=ValidationError(f"Unknown phase: {phase_id}"),
            active_phase_id=active_phase_id,
        )

    blocking = find_blocking_phase(phases, target)
    if blocking is not None:
        logger.info(f"Access to {target.value} refused: {blocking.value} not completed")
        return PhaseTransition(
            phases=phases,
            applied=False,
            error=PhaseLocked(target.value, blocking.value),
            active_phase_id=active_phase_id,
            all_completed=all_phases_completed(phases),
        )

    return PhaseTransition(
        phases=phases,
        applied=target != active_phase_id,
        active_phase_id=target,
        all_completed=all_phases_completed(phases),
    )


# ============================================================================
# Transitions
# ============================================================================


def complete_phase(
    phases: list[Phase],
    active_phase_id: PhaseId,
    phase_id: PhaseId | str,
) -> PhaseTransition:
    """
    Mark a phase completed and open the next one.

    The completed phase goes to completed/100, the next phase (if any) to
    in-progress/0 and becomes active. Completing the last phase reports
    ``all_completed``. Completing a locked or already completed phase is a
    no-op.
    """
    target = _parse_phase_id(phase_id)
    phase = _find(phases, target) if target else None
    if phase is None:
        return PhaseTransition(
            phases=phases,
            applied=False,
            error=ValidationError(f"Unknown phase: {phase_id}"),
            active_phase_id=active_phase_id,
        )

    if phase.status == PhaseStatus.COMPLETED:
        # Progress updates can complete a phase without opening its successor
        next_id = get_next_phase(target)
        next_phase = _find(phases, next_id) if next_id else None
        if next_phase is not None and next_phase.status == PhaseStatus.NOT_STARTED:
            updated = _replace(phases, next_phase.evolve(status=PhaseStatus.IN_PROGRESS, progress=0))
            return PhaseTransition(
                phases=updated,
                applied=True,
                active_phase_id=next_phase.id,
                all_completed=False,
            )
        return PhaseTransition(
            phases=phases,
            applied=False,
            reason="already_completed",
            active_phase_id=active_phase_id,
            all_completed=all_phases_completed(phases),
        )

    if not can_access(phases, target):
        logger.warning(f"Ignoring completion of locked phase {target.value}")
        return PhaseTransition(
            phases=phases,
            applied=False,
            reason="locked",
            active_phase_id=active_phase_id,
            all_completed=all_phases_completed(phases),
        )

    updated = _replace(
        phases,
        phase.evolve(status=PhaseStatus.COMPLETED, progress=100, completed_steps=phase.total_steps),
    )
    next_active = active_phase_id

    next_id = get_next_phase(target)
    if next_id is not None:
        next_phase = _find(updated, next_id)
        if next_phase is not None and next_phase.status != PhaseStatus.COMPLETED:
            updated = _replace(
                updated,
                next_phase.evolve(status=PhaseStatus.IN_PROGRESS, progress=0, completed_steps=0),
            )
        next_active = next_id

    done = all_phases_completed(updated)
    logger.info(
        f"Phase {target.value} completed; active={next_active.value} all_completed={done}"
    )
    return PhaseTransition(
        phases=updated,
        applied=True,
        active_phase_id=next_active,
        all_completed=done,
    )


def _status_for_progress(progress: int, completed_steps: int) -> PhaseStatus:
    if progress >= 100:
        return PhaseStatus.COMPLETED
    if progress == 0 and completed_steps == 0:
        return PhaseStatus.NOT_STARTED
    return PhaseStatus.IN_PROGRESS


def _reject_stale(phases: list[Phase], phase: Phase, requested: PhaseStatus) -> Optional[PhaseUpdate]:
    if phase.status == PhaseStatus.COMPLETED and requested != PhaseStatus.COMPLETED:
        logger.warning(
            f"Rejected stale update for completed phase {phase.id.value}: requested {requested.value}"
        )
        return PhaseUpdate(phases=phases, applied=False, reason="completed_is_final")
    return None


def update_phase_progress(
    phases: list[Phase],
    phase_id: PhaseId | str,
    completed: int,
    total: int,
) -> PhaseUpdate:
    """
    Recompute a phase's progress from its step counts.

    progress = round(100 * completed / total); status follows progress
    (0 → not-started, 100 → completed, otherwise in-progress). A completed
    phase is never moved back.
    """
    target = _parse_phase_id(phase_id)
    phase = _find(phases, target) if target else None
    if phase is None:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(f"Unknown phase: {phase_id}"))

    if total <= 0 or completed < 0 or completed > total:
        return PhaseUpdate(
            phases=phases,
            applied=False,
            error=ValidationError(f"Invalid step counts {completed}/{total} for {target.value}"),
        )

    blocking = find_blocking_phase(phases, target)
    if blocking is not None:
        return PhaseUpdate(phases=phases, applied=False, error=PhaseLocked(target.value, blocking.value))

    progress = round_half_up(100 * completed / total)
    status = _status_for_progress(progress, completed)

    stale = _reject_stale(phases, phase, status)
    if stale is not None:
        return stale
    if phase.status == PhaseStatus.COMPLETED:
        return PhaseUpdate(phases=phases, applied=False, reason="already_completed")

    return _apply(phases, phase, status=status, progress=progress, completed_steps=completed, total_steps=total)


def update_phase_status(
    phases: list[Phase],
    phase_id: PhaseId | str,
    status: PhaseStatus | str,
    progress: int,
) -> PhaseUpdate:
    """Explicitly set a phase's status and progress."""
    target = _parse_phase_id(phase_id)
    phase = _find(phases, target) if target else None
    if phase is None:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(f"Unknown phase: {phase_id}"))

    try:
        requested = PhaseStatus(status)
    except ValueError:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(f"Unknown status: {status}"))

    if not 0 <= progress <= 100:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(f"Progress out of range: {progress}"))

    blocking = find_blocking_phase(phases, target)
    if blocking is not None and requested != PhaseStatus.NOT_STARTED:
        return PhaseUpdate(phases=phases, applied=False, error=PhaseLocked(target.value, blocking.value))

    stale = _reject_stale(phases, phase, requested)
    if stale is not None:
        return stale

    if requested == PhaseStatus.COMPLETED:
        completed_steps = phase.total_steps
    elif requested == PhaseStatus.NOT_STARTED:
        completed_steps = 0
    else:
        completed_steps = min(phase.total_steps, round_half_up(progress / 100 * phase.total_steps))

    return _apply(phases, phase, status=requested, progress=progress, completed_steps=completed_steps)


def replace_phases(phases: list[Phase], proposed: list[Phase | dict]) -> PhaseUpdate:
    """
    Swap in a whole phase list, keeping completed phases completed.

    Ordering and gating across the list are checked when the result is
    committed to the ProjectState.
    """
    try:
        parsed = [Phase.model_validate(p.model_dump() if isinstance(p, Phase) else p) for p in proposed]
    except pydantic.ValidationError as e:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(str(e)))

    by_id = {p.id: p for p in parsed}
    for phase in phases:
        incoming = by_id.get(phase.id)
        if incoming is None:
            continue
        stale = _reject_stale(phases, phase, incoming.status)
        if stale is not None:
            return stale

    if parsed == phases:
        return PhaseUpdate(phases=phases, applied=False, reason="unchanged")
    return PhaseUpdate(phases=parsed, applied=True)


def update_phase_steps(phases: list[Phase], phase_id: PhaseId | str, total_steps: int) -> PhaseUpdate:
    """Resize a phase, e.g. when the server supplies a different number of questions."""
    target = _parse_phase_id(phase_id)
    phase = _find(phases, target) if target else None
    if phase is None:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(f"Unknown phase: {phase_id}"))
    if total_steps <= 0:
        return PhaseUpdate(
            phases=phases, applied=False, error=ValidationError(f"total_steps must be positive, got {total_steps}")
        )
    if total_steps == phase.total_steps:
        return PhaseUpdate(phases=phases, applied=False, reason="unchanged")

    if phase.status == PhaseStatus.COMPLETED:
        return _apply(phases, phase, total_steps=total_steps, completed_steps=total_steps)

    completed_steps = min(phase.completed_steps, total_steps)
    progress = round_half_up(100 * completed_steps / total_steps)
    if phase.status == PhaseStatus.IN_PROGRESS:
        # Resizing alone never completes a phase
        progress = min(progress, 99)
    return _apply(phases, phase, total_steps=total_steps, completed_steps=completed_steps, progress=progress)


def _apply(phases: list[Phase], phase: Phase, **changes) -> PhaseUpdate:
    try:
        updated = phase.evolve(**changes)
    except pydantic.ValidationError as e:
        return PhaseUpdate(phases=phases, applied=False, error=ValidationError(str(e)))
    if updated == phase:
        return PhaseUpdate(phases=phases, applied=False, reason="unchanged")
    return PhaseUpdate(phases=_replace(phases, updated), applied=True)


# ============================================================================
# Overview
# ============================================================================


def get_all_phases_status(phases: list[Phase], active_phase_id: PhaseId) -> list[dict]:
    """Get status of all phases for the navigation display."""
    overview = []
    for i, phase_id in enumerate(PHASE_ORDER):
        phase = _find(phases, phase_id)
        if phase is None:
            continue
        overview.append({
            "phase": phase_id.value,
            "display_name": phase.name,
            "status": phase.status.value,
            "progress": phase.progress,
            "accessible": can_access(phases, phase_id),
            "active": phase_id == active_phase_id,
            "index": i,
        })
    return overview
