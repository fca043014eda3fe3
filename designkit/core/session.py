"""Session orchestrator: the façade the UI layer talks to.

One ProjectSession owns the ProjectState of one project identifier. A mutator
swaps in a new state only when validation passes, then schedules a debounced
write to the local cache. Expected failures come back as MutationResult
values and as notices; nothing raised by the remote service or the cache
escapes into the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import pydantic

from designkit.core import phase_state_machine as psm
from designkit.core.config import Settings, get_settings
from designkit.core.errors import (
    EngineError,
    PhaseLocked,
    RemoteActionFailed,
    RemoteFetchFailed,
    ValidationError,
)
from designkit.core.logging import get_logger, log_with_context
from designkit.core.notices import NoticeBus, notice_for_error
from designkit.core.persist_scheduler import DebouncedWriter
from designkit.core.request_sequence import RequestSequencer
from designkit.core.schemas_project import (
    DRAFT_PROJECT_ID,
    Constraint,
    Dataset,
    EthicalAssessment,
    EthicalConsideration,
    Phase,
    PhaseId,
    PhaseStatus,
    ProjectState,
    ScopingDecision,
    SuitabilityAnswer,
    SyncMetadata,
    UseCase,
)
from designkit.core.scoring import (
    FeasibilityScore,
    RiskMitigation,
    ScoreResult,
    feasibility_risks,
    score_feasibility,
    score_infrastructure,
    score_suitability,
)
from designkit.core.scoring.infrastructure import is_valid_answer
from designkit.core.sync_reconciler import ReconcileOutcome, SyncReconciler, SyncStatus
from designkit.db.project_cache import ProjectStore
from designkit.services.design_api import RemoteProjectService

logger = get_logger(__name__)

# Scoping progress values that pin the final feasibility decision
_SCOPING_DECISION_PROGRESS = {100: ScopingDecision.PROCEED, 80: ScopingDecision.REVISE}


@dataclass
class MutationResult:
    """Outcome of a session mutator."""
    applied: bool
    error: Optional[EngineError] = None
    reason: Optional[str] = None
    all_completed: bool = False
    assessment: Optional[EthicalAssessment] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProjectSession:
    """Single writer for one project's state."""

    def __init__(
        self,
        project_id: str,
        store: ProjectStore,
        remote: Optional[RemoteProjectService] = None,
        settings: Optional[Settings] = None,
        notices: Optional[NoticeBus] = None,
        debounce_seconds: Optional[float] = None,
    ):
        self.project_id = project_id or DRAFT_PROJECT_ID
        self.store = store
        self.remote = remote
        self.settings = settings or get_settings()
        self.notices = notices or NoticeBus()
        self.reconciler = SyncReconciler(store, remote)

        # Cached copy is available immediately, before any network round trip
        self._state, self._meta = self.reconciler.load_local(self.project_id)

        delay = self.settings.PERSIST_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self._writer = DebouncedWriter(self._persist, delay, on_error=self._report)
        self._sequencer = RequestSequencer()
        self._touched: set[str] = set()
        self._sync_started = False

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _persist(self) -> Optional[EngineError]:
        return self.store.save_state(self.project_id, self._state)

    def _report(self, error: EngineError) -> None:
        notice = notice_for_error(error)
        if notice is None:
            log_with_context(logger, logging.INFO, f"{type(error).__name__}: {error}", project_id=self.project_id)
            return
        log_with_context(logger, logging.INFO, notice.message, project_id=self.project_id, notice=notice.code)
        self.notices.emit(notice)

    def _reject(self, error: EngineError) -> MutationResult:
        self._report(error)
        return MutationResult(applied=False, error=error)

    def _commit(self, **changes: Any) -> MutationResult:
        """Validate and swap in a new state. The old state survives any failure."""
        try:
            new_state = self._state.evolve(**changes)
        except pydantic.ValidationError as e:
            return self._reject(ValidationError(str(e)))

        self._state = new_state
        self._touched.update(changes)
        self._writer.schedule()
        return MutationResult(applied=True, all_completed=psm.all_phases_completed(new_state.phases))

    def flush(self) -> Optional[EngineError]:
        """Write pending changes to the cache now."""
        return self._writer.flush()

    def close(self) -> None:
        self.flush()

    @property
    def has_pending_write(self) -> bool:
        return self._writer.pending

    @property
    def sync_metadata(self) -> SyncMetadata:
        return self._meta

    # ------------------------------------------------------------------
    # Load / reconcile
    # ------------------------------------------------------------------

    async def load(self) -> ReconcileOutcome:
        """
        Reconcile the cached state with the remote snapshot.

        Runs once per session, at load. Fields edited while the fetch is
        outstanding keep their local values.
        """
        if self._sync_started:
            logger.info(f"[{self.project_id}] reconcile already ran for this session")
            return ReconcileOutcome(state=self._state, meta=self._meta, status=SyncStatus.SKIPPED)

        self._sync_started = True
        self._touched.clear()
        outcome = await self.reconciler.sync(
            self.project_id,
            current_state=lambda: self._state,
            touched_fields=lambda: set(self._touched),
        )

        if outcome.status == SyncStatus.ADOPTED:
            self._state = outcome.state
            self._meta = outcome.meta
            if self._touched:
                # Local edits made during the fetch still need writing
                self._writer.schedule()

        for error in outcome.errors:
            self._report(error)
        return outcome

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def get_state(self) -> ProjectState:
        return self._state.model_copy(deep=True)

    @property
    def active_phase_id(self) -> PhaseId:
        return self._state.active_phase_id

    def can_access(self, phase_id: PhaseId | str) -> bool:
        return psm.can_access(self._state.phases, phase_id)

    def all_phases_completed(self) -> bool:
        return psm.all_phases_completed(self._state.phases)

    def phase_overview(self) -> list[dict]:
        return psm.get_all_phases_status(self._state.phases, self._state.active_phase_id)

    def feasibility_score(self) -> FeasibilityScore:
        return score_feasibility(self._state.constraints)

    def feasibility_risks(self) -> list[RiskMitigation]:
        return feasibility_risks(self._state.constraints)

    def suitability_score(self) -> ScoreResult:
        return score_suitability(self._state.suitability_checks)

    def infrastructure_score(self) -> ScoreResult:
        return score_infrastructure(self._state.technical_infrastructure)

    # ------------------------------------------------------------------
    # Phase mutators
    # ------------------------------------------------------------------

    def set_phases(self, phases: list[Phase | dict]) -> MutationResult:
        update = psm.replace_phases(self._state.phases, phases)
        if update.error is not None:
            return self._reject(update.error)
        if not update.applied:
            return MutationResult(applied=False, reason=update.reason)
        return self._commit(phases=update.phases)

    def set_active_phase(self, phase_id: PhaseId | str) -> MutationResult:
        transition = psm.set_active_phase(self._state.phases, self._state.active_phase_id, phase_id)
        if transition.error is not None:
            return self._reject(transition.error)
        if not transition.applied:
            return MutationResult(applied=False, reason="unchanged", all_completed=transition.all_completed)
        return self._commit(active_phase_id=transition.active_phase_id)

    def complete_phase(self, phase_id: PhaseId | str) -> MutationResult:
        transition = psm.complete_phase(self._state.phases, self._state.active_phase_id, phase_id)
        if transition.error is not None:
            return self._reject(transition.error)
        if not transition.applied:
            return MutationResult(
                applied=False, reason=transition.reason, all_completed=transition.all_completed
            )

        changes: dict[str, Any] = {
            "phases": transition.phases,
            "active_phase_id": transition.active_phase_id,
        }
        if PhaseId(phase_id) == PhaseId.SCOPING:
            changes["scoping_final_decision"] = None

        result = self._commit(**changes)
        result.all_completed = transition.all_completed
        return result

    def update_phase_progress(self, phase_id: PhaseId | str, completed: int, total: int) -> MutationResult:
        if self._scoping_decision_pinned(phase_id):
            return MutationResult(applied=False, reason="scoping_decision_pinned")

        update = psm.update_phase_progress(self._state.phases, phase_id, completed, total)
        return self._apply_phase_update(update)

    def update_phase_status(
        self, phase_id: PhaseId | str, status: PhaseStatus | str, progress: int
    ) -> MutationResult:
        update = psm.update_phase_status(self._state.phases, phase_id, status, progress)
        if update.error is not None or not update.applied:
            return self._apply_phase_update(update)

        changes: dict[str, Any] = {"phases": update.phases}
        if phase_id == PhaseId.SCOPING and PhaseStatus(status) == PhaseStatus.IN_PROGRESS:
            decision = _SCOPING_DECISION_PROGRESS.get(progress)
            if decision is not None:
                changes["scoping_final_decision"] = decision
        return self._commit(**changes)

    def update_phase_steps(self, phase_id: PhaseId | str, total_steps: int) -> MutationResult:
        return self._apply_phase_update(psm.update_phase_steps(self._state.phases, phase_id, total_steps))

    def _apply_phase_update(self, update: psm.PhaseUpdate) -> MutationResult:
        if update.error is not None:
            return self._reject(update.error)
        if not update.applied:
            return MutationResult(applied=False, reason=update.reason)
        return self._commit(phases=update.phases)

    def _scoping_decision_pinned(self, phase_id: PhaseId | str) -> bool:
        if phase_id != PhaseId.SCOPING:
            return False
        decision = self._state.scoping_final_decision
        if decision is None:
            return False
        progress = self._state.get_phase(PhaseId.SCOPING).progress
        return _SCOPING_DECISION_PROGRESS.get(progress) == decision

    # ------------------------------------------------------------------
    # Scoping mutators
    # ------------------------------------------------------------------

    def set_constraint(self, constraint_id: str, value: str | bool) -> MutationResult:
        constraints = self._state.constraints
        target = next((c for c in constraints if c.id == constraint_id), None)
        if target is None:
            return self._reject(ValidationError(f"Unknown constraint: {constraint_id}"))

        try:
            updated = Constraint.model_validate({**target.model_dump(), "value": value})
        except pydantic.ValidationError as e:
            return self._reject(ValidationError(f"Invalid value for {constraint_id}: {e.errors()[0]['msg']}"))

        return self._commit(constraints=[updated if c.id == constraint_id else c for c in constraints])

    def set_suitability_answer(
        self, check_id: str, answer: SuitabilityAnswer | str, description: Optional[str] = None
    ) -> MutationResult:
        checks = self._state.suitability_checks
        target = next((c for c in checks if c.id == check_id), None)
        if target is None:
            return self._reject(ValidationError(f"Unknown suitability check: {check_id}"))
        try:
            parsed = SuitabilityAnswer(answer)
        except ValueError:
            return self._reject(ValidationError(f"Invalid answer for {check_id}: {answer!r}"))

        changes: dict[str, Any] = {"answer": parsed}
        if description is not None:
            changes["description"] = description
        updated = target.model_copy(update=changes)
        return self._commit(suitability_checks=[updated if c.id == check_id else c for c in checks])

    def set_technical_infrastructure(self, category: str, option: str) -> MutationResult:
        if not is_valid_answer(category, option):
            return self._reject(ValidationError(f"Invalid infrastructure answer {category}={option}"))
        return self._commit(technical_infrastructure={**self._state.technical_infrastructure, category: option})

    def select_use_case(self, use_case: UseCase | dict | None) -> MutationResult:
        return self._commit(selected_use_case=use_case)

    def select_dataset(self, dataset: Dataset | dict | None) -> MutationResult:
        return self._commit(selected_dataset=dataset)

    def select_solution(self, solution: dict[str, Any] | None) -> MutationResult:
        return self._commit(selected_solution=solution)

    def set_project_prompt(self, prompt: str) -> MutationResult:
        return self._commit(project_prompt=prompt)

    def set_project_files(self, files: list[str]) -> MutationResult:
        return self._commit(project_files=files)

    def set_project_brief(self, prompt: str, files: Optional[list[str]] = None) -> MutationResult:
        """Prompt and, when given, the file list in one mutation."""
        if files is None:
            return self._commit(project_prompt=prompt)
        return self._commit(project_prompt=prompt, project_files=files)

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    def _is_answered(self, text: str) -> bool:
        return len(text.strip()) >= self.settings.REFLECTION_MIN_CHARS

    def set_reflection_answer(self, key: str, text: str) -> MutationResult:
        """Store an answer and recompute reflection progress in the same mutation."""
        if not key:
            return self._reject(ValidationError("Reflection answer needs a question key"))
        if len(text) > self.settings.REFLECTION_MAX_CHARS:
            return self._reject(
                ValidationError(
                    f"Answer for {key} is {len(text)} characters, maximum is {self.settings.REFLECTION_MAX_CHARS}"
                )
            )

        answers = {**self._state.reflection_answers, key: text}
        changes: dict[str, Any] = {"reflection_answers": answers}

        reflection = self._state.get_phase(PhaseId.REFLECTION)
        if reflection.status != PhaseStatus.COMPLETED:
            answered = sum(1 for value in answers.values() if self._is_answered(value))
            update = None
            if answered > 0:
                update = psm.update_phase_progress(
                    self._state.phases,
                    PhaseId.REFLECTION,
                    min(answered, reflection.total_steps),
                    reflection.total_steps,
                )
            elif reflection.status == PhaseStatus.IN_PROGRESS:
                # An open reflection phase does not fall back to not-started
                update = psm.update_phase_status(self._state.phases, PhaseId.REFLECTION, PhaseStatus.IN_PROGRESS, 0)
            if update is not None and update.applied:
                changes["phases"] = update.phases

        return self._commit(**changes)

    async def complete_phase_validated(self, phase_id: PhaseId | str, answers: dict[str, str]) -> MutationResult:
        """
        Ask the server to validate a phase before completing it locally.

        The phase only advances when the server reports success and, if it
        returned an assessment, that assessment allows proceeding.
        """
        try:
            phase_id = PhaseId(phase_id)
        except ValueError:
            return self._reject(ValidationError(f"Unknown phase: {phase_id}"))
        if not self.can_access(phase_id):
            blocking = psm.find_blocking_phase(self._state.phases, phase_id)
            return self._reject(PhaseLocked(phase_id.value, blocking.value if blocking else None))

        if self.project_id == DRAFT_PROJECT_ID or self.remote is None:
            return self.complete_phase(phase_id)

        try:
            verdict = await self.remote.complete_phase_remote(self.project_id, phase_id, answers)
        except RemoteActionFailed as e:
            return self._reject(e)

        if not verdict.success:
            return self._reject(RemoteActionFailed(verdict.message or f"The server did not accept {phase_id.value}"))

        if verdict.assessment is not None and not verdict.assessment.can_proceed:
            logger.info(f"[{self.project_id}] assessment blocks {phase_id.value}: {verdict.assessment.summary}")
            return MutationResult(applied=False, reason="assessment_blocked", assessment=verdict.assessment)

        result = self.complete_phase(phase_id)
        result.assessment = verdict.assessment
        return result

    async def complete_reflection(self) -> MutationResult:
        return await self.complete_phase_validated(PhaseId.REFLECTION, dict(self._state.reflection_answers))

    # ------------------------------------------------------------------
    # Ethical considerations (each call touches a single field)
    # ------------------------------------------------------------------

    async def load_ethical_considerations(self) -> MutationResult:
        if self.remote is None or self.project_id == DRAFT_PROJECT_ID:
            return MutationResult(applied=False, reason="no_remote")
        token = self._sequencer.issue("ethical-considerations")
        try:
            considerations = await self.remote.fetch_ethical_considerations(self.project_id)
        except RemoteFetchFailed as e:
            return self._reject(e)
        if not self._sequencer.is_current("ethical-considerations", token):
            return MutationResult(applied=False, reason="superseded")
        return self._commit(ethical_considerations=considerations)

    async def refresh_ethical_considerations(self) -> MutationResult:
        if self.remote is None or self.project_id == DRAFT_PROJECT_ID:
            return MutationResult(applied=False, reason="no_remote")
        token = self._sequencer.issue("ethical-considerations")
        try:
            considerations = await self.remote.refresh_ethical_considerations(self.project_id)
        except RemoteFetchFailed as e:
            return self._reject(e)
        if not self._sequencer.is_current("ethical-considerations", token):
            return MutationResult(applied=False, reason="superseded")
        return self._commit(ethical_considerations=considerations)

    async def acknowledge_ethical_considerations(self, ids: list[str]) -> MutationResult:
        known = {c.id for c in self._state.ethical_considerations}
        unknown = [i for i in ids if i not in known]
        if unknown:
            return self._reject(ValidationError(f"Unknown ethical considerations: {', '.join(unknown)}"))

        if self.remote is not None and self.project_id != DRAFT_PROJECT_ID:
            try:
                await self.remote.acknowledge_ethical_considerations(self.project_id, ids)
            except RemoteActionFailed as e:
                return self._reject(e)

        acknowledged = set(ids)
        # Re-read: the state may have moved while the request was in flight
        updated: list[EthicalConsideration] = [
            c.model_copy(update={"acknowledged": True}) if c.id in acknowledged else c
            for c in self._state.ethical_considerations
        ]
        complete = all(c.acknowledged for c in updated if c.priority == "high")
        return self._commit(ethical_considerations=updated, ethical_acknowledgement=complete)

    # ------------------------------------------------------------------
    # Use-case search
    # ------------------------------------------------------------------

    async def search_use_cases(self, query: str = "") -> Optional[list[UseCase]]:
        """
        Fetch use cases for the scoping phase.

        Returns None when the request failed or a newer search superseded it.
        """
        if self.remote is None:
            return None
        token = self._sequencer.issue("use-cases")
        try:
            use_cases = await self.remote.fetch_use_cases(self.project_id, query)
        except RemoteFetchFailed as e:
            self._report(e)
            return None
        if not self._sequencer.is_current("use-cases", token):
            logger.debug(f"[{self.project_id}] discarding superseded use-case search {token}")
            return None
        return use_cases


class SessionRegistry:
    """Hands out exactly one ProjectSession per project identifier."""

    def __init__(
        self,
        store: ProjectStore,
        remote: Optional[RemoteProjectService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.remote = remote
        self.settings = settings
        self._sessions: dict[str, ProjectSession] = {}
        self._load_lock = asyncio.Lock()

    def get(self, project_id: str) -> ProjectSession:
        """Session for ``project_id``, created from the cache if needed."""
        project_id = project_id or DRAFT_PROJECT_ID
        session = self._sessions.get(project_id)
        if session is None:
            session = ProjectSession(project_id, self.store, remote=self.remote, settings=self.settings)
            self._sessions[project_id] = session
        return session

    async def open(self, project_id: str) -> ProjectSession:
        """Session for ``project_id``, reconciled with the remote on first open."""
        project_id = project_id or DRAFT_PROJECT_ID
        async with self._load_lock:
            is_new = project_id not in self._sessions
            session = self.get(project_id)
        if is_new:
            await session.load()
        return session

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
