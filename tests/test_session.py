"""Tests for designkit.core.session: the session orchestrator."""

import asyncio
from datetime import datetime, timezone

import pytest

from designkit.core.errors import PhaseLocked, RemoteActionFailed, ValidationError
from designkit.core.project_defaults import default_project_state
from designkit.core.schemas_project import (
    DRAFT_PROJECT_ID,
    EthicalAssessment,
    EthicalConsideration,
    PhaseId,
    PhaseStatus,
    ProjectSnapshot,
    ScopingDecision,
    SyncMetadata,
    UseCase,
)
from designkit.core.session import ProjectSession, SessionRegistry
from designkit.core.sync_reconciler import SyncStatus
from designkit.db.project_cache import build_store

LONG_ANSWER = "We want to help smallholder farmers spot crop disease early. " * 3
T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def session(store, fake_remote):
    return ProjectSession("p1", store, remote=fake_remote, debounce_seconds=0.01)


def _complete_through(session, last: PhaseId):
    for phase_id in PhaseId:
        session.complete_phase(phase_id)
        if phase_id == last:
            break


def _codes(session):
    return [n.code for n in session.notices.history]


# =============================================================================
# Construction and getters
# =============================================================================


class TestConstruction:
    def test_first_seen_project_starts_from_defaults(self, session):
        assert session.get_state() == default_project_state()
        assert session.active_phase_id == PhaseId.REFLECTION

    def test_cached_state_is_available_before_load(self, store, fake_remote):
        store.save_state("p1", default_project_state().evolve(project_prompt="cached"))
        session = ProjectSession("p1", store, remote=fake_remote)
        assert session.get_state().project_prompt == "cached"
        assert fake_remote.calls == []

    def test_get_state_returns_a_copy(self, session):
        state = session.get_state()
        state.project_prompt = "mutated outside"
        assert session.get_state().project_prompt == ""

    def test_empty_project_id_is_draft(self, store):
        assert ProjectSession("", store).project_id == DRAFT_PROJECT_ID

    def test_scores_follow_state(self, session):
        for check_id in ("clean", "representative", "privacy", "quality"):
            session.set_suitability_answer(check_id, "yes")
        assert session.suitability_score().score == 100

        session.set_suitability_answer("quality", "no")
        assert session.suitability_score().score == 75


# =============================================================================
# Phase gating through the session
# =============================================================================


class TestPhases:
    def test_locked_phase_is_refused_with_notice(self, session):
        _complete_through(session, PhaseId.SCOPING)
        active_before = session.active_phase_id

        result = session.set_active_phase(PhaseId.EVALUATION)

        assert not result.applied
        assert isinstance(result.error, PhaseLocked)
        assert session.active_phase_id == active_before
        assert "phase_locked" in _codes(session)

    def test_completing_development_opens_evaluation(self, session):
        _complete_through(session, PhaseId.SCOPING)

        result = session.complete_phase(PhaseId.DEVELOPMENT)

        evaluation = session.get_state().get_phase(PhaseId.EVALUATION)
        assert result.applied
        assert evaluation.status == PhaseStatus.IN_PROGRESS
        assert evaluation.progress == 0
        assert not result.all_completed
        assert not session.all_phases_completed()

    def test_completing_every_phase(self, session):
        _complete_through(session, PhaseId.EVALUATION)
        assert session.all_phases_completed()
        assert all(entry["accessible"] for entry in session.phase_overview())

    def test_completing_locked_phase_is_noop(self, session):
        before = session.get_state()
        result = session.complete_phase(PhaseId.DEVELOPMENT)
        assert not result.applied
        assert result.reason == "locked"
        assert session.get_state() == before

    def test_can_access_is_derived_from_phases(self, session):
        assert not session.can_access(PhaseId.SCOPING)
        session.complete_phase(PhaseId.REFLECTION)
        assert session.can_access(PhaseId.SCOPING)

    def test_invalid_phase_list_is_rejected_whole(self, session):
        before = session.get_state()
        phases = [p.model_dump() for p in before.phases]
        phases[0]["completed_steps"] = 99

        result = session.set_phases(phases)

        assert isinstance(result.error, ValidationError)
        assert session.get_state() == before

    def test_phase_list_that_skips_a_phase_is_rejected(self, session):
        before = session.get_state()
        phases = [p.model_dump() for p in before.phases]
        phases[3].update(status="completed", progress=100, completed_steps=phases[3]["total_steps"])

        result = session.set_phases(phases)

        assert isinstance(result.error, ValidationError)
        assert session.get_state() == before
        assert "invalid_input" in _codes(session)

    def test_phase_list_cannot_reopen_completed_phase(self, session):
        session.complete_phase(PhaseId.REFLECTION)
        before = session.get_state()
        phases = [p.model_dump() for p in before.phases]
        phases[0].update(status="in-progress", progress=40, completed_steps=3)
        phases[1].update(status="not-started", progress=0, completed_steps=0)

        result = session.set_phases(phases)

        assert not result.applied
        assert result.reason == "completed_is_final"
        assert session.get_state() == before
        assert session.can_access(session.active_phase_id)

    def test_phase_list_may_advance_progress(self, session):
        phases = [p.model_dump() for p in session.get_state().phases]
        phases[0].update(progress=43, completed_steps=3)

        result = session.set_phases(phases)

        assert result.applied
        assert session.get_state().get_phase(PhaseId.REFLECTION).completed_steps == 3


class TestScopingDecision:
    def _open_scoping(self, session):
        session.complete_phase(PhaseId.REFLECTION)

    def test_full_progress_pins_proceed(self, session):
        self._open_scoping(session)

        session.update_phase_status(PhaseId.SCOPING, PhaseStatus.IN_PROGRESS, 100)

        assert session.get_state().scoping_final_decision == ScopingDecision.PROCEED

    def test_revise_at_eighty(self, session):
        self._open_scoping(session)
        session.update_phase_status(PhaseId.SCOPING, PhaseStatus.IN_PROGRESS, 80)
        assert session.get_state().scoping_final_decision == ScopingDecision.REVISE

    def test_pinned_decision_ignores_step_progress(self, session):
        self._open_scoping(session)
        session.update_phase_status(PhaseId.SCOPING, PhaseStatus.IN_PROGRESS, 100)

        result = session.update_phase_progress(PhaseId.SCOPING, 2, 5)

        assert result.reason == "scoping_decision_pinned"
        assert session.get_state().get_phase(PhaseId.SCOPING).progress == 100

    def test_completing_scoping_clears_decision(self, session):
        self._open_scoping(session)
        session.update_phase_status(PhaseId.SCOPING, PhaseStatus.IN_PROGRESS, 80)

        session.complete_phase(PhaseId.SCOPING)

        assert session.get_state().scoping_final_decision is None
        assert session.active_phase_id == PhaseId.DEVELOPMENT


# =============================================================================
# Answers
# =============================================================================


class TestAnswers:
    def test_invalid_constraint_value_leaves_state_unchanged(self, session):
        before = session.get_state()

        result = session.set_constraint("budget", "infinite")

        assert isinstance(result.error, ValidationError)
        assert session.get_state() == before
        assert "invalid_input" in _codes(session)

    def test_toggle_needs_boolean(self, session):
        assert isinstance(session.set_constraint("internet", "yes").error, ValidationError)
        assert session.set_constraint("internet", False).ok

    def test_unknown_is_accepted_for_any_constraint(self, session):
        assert session.set_constraint("internet", "unknown").ok
        assert session.set_constraint("budget", "unknown").ok
        assert session.feasibility_score().factors["budget"].normalized == 0.5

    def test_unknown_constraint(self, session):
        assert isinstance(session.set_constraint("weather", "sunny").error, ValidationError)

    def test_constraint_change_moves_feasibility(self, session):
        before = session.feasibility_score().score
        session.set_constraint("budget", "unlimited")
        assert session.feasibility_score().score > before

    def test_invalid_suitability_answer(self, session):
        assert isinstance(session.set_suitability_answer("clean", "perhaps").error, ValidationError)
        assert isinstance(session.set_suitability_answer("nope", "yes").error, ValidationError)

    def test_infrastructure_answers_are_validated(self, session):
        assert session.set_technical_infrastructure("computing_resources", "cloud_platforms").ok
        assert isinstance(
            session.set_technical_infrastructure("computing_resources", "quantum").error, ValidationError
        )
        assert session.infrastructure_score().score == 100

    def test_selections(self, session):
        assert session.select_use_case({"id": "u1", "title": "Yield forecasting"}).ok
        assert session.select_dataset({"id": "d1", "title": "Rainfall 2020"}).ok
        assert session.set_project_prompt("Forecast yields").ok
        assert session.set_project_files(["notes.pdf"]).ok

        state = session.get_state()
        assert state.selected_use_case.title == "Yield forecasting"
        assert state.selected_dataset.id == "d1"
        assert state.project_files == ["notes.pdf"]

    def test_brief_with_invalid_files_keeps_old_prompt(self, session):
        session.set_project_prompt("Forecast yields")

        result = session.set_project_brief("Forecast rainfall", [None])

        assert isinstance(result.error, ValidationError)
        assert session.get_state().project_prompt == "Forecast yields"
        assert session.get_state().project_files == []

    def test_brief_without_files_keeps_file_list(self, session):
        session.set_project_files(["notes.pdf"])
        assert session.set_project_brief("Forecast rainfall").ok
        assert session.get_state().project_files == ["notes.pdf"]

    def test_invalid_selection_is_rejected(self, session):
        assert isinstance(session.select_use_case({"title": "no id"}).error, ValidationError)
        assert session.get_state().selected_use_case is None


class TestReflectionAnswers:
    def test_answer_counts_toward_progress(self, session):
        session.set_reflection_answer("problem", LONG_ANSWER)

        reflection = session.get_state().get_phase(PhaseId.REFLECTION)
        assert reflection.completed_steps == 1
        assert reflection.progress == 14
        assert reflection.status == PhaseStatus.IN_PROGRESS

    def test_short_answer_is_stored_but_not_counted(self, session):
        result = session.set_reflection_answer("problem", "Too short")

        state = session.get_state()
        assert result.ok
        assert state.reflection_answers["problem"] == "Too short"
        assert state.get_phase(PhaseId.REFLECTION).completed_steps == 0
        assert state.get_phase(PhaseId.REFLECTION).status == PhaseStatus.IN_PROGRESS

    def test_overlong_answer_is_rejected(self, session):
        result = session.set_reflection_answer("problem", "x" * 1201)
        assert isinstance(result.error, ValidationError)
        assert "problem" not in session.get_state().reflection_answers

    def test_shortening_an_answer_lowers_progress(self, session):
        session.set_reflection_answer("problem", LONG_ANSWER)
        session.set_reflection_answer("users", LONG_ANSWER)
        session.set_reflection_answer("users", "short")
        assert session.get_state().get_phase(PhaseId.REFLECTION).completed_steps == 1

    def test_shortening_only_answer_keeps_reflection_open(self, session):
        session.set_reflection_answer("problem", LONG_ANSWER)

        result = session.set_reflection_answer("problem", "short")

        reflection = session.get_state().get_phase(PhaseId.REFLECTION)
        assert result.ok
        assert reflection.status == PhaseStatus.IN_PROGRESS
        assert reflection.completed_steps == 0
        assert reflection.progress == 0


# =============================================================================
# Server-validated completion
# =============================================================================


class TestCompleteReflection:
    @pytest.mark.asyncio
    async def test_success_advances(self, session, fake_remote):
        session.set_reflection_answer("problem", LONG_ANSWER)
        fake_remote.assessment = EthicalAssessment(can_proceed=True, threshold_met=True, summary="ok")

        result = await session.complete_reflection()

        assert result.applied
        assert result.assessment.can_proceed
        assert session.active_phase_id == PhaseId.SCOPING
        assert fake_remote.calls[-1] == ("complete_phase_remote", "p1", "reflection", {"problem": LONG_ANSWER})

    @pytest.mark.asyncio
    async def test_blocking_assessment_keeps_phase_open(self, session, fake_remote):
        fake_remote.assessment = EthicalAssessment(can_proceed=False, summary="Consent is unclear")

        result = await session.complete_reflection()

        assert not result.applied
        assert result.reason == "assessment_blocked"
        assert result.assessment.summary == "Consent is unclear"
        assert session.get_state().get_phase(PhaseId.REFLECTION).status == PhaseStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_remote_failure_is_retryable_notice(self, session, fake_remote):
        fake_remote.fail_actions = True

        result = await session.complete_reflection()

        assert isinstance(result.error, RemoteActionFailed)
        notice = session.notices.history[-1]
        assert notice.code == "remote_action_failed"
        assert notice.retryable
        assert session.active_phase_id == PhaseId.REFLECTION

    @pytest.mark.asyncio
    async def test_server_rejection(self, session, fake_remote):
        fake_remote.completion_success = False
        result = await session.complete_reflection()
        assert isinstance(result.error, RemoteActionFailed)
        assert "more detail" in str(result.error)

    @pytest.mark.asyncio
    async def test_draft_completes_locally(self, store, fake_remote):
        session = ProjectSession(DRAFT_PROJECT_ID, store, remote=fake_remote)

        result = await session.complete_reflection()

        assert result.applied
        assert fake_remote.calls == []

    @pytest.mark.asyncio
    async def test_locked_phase_not_sent(self, session, fake_remote):
        result = await session.complete_phase_validated(PhaseId.DEVELOPMENT, {})
        assert isinstance(result.error, PhaseLocked)
        assert fake_remote.calls == []


# =============================================================================
# Ethical considerations
# =============================================================================


class TestEthicalConsiderations:
    def _considerations(self):
        return [
            EthicalConsideration(id="e1", title="Consent", priority="high"),
            EthicalConsideration(id="e2", title="Bias", priority="high"),
            EthicalConsideration(id="e3", title="Energy use", priority="low"),
        ]

    @pytest.mark.asyncio
    async def test_acknowledging_all_high_priority_items(self, session, fake_remote):
        fake_remote.considerations = self._considerations()
        await session.load_ethical_considerations()

        await session.acknowledge_ethical_considerations(["e1"])
        assert not session.get_state().ethical_acknowledgement

        await session.acknowledge_ethical_considerations(["e2"])
        state = session.get_state()
        assert state.ethical_acknowledgement
        assert [c.acknowledged for c in state.ethical_considerations] == [True, True, False]

    @pytest.mark.asyncio
    async def test_unknown_ids_rejected(self, session, fake_remote):
        fake_remote.considerations = self._considerations()
        await session.load_ethical_considerations()

        result = await session.acknowledge_ethical_considerations(["e9"])

        assert isinstance(result.error, ValidationError)
        assert not any(call[0] == "acknowledge_ethical_considerations" for call in fake_remote.calls)

    @pytest.mark.asyncio
    async def test_failed_acknowledgement_changes_nothing(self, session, fake_remote):
        fake_remote.considerations = self._considerations()
        await session.load_ethical_considerations()
        fake_remote.fail_actions = True

        result = await session.acknowledge_ethical_considerations(["e1", "e2"])

        assert isinstance(result.error, RemoteActionFailed)
        assert not session.get_state().ethical_acknowledgement

    @pytest.mark.asyncio
    async def test_refresh_replaces_only_considerations(self, session, fake_remote):
        session.set_project_prompt("keep me")
        fake_remote.refreshed_considerations = [EthicalConsideration(id="n1", title="New")]

        result = await session.refresh_ethical_considerations()

        state = session.get_state()
        assert result.applied
        assert [c.id for c in state.ethical_considerations] == ["n1"]
        assert state.project_prompt == "keep me"

    @pytest.mark.asyncio
    async def test_superseded_load_is_discarded(self, session, fake_remote):
        gate = asyncio.Event()
        fake_remote.gates["considerations"] = gate
        fake_remote.considerations = [EthicalConsideration(id="old", title="Old")]
        fake_remote.refreshed_considerations = [EthicalConsideration(id="new", title="New")]

        first = asyncio.create_task(session.load_ethical_considerations())
        second = asyncio.create_task(session.refresh_ethical_considerations())
        await asyncio.sleep(0)
        gate.set()
        first_result, second_result = await asyncio.gather(first, second)

        assert first_result.reason == "superseded"
        assert second_result.applied
        assert [c.id for c in session.get_state().ethical_considerations] == ["new"]

    @pytest.mark.asyncio
    async def test_fetch_failure_is_silent(self, session, fake_remote):
        fake_remote.fail_fetch = True
        result = await session.load_ethical_considerations()
        assert not result.applied
        assert _codes(session) == []


# =============================================================================
# Use-case search
# =============================================================================


class TestSearchUseCases:
    @pytest.mark.asyncio
    async def test_returns_results(self, session, fake_remote):
        fake_remote.use_cases["crop"] = [UseCase(id="u1", title="Crop disease detection")]
        use_cases = await session.search_use_cases("crop")
        assert [u.id for u in use_cases] == ["u1"]

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, session, fake_remote):
        slow = asyncio.Event()
        fake_remote.gates["use_cases:cr"] = slow
        fake_remote.use_cases["cr"] = [UseCase(id="stale", title="Stale")]
        fake_remote.use_cases["crop"] = [UseCase(id="fresh", title="Fresh")]

        older = asyncio.create_task(session.search_use_cases("cr"))
        await asyncio.sleep(0)
        newer = await session.search_use_cases("crop")
        slow.set()

        assert [u.id for u in newer] == ["fresh"]
        assert await older is None


# =============================================================================
# Debounced persistence
# =============================================================================


class TestPersistence:
    def test_mutation_marks_pending_without_loop(self, session, store):
        session.set_project_prompt("draft text")

        assert session.has_pending_write
        assert store.load_state("p1") is None

        assert session.flush() is None
        assert store.load_state("p1").project_prompt == "draft text"

    @pytest.mark.asyncio
    async def test_burst_of_edits_is_one_write(self, session, store):
        for i in range(5):
            session.set_project_prompt(f"edit {i}")

        await asyncio.sleep(0.05)

        assert session._writer.flush_count == 1
        assert store.load_state("p1").project_prompt == "edit 4"
        assert not session.has_pending_write

    @pytest.mark.asyncio
    async def test_quota_failure_keeps_memory_state(self, fake_remote):
        session = ProjectSession("p1", build_store(max_bytes=100), remote=fake_remote, debounce_seconds=0.01)

        session.set_project_prompt("still here")
        await asyncio.sleep(0.05)

        assert session.get_state().project_prompt == "still here"
        assert "persistence_degraded" in _codes(session)

    def test_close_flushes(self, session, store):
        session.set_project_prompt("closing")
        session.close()
        assert store.load_state("p1").project_prompt == "closing"


# =============================================================================
# Load / reconcile
# =============================================================================


class TestLoad:
    @pytest.mark.asyncio
    async def test_adopts_newer_remote(self, session, store, fake_remote):
        fake_remote.snapshots["p1"] = ProjectSnapshot(
            project_id="p1", updated_at=T1, version=2, fields={"project_prompt": "from server"}
        )

        outcome = await session.load()

        assert outcome.status == SyncStatus.ADOPTED
        assert session.get_state().project_prompt == "from server"
        assert session.sync_metadata == SyncMetadata(last_sync=T1, version=2)

    @pytest.mark.asyncio
    async def test_edit_during_fetch_survives(self, session, store, fake_remote):
        gate = asyncio.Event()
        fake_remote.gates["snapshot"] = gate
        fake_remote.snapshots["p1"] = ProjectSnapshot(
            project_id="p1", updated_at=T1, fields={"project_prompt": "from server", "reflection_answers": {"a": "b"}}
        )

        task = asyncio.create_task(session.load())
        await asyncio.sleep(0)
        session.set_project_prompt("typed while loading")
        gate.set()
        await task

        state = session.get_state()
        assert state.project_prompt == "typed while loading"
        assert state.reflection_answers == {"a": "b"}

    @pytest.mark.asyncio
    async def test_fetch_failure_is_silent_and_keeps_cache(self, session, fake_remote):
        fake_remote.fail_fetch = True
        outcome = await session.load()
        assert outcome.status == SyncStatus.FETCH_FAILED
        assert _codes(session) == []

    @pytest.mark.asyncio
    async def test_load_runs_once(self, session, fake_remote):
        fake_remote.snapshots["p1"] = ProjectSnapshot(project_id="p1", updated_at=T0)
        await session.load()
        outcome = await session.load()
        assert outcome.status == SyncStatus.SKIPPED
        assert len([c for c in fake_remote.calls if c[0] == "fetch_project_snapshot"]) == 1


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_one_session_per_project(self, store, fake_remote):
        fake_remote.fail_fetch = True
        registry = SessionRegistry(store, fake_remote)

        first = await registry.open("p1")
        second = await registry.open("p1")
        other = await registry.open("p2")

        assert first is second
        assert first is not other
        assert len([c for c in fake_remote.calls if c == ("fetch_project_snapshot", "p1")]) == 1

    def test_close_all_flushes(self, store):
        registry = SessionRegistry(store)
        registry.get("p1").set_project_prompt("bye")
        registry.close_all()
        assert store.load_state("p1").project_prompt == "bye"

    @pytest.mark.asyncio
    async def test_empty_id_and_draft_share_one_session(self, store, fake_remote):
        registry = SessionRegistry(store, fake_remote)

        assert registry.get("") is registry.get(DRAFT_PROJECT_ID)
        assert await registry.open("") is registry.get(DRAFT_PROJECT_ID)
