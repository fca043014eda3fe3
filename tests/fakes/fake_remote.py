"""Fake in-memory remote project service for session and sync tests."""

import asyncio
from typing import Any, Dict, List, Optional

from designkit.core.errors import RemoteActionFailed, RemoteFetchFailed
from designkit.core.schemas_project import (
    EthicalAssessment,
    EthicalConsideration,
    PhaseId,
    ProjectSnapshot,
    UseCase,
)
from designkit.services.design_api import PhaseCompletionResult


class FakeRemote:
    """Remote service double with scriptable responses and call recording."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all scripted responses and recorded calls."""
        self.snapshots: Dict[str, ProjectSnapshot] = {}
        self.fail_fetch = False
        self.fail_actions = False
        self.completion_success = True
        self.assessment: Optional[EthicalAssessment] = None
        self.considerations: List[EthicalConsideration] = []
        self.refreshed_considerations: List[EthicalConsideration] = []
        self.use_cases: Dict[str, List[UseCase]] = {}
        self.calls: List[tuple] = []
        # Resource name -> event the call waits on before answering
        self.gates: Dict[str, asyncio.Event] = {}

    async def _wait(self, resource: str, key: Any = None):
        gate = self.gates.get(f"{resource}:{key}") or self.gates.get(resource)
        if gate is not None:
            await gate.wait()

    async def fetch_project_snapshot(self, project_id: str) -> ProjectSnapshot:
        self.calls.append(("fetch_project_snapshot", project_id))
        await self._wait("snapshot")
        if self.fail_fetch:
            raise RemoteFetchFailed(f"projects/{project_id} returned HTTP 503")
        snapshot = self.snapshots.get(project_id)
        if snapshot is None:
            raise RemoteFetchFailed(f"projects/{project_id} returned HTTP 404")
        return snapshot

    async def complete_phase_remote(
        self, project_id: str, phase_id: PhaseId, answers: dict[str, str]
    ) -> PhaseCompletionResult:
        self.calls.append(("complete_phase_remote", project_id, PhaseId(phase_id).value, dict(answers)))
        if self.fail_actions:
            raise RemoteActionFailed(f"Could not complete {PhaseId(phase_id).value} remotely")
        return PhaseCompletionResult(
            success=self.completion_success,
            assessment=self.assessment,
            message=None if self.completion_success else "Answers need more detail",
        )

    async def fetch_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]:
        self.calls.append(("fetch_ethical_considerations", project_id))
        await self._wait("considerations")
        if self.fail_fetch:
            raise RemoteFetchFailed("ethical considerations unavailable")
        return list(self.considerations)

    async def acknowledge_ethical_considerations(self, project_id: str, ids: list[str]) -> None:
        self.calls.append(("acknowledge_ethical_considerations", project_id, list(ids)))
        if self.fail_actions:
            raise RemoteActionFailed("Acknowledgement rejected")

    async def refresh_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]:
        self.calls.append(("refresh_ethical_considerations", project_id))
        await self._wait("considerations")
        if self.fail_fetch:
            raise RemoteFetchFailed("refresh failed")
        return list(self.refreshed_considerations)

    async def fetch_use_cases(self, project_id: str, query: str = "") -> list[UseCase]:
        self.calls.append(("fetch_use_cases", project_id, query))
        await self._wait("use_cases", query)
        if self.fail_fetch:
            raise RemoteFetchFailed("use cases unavailable")
        return list(self.use_cases.get(query, []))
