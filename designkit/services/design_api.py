"""Client for the remote project service.

The service stores authoritative project records and generates AI content.
Responses use the envelope ``{"success": bool, "data": ..., "message": str}``.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
import pydantic

from designkit.core.config import get_settings
from designkit.core.errors import RemoteActionFailed, RemoteFetchFailed
from designkit.core.logging import get_logger
from designkit.core.schemas_project import (
    EthicalAssessment,
    EthicalConsideration,
    PhaseId,
    ProjectSnapshot,
    UseCase,
)

logger = get_logger(__name__)


@dataclass
class PhaseCompletionResult:
    """Server verdict on a phase completion request."""
    success: bool
    assessment: Optional[EthicalAssessment] = None
    message: Optional[str] = None


class RemoteProjectService(Protocol):
    """Operations the engine needs from the remote project service."""

    async def fetch_project_snapshot(self, project_id: str) -> ProjectSnapshot: ...

    async def complete_phase_remote(
        self, project_id: str, phase_id: PhaseId, answers: dict[str, str]
    ) -> PhaseCompletionResult: ...

    async def fetch_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]: ...

    async def acknowledge_ethical_considerations(self, project_id: str, ids: list[str]) -> None: ...

    async def refresh_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]: ...

    async def fetch_use_cases(self, project_id: str, query: str = "") -> list[UseCase]: ...


def _unwrap(payload: Any) -> tuple[bool, Any, Optional[str]]:
    """Split an envelope into (success, data, message). Bare payloads count as success."""
    if isinstance(payload, dict) and "success" in payload:
        return bool(payload["success"]), payload.get("data"), payload.get("message")
    return True, payload, None


class DesignApiClient:
    """httpx-backed implementation of RemoteProjectService."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self.base_url = base_url or settings.DESIGNKIT_API_BASE_URL
        self.timeout = timeout or settings.DESIGNKIT_API_TIMEOUT

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            response = await client.request(method, path, json=json, params=params)
            response.raise_for_status()
            return response.json()

    async def _fetch(self, path: str, params: dict[str, str] | None = None, method: str = "GET") -> Any:
        """Request a resource, converting every failure into RemoteFetchFailed."""
        try:
            payload = await self._request(method, path, params=params)
        except httpx.HTTPStatusError as e:
            raise RemoteFetchFailed(f"{path} returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise RemoteFetchFailed(f"{path} timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteFetchFailed(f"{path} failed: {e}") from e

        success, data, message = _unwrap(payload)
        if not success:
            raise RemoteFetchFailed(message or f"{path} reported failure")
        return data

    async def fetch_project_snapshot(self, project_id: str) -> ProjectSnapshot:
        data = await self._fetch(f"projects/{project_id}")
        if not isinstance(data, dict):
            raise RemoteFetchFailed(f"Unexpected snapshot payload for {project_id}")
        try:
            return ProjectSnapshot.from_payload(project_id, data)
        except pydantic.ValidationError as e:
            raise RemoteFetchFailed(f"Malformed snapshot for {project_id}: {e.error_count()} errors") from e

    async def complete_phase_remote(
        self, project_id: str, phase_id: PhaseId, answers: dict[str, str]
    ) -> PhaseCompletionResult:
        path = f"{PhaseId(phase_id).value}/{project_id}/complete"
        try:
            payload = await self._request("POST", path, json={"answers": answers})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Phase completion request failed for {project_id}: {e}")
            raise RemoteActionFailed(f"Could not complete {PhaseId(phase_id).value} remotely") from e

        success, data, message = _unwrap(payload)
        assessment = None
        if success and isinstance(data, dict):
            try:
                assessment = EthicalAssessment.model_validate(data)
            except pydantic.ValidationError:
                logger.warning(f"Ignoring malformed assessment for {project_id}")
        return PhaseCompletionResult(success=success, assessment=assessment, message=message)

    async def fetch_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]:
        data = await self._fetch(f"projects/{project_id}/ethical-considerations")
        return self._parse_considerations(project_id, data)

    async def acknowledge_ethical_considerations(self, project_id: str, ids: list[str]) -> None:
        path = f"projects/{project_id}/ethical-considerations/acknowledge"
        try:
            payload = await self._request("POST", path, json={"acknowledged_ids": ids})
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteActionFailed(f"Could not acknowledge considerations for {project_id}") from e

        success, _, message = _unwrap(payload)
        if not success:
            raise RemoteActionFailed(message or "Acknowledgement rejected")

    async def refresh_ethical_considerations(self, project_id: str) -> list[EthicalConsideration]:
        data = await self._fetch(f"projects/{project_id}/ethical-considerations/refresh", method="POST")
        return self._parse_considerations(project_id, data)

    async def fetch_use_cases(self, project_id: str, query: str = "") -> list[UseCase]:
        params = {"query": query} if query else None
        data = await self._fetch(f"scoping/{project_id}/use-cases", params=params)
        try:
            return [
                UseCase(
                    id=str(item["id"]),
                    title=item["title"],
                    description=item.get("description", ""),
                    tags=[t for t in (item.get("category"), item.get("complexity")) if t],
                )
                for item in data or []
            ]
        except (KeyError, TypeError, pydantic.ValidationError) as e:
            raise RemoteFetchFailed(f"Malformed use cases for {project_id}") from e

    @staticmethod
    def _parse_considerations(project_id: str, data: Any) -> list[EthicalConsideration]:
        if isinstance(data, dict):
            data = data.get("ethical_considerations", [])
        try:
            return [EthicalConsideration.model_validate(item) for item in data or []]
        except (TypeError, pydantic.ValidationError) as e:
            raise RemoteFetchFailed(f"Malformed ethical considerations for {project_id}") from e
