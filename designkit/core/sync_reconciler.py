"""Reconciliation of the local project cache with the remote record.

The cached copy is served immediately; the remote snapshot is fetched in the
background and adopted only when it is strictly newer than the last snapshot
the cache was synced with. Adoption is shallow and per field: each permitted
top-level field present in the snapshot replaces the local value, everything
else is left alone.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import pydantic

from designkit.core.errors import EngineError, RemoteFetchFailed
from designkit.core.logging import get_logger, log_with_context
from designkit.core.project_defaults import default_project_state
from designkit.core.schemas_project import (
    DRAFT_PROJECT_ID,
    PhaseId,
    PhaseStatus,
    ProjectSnapshot,
    ProjectState,
    SyncMetadata,
)
from designkit.db.project_cache import ProjectStore
from designkit.services.design_api import RemoteProjectService

logger = get_logger(__name__)

# Fields a remote snapshot may overwrite. project_files is local-only.
REMOTE_MERGEABLE_FIELDS: tuple[str, ...] = (
    "phases",
    "active_phase_id",
    "constraints",
    "suitability_checks",
    "project_prompt",
    "reflection_answers",
    "selected_use_case",
    "selected_dataset",
    "scoping_final_decision",
    "technical_infrastructure",
    "ethical_considerations",
    "ethical_acknowledgement",
)

# Adopted only when non-null and development has started in the merged state
CONDITIONAL_FIELDS: tuple[str, ...] = ("selected_solution",)

# Adopted together or not at all; the active phase must be open in the phases it comes with
JOINT_FIELDS: tuple[tuple[str, ...], ...] = (("phases", "active_phase_id"),)


class SyncStatus(str, Enum):
    ADOPTED = "adopted"
    LOCAL_CURRENT = "local_current"
    FETCH_FAILED = "fetch_failed"
    SKIPPED = "skipped"


@dataclass
class ReconcileOutcome:
    """Result of one reconciliation pass."""
    state: ProjectState
    meta: SyncMetadata
    status: SyncStatus
    adopted_fields: list[str] = field(default_factory=list)
    errors: list[EngineError] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _merge_groups() -> list[tuple[str, ...]]:
    groups: list[tuple[str, ...]] = []
    for name in REMOTE_MERGEABLE_FIELDS:
        group = next((g for g in JOINT_FIELDS if name in g), (name,))
        if group not in groups:
            groups.append(group)
    return groups


def is_remote_newer(snapshot: ProjectSnapshot, meta: SyncMetadata) -> bool:
    """Strict last-writer-wins comparison.

    Timestamps decide when the snapshot carries one; otherwise versions do.
    """
    if snapshot.updated_at is not None:
        if meta.last_sync is None:
            return True
        return _as_utc(snapshot.updated_at) > _as_utc(meta.last_sync)
    return snapshot.version > meta.version


def merge_snapshot_fields(
    local: ProjectState,
    remote_fields: dict[str, Any],
    protected: set[str] | None = None,
) -> tuple[ProjectState, list[str]]:
    """
    Adopt permitted remote fields into ``local``.

    Args:
        local: State to merge into
        remote_fields: Top-level ProjectState fields from the snapshot
        protected: Fields that must keep their local value

    Returns:
        (merged_state, adopted_field_names). A remote value that fails
        validation is skipped and the local value kept.
    """
    protected = protected or set()
    merged = local
    adopted: list[str] = []

    for group in _merge_groups():
        changes = {name: remote_fields[name] for name in group if name in remote_fields and name not in protected}
        if not changes:
            continue
        try:
            merged = merged.evolve(**changes)
        except pydantic.ValidationError as e:
            logger.warning(f"Skipping invalid remote {'+'.join(changes)}: {e.error_count()} errors")
            continue
        adopted.extend(changes)

    for name in CONDITIONAL_FIELDS:
        value = remote_fields.get(name)
        if value is None or name in protected:
            continue
        if merged.get_phase(PhaseId.DEVELOPMENT).status == PhaseStatus.NOT_STARTED:
            logger.info(f"Not adopting remote {name}: development has not started")
            continue
        try:
            merged = merged.evolve(**{name: value})
        except pydantic.ValidationError:
            logger.warning(f"Skipping invalid remote field {name}")
            continue
        adopted.append(name)

    return merged, adopted


class SyncReconciler:
    """Merges the cached ProjectState with the remote snapshot."""

    def __init__(self, store: ProjectStore, remote: Optional[RemoteProjectService]):
        self.store = store
        self.remote = remote

    def load_local(self, project_id: str) -> tuple[ProjectState, SyncMetadata]:
        """Cached state and metadata, or defaults for a first-seen project."""
        state = self.store.load_state(project_id)
        if state is None:
            log_with_context(logger, logging.INFO, "No cached state, using defaults", project_id=project_id)
            state = default_project_state()
        return state, self.store.load_meta(project_id)

    async def sync(
        self,
        project_id: str,
        current_state: Optional[Callable[[], ProjectState]] = None,
        touched_fields: Optional[Callable[[], set[str]]] = None,
    ) -> ReconcileOutcome:
        """
        Run one reconciliation pass.

        Args:
            project_id: Project to reconcile
            current_state: Returns the state to merge into once the fetch
                resolves; defaults to the cached state
            touched_fields: Returns fields edited locally since the fetch
                was issued; those keep their local value

        Returns:
            ReconcileOutcome. Fetch failures are reported in the outcome,
            never raised.
        """
        cached_state, meta = self.load_local(project_id)

        def latest() -> ProjectState:
            return current_state() if current_state is not None else cached_state

        if project_id == DRAFT_PROJECT_ID or self.remote is None:
            return ReconcileOutcome(state=latest(), meta=meta, status=SyncStatus.SKIPPED)

        try:
            snapshot = await self.remote.fetch_project_snapshot(project_id)
        except RemoteFetchFailed as e:
            log_with_context(
                logger, logging.WARNING, f"Remote fetch failed, serving cache: {e}", project_id=project_id
            )
            return ReconcileOutcome(state=latest(), meta=meta, status=SyncStatus.FETCH_FAILED, errors=[e])

        local = latest()
        # Metadata may have moved while the fetch was outstanding
        meta = self.store.load_meta(project_id)

        if not is_remote_newer(snapshot, meta):
            log_with_context(
                logger,
                logging.INFO,
                "Local cache is current",
                project_id=project_id,
                last_sync=meta.last_sync,
                remote_updated_at=snapshot.updated_at,
            )
            return ReconcileOutcome(state=local, meta=meta, status=SyncStatus.LOCAL_CURRENT)

        protected = touched_fields() if touched_fields is not None else set()
        merged, adopted = merge_snapshot_fields(local, snapshot.fields, protected)
        new_meta = SyncMetadata(last_sync=snapshot.updated_at, version=snapshot.version)

        errors: list[EngineError] = []
        state_error = self.store.save_state(project_id, merged)
        if state_error is not None:
            errors.append(state_error)
        else:
            # Only record the sync once the merged state is durable
            meta_error = self.store.save_meta(project_id, new_meta)
            if meta_error is not None:
                errors.append(meta_error)

        log_with_context(
            logger,
            logging.INFO,
            "Adopted remote snapshot",
            project_id=project_id,
            fields=",".join(adopted) or "-",
            version=snapshot.version,
        )
        return ReconcileOutcome(
            state=merged,
            meta=new_meta,
            status=SyncStatus.ADOPTED,
            adopted_fields=adopted,
            errors=errors,
        )

    async def reconcile(self, project_id: str) -> ProjectState:
        """Reconcile against the cache alone and return the resulting state."""
        outcome = await self.sync(project_id)
        return outcome.state
