"""Error taxonomy for the project state engine.

Scoring and the phase machine report these as values inside their results;
the remote client and the cache raise them, and the session orchestrator
turns them into notices.
"""


class EngineError(Exception):
    """Base class for expected engine failures."""

    #: Whether the UI should offer a retry for this failure
    retryable: bool = False


class ValidationError(EngineError):
    """Mutator input violated a data model invariant. State is unchanged."""


class PhaseLocked(EngineError):
    """A phase was requested before every preceding phase was completed."""

    def __init__(self, phase_id: str, blocking_phase_id: str | None = None):
        self.phase_id = phase_id
        self.blocking_phase_id = blocking_phase_id
        detail = f" (complete {blocking_phase_id} first)" if blocking_phase_id else ""
        super().__init__(f"Phase {phase_id} is locked{detail}")


class PersistenceError(EngineError):
    """A cache write failed. The in-memory state stays authoritative."""


class PersistenceQuotaExceeded(PersistenceError):
    """The cache ran out of room."""


class RemoteFetchFailed(EngineError):
    """A remote read failed. The local cache keeps serving."""


class RemoteActionFailed(EngineError):
    """A server-validated action did not succeed. State was not advanced."""

    retryable = True
