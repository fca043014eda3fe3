"""User-facing notices raised by a session (toasts in the UI)."""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from designkit.core.errors import (
    EngineError,
    PersistenceError,
    PhaseLocked,
    RemoteActionFailed,
    RemoteFetchFailed,
    ValidationError,
)
from designkit.core.logging import get_logger

logger = get_logger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A non-blocking message for the user. Carries no state."""
    level: NoticeLevel
    code: str
    message: str
    retryable: bool = False


NoticeListener = Callable[[Notice], None]


class NoticeBus:
    """Fan-out of notices to listeners, keeping a short history."""

    def __init__(self, history_size: int = 50):
        self._listeners: list[NoticeListener] = []
        self.history: deque[Notice] = deque(maxlen=history_size)

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, notice: Notice) -> None:
        self.history.append(notice)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                # Listener failures never reach the emitting mutation
                logger.exception(f"Notice listener failed for {notice.code}")


def notice_for_error(error: EngineError) -> Notice | None:
    """Translate an engine error into a notice. Sync failures stay silent."""
    if isinstance(error, RemoteFetchFailed):
        return None
    if isinstance(error, PhaseLocked):
        return Notice(NoticeLevel.WARNING, "phase_locked", str(error))
    if isinstance(error, PersistenceError):
        return Notice(
            NoticeLevel.WARNING,
            "persistence_degraded",
            "Your progress could not be saved on this device. Changes are kept for this session.",
        )
    if isinstance(error, RemoteActionFailed):
        return Notice(NoticeLevel.ERROR, "remote_action_failed", str(error), retryable=True)
    if isinstance(error, ValidationError):
        return Notice(NoticeLevel.WARNING, "invalid_input", str(error))
    return Notice(NoticeLevel.ERROR, "engine_error", str(error), retryable=error.retryable)
