"""Debounced write-through of session state to the local cache.

mutate → schedule() → (delay elapses with no further schedule) → flush()

The flush callback reads the session's state when it runs, so a flush always
writes the latest state, never a snapshot taken at schedule time. Outside a
running event loop nothing is timed: the writer stays dirty until flush() is
called explicitly.
"""

import asyncio
from typing import Callable, Optional

from designkit.core.errors import EngineError
from designkit.core.logging import get_logger

logger = get_logger(__name__)


class DebouncedWriter:
    """Coalesces bursts of schedule() calls into a single flush."""

    def __init__(
        self,
        flush_fn: Callable[[], Optional[EngineError]],
        delay: float,
        on_error: Optional[Callable[[EngineError], None]] = None,
    ):
        self._flush_fn = flush_fn
        self.delay = delay
        self._on_error = on_error
        self._handle: Optional[asyncio.TimerHandle] = None
        self._dirty = False
        self.flush_count = 0

    @property
    def pending(self) -> bool:
        return self._dirty

    def schedule(self) -> None:
        """Mark state dirty and (re)start the debounce timer."""
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        self.flush()

    def flush(self) -> Optional[EngineError]:
        """Write now if dirty. Failures go to ``on_error`` and are returned, not raised."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._dirty:
            return None

        self._dirty = False
        self.flush_count += 1
        error = self._flush_fn()
        if error is not None:
            logger.warning(f"Debounced flush failed: {error}")
            if self._on_error is not None:
                self._on_error(error)
        return error

    def cancel(self) -> None:
        """Drop any pending write."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._dirty = False
