"""Per-path coalescing of filesystem events."""

import enum
import logging
import queue
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Upper bound on how long the consumer blocks, so stop() is noticed promptly
_MAX_WAIT_SECONDS = 0.5


class FileEventType(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"


class EventDebouncer:
    """
    Bounded event queue drained by a single consumer thread.

    Created/modified events for a path are held until the path has been quiet
    for ``debounce_ms``; the burst then becomes one ``on_index(path)`` call,
    which reads whatever is on disk at that moment. Removed events cancel any
    pending index for the path and call ``on_remove(path)`` right away.

    The producer side (``push_event``) never blocks: when the queue is full the
    event is dropped and logged, and the next full rescan repairs the index.
    """

    def __init__(
        self,
        on_index: Callable[[str], None],
        on_remove: Callable[[str], None],
        debounce_ms: int = 300,
        max_queue_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_index = on_index
        self.on_remove = on_remove
        self.debounce_seconds = debounce_ms / 1000.0
        self._clock = clock
        self._queue: "queue.Queue[Tuple[FileEventType, str]]" = queue.Queue(maxsize=max_queue_size)
        self._pending: Dict[str, float] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    # Producer side (watchdog thread)
    def push_event(self, kind: FileEventType, path: str) -> bool:
        try:
            self._queue.put_nowait((FileEventType(kind), path))
            return True
        except queue.Full:
            self.dropped += 1
            logger.error(f"Event queue full, dropping {kind} event for {path}")
            return False

    # Consumer side
    def _collect(self, kind: FileEventType, path: str) -> None:
        if kind == FileEventType.REMOVED:
            self._pending.pop(path, None)
            self._emit(self.on_remove, path)
        else:
            # Every event in a burst pushes the deadline back
            self._pending[path] = self._clock() + self.debounce_seconds

    def _emit(self, callback: Callable[[str], None], path: str) -> None:
        try:
            callback(path)
        except Exception:
            logger.exception(f"Failed to process event for {path}")

    def _flush_due(self) -> List[str]:
        now = self._clock()
        due = sorted(p for p, deadline in self._pending.items() if deadline <= now)
        for path in due:
            del self._pending[path]
            self._emit(self.on_index, path)
        return due

    def _next_wait(self) -> float:
        if not self._pending:
            return _MAX_WAIT_SECONDS
        wait = min(self._pending.values()) - self._clock()
        return max(0.0, min(wait, _MAX_WAIT_SECONDS))

    def poll(self) -> List[str]:
        """
        Drain queued events without blocking and emit every path whose quiet
        period has elapsed. Returns the paths sent to on_index.
        """
        while True:
            try:
                kind, path = self._queue.get_nowait()
            except queue.Empty:
                break
            self._collect(kind, path)
        return self._flush_due()

    def flush(self) -> List[str]:
        """Emit every pending path immediately, regardless of its deadline."""
        self.poll()
        paths = sorted(self._pending)
        self._pending.clear()
        for path in paths:
            self._emit(self.on_index, path)
        return paths

    @property
    def pending(self) -> List[str]:
        return sorted(self._pending)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                kind, path = self._queue.get(timeout=self._next_wait())
            except queue.Empty:
                pass
            else:
                self._collect(kind, path)
            self.poll()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="mdreader-debouncer", daemon=True)
        self._thread.start()

    def stop(self, flush: bool = False) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join()
            self._thread = None
        if flush:
            self.flush()
        else:
            self._pending.clear()
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
