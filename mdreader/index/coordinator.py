"""
Keeps the index in step with the watch directory.

The coordinator owns the crawler, the debouncer and the watchdog subscription
for one root. A full rescan indexes every matching file and then reconciles
the stored path set against what was found on disk; live events keep the
index current in between.
"""

import contextlib
import dataclasses
import enum
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from ..database.manager import DatabaseManager
from ..errors import InvalidInputError, NotFoundError
from ..models.config import AppConfig
from ..models.document import Document
from ..utils import resolve_document_path, stat_times_ms
from .crawler import Crawler
from .debouncer import EventDebouncer
from .parser import parse_document
from .watcher import FileWatcher

logger = logging.getLogger(__name__)


class WatcherState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


@dataclasses.dataclass
class ScanSummary:
    scanned: int = 0
    indexed: int = 0
    failed: int = 0
    removed: int = 0
    cancelled: bool = False


class ReindexCoordinator:
    def __init__(self, db: DatabaseManager, config: AppConfig):
        self.db = db
        self.config = config
        self.state = WatcherState.STOPPED
        self._watching = False
        self._watcher: Optional[FileWatcher] = None
        self._state_lock = threading.RLock()
        self._scan_lock = threading.Lock()
        self._active_scans: List[threading.Event] = []
        # path -> [lock, number of holders and waiters]
        self._path_locks: Dict[str, list] = {}
        self._path_locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return Path(self.config.watch_directory).expanduser()

    def _crawler(self) -> Crawler:
        return Crawler(
            str(self.root),
            extensions=self.config.watch.extensions,
            ignore_dirs=self.config.watch.ignore_dirs,
        )

    @contextlib.contextmanager
    def _path_lock(self, path: str) -> Iterator[None]:
        """Serialize work on one path. The entry is dropped once nobody uses it."""
        with self._path_locks_guard:
            entry = self._path_locks.get(path)
            if entry is None:
                entry = self._path_locks[path] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._path_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._path_locks[path]

    def _exists_on_disk(self, path: str) -> bool:
        try:
            return resolve_document_path(self.root, path).is_file()
        except InvalidInputError:
            return False

    # Single-file operations
    def index_file(self, path: str) -> Document:
        """
        Parse and upsert one file, given its path relative to the root.

        Writes to the same path are serialized; the last one wins.
        Raises NotFoundError if the file does not exist.
        """
        file_path = resolve_document_path(self.root, path)
        with self._path_lock(path):
            if not file_path.is_file():
                raise NotFoundError(f"File not found: {path}")
            try:
                stat = file_path.stat()
                data = file_path.read_bytes()
            except FileNotFoundError:
                raise NotFoundError(f"File not found: {path}")

            created_at, modified_at = stat_times_ms(stat)
            record = parse_document(path, data)
            document = self.db.upsert_document(record, created_at=created_at, modified_at=modified_at)
            logger.debug(f"Indexed {path} ({record.word_count} words)")
            return document

    def remove_file(self, path: str) -> bool:
        with self._path_lock(path):
            removed = self.db.delete_document(path)
        if removed:
            logger.info(f"Removed {path} from index")
        return removed

    def write_file(self, path: str, content: Union[str, bytes], must_exist: bool = True) -> Document:
        """Write content under the root and index it before returning."""
        file_path = resolve_document_path(self.root, path)
        with self._path_lock(path):
            if must_exist and not file_path.is_file():
                raise NotFoundError(f"File not found: {path}")
            file_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                content = content.encode("utf-8")
            file_path.write_bytes(content)
            return self.index_file(path)

    def _on_debounced_index(self, path: str) -> None:
        try:
            self.index_file(path)
        except NotFoundError:
            # Deleted again before the quiet period ended
            self.remove_file(path)
        except OSError as e:
            logger.warning(f"Cannot index {path}: {e}")

    # Full rescan
    def index_existing_files(self, reconcile: Optional[bool] = None) -> ScanSummary:
        """
        Index every matching file under the root.

        Unreadable files are logged and skipped. When reconciliation is on
        and the scan ran to completion, stored documents whose file was not
        seen are deleted. A cancelled scan never reconciles.
        """
        if reconcile is None:
            reconcile = self.config.watch.reconcile_on_scan

        summary = ScanSummary()
        cancel = threading.Event()
        with self._state_lock:
            self._active_scans.append(cancel)
        try:
            self._scan(cancel, reconcile, summary)
        finally:
            with self._state_lock:
                self._active_scans.remove(cancel)

        logger.info(
            f"Scan of {self.root}: {summary.indexed} indexed, {summary.failed} failed, "
            f"{summary.removed} removed"
        )
        return summary

    def _scan(self, cancel: threading.Event, reconcile: bool, summary: ScanSummary) -> None:
        with self._scan_lock:
            seen = set()
            for rel_path, _ in self._crawler().scan():
                if cancel.is_set():
                    summary.cancelled = True
                    logger.info("Rescan cancelled")
                    break
                summary.scanned += 1
                seen.add(rel_path)
                try:
                    self.index_file(rel_path)
                    summary.indexed += 1
                except (OSError, NotFoundError) as e:
                    summary.failed += 1
                    logger.warning(f"Skipping unreadable file {rel_path}: {e}")

            if reconcile and not summary.cancelled:
                stale = sorted(p for p in self.db.list_paths() if p not in seen)
                if stale:
                    summary.removed = self._remove_stale(stale)
                    logger.info(f"Reconciled index: removed {summary.removed} missing documents")

    def _remove_stale(self, paths: List[str]) -> int:
        # A file written after the walk passed its directory is still on disk
        with contextlib.ExitStack() as stack:
            for path in paths:
                stack.enter_context(self._path_lock(path))
            gone = [p for p in paths if not self._exists_on_disk(p)]
            return self.db.delete_documents(gone) if gone else 0

    # Lifecycle
    def start(self, watch: bool = True) -> ScanSummary:
        """Initial full scan, then (optionally) subscribe to live events."""
        with self._state_lock:
            if self.state != WatcherState.STOPPED:
                raise InvalidInputError(f"Coordinator is already {self.state.value}")
            # Remembered even when the root is missing, so reconfigure() restores it
            self._watching = watch
            if not self.root.is_dir():
                raise InvalidInputError(f"Watch directory does not exist: {self.root}")
            self.state = WatcherState.STARTING

        try:
            summary = self.index_existing_files()
            with self._state_lock:
                if self.state != WatcherState.STARTING:
                    # stop() was called during the scan
                    return summary
                if watch:
                    crawler = self._crawler()
                    debouncer = EventDebouncer(
                        on_index=self._on_debounced_index,
                        on_remove=self.remove_file,
                        debounce_ms=self.config.watch.debounce_ms,
                        max_queue_size=self.config.watch.max_queue_size,
                    )
                    self._watcher = FileWatcher(crawler, debouncer)
                    self._watcher.start()
                self.state = WatcherState.RUNNING
            return summary
        except BaseException:
            with self._state_lock:
                self.state = WatcherState.STOPPED
            raise

    def stop(self) -> None:
        """Unsubscribe and cancel any in-flight rescan. The index is left as is."""
        with self._state_lock:
            for cancel in self._active_scans:
                cancel.set()
            watcher, self._watcher = self._watcher, None
            self.state = WatcherState.STOPPED
        if watcher is not None:
            watcher.stop()

    def reconfigure(self, new_root: Union[str, Path], watch: Optional[bool] = None) -> ScanSummary:
        """
        Switch to a different watch directory: stop, swap the root, start.

        watch defaults to the mode last passed to start().
        """
        root = Path(os.path.expanduser(str(new_root)))
        if not root.is_dir():
            raise InvalidInputError(f"Directory does not exist: {new_root}")

        self.stop()
        # Wait for a cancelled scan to unwind before the root changes
        with self._scan_lock:
            self.config.watch_directory = str(root.resolve())
        logger.info(f"Watch directory changed to {self.config.watch_directory}")
        return self.start(watch=self._watching if watch is None else watch)

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_running
