import logging
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer

from .crawler import Crawler
from .debouncer import EventDebouncer, FileEventType

logger = logging.getLogger(__name__)


class IndexingEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler.

    Filters raw filesystem events down to matching files and forwards them to
    the debouncer as (kind, relative path) pairs. Runs on the observer thread.
    """

    def __init__(self, crawler: Crawler, debouncer: EventDebouncer):
        super().__init__()
        self.crawler = crawler
        self.debouncer = debouncer

    def _push(self, kind: FileEventType, src_path) -> None:
        src_path = src_path.decode() if isinstance(src_path, bytes) else src_path
        if not self.crawler.matches(src_path):
            return
        rel_path = self.crawler.relative_path(src_path)
        if rel_path is None:
            return
        logger.debug(f"File {kind.value}: {rel_path}")
        self.debouncer.push_event(kind, rel_path)

    def on_created(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._push(FileEventType.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._push(FileEventType.MODIFIED, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        if event.is_directory:
            return
        self._push(FileEventType.REMOVED, event.src_path)

    def on_moved(self, event: FileSystemMovedEvent):
        # A rename is a delete of the old key plus a create of the new one
        if event.is_directory:
            return
        self._push(FileEventType.REMOVED, event.src_path)
        self._push(FileEventType.CREATED, event.dest_path)


class FileWatcher:
    """Recursive watchdog subscription on the watch root."""

    def __init__(self, crawler: Crawler, debouncer: EventDebouncer):
        self.crawler = crawler
        self.debouncer = debouncer
        self._observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        handler = IndexingEventHandler(self.crawler, self.debouncer)
        observer = Observer()
        observer.schedule(handler, str(self.crawler.root_path), recursive=True)
        self.debouncer.start()
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.crawler.root_path}")

    def stop(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join()
        self.debouncer.stop()
        logger.info(f"Stopped watching {self.crawler.root_path}")
