import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

from ..utils import to_relative_path

logger = logging.getLogger(__name__)


class Crawler:
    def __init__(
        self,
        root_path: str,
        extensions: Iterable[str] = (".md",),
        ignore_dirs: Iterable[str] = ("node_modules", ".git"),
    ):
        self.root_path = Path(root_path)
        self.extensions = tuple(e.lower() for e in extensions)
        self.ignore_dirs = set(ignore_dirs)

    def matches(self, file_path: str) -> bool:
        """True if file_path has an indexed extension and is not under an ignored directory."""
        path = Path(file_path)
        if path.suffix.lower() not in self.extensions:
            return False
        rel = to_relative_path(self.root_path, path)
        if rel is None:
            return False
        return not any(part in self.ignore_dirs for part in rel.split("/")[:-1])

    def relative_path(self, file_path: str) -> Optional[str]:
        return to_relative_path(self.root_path, Path(file_path))

    def scan(self) -> Iterator[Tuple[str, Path]]:
        """
        Walks the root directory for matching files.
        Returns an iterator of (relative_path, absolute_path) in path order.
        """
        if not self.root_path.is_dir():
            logger.warning(f"Watch directory does not exist: {self.root_path}")
            return

        def on_error(error: OSError):
            logger.warning(f"Cannot read directory {error.filename}: {error}")

        for dirpath, dirnames, filenames in os.walk(self.root_path, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in self.ignore_dirs)
            for name in sorted(filenames):
                if Path(name).suffix.lower() not in self.extensions:
                    continue
                file_path = Path(dirpath) / name
                if not file_path.is_file():
                    continue
                rel_path = to_relative_path(self.root_path, file_path)
                if rel_path:
                    yield rel_path, file_path
