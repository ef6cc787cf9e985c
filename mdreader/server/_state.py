"""Per-application state for the mdreader server."""

import dataclasses
import logging
from pathlib import Path
from typing import Optional

from fastapi import Request
from rich.console import Console as RichConsole

from mdreader.database.manager import DatabaseManager
from mdreader.index.coordinator import ReindexCoordinator
from mdreader.models.config import AppConfig
from mdreader.search.fts import SearchService

logger = logging.getLogger(__name__)

# Server-side console for startup/shutdown output
srv_console = RichConsole(stderr=False)


@dataclasses.dataclass
class ServerState:
    """Everything a request handler needs, built once by create_app()."""

    config: AppConfig
    db: DatabaseManager
    search: SearchService
    coordinator: ReindexCoordinator
    config_path: Optional[Path] = None
    start_watcher: bool = True

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        config_path: Optional[Path] = None,
        start_watcher: bool = True,
    ) -> "ServerState":
        db = DatabaseManager(config.db_path)
        return cls(
            config=config,
            db=db,
            search=SearchService(
                db,
                snippet_tokens=config.search.snippet_tokens,
                default_limit=config.search.default_limit,
            ),
            coordinator=ReindexCoordinator(db, config),
            config_path=config_path,
            start_watcher=start_watcher,
        )


def get_state(request: Request) -> ServerState:
    return request.app.state.mdreader
