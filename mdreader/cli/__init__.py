"""CLI module - contains all CLI command implementations.

This module exports:
- Context: CLI context class
- console: Rich console for output
- fail: print an error and exit with status 1
- formatting helpers shared by the command modules
"""

from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mdreader.database.manager import DatabaseManager
from mdreader.index.coordinator import ReindexCoordinator
from mdreader.models.config import AppConfig, get_default_config_path

console = Console()


class Context:
    """CLI context that holds config, database manager and coordinator."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or get_default_config_path()
        self.config = AppConfig.load(self.config_path)
        self._db: Optional[DatabaseManager] = None
        self._coordinator: Optional[ReindexCoordinator] = None

    @property
    def db(self) -> DatabaseManager:
        if self._db is None:
            self._db = DatabaseManager(self.config.db_path)
        return self._db

    @property
    def coordinator(self) -> ReindexCoordinator:
        if self._coordinator is None:
            self._coordinator = ReindexCoordinator(self.db, self.config)
        return self._coordinator

    def save_config(self) -> None:
        self.config.save(self.config_path)


def fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise click.exceptions.Exit(1)


def print_table(title: str, columns: list[tuple[str, str]]) -> Table:
    """Create a table with given columns."""
    table = Table(title=title)
    for col_name, style in columns:
        table.add_column(col_name, style=style)
    return table


def format_size(size: int) -> str:
    """Format file size in human-readable format."""
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    else:
        return f"{size / (1024 * 1024):.1f} MB"


def format_timestamp(millis: Optional[int]) -> str:
    if millis is None:
        return "-"
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def parse_date(value: Optional[str], end_of_day: bool = False) -> Optional[int]:
    """Parse YYYY-MM-DD (local time) or raw Unix millis into millis."""
    if value is None:
        return None
    if value.isdigit():
        return int(value)
    try:
        day = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD or Unix millis, got {value!r}")
    millis = int(day.timestamp() * 1000)
    return millis + 86_400_000 - 1 if end_of_day else millis
