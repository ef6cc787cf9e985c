import pytest

from mdreader.database.manager import DatabaseManager
from mdreader.index.parser import parse_document
from mdreader.models.config import AppConfig


@pytest.fixture
def watch_dir(tmp_path):
    root = tmp_path / "notes"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path, watch_dir):
    return AppConfig(db_path=str(tmp_path / "index.db"), watch_directory=str(watch_dir))


@pytest.fixture
def manager(config):
    return DatabaseManager(config.db_path)


@pytest.fixture
def add_doc(manager):
    """Parse markdown text and upsert it with fixed timestamps."""

    def _add(path, text, modified_at=1_000_000, created_at=None):
        record = parse_document(path, text.encode("utf-8"))
        return manager.upsert_document(
            record,
            created_at=created_at if created_at is not None else modified_at,
            modified_at=modified_at,
        )

    return _add
