from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
import yaml
from pathlib import Path


def get_default_config_dir() -> Path:
    return Path.home() / ".mdreader"


def get_default_config_path() -> Path:
    return get_default_config_dir() / "config.yml"


class WatchConfig(BaseModel):
    extensions: List[str] = [".md"]
    ignore_dirs: List[str] = ["node_modules", ".git"]
    # Quiet period before a burst of create/modify events becomes one index call
    debounce_ms: int = 300
    max_queue_size: int = 10000
    # Delete stored documents whose file is gone after every full rescan
    reconcile_on_scan: bool = True

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized


class SearchConfig(BaseModel):
    default_limit: int = 20
    snippet_tokens: int = 30


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3001


class AppConfig(BaseModel):
    db_path: str = Field(default_factory=lambda: str(get_default_config_dir() / "documents.db"))
    watch_directory: str = Field(default_factory=lambda: str(Path.cwd()))
    # Uploaded files land in this directory relative to the watch root ("" = root)
    upload_subdir: str = ""
    watch: WatchConfig = Field(default_factory=WatchConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "info"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppConfig":
        config_path = path or get_default_config_path()
        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            if data is None:
                return cls()
            return cls.model_validate(data)

    def save(self, path: Optional[Path] = None):
        config_path = path or get_default_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, allow_unicode=True)

    def upload_directory(self) -> Path:
        return Path(self.watch_directory).expanduser() / self.upload_subdir
