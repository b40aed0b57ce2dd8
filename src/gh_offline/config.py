"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

APP_NAME = "gh-offline"


def default_data_dir() -> Path:
    """User-scoped data directory (XDG base directory layout)."""
    base = os.getenv("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_NAME


@dataclass
class GitHubConfig:
    """GitHub API settings."""
    api_base: str = "https://api.github.com"
    per_page: int = 100
    timeout: float = 30.0


@dataclass
class SyncConfig:
    """Sync engine settings."""
    concurrency: int = 4
    max_attempts: int = 5
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 60.0
    default_rate_limit_delay: float = 60.0


@dataclass
class PathsConfig:
    """Path settings."""
    data_dir: Path = field(default_factory=default_data_dir)
    db_filename: str = "mirror.db"


@dataclass
class Settings:
    """Application settings."""

    # API token (from environment only)
    github_token: Optional[str] = None

    # Config sections
    github: GitHubConfig = field(default_factory=GitHubConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @property
    def db_path(self) -> Path:
        return self.paths.data_dir / self.paths.db_filename

    @property
    def concurrency(self) -> int:
        return self.sync.concurrency


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Optional[Path] = None) -> Settings:
    """Get application settings from YAML config and environment.

    The config file is looked up in this order: explicit `config_path`,
    `GH_OFFLINE_CONFIG`, `./config.yaml`.
    """
    if config_path is None:
        config_path = Path(os.getenv("GH_OFFLINE_CONFIG", "config.yaml"))

    # Load YAML config
    config = load_config(config_path)

    # Token comes from the environment only
    settings = Settings(github_token=os.getenv("GITHUB_TOKEN") or None)

    # Apply YAML config
    if "github" in config:
        for key, value in config["github"].items():
            setattr(settings.github, key, value)

    if "sync" in config:
        for key, value in config["sync"].items():
            setattr(settings.sync, key, value)

    if "paths" in config:
        for key, value in config["paths"].items():
            setattr(settings.paths, key, Path(value).expanduser() if key == "data_dir" else value)

    return settings
