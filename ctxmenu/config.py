"""Settings — ``~/.ctxmenu/config.yaml``.

The ownership tag is generated once per installation and persisted; every
later run must use the same tag or previously created items become
invisible (and undeletable) to the tool.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ctxmenu.errors import ConfigError
from ctxmenu.store.registry import DEFAULT_ROOT_PATH

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"
STORE_FILE = "store.json"
HOME_ENV_VAR = "CTXMENU_HOME"
BACKENDS = ("registry", "file")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def default_config_dir() -> Path:
    env = os.environ.get(HOME_ENV_VAR)
    return Path(env) if env else Path.home() / ".ctxmenu"


def default_backend() -> str:
    return "registry" if sys.platform == "win32" else "file"


@dataclass
class Settings:
    """Persisted configuration for one installation."""

    ownership_tag: str = field(default_factory=lambda: str(uuid.uuid4()))
    backend: str = field(default_factory=default_backend)
    root_path: str = DEFAULT_ROOT_PATH
    store_file: str = ""  # Defaults to <config dir>/store.json
    log_level: str = "WARNING"

    def validate(self) -> None:
        if not isinstance(self.ownership_tag, str) or not self.ownership_tag.strip():
            raise ConfigError("ownership_tag must be a non-empty string")
        if self.backend not in BACKENDS:
            raise ConfigError(f"backend must be one of {', '.join(BACKENDS)}, got {self.backend!r}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")


def load_settings(config_dir: Optional[str | Path] = None) -> Settings:
    """Load settings, creating the config file with a fresh tag on first run."""
    base = Path(config_dir) if config_dir else default_config_dir()
    path = base / CONFIG_FILE

    if not path.exists():
        settings = Settings(store_file=str(base / STORE_FILE))
        save_settings(settings, base)
        logger.info("Created %s with ownership tag %s", path, settings.ownership_tag)
        return settings

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    if "ownership_tag" not in data:
        raise ConfigError(f"{path} has no ownership_tag; refusing to generate a new one")

    settings = Settings(
        ownership_tag=str(data["ownership_tag"]),
        backend=data.get("backend", default_backend()),
        root_path=data.get("root_path", DEFAULT_ROOT_PATH),
        store_file=data.get("store_file") or str(base / STORE_FILE),
        log_level=str(data.get("log_level", "WARNING")),
    )
    settings.validate()
    return settings


def save_settings(settings: Settings, config_dir: Optional[str | Path] = None) -> Path:
    base = Path(config_dir) if config_dir else default_config_dir()
    path = base / CONFIG_FILE
    try:
        base.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(asdict(settings), f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e
    return path
