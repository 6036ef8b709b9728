"""Configuration management for workon."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when the user configuration file cannot be used."""


class WorkonSettings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    log_level: str = Field(default="WARNING", validation_alias="WORKON_LOG_LEVEL")
    debug: bool = Field(default=False, validation_alias="WORKON_DEBUG")
    verbose: bool = Field(default=False, validation_alias="WORKON_VERBOSE")
    dry_run: bool = Field(default=False, validation_alias="WORKON_DRY_RUN")
    spawn_timeout: float = Field(default=15.0, validation_alias="WORKON_SPAWN_TIMEOUT")
    poll_interval: float = Field(default=0.5, validation_alias="WORKON_POLL_INTERVAL")
    kill_grace: float = Field(default=1.0, validation_alias="WORKON_KILL_GRACE")
    launcher: str | None = Field(default=None, validation_alias="WORKON_LAUNCHER")
    awesome_client: str | None = Field(default=None, validation_alias="WORKON_AWESOME_CLIENT")
    projects_path: str | None = Field(default=None, validation_alias="WORKON_PROJECTS_PATH")
    cache_home: Path = Field(default=Path("~/.cache"), validation_alias="XDG_CACHE_HOME")
    config_home: Path = Field(default=Path("~/.config"), validation_alias="XDG_CONFIG_HOME")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WORKON_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("spawn_timeout", "poll_interval", "kill_grace")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timing settings must be > 0")
        return value

    @field_validator("cache_home", "config_home", mode="before")
    @classmethod
    def _default_xdg_dir(cls, value, info):
        if value is None or value == "":
            return Path("~/.cache") if info.field_name == "cache_home" else Path("~/.config")
        return value

    @field_validator("launcher", "awesome_client", "projects_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def effective_log_level(self) -> str:
        """Log level after applying the debug/verbose switches."""

        if self.debug:
            return "DEBUG"
        if self.verbose and self.log_level not in {"DEBUG", "INFO"}:
            return "INFO"
        return self.log_level

    @property
    def cache_dir(self) -> Path:
        return self.cache_home.expanduser() / "workon"

    @property
    def config_file(self) -> Path:
        return self.config_home.expanduser() / "workon" / "config.yaml"

    def session_path(self, project_root: Path | str) -> Path:
        """Return the session file addressed by ``project_root``."""

        return session_path_for(project_root, self.cache_dir)


def session_path_for(project_root: Path | str, cache_dir: Path) -> Path:
    """Derive the deterministic session file path for a project root."""

    canonical = os.path.realpath(str(project_root))
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()
    return Path(cache_dir) / f"{digest}.json"


@dataclass
class ProjectPathCache:
    """Project search paths read from the config file, keyed by its mtime."""

    config_file: Path
    _mtime: float | None = field(default=None, init=False, repr=False)
    _paths: tuple[Path, ...] = field(default=(), init=False, repr=False)
    loads: int = field(default=0, init=False)

    def get(self) -> tuple[Path, ...]:
        """Return cached paths, re-parsing only when the file changed."""

        try:
            mtime = self.config_file.stat().st_mtime
        except FileNotFoundError:
            self._mtime = None
            self._paths = ()
            return ()

        if self._mtime is not None and self._mtime == mtime:
            return self._paths

        self._paths = self._load()
        self._mtime = mtime
        self.loads += 1
        logger.debug(
            "Loaded project search paths",
            extra={"config_file": str(self.config_file), "count": len(self._paths)},
        )
        return self._paths

    def _load(self) -> tuple[Path, ...]:
        try:
            document = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Configuration file is not readable: {self.config_file}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(
                f"Failed to parse configuration file: {self.config_file} (invalid YAML syntax)"
            ) from exc

        if document is None:
            return ()
        if not isinstance(document, dict):
            raise ConfigError(f"Configuration file must be a mapping: {self.config_file}")

        raw = document.get("projects_path")
        if raw is None:
            return ()
        if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
            raise ConfigError(
                f"Invalid projects_path format in config file: {self.config_file} "
                "(must be an array of strings)"
            )
        return tuple(Path(item).expanduser() for item in raw)


def project_search_paths(settings: WorkonSettings, cache: ProjectPathCache | None = None) -> tuple[Path, ...]:
    """Resolve project search paths: environment first, then the config file."""

    if settings.projects_path:
        parts = [part.strip() for part in settings.projects_path.split(os.pathsep) if part.strip()]
        return tuple(Path(part).expanduser() for part in parts)

    cache = cache or ProjectPathCache(settings.config_file)
    return cache.get()


def configure_logging(level: str) -> None:
    """Configure root logging for the command line."""

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


@lru_cache(maxsize=1)
def get_settings() -> WorkonSettings:
    """Return cached settings instance."""

    return WorkonSettings()


__all__ = [
    "ConfigError",
    "ProjectPathCache",
    "WorkonSettings",
    "configure_logging",
    "get_settings",
    "project_search_paths",
    "session_path_for",
]
