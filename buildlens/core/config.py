"""Runtime settings and user option file discovery."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from buildlens.core.options import ConfigurationError

_env_path = Path.cwd() / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


USER_CONFIG_FILENAMES: tuple[str, ...] = (
    "buildlens.yaml",
    "buildlens.yml",
    "buildlens.json",
)


@dataclass(frozen=True)
class IngestionSettings:
    """Bounds applied by the graph ingestor."""

    lock_timeout_seconds: float = 5.0
    max_logged_malformed: int = 20


def _get_value(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    return value if value is not None else default


def _env_int(name: str, default: int) -> int:
    value = _get_value(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = _get_value(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_path(name: str) -> Path | None:
    value = _get_value(name)
    if not value:
        return None
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = Path.cwd() / candidate
    return candidate


def _build_ingestion_settings() -> IngestionSettings:
    timeout = _env_float("BUILDLENS_INGEST_LOCK_TIMEOUT", 5.0)
    max_logged = _env_int("BUILDLENS_INGEST_MAX_LOGGED_MALFORMED", 20)
    return IngestionSettings(
        lock_timeout_seconds=timeout if timeout > 0 else 5.0,
        max_logged_malformed=max(max_logged, 0),
    )


INGESTION: IngestionSettings
USER_CONFIG_PATH: Path | None


def configure() -> None:
    """Re-read settings from the environment."""

    global INGESTION, USER_CONFIG_PATH

    INGESTION = _build_ingestion_settings()
    USER_CONFIG_PATH = _env_path("BUILDLENS_CONFIG")


configure()


def discover_user_config(root: Path | None = None) -> Path | None:
    """Locate the option file to use, honouring ``BUILDLENS_CONFIG`` first."""

    if USER_CONFIG_PATH is not None:
        return USER_CONFIG_PATH
    base = root if root is not None else Path.cwd()
    for name in USER_CONFIG_FILENAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_user_config(path: Path) -> dict[str, Any]:
    """Read raw plugin options from a YAML or JSON file."""

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError("options", f"cannot read {path}: {exc}") from exc

    try:
        if path.suffix.lower() == ".json":
            payload = json.loads(text) if text.strip() else {}
        else:
            payload = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError("options", f"cannot parse {path}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise ConfigurationError("options", f"{path} must contain a mapping")
    return dict(payload)


__all__ = [
    "INGESTION",
    "IngestionSettings",
    "USER_CONFIG_FILENAMES",
    "USER_CONFIG_PATH",
    "configure",
    "discover_user_config",
    "load_user_config",
]
