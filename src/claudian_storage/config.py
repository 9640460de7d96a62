"""Configuration loading and path resolution for the storage tool."""

from __future__ import annotations

import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

try:  # pragma: no cover - exercised on Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python 3.9/3.10
    import tomli as tomllib  # type: ignore[no-redef]

from claudian_storage.kernel.debug_log import ALLOWED_REDACTION
from claudian_storage.storage.constants import CLAUDE_DIR
from claudian_storage.storage.errors import StorageConfigError

PLUGIN_DIR_PARTS = (".obsidian", "plugins", "claudian")
STATE_FILE_NAME = "data.json"
LOGS_DIR_NAME = "logs"
CONFIG_FILE_NAME = "storage.toml"

DEFAULT_LOGS_ENABLED = True
DEFAULT_LOGS_MAX_FILE_BYTES = 2 * 1024 * 1024
DEFAULT_LOGS_MAX_FILES = 3
DEFAULT_LOGS_REDACTION = "default"


@dataclass(frozen=True)
class StorageSettings:
    """Resolved paths and log options for one CLI invocation."""

    vault_root: Path
    plugin_dir: Path
    hostname: str
    logs_enabled: bool = DEFAULT_LOGS_ENABLED
    logs_max_file_bytes: int = DEFAULT_LOGS_MAX_FILE_BYTES
    logs_max_files: int = DEFAULT_LOGS_MAX_FILES
    logs_redaction: str = DEFAULT_LOGS_REDACTION

    @property
    def claude_root(self) -> Path:
        return self.vault_root / CLAUDE_DIR

    @property
    def state_file(self) -> Path:
        return self.plugin_dir / STATE_FILE_NAME

    @property
    def logs_dir(self) -> Path:
        return self.plugin_dir / LOGS_DIR_NAME

    @property
    def config_file(self) -> Path:
        return self.plugin_dir / CONFIG_FILE_NAME


def _safe_positive_int_or_default(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        converted = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if converted <= 0:
        return default
    return converted


def _safe_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _safe_redaction(value: object, default: str) -> str:
    normalized = str(value or default).strip().lower()
    if normalized not in ALLOWED_REDACTION:
        return default
    return normalized


def resolve_plugin_dir(vault_root: Path, plugin_dir: Optional[Path] = None) -> Path:
    if plugin_dir is not None:
        return Path(plugin_dir).expanduser().resolve()
    return vault_root.joinpath(*PLUGIN_DIR_PARTS)


def load_config_file(path: Path) -> Dict[str, object]:
    """Return the parsed ``storage.toml``; a missing file is an empty table."""

    if not path.is_file():
        return {}
    try:
        parsed = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise StorageConfigError("invalid config file: {0}".format(path)) from exc
    return parsed


def load_settings(
    vault_dir: Path,
    plugin_dir: Optional[Path] = None,
    hostname: Optional[str] = None,
) -> StorageSettings:
    """Resolve settings from the vault, the optional config file and overrides."""

    vault_root = Path(vault_dir).expanduser().resolve()
    if not vault_root.is_dir():
        raise StorageConfigError("vault directory not found: {0}".format(vault_root))
    resolved_plugin_dir = resolve_plugin_dir(vault_root, plugin_dir)

    data = load_config_file(resolved_plugin_dir / CONFIG_FILE_NAME)
    logs = data.get("logs")
    if logs is None:
        logs = {}
    if not isinstance(logs, dict):
        raise StorageConfigError("invalid config file: [logs] must be a table")

    return StorageSettings(
        vault_root=vault_root,
        plugin_dir=resolved_plugin_dir,
        hostname=str(hostname or "").strip() or socket.gethostname(),
        logs_enabled=_safe_bool(logs.get("enabled"), DEFAULT_LOGS_ENABLED),
        logs_max_file_bytes=_safe_positive_int_or_default(
            logs.get("max_file_bytes"),
            DEFAULT_LOGS_MAX_FILE_BYTES,
        ),
        logs_max_files=_safe_positive_int_or_default(logs.get("max_files"), DEFAULT_LOGS_MAX_FILES),
        logs_redaction=_safe_redaction(logs.get("redaction"), DEFAULT_LOGS_REDACTION),
    )
