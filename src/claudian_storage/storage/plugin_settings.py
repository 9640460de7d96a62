"""Store for the plugin-private ``.claude/claudian-settings.json``.

These settings are not shared with the Claude CLI. Loading always yields a
complete :class:`PluginSettings`: missing fields come from the defaults and two
fields whose stored shape changed over time are normalized on the way in.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import (
    LEGACY_ACTIVE_CONVERSATION_KEY,
    PLUGIN_SETTINGS_PATH,
)
from claudian_storage.storage.errors import SettingsParseError
from claudian_storage.storage.file_adapter import FileAdapter, dumps_json, parse_json_object

PLATFORM_UNIX = "unix"
PLATFORM_WINDOWS = "windows"

DEFAULT_BLOCKED_COMMANDS: Dict[str, List[str]] = {
    PLATFORM_UNIX: [
        "rm -rf",
        "rm -r /",
        "chmod 777",
        "chmod -R 777",
        "mkfs",
        "dd if=",
        "> /dev/sd",
    ],
    PLATFORM_WINDOWS: [
        "Remove-Item -Recurse -Force",
        "Format-Volume",
        "Clear-Disk",
        "del /s /q",
        "rd /s /q",
        "rmdir /s /q",
        "format c:",
        "diskpart",
    ],
}

DEFAULT_KEYBOARD_NAVIGATION: Dict[str, str] = {
    "scrollUpKey": "w",
    "scrollDownKey": "s",
    "focusInputKey": "i",
}

# Keys found in old files that are never carried into the record.
_DROPPED_KEYS = frozenset({LEGACY_ACTIVE_CONVERSATION_KEY, "slashCommands"})


def default_blocked_commands() -> Dict[str, List[str]]:
    return {platform: list(rows) for platform, rows in DEFAULT_BLOCKED_COMMANDS.items()}


@dataclass
class PluginSettings:
    user_name: str = ""
    enable_blocklist: bool = True
    blocked_commands: Dict[str, List[str]] = field(default_factory=default_blocked_commands)
    model: str = "haiku"
    thinking_budget: str = "off"
    permission_mode: str = "yolo"
    last_non_plan_permission_mode: str = "yolo"
    excluded_tags: List[str] = field(default_factory=list)
    media_folder: str = ""
    environment_variables: str = ""
    env_snippets: List[Dict[str, Any]] = field(default_factory=list)
    system_prompt: str = ""
    allowed_export_paths: List[str] = field(default_factory=lambda: ["~/Desktop", "~/Downloads"])
    persistent_external_context_paths: List[str] = field(default_factory=list)
    keyboard_navigation: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_KEYBOARD_NAVIGATION))
    claude_cli_path: str = ""
    claude_cli_paths_by_host: Dict[str, str] = field(default_factory=dict)
    load_user_claude_settings: bool = True
    enable_auto_title_generation: bool = True
    title_generation_model: str = ""
    last_claude_model: str = ""
    last_custom_model: str = ""
    last_env_hash: str = ""
    locale: str = "en"
    enabled_plugins: List[str] = field(default_factory=list)
    # Keys written by newer versions or other tools, kept verbatim.
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PluginSettings":
        """Merge ``data`` onto the defaults; stored values win when well-typed."""

        settings = cls()
        for key, value in data.items():
            attr = PLUGIN_SETTING_KEYS.get(key)
            if attr is None:
                if key not in _DROPPED_KEYS:
                    settings.extra[key] = copy.deepcopy(value)
                continue
            setattr(settings, attr, _coerce(value, getattr(settings, attr)))
        settings.blocked_commands = normalize_blocked_commands(data.get("blockedCommands"))
        settings.claude_cli_paths_by_host = normalize_host_cli_paths(data.get("claudeCliPathsByHost"))
        return settings

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key, attr in PLUGIN_SETTING_KEYS.items():
            payload[key] = copy.deepcopy(getattr(self, attr))
        for key, value in self.extra.items():
            if key not in payload:
                payload[key] = copy.deepcopy(value)
        return payload

    def replace(self, **changes: Any) -> "PluginSettings":
        unknown = sorted(set(changes) - set(PLUGIN_SETTING_KEYS.values()) - {"extra"})
        if unknown:
            raise AttributeError("unknown plugin setting(s): {0}".format(", ".join(unknown)))
        updated = copy.deepcopy(self)
        for attr, value in changes.items():
            setattr(updated, attr, value)
        return updated


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


PLUGIN_SETTING_KEYS: Dict[str, str] = {
    _camel(item.name): item.name for item in fields(PluginSettings) if item.name != "extra"
}


def _coerce(value: object, default: object) -> Any:
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default
    if isinstance(default, str):
        return value if isinstance(value, str) else default
    if isinstance(default, list):
        return copy.deepcopy(value) if isinstance(value, list) else copy.deepcopy(default)
    if isinstance(default, dict):
        return copy.deepcopy(value) if isinstance(value, dict) else copy.deepcopy(default)
    return copy.deepcopy(value)


def _normalize_command_list(value: object, fallback: List[str]) -> List[str]:
    if not isinstance(value, list):
        return list(fallback)
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def normalize_blocked_commands(value: object) -> Dict[str, List[str]]:
    """Return the platform-keyed blocklist for any stored shape.

    A flat list is the pre-platform format and always meant unix commands.
    """

    defaults = default_blocked_commands()
    if isinstance(value, list):
        return {
            PLATFORM_UNIX: _normalize_command_list(value, defaults[PLATFORM_UNIX]),
            PLATFORM_WINDOWS: defaults[PLATFORM_WINDOWS],
        }
    if not isinstance(value, Mapping):
        return defaults
    return {
        PLATFORM_UNIX: _normalize_command_list(value.get(PLATFORM_UNIX), defaults[PLATFORM_UNIX]),
        PLATFORM_WINDOWS: _normalize_command_list(value.get(PLATFORM_WINDOWS), defaults[PLATFORM_WINDOWS]),
    }


def normalize_host_cli_paths(value: object) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    result: Dict[str, str] = {}
    for host, path in value.items():
        if isinstance(host, str) and isinstance(path, str) and path.strip():
            result[host] = path.strip()
    return result


class PluginSettingsStore:
    """Loads, saves and patches the plugin settings file.

    ``update`` is a read-modify-write without locking; the host serializes
    calls into the storage layer.
    """

    def __init__(self, adapter: FileAdapter, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)

    @property
    def path(self) -> str:
        return PLUGIN_SETTINGS_PATH

    def exists(self) -> bool:
        return self._adapter.is_file(PLUGIN_SETTINGS_PATH)

    def read_raw(self) -> Dict[str, Any]:
        if not self.exists():
            return {}
        try:
            return parse_json_object(self._adapter.read(PLUGIN_SETTINGS_PATH), PLUGIN_SETTINGS_PATH)
        except ValueError as exc:
            raise SettingsParseError(PLUGIN_SETTINGS_PATH, str(exc)) from exc

    def load(self) -> PluginSettings:
        if not self.exists():
            return PluginSettings()
        return PluginSettings.from_dict(self.read_raw())

    def save(self, settings: PluginSettings) -> None:
        self._adapter.write(PLUGIN_SETTINGS_PATH, dumps_json(settings.to_dict()))
        self._log.info("plugin_settings", "save", "saved plugin settings", path=PLUGIN_SETTINGS_PATH)

    def update(self, **changes: Any) -> PluginSettings:
        updated = self.load().replace(**changes)
        self.save(updated)
        return updated

    def set_last_model(self, model: str, is_custom: bool) -> None:
        if is_custom:
            self.update(last_custom_model=model)
        else:
            self.update(last_claude_model=model)

    def set_last_env_hash(self, env_hash: str) -> None:
        self.update(last_env_hash=env_hash)

    def get_legacy_active_conversation_id(self) -> Optional[str]:
        value = self.read_raw().get(LEGACY_ACTIVE_CONVERSATION_KEY)
        return value if isinstance(value, str) else None

    def clear_legacy_active_conversation_id(self) -> bool:
        raw = self.read_raw()
        if LEGACY_ACTIVE_CONVERSATION_KEY not in raw:
            return False
        del raw[LEGACY_ACTIVE_CONVERSATION_KEY]
        self._adapter.write(PLUGIN_SETTINGS_PATH, dumps_json(raw))
        return True
