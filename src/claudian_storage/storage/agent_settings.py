"""Store for the Claude CLI compatible ``.claude/settings.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import (
    AGENT_SETTINGS_PATH,
    AGENT_SETTINGS_SCHEMA,
    TOOL_PRIVATE_FIELDS,
)
from claudian_storage.storage.errors import SettingsParseError
from claudian_storage.storage.file_adapter import FileAdapter, dumps_json, parse_json_object
from claudian_storage.storage.permissions import (
    AgentPermissions,
    default_permissions,
    normalize_rule,
    resolve_permissions_field,
)

_BUCKETS = ("allow", "deny", "ask")


def _same_rule(stored: str, normalized: str) -> bool:
    """Compare a stored rule by its normalized form; unparseable ones literally."""

    try:
        return normalize_rule(stored) == normalized
    except ValueError:
        return stored == normalized


@dataclass
class AgentSettings:
    schema_ref: str = AGENT_SETTINGS_SCHEMA
    permissions: AgentPermissions = field(default_factory=default_permissions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$schema": self.schema_ref,
            "permissions": self.permissions.to_dict(),
        }


class AgentSettingsStore:
    """Reads and writes the settings file shared with the external CLI.

    Only keys the CLI understands are written. Keys the CLI owns but this
    store does not model (``env``, ``model``, hooks...) survive ordinary saves.
    """

    def __init__(self, adapter: FileAdapter, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)

    @property
    def path(self) -> str:
        return AGENT_SETTINGS_PATH

    def exists(self) -> bool:
        return self._adapter.is_file(AGENT_SETTINGS_PATH)

    def read_raw(self) -> Dict[str, Any]:
        if not self.exists():
            return {}
        try:
            return parse_json_object(self._adapter.read(AGENT_SETTINGS_PATH), AGENT_SETTINGS_PATH)
        except ValueError as exc:
            raise SettingsParseError(AGENT_SETTINGS_PATH, str(exc)) from exc

    def load(self) -> AgentSettings:
        raw = self.read_raw()
        schema_ref = raw.get("$schema")
        return AgentSettings(
            schema_ref=schema_ref if isinstance(schema_ref, str) and schema_ref else AGENT_SETTINGS_SCHEMA,
            permissions=resolve_permissions_field(raw.get("permissions")),
        )

    def save(self, settings: AgentSettings, strip_private: bool = False) -> None:
        """Write ``settings``.

        With ``strip_private`` the file is rewritten from scratch with only
        ``$schema`` and ``permissions``; otherwise unknown CLI keys already on
        disk are kept and tool-private keys are dropped.
        """

        if strip_private:
            payload = settings.to_dict()
        else:
            payload = {
                key: value
                for key, value in self.read_raw().items()
                if key not in TOOL_PRIVATE_FIELDS
            }
            payload.update(settings.to_dict())
        self._adapter.write(AGENT_SETTINGS_PATH, dumps_json(payload))
        self._log.info(
            "agent_settings",
            "save",
            "saved agent settings",
            path=AGENT_SETTINGS_PATH,
            strip_private=strip_private,
        )

    def get_permissions(self) -> AgentPermissions:
        return self.load().permissions

    def update_permissions(self, permissions: AgentPermissions) -> None:
        settings = self.load()
        settings.permissions = permissions
        self.save(settings)

    def add_allow_rule(self, rule: str) -> None:
        self._add_rule("allow", rule)

    def add_deny_rule(self, rule: str) -> None:
        self._add_rule("deny", rule)

    def add_ask_rule(self, rule: str) -> None:
        self._add_rule("ask", rule)

    def remove_rule(self, rule: str) -> bool:
        normalized = normalize_rule(rule)
        settings = self.load()
        removed = False
        for bucket in _BUCKETS:
            rules = getattr(settings.permissions, bucket)
            kept = [item for item in rules if not _same_rule(item, normalized)]
            if len(kept) != len(rules):
                setattr(settings.permissions, bucket, kept)
                removed = True
        if removed:
            self.save(settings)
        return removed

    def _add_rule(self, bucket: str, rule: str) -> None:
        normalized = normalize_rule(rule)
        settings = self.load()
        # A rule lives in exactly one bucket.
        for other in _BUCKETS:
            if other == bucket:
                continue
            rules = getattr(settings.permissions, other)
            setattr(settings.permissions, other, [item for item in rules if not _same_rule(item, normalized)])
        target = getattr(settings.permissions, bucket)
        if not any(_same_rule(item, normalized) for item in target):
            target.append(normalized)
        self.save(settings)
