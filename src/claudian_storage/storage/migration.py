"""Startup sequencing and on-disk format upgrades.

Three older layouts are upgraded in place:

* a combined ``settings.json`` that mixed plugin preferences into the file
  shared with the Claude CLI (split into two files),
* bookkeeping fields in the host data blob (merged into plugin settings),
* inline command and conversation arrays in the host data blob (written out
  one file per entity, then removed from the blob).

Every step is idempotent: a second :meth:`MigrationCoordinator.initialize`
with no external change only performs existence checks.
"""

from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.agent_settings import AgentSettings, AgentSettingsStore
from claudian_storage.storage.commands import CommandDefinition, CommandStore
from claudian_storage.storage.constants import (
    BLOB_CONSUMED_KEYS,
    BLOB_STATE_KEYS,
    CLAUDE_DIR,
    COMMANDS_DIR,
    DEPRECATED_FIELDS,
    LEGACY_CLI_PATHS_KEY,
    SESSIONS_DIR,
    TOOL_PRIVATE_FIELDS,
)
from claudian_storage.storage.env import env_object_to_text, merge_environment_variables
from claudian_storage.storage.errors import SettingsParseError, VerificationError
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.legacy_state import LegacyStateStore
from claudian_storage.storage.mcp import McpRegistryStore
from claudian_storage.storage.permissions import resolve_permissions_field
from claudian_storage.storage.plugin_settings import (
    PLUGIN_SETTING_KEYS,
    PluginSettings,
    PluginSettingsStore,
)
from claudian_storage.storage.results import (
    FAILED,
    MIGRATED,
    SKIPPED_EXISTING,
    ContentMigrationReport,
)
from claudian_storage.storage.sessions import ConversationTranscript, SessionStore

KIND_COMMAND = "command"
KIND_CONVERSATION = "conversation"

# Written and read back during the split; absent means the write was lost.
VERIFICATION_SENTINEL = "userName"


def cli_platform_key(platform: Optional[str] = None) -> str:
    value = platform or sys.platform
    if value.startswith("win"):
        return "windows"
    if value == "darwin":
        return "macos"
    return "linux"


@dataclass
class CombinedSettings:
    agent: AgentSettings
    plugin: PluginSettings


@dataclass
class MigrationSummary:
    split_migrated: bool = False
    state_merged: bool = False
    content: Optional[ContentMigrationReport] = None
    legacy_cleared: bool = False
    cli_path_migrated: bool = False

    @property
    def changed(self) -> bool:
        return (
            self.split_migrated
            or self.state_merged
            or self.legacy_cleared
            or self.cli_path_migrated
            or (self.content is not None and self.content.count(MIGRATED) > 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "split_migrated": self.split_migrated,
            "state_merged": self.state_merged,
            "legacy_cleared": self.legacy_cleared,
            "cli_path_migrated": self.cli_path_migrated,
            "content": None,
        }
        if self.content is not None:
            payload["content"] = {
                "migrated": self.content.count(MIGRATED),
                "skipped_existing": self.content.count(SKIPPED_EXISTING),
                "failed": [
                    {"path": path, "reason": reason} for path, reason in self.content.failures()
                ],
            }
        return payload


def _has_items(value: object) -> bool:
    return isinstance(value, list) and len(value) > 0


class MigrationCoordinator:
    """Owns the stores and runs every migration once at startup.

    Construct one per vault and pass it around; the hostname and the resolved
    CLI path are cached on the instance.
    """

    def __init__(
        self,
        adapter: FileAdapter,
        legacy_state: LegacyStateStore,
        *,
        debug_log: Optional[DebugLogWriter] = None,
        hostname: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)
        self.legacy_state = legacy_state
        self.agent_settings = AgentSettingsStore(adapter, self._log)
        self.plugin_settings = PluginSettingsStore(adapter, self._log)
        self.commands = CommandStore(adapter, self._log)
        self.sessions = SessionStore(adapter, self._log)
        self.mcp = McpRegistryStore(adapter, self._log)
        self.hostname = hostname or socket.gethostname()
        self.platform_key = cli_platform_key(platform)
        self.last_summary: Optional[MigrationSummary] = None
        self._resolved_cli_path: Optional[str] = None
        self._cli_path_inputs: Optional[Tuple[str, str]] = None

    @property
    def adapter(self) -> FileAdapter:
        return self._adapter

    def initialize(self) -> CombinedSettings:
        self._log.info("migration", "initialize_start", "storage initialize started", root=str(self._adapter.root))
        self.ensure_directories()
        summary = self.run_migrations()

        agent = self.agent_settings.load()
        plugin = self.plugin_settings.load()
        if self.migrate_cli_path_to_host(plugin):
            self.plugin_settings.save(plugin)
            summary.cli_path_migrated = True

        self.last_summary = summary
        self._log.info("migration", "initialize_done", "storage initialize finished", **summary.to_dict())
        return CombinedSettings(agent=agent, plugin=plugin)

    def ensure_directories(self) -> None:
        for rel_dir in (CLAUDE_DIR, COMMANDS_DIR, SESSIONS_DIR):
            self._adapter.ensure_folder(rel_dir)

    def run_migrations(self) -> MigrationSummary:
        summary = MigrationSummary()
        if self.agent_settings.exists() and not self.plugin_settings.exists():
            summary.split_migrated = self.migrate_split()

        blob = self.legacy_state.load()
        if blob is None:
            return summary

        has_state = any(key in blob for key in BLOB_STATE_KEYS)
        has_content = _has_items(blob.get("slashCommands")) or _has_items(blob.get("conversations"))
        if has_state:
            summary.state_merged = self.migrate_blob_state(blob)
        if has_content:
            summary.content = self.migrate_legacy_content(blob)

        content_failed = summary.content is not None and summary.content.had_errors
        if (has_state or has_content) and not content_failed:
            summary.legacy_cleared = self.clear_legacy_state()
        elif content_failed:
            self._log.warn(
                "migration",
                "legacy_kept",
                "legacy state kept because content migration failed",
                failures=len(summary.content.failures()),
            )
        return summary

    def migrate_split(self) -> bool:
        """Move plugin fields out of a combined ``settings.json``.

        Returns False without writing when the file holds no plugin fields.
        Raises :class:`VerificationError` before ``settings.json`` is touched
        if the new plugin settings file cannot be read back.
        """

        raw = self.agent_settings.read_raw()
        private_keys = sorted(key for key in raw if key in TOOL_PRIVATE_FIELDS)
        if not private_keys:
            self._log.info("migration", "split_skip", "settings.json already clean")
            return False

        self._log.info("migration", "split_start", "splitting combined settings.json", keys=private_keys)
        legacy = {
            key: value
            for key, value in raw.items()
            if key in TOOL_PRIVATE_FIELDS and key not in DEPRECATED_FIELDS
        }
        environment = raw.get("environmentVariables")
        environment = environment if isinstance(environment, str) else ""
        from_cli = env_object_to_text(raw.get("env"))
        if from_cli:
            environment = merge_environment_variables(environment, from_cli)
        legacy["environmentVariables"] = environment

        self.plugin_settings.save(PluginSettings.from_dict(legacy))
        self._verify_plugin_settings()

        agent = AgentSettings(permissions=resolve_permissions_field(raw.get("permissions")))
        self.agent_settings.save(agent, strip_private=True)
        self._log.info(
            "migration",
            "split_done",
            "combined settings split",
            allow=len(agent.permissions.allow),
            deny=len(agent.permissions.deny),
            ask=len(agent.permissions.ask),
        )
        return True

    def migrate_blob_state(self, blob: Dict[str, Any]) -> bool:
        """Copy bookkeeping fields from the blob; existing settings win."""

        settings = self.plugin_settings.load()
        changes: Dict[str, str] = {}
        for key in BLOB_STATE_KEYS:
            value = blob.get(key)
            attr = PLUGIN_SETTING_KEYS[key]
            if isinstance(value, str) and value and not getattr(settings, attr):
                changes[attr] = value
        if not changes:
            self._log.info("migration", "state_skip", "blob state already migrated")
            return False
        self.plugin_settings.save(settings.replace(**changes))
        self._log.info("migration", "state_merged", "merged blob state", fields=sorted(changes))
        return True

    def migrate_legacy_content(self, blob: Dict[str, Any]) -> ContentMigrationReport:
        """Phase one: write inline commands and conversations to their own files.

        Targets that already exist are left alone. Each failure is recorded
        and the caller decides whether the blob may be cleared.
        """

        report = ContentMigrationReport()
        commands = blob.get("slashCommands")
        for index, record in enumerate(commands if isinstance(commands, list) else []):
            self._migrate_command(report, index, record)
        conversations = blob.get("conversations")
        for index, record in enumerate(conversations if isinstance(conversations, list) else []):
            self._migrate_conversation(report, index, record)
        self._log.info(
            "migration",
            "content_done",
            "legacy content migration finished",
            migrated=report.count(MIGRATED),
            skipped_existing=report.count(SKIPPED_EXISTING),
            failed=report.count(FAILED),
        )
        return report

    def clear_legacy_state(self) -> bool:
        """Phase two: drop consumed keys from the blob, keeping host keys."""

        blob = self.legacy_state.load()
        if blob is None or not any(key in blob for key in BLOB_CONSUMED_KEYS):
            return False
        removed = sorted(key for key in blob if key in BLOB_CONSUMED_KEYS)
        self.legacy_state.save({key: value for key, value in blob.items() if key not in BLOB_CONSUMED_KEYS})
        self._log.info("migration", "legacy_cleared", "cleared consumed legacy keys", keys=removed)
        return True

    def migrate_cli_path_to_host(self, settings: PluginSettings) -> bool:
        """Move a legacy CLI path under this host's entry; mutates ``settings``."""

        changed = False
        platform_paths = settings.extra.pop(LEGACY_CLI_PATHS_KEY, None)
        if platform_paths is not None:
            changed = True
        if settings.claude_cli_paths_by_host.get(self.hostname):
            return changed

        candidate = ""
        if isinstance(platform_paths, dict):
            value = platform_paths.get(self.platform_key)
            candidate = value.strip() if isinstance(value, str) else ""
        if not candidate:
            candidate = settings.claude_cli_path.strip()
        if not candidate:
            return changed

        settings.claude_cli_paths_by_host[self.hostname] = candidate
        settings.claude_cli_path = ""
        self._log.info("migration", "cli_path_host", "moved cli path under hostname", hostname=self.hostname)
        return True

    def resolve_cli_path(self, settings: PluginSettings) -> Optional[str]:
        """Return the configured CLI path for this host if it is an existing file."""

        host_path = settings.claude_cli_paths_by_host.get(self.hostname, "").strip()
        legacy_path = settings.claude_cli_path.strip()
        inputs = (host_path, legacy_path)
        if self._resolved_cli_path is not None and inputs == self._cli_path_inputs:
            return self._resolved_cli_path

        self._cli_path_inputs = inputs
        self._resolved_cli_path = None
        for candidate in inputs:
            if not candidate:
                continue
            path = Path(os.path.expanduser(candidate))
            if path.is_file():
                self._resolved_cli_path = str(path)
                break
            if path.exists():
                self._log.warn("migration", "cli_path_not_file", "cli path is not a file", path=str(path))
        return self._resolved_cli_path

    def legacy_active_conversation_id(self) -> Optional[str]:
        return (
            self.plugin_settings.get_legacy_active_conversation_id()
            or self.legacy_state.get_legacy_active_conversation_id()
        )

    def clear_legacy_active_conversation_id(self) -> bool:
        from_settings = self.plugin_settings.clear_legacy_active_conversation_id()
        from_blob = self.legacy_state.clear_legacy_active_conversation_id()
        return from_settings or from_blob

    def _verify_plugin_settings(self) -> None:
        try:
            saved = self.plugin_settings.read_raw()
        except (OSError, SettingsParseError) as exc:
            raise self._verification_error(str(exc)) from exc
        if VERIFICATION_SENTINEL not in saved:
            raise self._verification_error("{0} missing after write".format(VERIFICATION_SENTINEL))

    def _verification_error(self, reason: str) -> VerificationError:
        self._log.error(
            "migration",
            "verification_failed",
            "plugin settings read-back failed; settings.json left untouched",
            path=self.plugin_settings.path,
            reason=reason,
        )
        return VerificationError("failed to verify {0}: {1}".format(self.plugin_settings.path, reason))

    def _migrate_command(self, report: ContentMigrationReport, index: int, record: object) -> None:
        key = "slashCommands[{0}]".format(index)
        path = ""
        try:
            if not isinstance(record, dict):
                raise ValueError("command record must be an object")
            command = CommandDefinition.from_legacy(record)
            key = command.name
            path = self.commands.get_file_path(command)
            if self._adapter.exists(path):
                status = SKIPPED_EXISTING
            else:
                self.commands.save(command)
                status = MIGRATED
        except Exception as exc:  # each record fails on its own
            self._record_failure(report, KIND_COMMAND, key, path, exc)
            return
        report.record(kind=KIND_COMMAND, key=key, path=path, status=status)
        self._log.info("migration", "content_item", "command " + status, name=key, path=path)

    def _migrate_conversation(self, report: ContentMigrationReport, index: int, record: object) -> None:
        key = "conversations[{0}]".format(index)
        path = ""
        try:
            if not isinstance(record, dict):
                raise ValueError("conversation record must be an object")
            conversation = ConversationTranscript.from_dict(record)
            key = conversation.id
            path = self.sessions.get_file_path(conversation.id)
            if self._adapter.exists(path):
                status = SKIPPED_EXISTING
            else:
                self.sessions.save(conversation)
                status = MIGRATED
        except Exception as exc:  # each record fails on its own
            self._record_failure(report, KIND_CONVERSATION, key, path, exc)
            return
        report.record(kind=KIND_CONVERSATION, key=key, path=path, status=status)
        self._log.info("migration", "content_item", "conversation " + status, id=key, path=path)

    def _record_failure(
        self,
        report: ContentMigrationReport,
        kind: str,
        key: str,
        path: str,
        exc: Exception,
    ) -> None:
        report.record(kind=kind, key=key, path=path or key, status=FAILED, reason=str(exc))
        self._log.error("migration", "content_failed", "legacy {0} not migrated".format(kind), key=key, error=str(exc))


def storage_paths(coordinator: MigrationCoordinator) -> List[Tuple[str, str]]:
    """``(label, absolute path)`` for every file the coordinator manages."""

    adapter = coordinator.adapter
    return [
        ("settings", str(adapter.resolve(coordinator.agent_settings.path))),
        ("plugin_settings", str(adapter.resolve(coordinator.plugin_settings.path))),
        ("commands", str(adapter.resolve(COMMANDS_DIR))),
        ("sessions", str(adapter.resolve(SESSIONS_DIR))),
        ("mcp", str(adapter.resolve(coordinator.mcp.path))),
        ("legacy_state", coordinator.legacy_state.path),
    ]
