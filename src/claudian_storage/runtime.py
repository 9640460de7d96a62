"""Runtime container wiring the debug log, adapters and stores for one vault."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from claudian_storage.config import StorageSettings
from claudian_storage.kernel.debug_log import DebugLogWriter
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.legacy_state import LegacyStateStore
from claudian_storage.storage.migration import CombinedSettings, MigrationCoordinator, storage_paths


class StorageRuntime:
    def __init__(self, settings: StorageSettings) -> None:
        self.settings = settings
        self.debug_log = DebugLogWriter(
            logs_dir=settings.logs_dir,
            enabled=settings.logs_enabled,
            max_file_bytes=settings.logs_max_file_bytes,
            max_files=settings.logs_max_files,
            redaction=settings.logs_redaction,
        )
        self.adapter = FileAdapter(settings.vault_root)
        self.legacy_state = LegacyStateStore(
            FileAdapter(settings.plugin_dir),
            file_name=settings.state_file.name,
            debug_log=self.debug_log,
        )
        self.coordinator = MigrationCoordinator(
            self.adapter,
            self.legacy_state,
            debug_log=self.debug_log,
            hostname=settings.hostname,
        )

    def initialize(self) -> CombinedSettings:
        return self.coordinator.initialize()

    def doctor_report(self) -> Dict[str, Any]:
        """Collect file presence, entity counts and log status without writing."""

        coordinator = self.coordinator
        commands = coordinator.commands.load_all()
        sessions = coordinator.sessions.load_all()
        servers = coordinator.mcp.load_all()
        skipped: Dict[str, str] = {}
        for loaded in (commands, sessions, servers):
            skipped.update(loaded.skipped)

        report: Dict[str, Any] = {
            "vault_root": str(self.settings.vault_root),
            "plugin_dir": str(self.settings.plugin_dir),
            "hostname": coordinator.hostname,
            "files": {
                label: {"path": path, "exists": Path(path).exists()}
                for label, path in storage_paths(coordinator)
            },
            "commands_loaded": len(commands),
            "sessions_loaded": len(sessions),
            "mcp_servers_loaded": len(servers),
            "skipped": skipped,
            "split_pending": coordinator.agent_settings.exists() and not coordinator.plugin_settings.exists(),
            "legacy_state_present": coordinator.legacy_state.load() is not None,
        }
        report.update(self.debug_log.status())
        return report
