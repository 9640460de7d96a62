from __future__ import annotations

from pathlib import Path

import pytest

from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.legacy_state import LegacyStateStore
from claudian_storage.storage.migration import MigrationCoordinator


@pytest.fixture
def vault_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    vault = tmp_path / "vault"
    plugin_dir = vault / ".obsidian" / "plugins" / "claudian"
    plugin_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.chdir(vault)

    return {
        "vault": vault,
        "plugin_dir": plugin_dir,
        "claude_dir": vault / ".claude",
        "state_file": plugin_dir / "data.json",
    }


@pytest.fixture
def make_coordinator(vault_env):
    def factory(hostname: str = "test-host", platform: str = "linux", debug_log=None) -> MigrationCoordinator:
        return MigrationCoordinator(
            FileAdapter(vault_env["vault"]),
            LegacyStateStore(FileAdapter(vault_env["plugin_dir"])),
            debug_log=debug_log,
            hostname=hostname,
            platform=platform,
        )

    return factory
