from __future__ import annotations

import json

import pytest

from claudian_storage.storage.constants import AGENT_SETTINGS_SCHEMA, TOOL_PRIVATE_FIELDS
from claudian_storage.storage.errors import VerificationError
from claudian_storage.storage.plugin_settings import (
    DEFAULT_BLOCKED_COMMANDS,
    PLUGIN_SETTING_KEYS,
    PluginSettings,
    normalize_blocked_commands,
)


def _write_json(path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def test_initialize_splits_legacy_combined_settings(vault_env, make_coordinator):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(
        settings_file,
        {
            "userName": "Ann",
            "blockedCommands": ["rm -rf"],
            "permissions": [
                {"toolName": "Bash", "pattern": "git *", "approvedAt": 1, "scope": "always"},
            ],
        },
    )

    combined = make_coordinator().initialize()

    assert combined.plugin.user_name == "Ann"
    assert combined.plugin.blocked_commands["unix"] == ["rm -rf"]
    assert combined.plugin.blocked_commands["windows"] == DEFAULT_BLOCKED_COMMANDS["windows"]
    assert combined.agent.permissions.allow == ["Bash(git *)"]

    on_disk = json.loads(settings_file.read_text(encoding="utf-8"))
    assert set(on_disk) == {"$schema", "permissions"}
    assert on_disk["$schema"] == AGENT_SETTINGS_SCHEMA
    assert on_disk["permissions"]["allow"] == ["Bash(git *)"]
    assert (vault_env["claude_dir"] / "claudian-settings.json").is_file()


def test_split_conserves_every_plugin_field(vault_env, make_coordinator):
    legacy = {
        "userName": "Ann",
        "enableBlocklist": False,
        "blockedCommands": {"unix": ["rm -rf", "mkfs"], "windows": ["format c:"]},
        "model": "sonnet",
        "thinkingBudget": "high",
        "permissionMode": "normal",
        "excludedTags": ["private"],
        "mediaFolder": "attachments",
        "environmentVariables": "ANTHROPIC_MODEL=claude-x",
        "envSnippets": [{"id": "s1", "name": "work", "envVars": "A=1"}],
        "systemPrompt": "Be brief.",
        "allowedExportPaths": ["~/Documents"],
        "persistentExternalContextPaths": ["/srv/shared"],
        "keyboardNavigation": {"scrollUpKey": "k", "scrollDownKey": "j", "focusInputKey": "i"},
        "claudeCliPath": "/usr/local/bin/claude",
        "loadUserClaudeSettings": False,
        "enableAutoTitleGeneration": False,
        "titleGenerationModel": "haiku",
        "permissions": {"allow": [], "deny": [], "ask": []},
    }
    _write_json(vault_env["claude_dir"] / "settings.json", legacy)

    coordinator = make_coordinator()
    assert coordinator.migrate_split() is True

    stored = coordinator.plugin_settings.load().to_dict()
    defaults = PluginSettings().to_dict()
    for key in PLUGIN_SETTING_KEYS:
        if key == "blockedCommands":
            assert stored[key] == normalize_blocked_commands(legacy[key])
            continue
        assert stored[key] == legacy.get(key, defaults[key]), key


def test_split_leaves_no_private_fields_in_agent_settings(vault_env, make_coordinator):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(
        settings_file,
        {
            "$schema": AGENT_SETTINGS_SCHEMA,
            "userName": "Ann",
            "model": "opus",
            "showToolUse": True,
            "allowedContextPaths": ["/tmp"],
            "toolCallExpandedByDefault": False,
            "claudeCliPaths": {"linux": "/usr/bin/claude"},
            "permissions": [],
        },
    )

    make_coordinator().initialize()

    agent_keys = set(json.loads(settings_file.read_text(encoding="utf-8")))
    assert agent_keys.isdisjoint(TOOL_PRIVATE_FIELDS)

    plugin_raw = json.loads((vault_env["claude_dir"] / "claudian-settings.json").read_text(encoding="utf-8"))
    assert "showToolUse" not in plugin_raw
    assert "allowedContextPaths" not in plugin_raw
    assert "toolCallExpandedByDefault" not in plugin_raw


def test_split_merges_cli_env_map_after_plugin_text(vault_env, make_coordinator):
    _write_json(
        vault_env["claude_dir"] / "settings.json",
        {
            "userName": "Ann",
            "environmentVariables": "A=1\nB=2",
            "env": {"B": "3", "C": "4"},
        },
    )

    combined = make_coordinator().initialize()

    assert combined.plugin.environment_variables == "A=1\nB=3\nC=4"


def test_split_converts_legacy_permission_records(vault_env, make_coordinator):
    _write_json(
        vault_env["claude_dir"] / "settings.json",
        {
            "userName": "Ann",
            "permissions": [
                {"toolName": "Bash", "pattern": "git status", "approvedAt": 1, "scope": "always"},
                {"toolName": "Read", "pattern": "*", "approvedAt": 2, "scope": "always"},
                {"toolName": "Write", "pattern": "", "approvedAt": 3, "scope": "always"},
                {"toolName": "Edit", "pattern": "notes/*", "approvedAt": 4, "scope": "session"},
                {"toolName": "Bash", "pattern": "git status", "approvedAt": 5, "scope": "always"},
                "garbage",
            ],
        },
    )

    combined = make_coordinator().initialize()

    assert combined.agent.permissions.allow == ["Bash(git status)", "Read", "Write"]
    assert combined.agent.permissions.deny == []
    assert combined.agent.permissions.ask == []


def test_split_preserves_structured_permissions(vault_env, make_coordinator):
    settings_file = vault_env["claude_dir"] / "settings.json"
    permissions = {
        "allow": ["Read"],
        "deny": ["Bash(rm *)"],
        "ask": ["Write"],
        "defaultMode": "acceptEdits",
        "additionalDirectories": ["/srv/shared"],
    }
    _write_json(settings_file, {"userName": "Ann", "permissions": permissions})

    make_coordinator().initialize()

    assert json.loads(settings_file.read_text(encoding="utf-8"))["permissions"] == permissions


def test_split_falls_back_to_default_permissions(vault_env, make_coordinator):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(settings_file, {"userName": "Ann", "permissions": "all"})

    make_coordinator().initialize()

    assert json.loads(settings_file.read_text(encoding="utf-8"))["permissions"] == {
        "allow": [],
        "deny": [],
        "ask": [],
    }


def test_clean_agent_settings_are_not_rewritten(vault_env, make_coordinator):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(
        settings_file,
        {
            "$schema": AGENT_SETTINGS_SCHEMA,
            "env": {"ANTHROPIC_MODEL": "claude-x"},
            "permissions": {"allow": ["Read"], "deny": [], "ask": []},
        },
    )
    before = settings_file.read_bytes()

    coordinator = make_coordinator()
    assert coordinator.migrate_split() is False
    coordinator.initialize()

    assert settings_file.read_bytes() == before
    assert not (vault_env["claude_dir"] / "claudian-settings.json").exists()


def test_verification_failure_leaves_agent_settings_untouched(vault_env, make_coordinator, monkeypatch):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(settings_file, {"userName": "Ann", "permissions": []})
    before = settings_file.read_bytes()

    coordinator = make_coordinator()
    # The write reports success but nothing reaches the disk.
    monkeypatch.setattr(coordinator.plugin_settings, "save", lambda settings: None)

    with pytest.raises(VerificationError):
        coordinator.initialize()

    assert settings_file.read_bytes() == before


def test_verification_failure_when_sentinel_missing(vault_env, make_coordinator, monkeypatch):
    settings_file = vault_env["claude_dir"] / "settings.json"
    _write_json(settings_file, {"userName": "Ann"})
    before = settings_file.read_bytes()

    coordinator = make_coordinator()
    monkeypatch.setattr(coordinator.plugin_settings, "read_raw", lambda: {"model": "haiku"})

    with pytest.raises(VerificationError):
        coordinator.migrate_split()

    assert settings_file.read_bytes() == before


def test_initialize_twice_is_idempotent(vault_env, make_coordinator, monkeypatch):
    claude_dir = vault_env["claude_dir"]
    _write_json(
        claude_dir / "settings.json",
        {
            "userName": "Ann",
            "blockedCommands": ["rm -rf"],
            "claudeCliPath": "/usr/local/bin/claude",
            "permissions": [{"toolName": "Bash", "pattern": "git *", "approvedAt": 1, "scope": "always"}],
        },
    )
    _write_json(vault_env["state_file"], {"lastEnvHash": "abc", "tabManagerState": {"openTabs": []}})

    make_coordinator().initialize()
    snapshot = {
        name: (claude_dir / name).read_bytes() for name in ("settings.json", "claudian-settings.json")
    }
    blob_before = vault_env["state_file"].read_bytes()

    second = make_coordinator()
    writes = []
    original_write = second.adapter.write

    def recording_write(rel_path, content):
        writes.append(rel_path)
        original_write(rel_path, content)

    monkeypatch.setattr(second.adapter, "write", recording_write)
    second.initialize()

    assert writes == []
    assert second.last_summary is not None and second.last_summary.changed is False
    for name, content in snapshot.items():
        assert (claude_dir / name).read_bytes() == content
    assert vault_env["state_file"].read_bytes() == blob_before


def test_initialize_creates_directories_on_empty_vault(vault_env, make_coordinator):
    combined = make_coordinator().initialize()

    claude_dir = vault_env["claude_dir"]
    assert (claude_dir / "commands").is_dir()
    assert (claude_dir / "sessions").is_dir()
    assert not (claude_dir / "settings.json").exists()
    assert combined.plugin == PluginSettings()
    assert combined.agent.permissions.allow == []
