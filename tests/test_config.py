from __future__ import annotations

import pytest

from claudian_storage.config import (
    DEFAULT_LOGS_ENABLED,
    DEFAULT_LOGS_MAX_FILE_BYTES,
    DEFAULT_LOGS_MAX_FILES,
    DEFAULT_LOGS_REDACTION,
    load_settings,
)
from claudian_storage.storage.errors import StorageConfigError


def test_missing_config_file_uses_log_defaults(vault_env):
    settings = load_settings(vault_env["vault"], hostname="box-1")

    assert settings.vault_root == vault_env["vault"].resolve()
    assert settings.plugin_dir == vault_env["plugin_dir"].resolve()
    assert settings.state_file.name == "data.json"
    assert settings.logs_dir == settings.plugin_dir / "logs"
    assert settings.hostname == "box-1"
    assert settings.logs_enabled is DEFAULT_LOGS_ENABLED
    assert settings.logs_max_file_bytes == DEFAULT_LOGS_MAX_FILE_BYTES
    assert settings.logs_max_files == DEFAULT_LOGS_MAX_FILES
    assert settings.logs_redaction == DEFAULT_LOGS_REDACTION


def test_logs_table_overrides_defaults(vault_env):
    (vault_env["plugin_dir"] / "storage.toml").write_text(
        "\n".join(
            [
                "[logs]",
                "enabled = false",
                "max_file_bytes = 4096",
                "max_files = 7",
                'redaction = "strict"',
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(vault_env["vault"])

    assert settings.logs_enabled is False
    assert settings.logs_max_file_bytes == 4096
    assert settings.logs_max_files == 7
    assert settings.logs_redaction == "strict"


def test_invalid_logs_values_fallback_to_defaults(vault_env):
    (vault_env["plugin_dir"] / "storage.toml").write_text(
        "\n".join(
            [
                "[logs]",
                'enabled = "maybe"',
                "max_file_bytes = -1",
                "max_files = 0",
                'redaction = "unknown"',
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(vault_env["vault"])

    assert settings.logs_enabled is DEFAULT_LOGS_ENABLED
    assert settings.logs_max_file_bytes == DEFAULT_LOGS_MAX_FILE_BYTES
    assert settings.logs_max_files == DEFAULT_LOGS_MAX_FILES
    assert settings.logs_redaction == DEFAULT_LOGS_REDACTION


def test_malformed_config_file_raises(vault_env):
    (vault_env["plugin_dir"] / "storage.toml").write_text("[logs\n", encoding="utf-8")

    with pytest.raises(StorageConfigError):
        load_settings(vault_env["vault"])


def test_logs_must_be_a_table(vault_env):
    (vault_env["plugin_dir"] / "storage.toml").write_text('logs = "on"\n', encoding="utf-8")

    with pytest.raises(StorageConfigError):
        load_settings(vault_env["vault"])


def test_missing_vault_raises(tmp_path):
    with pytest.raises(StorageConfigError):
        load_settings(tmp_path / "absent")


def test_explicit_plugin_dir_is_used(vault_env, tmp_path):
    custom = tmp_path / "elsewhere"
    custom.mkdir()

    settings = load_settings(vault_env["vault"], plugin_dir=custom)

    assert settings.plugin_dir == custom.resolve()
    assert settings.state_file == custom.resolve() / "data.json"
