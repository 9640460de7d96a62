from __future__ import annotations

import json

from claudian_storage.config import load_settings
from claudian_storage.runtime import StorageRuntime


def _log_rows(runtime):
    path = runtime.debug_log.active_log_file
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_runtime_initialize_writes_debug_log(vault_env):
    settings_file = vault_env["claude_dir"] / "settings.json"
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text(
        json.dumps({"userName": "Ann", "environmentVariables": "ANTHROPIC_API_KEY=sk-abcdefghijkl"}),
        encoding="utf-8",
    )

    runtime = StorageRuntime(load_settings(vault_env["vault"], hostname="box-1"))
    runtime.initialize()

    rows = _log_rows(runtime)
    kinds = [row["kind"] for row in rows]
    assert "initialize_start" in kinds
    assert "split_done" in kinds
    assert kinds[-1] == "initialize_done"
    assert all(row["component"] for row in rows)
    assert "sk-abcdefghijkl" not in runtime.debug_log.active_log_file.read_text(encoding="utf-8")


def test_runtime_with_logs_disabled_creates_no_log_file(vault_env):
    (vault_env["plugin_dir"] / "storage.toml").write_text("[logs]\nenabled = false\n", encoding="utf-8")

    runtime = StorageRuntime(load_settings(vault_env["vault"]))
    runtime.initialize()

    assert not runtime.debug_log.active_log_file.exists()
    assert runtime.doctor_report()["logs_enabled"] is False


def test_doctor_report_counts_and_skips(vault_env):
    sessions_dir = vault_env["claude_dir"] / "sessions"
    sessions_dir.mkdir(parents=True)
    (sessions_dir / "broken.jsonl").write_text("nope\n", encoding="utf-8")
    (vault_env["claude_dir"] / "settings.json").write_text('{"model": "opus"}', encoding="utf-8")

    report = StorageRuntime(load_settings(vault_env["vault"], hostname="box-1")).doctor_report()

    assert report["hostname"] == "box-1"
    assert report["sessions_loaded"] == 0
    assert list(report["skipped"]) == [".claude/sessions/broken.jsonl"]
    assert report["split_pending"] is True
    assert report["files"]["settings"]["exists"] is True
    assert report["files"]["legacy_state"]["exists"] is False
    assert report["legacy_state_present"] is False
