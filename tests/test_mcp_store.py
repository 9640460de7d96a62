from __future__ import annotations

import json

import pytest

from claudian_storage.storage.errors import SettingsParseError
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.mcp import McpRegistryStore, McpServerEntry, split_counts, validate_server_config


@pytest.fixture
def store(vault_env):
    return McpRegistryStore(FileAdapter(vault_env["vault"]))


def _mcp_file(vault_env):
    return vault_env["claude_dir"] / "mcp.json"


def _write(vault_env, payload) -> None:
    path = _mcp_file(vault_env)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_save_writes_cli_shape_with_private_flags(vault_env, store):
    store.save(McpServerEntry(name="files", config={"command": "npx", "args": ["fs-server"]}))
    store.save(
        McpServerEntry(
            name="search",
            config={"type": "http", "url": "https://example.test/mcp"},
            context_saving=False,
            description="Web search",
        )
    )

    raw = json.loads(_mcp_file(vault_env).read_text(encoding="utf-8"))
    assert raw["mcpServers"] == {
        "files": {"command": "npx", "args": ["fs-server"]},
        "search": {"type": "http", "url": "https://example.test/mcp"},
    }
    assert raw["_claudian"]["servers"] == {
        "files": {"enabled": True, "contextSaving": True},
        "search": {"enabled": True, "contextSaving": False, "description": "Web search"},
    }


def test_missing_private_section_uses_defaults(vault_env, store):
    _write(vault_env, {"mcpServers": {"files": {"type": "stdio", "command": "fs"}}})

    (entry,) = store.load_all().items

    assert entry.enabled is True
    assert entry.context_saving is True
    assert entry.transport == "stdio"
    assert entry.description is None


def test_unrelated_keys_survive_save(vault_env, store):
    _write(
        vault_env,
        {
            "mcpServers": {"old": {"command": "old"}},
            "_claudian": {"servers": {}, "version": 2},
            "owner": "someone-else",
        },
    )

    store.save_all([McpServerEntry(name="new", config={"command": "new"}, enabled=False)])

    raw = json.loads(_mcp_file(vault_env).read_text(encoding="utf-8"))
    assert raw["owner"] == "someone-else"
    assert raw["_claudian"]["version"] == 2
    assert list(raw["mcpServers"]) == ["new"]


def test_invalid_entry_is_skipped(vault_env, store):
    _write(
        vault_env,
        {
            "mcpServers": {
                "good": {"command": "ok"},
                "no-url": {"type": "sse"},
                "bad-args": {"command": "x", "args": "--flag"},
            }
        },
    )

    report = store.load_all()

    assert [entry.name for entry in report.items] == ["good"]
    assert sorted(report.skipped) == [".claude/mcp.json#bad-args", ".claude/mcp.json#no-url"]


def test_unparseable_file_is_reported_not_raised(vault_env, store):
    path = _mcp_file(vault_env)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{oops", encoding="utf-8")

    report = store.load_all()

    assert report.items == []
    assert list(report.skipped) == [".claude/mcp.json"]
    with pytest.raises(SettingsParseError):
        store.save(McpServerEntry(name="x", config={"command": "x"}))


def test_active_servers_respects_context_saving(store):
    store.save_all(
        [
            McpServerEntry(name="always", config={"command": "a"}, context_saving=False),
            McpServerEntry(name="on-mention", config={"command": "b"}),
            McpServerEntry(name="off", config={"command": "c"}, enabled=False, context_saving=False),
        ]
    )

    assert [entry.name for entry in store.active_servers()] == ["always"]
    assert [entry.name for entry in store.active_servers(["on-mention"])] == ["always", "on-mention"]
    assert split_counts(store.load_all().items) == (2, 1)


def test_delete_and_get(store):
    store.save(McpServerEntry(name="files", config={"command": "fs"}))

    assert store.get("files") is not None
    assert store.delete("files") is True
    assert store.delete("files") is False
    assert store.get("files") is None


def test_validate_server_config_rejects_unknown_type():
    with pytest.raises(ValueError):
        validate_server_config({"type": "websocket", "url": "ws://x"})
    assert validate_server_config({"type": "sse", "url": " https://x ", "headers": {"A": 1}}) == {
        "type": "sse",
        "url": "https://x",
        "headers": {"A": "1"},
    }


def test_save_keeps_skipped_entries_and_unmodelled_keys(vault_env, store):
    _write(
        vault_env,
        {
            "mcpServers": {
                "ws-server": {"type": "ws", "url": "ws://localhost:9000"},
                "fs": {"command": "fs", "cwd": "/srv", "timeout": 30, "env": {"DEPTH": 3}},
            },
            "_claudian": {"servers": {"ws-server": {"enabled": False, "contextSaving": True}}},
        },
    )

    store.save(McpServerEntry(name="new", config={"command": "new"}))

    raw = json.loads(_mcp_file(vault_env).read_text(encoding="utf-8"))
    assert raw["mcpServers"] == {
        "ws-server": {"type": "ws", "url": "ws://localhost:9000"},
        "fs": {"command": "fs", "cwd": "/srv", "timeout": 30, "env": {"DEPTH": 3}},
        "new": {"command": "new"},
    }
    assert raw["_claudian"]["servers"]["ws-server"] == {"enabled": False, "contextSaving": True}
    assert store.get("fs").config["cwd"] == "/srv"


def test_delete_keeps_other_skipped_entries(vault_env, store):
    _write(
        vault_env,
        {
            "mcpServers": {
                "typo": {"comand": "fs"},
                "broken": {"type": "sse"},
                "files": {"command": "fs"},
            }
        },
    )

    assert store.delete("typo") is True

    raw = json.loads(_mcp_file(vault_env).read_text(encoding="utf-8"))
    assert raw["mcpServers"] == {"broken": {"type": "sse"}, "files": {"command": "fs"}}
    assert store.delete("typo") is False


def test_non_object_servers_section_is_not_overwritten(vault_env, store):
    _write(vault_env, {"mcpServers": ["not", "a", "map"]})

    with pytest.raises(SettingsParseError):
        store.save(McpServerEntry(name="x", config={"command": "x"}))
    assert json.loads(_mcp_file(vault_env).read_text(encoding="utf-8"))["mcpServers"] == ["not", "a", "map"]
