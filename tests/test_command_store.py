from __future__ import annotations

import pytest

from claudian_storage.storage.commands import (
    CommandDefinition,
    CommandStore,
    command_slug,
    split_frontmatter,
)
from claudian_storage.storage.file_adapter import FileAdapter


@pytest.fixture
def store(vault_env):
    return CommandStore(FileAdapter(vault_env["vault"]))


def test_nested_command_round_trip(vault_env, store):
    command = CommandDefinition(
        name="git/commit",
        content="Write a commit message for $ARGUMENTS\n",
        description="Commit helper",
        argument_hint="<scope>",
        model="sonnet",
        allowed_tools=["Bash", "Read"],
    )

    path = store.save(command)

    assert path == ".claude/commands/git/commit.md"
    assert (vault_env["claude_dir"] / "commands" / "git" / "commit.md").is_file()
    loaded = store.load_all().items
    assert len(loaded) == 1
    assert loaded[0].id == "cmd-git--commit"
    assert loaded[0].name == "git/commit"
    assert loaded[0].description == "Commit helper"
    assert loaded[0].argument_hint == "<scope>"
    assert loaded[0].model == "sonnet"
    assert loaded[0].allowed_tools == ["Bash", "Read"]
    assert loaded[0].content == "Write a commit message for $ARGUMENTS\n"


def test_command_without_metadata_has_no_frontmatter():
    assert CommandDefinition(name="plain", content="Just the prompt").to_markdown() == "Just the prompt\n"


def test_load_all_skips_corrupt_file(vault_env, store):
    commands_dir = vault_env["claude_dir"] / "commands"
    commands_dir.mkdir(parents=True, exist_ok=True)
    (commands_dir / "good.md").write_text("---\ndescription: Good\n---\nPrompt one\n", encoding="utf-8")
    (commands_dir / "also-good.md").write_text("Prompt two\n", encoding="utf-8")
    (commands_dir / "broken.md").write_text("---\ndescription: [unclosed\n---\nbody\n", encoding="utf-8")

    report = store.load_all()

    assert sorted(item.name for item in report.items) == ["also-good", "good"]
    assert list(report.skipped) == [".claude/commands/broken.md"]


def test_non_mapping_frontmatter_is_rejected():
    with pytest.raises(ValueError):
        split_frontmatter("---\n- a\n- b\n---\nbody\n")


def test_allowed_tools_accepts_comma_separated_text(vault_env, store):
    commands_dir = vault_env["claude_dir"] / "commands"
    commands_dir.mkdir(parents=True, exist_ok=True)
    (commands_dir / "search.md").write_text(
        "---\nallowed-tools: Read, Grep\n---\nFind $ARGUMENTS\n",
        encoding="utf-8",
    )

    (command,) = store.load_all().items
    assert command.allowed_tools == ["Read", "Grep"]


def test_delete_missing_command_is_noop(store):
    assert store.delete("never-saved") is False


def test_delete_removes_file(vault_env, store):
    store.save(CommandDefinition(name="tidy", content="Tidy up"))

    assert store.delete("tidy") is True
    assert not (vault_env["claude_dir"] / "commands" / "tidy.md").exists()


def test_save_overwrites_same_name(store):
    store.save(CommandDefinition(name="dup", content="first"))
    store.save(CommandDefinition(name="dup", content="second"))

    (command,) = store.load_all().items
    assert command.content == "second\n"


def test_command_slug_replaces_unsafe_characters():
    assert command_slug("my cmd!") == "my-cmd-"
    assert command_slug("git//commit/") == "git/commit"
    with pytest.raises(ValueError):
        command_slug(" / ")


def test_legacy_record_with_embedded_frontmatter():
    command = CommandDefinition.from_legacy(
        {
            "name": "summarize",
            "content": "---\ndescription: Summarize a note\nmodel: haiku\n---\nSummarize $ARGUMENTS",
            "model": "opus",
        }
    )

    assert command.id == "cmd-summarize"
    assert command.description == "Summarize a note"
    assert command.model == "opus"
    assert command.content == "Summarize $ARGUMENTS"


def test_legacy_record_without_name_is_rejected():
    with pytest.raises(ValueError):
        CommandDefinition.from_legacy({"content": "orphan"})
