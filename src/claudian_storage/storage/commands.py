"""Slash command definitions stored as ``.claude/commands/<name>.md``.

Each file is the Claude CLI command format: optional YAML frontmatter with
``description``, ``argument-hint``, ``model`` and ``allowed-tools``, followed by
the prompt template. Nested names (``git/commit``) map to subdirectories.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import COMMANDS_DIR
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.results import LoadReport, Ok, ParseOutcome, Skip, fold_outcomes

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_/-]+")
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(?P<meta>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)

_META_KEYS = (
    ("description", "description"),
    ("argument_hint", "argument-hint"),
    ("model", "model"),
    ("allowed_tools", "allowed-tools"),
)


def command_slug(name: str) -> str:
    slug = _UNSAFE_NAME_RE.sub("-", str(name or "").strip())
    parts = [part for part in slug.split("/") if part]
    if not parts:
        raise ValueError("command name is empty: {0!r}".format(name))
    return "/".join(parts)


def command_id_for(slug: str) -> str:
    return "cmd-{0}".format(slug.replace("/", "--"))


def _optional_text(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _tool_list(value: object) -> Optional[List[str]]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return None
    tools = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return tools or None


def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """Return ``(metadata, body)``; raises ``ValueError`` on malformed metadata."""

    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return {}, text
    try:
        meta = yaml.safe_load(match.group("meta")) or {}
    except yaml.YAMLError as exc:
        raise ValueError("invalid frontmatter: {0}".format(exc)) from exc
    if not isinstance(meta, dict):
        raise ValueError("frontmatter must be a mapping")
    return meta, text[match.end() :]


@dataclass
class CommandDefinition:
    name: str
    content: str
    id: str = ""
    description: Optional[str] = None
    argument_hint: Optional[str] = None
    model: Optional[str] = None
    allowed_tools: Optional[List[str]] = field(default=None)

    @property
    def slug(self) -> str:
        return command_slug(self.name)

    @classmethod
    def from_legacy(cls, data: Mapping[str, Any]) -> "CommandDefinition":
        """Build from an inline record of the old state blob.

        Old records sometimes kept the frontmatter inside ``content``; explicit
        fields win, the embedded metadata fills the gaps.
        """

        name = data.get("name")
        content = data.get("content")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("command record has no name")
        if not isinstance(content, str):
            raise ValueError("command record {0!r} has no content".format(name))
        meta, body = split_frontmatter(content)
        command_id = data.get("id")
        return cls(
            id=command_id if isinstance(command_id, str) and command_id else command_id_for(command_slug(name)),
            name=name.strip(),
            content=body,
            description=_optional_text(data.get("description")) or _optional_text(meta.get("description")),
            argument_hint=_optional_text(data.get("argumentHint")) or _optional_text(meta.get("argument-hint")),
            model=_optional_text(data.get("model")) or _optional_text(meta.get("model")),
            allowed_tools=_tool_list(data.get("allowedTools")) or _tool_list(meta.get("allowed-tools")),
        )

    def to_markdown(self) -> str:
        meta: Dict[str, Any] = {}
        for attr, key in _META_KEYS:
            value = getattr(self, attr)
            if value:
                meta[key] = list(value) if isinstance(value, list) else value
        body = self.content if self.content.endswith("\n") else self.content + "\n"
        if not meta:
            return body
        rendered = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True, default_flow_style=False)
        return "---\n{0}---\n{1}".format(rendered, body)


def parse_command_file(rel_path: str, text: str) -> CommandDefinition:
    prefix = COMMANDS_DIR + "/"
    if not rel_path.startswith(prefix) or not rel_path.endswith(".md"):
        raise ValueError("not a command file")
    slug = rel_path[len(prefix) : -len(".md")]
    meta, body = split_frontmatter(text)
    return CommandDefinition(
        id=command_id_for(slug),
        name=slug,
        content=body,
        description=_optional_text(meta.get("description")),
        argument_hint=_optional_text(meta.get("argument-hint")),
        model=_optional_text(meta.get("model")),
        allowed_tools=_tool_list(meta.get("allowed-tools")),
    )


class CommandStore:
    """One markdown file per command; last write wins on name collisions."""

    def __init__(self, adapter: FileAdapter, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)

    def get_file_path(self, command: CommandDefinition) -> str:
        return "{0}/{1}.md".format(COMMANDS_DIR, command.slug)

    def exists(self, command: CommandDefinition) -> bool:
        return self._adapter.exists(self.get_file_path(command))

    def load_all(self) -> LoadReport:
        return fold_outcomes(
            (self._parse(path) for path in self._adapter.list_files(COMMANDS_DIR, ".md", recursive=True)),
            on_skip=self._log_skip,
        )

    def save(self, command: CommandDefinition) -> str:
        path = self.get_file_path(command)
        self._adapter.write(path, command.to_markdown())
        return path

    def delete(self, name: str) -> bool:
        try:
            slug = command_slug(name)
        except ValueError:
            return False
        return self._adapter.remove("{0}/{1}.md".format(COMMANDS_DIR, slug))

    def _parse(self, path: str) -> ParseOutcome:
        try:
            return Ok(path, parse_command_file(path, self._adapter.read(path)))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            return Skip(path, str(exc))

    def _log_skip(self, skip: Skip) -> None:
        self._log.warn("commands", "load_skip", "skipped command file", path=skip.path, reason=skip.reason)
