"""MCP server registry stored in ``.claude/mcp.json``.

The file keeps the Claude CLI shape under ``mcpServers`` so the CLI can read
it directly. Plugin-only flags (enabled, context saving, description) live in
a private ``_claudian`` section keyed by server name.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import MCP_CONFIG_PATH
from claudian_storage.storage.errors import SettingsParseError
from claudian_storage.storage.file_adapter import FileAdapter, dumps_json, parse_json_object
from claudian_storage.storage.results import LoadReport, Ok, ParseOutcome, Skip, fold_outcomes

SERVERS_KEY = "mcpServers"
PRIVATE_KEY = "_claudian"
REMOTE_TYPES = ("http", "sse")
STDIO_TYPE = "stdio"

DEFAULT_ENABLED = True
DEFAULT_CONTEXT_SAVING = True


def _string_map(value: object, label: str) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("{0} must be an object".format(label))
    return {str(key): str(item) for key, item in value.items()}


def validate_server_config(config: object) -> Dict[str, Any]:
    """Return a cleaned copy of a server config or raise ``ValueError``."""

    if not isinstance(config, dict):
        raise ValueError("server config must be an object")
    kind = config.get("type")
    if kind in REMOTE_TYPES:
        url = config.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("{0} server requires url".format(kind))
        cleaned: Dict[str, Any] = {"type": kind, "url": url.strip()}
        headers = _string_map(config.get("headers"), "headers")
        if headers:
            cleaned["headers"] = headers
        return cleaned
    if kind not in (None, STDIO_TYPE):
        raise ValueError("unsupported server type: {0!r}".format(kind))
    command = config.get("command")
    if not isinstance(command, str) or not command.strip():
        raise ValueError("stdio server requires command")
    cleaned = {"type": STDIO_TYPE} if kind == STDIO_TYPE else {}
    cleaned["command"] = command.strip()
    args = config.get("args")
    if args is not None:
        if not isinstance(args, list):
            raise ValueError("args must be an array")
        cleaned["args"] = [str(item) for item in args]
    env = _string_map(config.get("env"), "env")
    if env:
        cleaned["env"] = env
    return cleaned


@dataclass
class McpServerEntry:
    name: str
    config: Dict[str, Any]
    enabled: bool = DEFAULT_ENABLED
    context_saving: bool = DEFAULT_CONTEXT_SAVING
    description: Optional[str] = None

    @property
    def transport(self) -> str:
        kind = self.config.get("type")
        return kind if isinstance(kind, str) else STDIO_TYPE

    def meta_dict(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"enabled": self.enabled, "contextSaving": self.context_saving}
        if self.description:
            meta["description"] = self.description
        return meta


def _parse_entry(name: str, config: object, meta: object) -> McpServerEntry:
    if not name.strip():
        raise ValueError("server name is empty")
    meta = meta if isinstance(meta, dict) else {}
    enabled = meta.get("enabled")
    context_saving = meta.get("contextSaving")
    description = meta.get("description")
    validate_server_config(config)
    return McpServerEntry(
        name=name,
        # Keys this store does not model (cwd, timeout, ...) belong to the CLI.
        config=copy.deepcopy(config),
        enabled=enabled if isinstance(enabled, bool) else DEFAULT_ENABLED,
        context_saving=context_saving if isinstance(context_saving, bool) else DEFAULT_CONTEXT_SAVING,
        description=description if isinstance(description, str) and description.strip() else None,
    )


class McpRegistryStore:
    """All servers in one file; per-entry problems skip that entry only."""

    def __init__(self, adapter: FileAdapter, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)

    @property
    def path(self) -> str:
        return MCP_CONFIG_PATH

    def exists(self) -> bool:
        return self._adapter.is_file(MCP_CONFIG_PATH)

    def read_raw(self) -> Dict[str, Any]:
        if not self.exists():
            return {}
        try:
            return parse_json_object(self._adapter.read(MCP_CONFIG_PATH), MCP_CONFIG_PATH)
        except ValueError as exc:
            raise SettingsParseError(MCP_CONFIG_PATH, str(exc)) from exc

    def load_all(self) -> LoadReport:
        try:
            raw = self.read_raw()
        except SettingsParseError as exc:
            skip = Skip(MCP_CONFIG_PATH, exc.reason)
            self._log_skip(skip)
            return LoadReport(skipped={skip.path: skip.reason})
        return fold_outcomes(self._outcomes(raw), on_skip=self._log_skip)

    def get(self, name: str) -> Optional[McpServerEntry]:
        for entry in self.load_all().items:
            if entry.name == name:
                return entry
        return None

    def save_all(self, entries: Iterable[McpServerEntry]) -> None:
        """Replace the loadable servers; unrelated top-level keys are kept.

        Entries that ``load_all`` skips (unknown transport, typos) are not
        ours to drop, so their raw config and metadata stay in the file.
        """

        raw = self.read_raw()
        old_servers = self._raw_servers(raw)
        old_meta = self._raw_meta(raw)
        incoming: Dict[str, McpServerEntry] = {}
        for entry in entries:
            validate_server_config(entry.config)
            incoming[entry.name] = entry

        servers: Dict[str, Any] = {}
        meta: Dict[str, Any] = {}
        for name, config in old_servers.items():
            if name in incoming or self._is_loadable(name, config):
                continue
            servers[name] = copy.deepcopy(config)
            if name in old_meta:
                meta[name] = copy.deepcopy(old_meta[name])
        for name, entry in incoming.items():
            servers[name] = copy.deepcopy(entry.config)
            meta[name] = entry.meta_dict()
        # Keep the file's original order where names already existed.
        order = {name: index for index, name in enumerate(old_servers)}
        names = sorted(servers, key=lambda name: order.get(name, len(order)))

        raw[SERVERS_KEY] = {name: servers[name] for name in names}
        private = raw.get(PRIVATE_KEY)
        private = copy.deepcopy(private) if isinstance(private, dict) else {}
        private["servers"] = {name: meta[name] for name in names if name in meta}
        raw[PRIVATE_KEY] = private
        self._adapter.write(MCP_CONFIG_PATH, dumps_json(raw))
        self._log.info("mcp", "save", "saved mcp registry", path=MCP_CONFIG_PATH, servers=len(servers))

    def save(self, entry: McpServerEntry) -> None:
        entries = [item for item in self.load_all().items if item.name != entry.name]
        entries.append(entry)
        self.save_all(entries)

    def delete(self, name: str) -> bool:
        """Remove one server by name, loadable or not."""

        raw = self.read_raw()
        servers = self._raw_servers(raw)
        if name not in servers:
            return False
        del servers[name]
        private = raw.get(PRIVATE_KEY)
        if isinstance(private, dict) and isinstance(private.get("servers"), dict):
            private["servers"].pop(name, None)
        self._adapter.write(MCP_CONFIG_PATH, dumps_json(raw))
        self._log.info("mcp", "delete", "deleted mcp server", path=MCP_CONFIG_PATH, name=name)
        return True

    def active_servers(self, mentions: Iterable[str] = ()) -> List[McpServerEntry]:
        """Enabled servers, with context-saving ones only when mentioned."""

        mentioned = set(mentions)
        return [
            entry
            for entry in self.load_all().items
            if entry.enabled and (not entry.context_saving or entry.name in mentioned)
        ]

    def _outcomes(self, raw: Dict[str, Any]) -> Iterable[ParseOutcome]:
        servers = raw.get(SERVERS_KEY)
        if servers is None:
            return
        if not isinstance(servers, dict):
            yield Skip(MCP_CONFIG_PATH, "{0} must be an object".format(SERVERS_KEY))
            return
        private = raw.get(PRIVATE_KEY)
        meta = private.get("servers") if isinstance(private, dict) else None
        meta = meta if isinstance(meta, dict) else {}
        for name, config in servers.items():
            location = "{0}#{1}".format(MCP_CONFIG_PATH, name)
            try:
                yield Ok(location, _parse_entry(str(name), config, meta.get(name)))
            except ValueError as exc:
                yield Skip(location, str(exc))

    @staticmethod
    def _raw_servers(raw: Dict[str, Any]) -> Dict[str, Any]:
        servers = raw.get(SERVERS_KEY)
        if servers is None:
            servers = {}
            raw[SERVERS_KEY] = servers
        if not isinstance(servers, dict):
            raise SettingsParseError(MCP_CONFIG_PATH, "{0} must be an object".format(SERVERS_KEY))
        return servers

    @staticmethod
    def _raw_meta(raw: Dict[str, Any]) -> Dict[str, Any]:
        private = raw.get(PRIVATE_KEY)
        meta = private.get("servers") if isinstance(private, dict) else None
        return meta if isinstance(meta, dict) else {}

    @staticmethod
    def _is_loadable(name: str, config: object) -> bool:
        try:
            _parse_entry(str(name), config, None)
        except ValueError:
            return False
        return True

    def _log_skip(self, skip: Skip) -> None:
        self._log.warn("mcp", "load_skip", "skipped mcp server", path=skip.path, reason=skip.reason)


def split_counts(entries: Iterable[McpServerEntry]) -> Tuple[int, int]:
    """Return ``(enabled, context_saving)`` counts for status output."""

    rows = list(entries)
    return (
        sum(1 for entry in rows if entry.enabled),
        sum(1 for entry in rows if entry.enabled and entry.context_saving),
    )
