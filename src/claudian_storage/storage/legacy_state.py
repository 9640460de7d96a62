"""The host-owned plugin data blob (``data.json`` in the plugin directory).

Older versions kept bookkeeping and whole command/conversation arrays here.
The blob is opaque to this package apart from the keys it consumes during
migration and the tab layout helpers below; every other key belongs to the
host and is written back untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import LEGACY_ACTIVE_CONVERSATION_KEY, TAB_MANAGER_STATE_KEY
from claudian_storage.storage.file_adapter import FileAdapter, dumps_json, parse_json_object

DEFAULT_STATE_FILE = "data.json"


@dataclass(frozen=True)
class OpenTab:
    tab_id: str
    conversation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"tabId": self.tab_id, "conversationId": self.conversation_id}


@dataclass(frozen=True)
class TabManagerState:
    open_tabs: List[OpenTab] = field(default_factory=list)
    active_tab_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "openTabs": [tab.to_dict() for tab in self.open_tabs],
            "activeTabId": self.active_tab_id,
        }


def validate_tab_manager_state(value: object) -> Optional[TabManagerState]:
    """Sanitize stored tab layout; invalid tabs are dropped, a bad root is None."""

    if not isinstance(value, dict):
        return None
    rows = value.get("openTabs")
    if not isinstance(rows, list):
        return None
    tabs: List[OpenTab] = []
    for row in rows:
        if not isinstance(row, dict) or not isinstance(row.get("tabId"), str):
            continue
        conversation_id = row.get("conversationId")
        tabs.append(
            OpenTab(
                tab_id=row["tabId"],
                conversation_id=conversation_id if isinstance(conversation_id, str) else None,
            )
        )
    active = value.get("activeTabId")
    return TabManagerState(open_tabs=tabs, active_tab_id=active if isinstance(active, str) else None)


class LegacyStateStore:
    def __init__(
        self,
        adapter: FileAdapter,
        file_name: str = DEFAULT_STATE_FILE,
        debug_log: Optional[DebugLogWriter] = None,
    ) -> None:
        self._adapter = adapter
        self._file_name = file_name
        self._log = ensure_writer(debug_log)

    @property
    def path(self) -> str:
        return str(self._adapter.resolve(self._file_name))

    def exists(self) -> bool:
        return self._adapter.is_file(self._file_name)

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the blob, or None when it is missing or unreadable."""

        if not self.exists():
            return None
        try:
            return parse_json_object(self._adapter.read(self._file_name), self._file_name)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            self._log.warn("legacy_state", "load_failed", "ignoring unreadable state blob", path=self.path, error=str(exc))
            return None

    def save(self, data: Dict[str, Any]) -> None:
        self._adapter.write(self._file_name, dumps_json(data))

    def get_tab_manager_state(self) -> Optional[TabManagerState]:
        data = self.load()
        if not data:
            return None
        return validate_tab_manager_state(data.get(TAB_MANAGER_STATE_KEY))

    def set_tab_manager_state(self, state: TabManagerState) -> None:
        data = self.load() or {}
        data[TAB_MANAGER_STATE_KEY] = state.to_dict()
        self.save(data)

    def get_legacy_active_conversation_id(self) -> Optional[str]:
        value = (self.load() or {}).get(LEGACY_ACTIVE_CONVERSATION_KEY)
        return value if isinstance(value, str) else None

    def clear_legacy_active_conversation_id(self) -> bool:
        data = self.load()
        if data is None or LEGACY_ACTIVE_CONVERSATION_KEY not in data:
            return False
        del data[LEGACY_ACTIVE_CONVERSATION_KEY]
        self.save(data)
        return True

