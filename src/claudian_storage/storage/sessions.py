"""Conversation transcripts stored as ``.claude/sessions/<id>.jsonl``."""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from claudian_storage.kernel.debug_log import DebugLogWriter, ensure_writer
from claudian_storage.storage.constants import SESSIONS_DIR
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.results import LoadReport, Ok, ParseOutcome, Skip, fold_outcomes

RECORD_META = "meta"
RECORD_MESSAGE = "message"
PREVIEW_CHARS = 50
DEFAULT_PREVIEW = "New conversation"

_UNSAFE_ID_RE = re.compile(r"[^A-Za-z0-9_-]")
_META_FIELDS = {
    "type",
    "id",
    "title",
    "createdAt",
    "updatedAt",
    "lastResponseAt",
    "sessionId",
    "messages",
}


def session_file_name(conversation_id: str) -> str:
    safe = _UNSAFE_ID_RE.sub("_", str(conversation_id or "").strip())
    if not safe:
        raise ValueError("conversation id is empty")
    return "{0}.jsonl".format(safe)


def _int_or(value: object, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return int(value)


@dataclass
class ConversationTranscript:
    id: str
    title: str
    created_at: int
    updated_at: int
    session_id: Optional[str] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    last_response_at: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationTranscript":
        conversation_id = data.get("id")
        if not isinstance(conversation_id, str) or not conversation_id.strip():
            raise ValueError("conversation has no id")
        messages = data.get("messages", [])
        if not isinstance(messages, list):
            raise ValueError("conversation {0!r} messages must be a list".format(conversation_id))
        created_at = _int_or(data.get("createdAt"), 0)
        title = data.get("title")
        session_id = data.get("sessionId")
        last_response_at = data.get("lastResponseAt")
        return cls(
            id=conversation_id,
            title=title if isinstance(title, str) else "",
            created_at=created_at,
            updated_at=_int_or(data.get("updatedAt"), created_at),
            session_id=session_id if isinstance(session_id, str) else None,
            messages=[dict(item) for item in messages if isinstance(item, dict)],
            last_response_at=_int_or(last_response_at, 0) if last_response_at is not None else None,
            extra={key: value for key, value in data.items() if key not in _META_FIELDS},
        )

    def meta_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "type": RECORD_META,
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.last_response_at is not None:
            record["lastResponseAt"] = self.last_response_at
        record["sessionId"] = self.session_id
        for key, value in self.extra.items():
            record.setdefault(key, value)
        return record

    def to_jsonl(self) -> str:
        lines = [json.dumps(self.meta_record(), ensure_ascii=False)]
        for message in self.messages:
            record = {"type": RECORD_MESSAGE}
            record.update({key: value for key, value in message.items() if key != "type"})
            lines.append(json.dumps(record, ensure_ascii=False))
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ConversationMeta:
    id: str
    title: str
    created_at: int
    updated_at: int
    last_response_at: Optional[int]
    message_count: int
    preview: str


def parse_session_jsonl(text: str) -> ConversationTranscript:
    meta: Optional[Dict[str, Any]] = None
    messages: List[Dict[str, Any]] = []
    for index, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ValueError("line {0}: {1}".format(index, exc)) from exc
        if not isinstance(record, dict):
            raise ValueError("line {0}: record must be an object".format(index))
        kind = record.get("type")
        if kind == RECORD_META:
            if meta is not None:
                raise ValueError("line {0}: duplicate meta record".format(index))
            meta = record
        elif kind == RECORD_MESSAGE:
            messages.append({key: value for key, value in record.items() if key != "type"})
        else:
            raise ValueError("line {0}: unknown record type {1!r}".format(index, kind))
    if meta is None:
        raise ValueError("missing meta record")
    payload = dict(meta)
    payload["messages"] = messages
    return ConversationTranscript.from_dict(payload)


def _preview(conversation: ConversationTranscript) -> str:
    for message in conversation.messages:
        if message.get("role") != "user":
            continue
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            text = content.strip()
            return text[:PREVIEW_CHARS] + ("..." if len(text) > PREVIEW_CHARS else "")
    return DEFAULT_PREVIEW


class SessionStore:
    """One JSONL transcript per conversation, keyed by conversation id."""

    def __init__(self, adapter: FileAdapter, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._adapter = adapter
        self._log = ensure_writer(debug_log)

    def get_file_path(self, conversation_id: str) -> str:
        return "{0}/{1}".format(SESSIONS_DIR, session_file_name(conversation_id))

    def exists(self, conversation_id: str) -> bool:
        return self._adapter.exists(self.get_file_path(conversation_id))

    def load_all(self) -> LoadReport:
        report = fold_outcomes(
            (self._parse(path) for path in self._adapter.list_files(SESSIONS_DIR, ".jsonl")),
            on_skip=self._log_skip,
        )
        report.items.sort(key=lambda item: item.updated_at, reverse=True)
        return report

    def load(self, conversation_id: str) -> Optional[ConversationTranscript]:
        path = self.get_file_path(conversation_id)
        if not self._adapter.is_file(path):
            return None
        outcome = self._parse(path)
        if isinstance(outcome, Skip):
            self._log_skip(outcome)
            return None
        return outcome.value

    def list_metadata(self) -> List[ConversationMeta]:
        return [
            ConversationMeta(
                id=item.id,
                title=item.title,
                created_at=item.created_at,
                updated_at=item.updated_at,
                last_response_at=item.last_response_at,
                message_count=len(item.messages),
                preview=_preview(item),
            )
            for item in self.load_all().items
        ]

    def save(self, conversation: ConversationTranscript) -> str:
        path = self.get_file_path(conversation.id)
        self._adapter.write(path, conversation.to_jsonl())
        return path

    def delete(self, conversation_id: str) -> bool:
        try:
            path = self.get_file_path(conversation_id)
        except ValueError:
            return False
        return self._adapter.remove(path)

    def _parse(self, path: str) -> ParseOutcome:
        try:
            return Ok(path, parse_session_jsonl(self._adapter.read(path)))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            return Skip(path, str(exc))

    def _log_skip(self, skip: Skip) -> None:
        self._log.warn("sessions", "load_skip", "skipped session file", path=skip.path, reason=skip.reason)
