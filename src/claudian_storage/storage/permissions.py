"""Permission rules shared with the Claude CLI and their legacy encodings.

A rule string is either a bare tool name (``Bash``) or a tool name with a
parenthesized pattern (``Bash(git status)``). Older plugin versions stored
approvals as a flat list of records instead; those are converted here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

SCOPE_ALWAYS = "always"
SCOPE_SESSION = "session"
WILDCARD_PATTERN = "*"

_RULE_RE = re.compile(r"^(?P<tool>[^()\s][^()]*?)(?:\((?P<pattern>.*)\))?$", re.DOTALL)


def create_permission_rule(tool_name: str, pattern: Optional[str] = None) -> str:
    tool = str(tool_name or "").strip()
    if not tool:
        raise ValueError("permission rule requires a tool name")
    text = "" if pattern is None else str(pattern).strip()
    if not text or text == WILDCARD_PATTERN:
        return tool
    return "{0}({1})".format(tool, text)


def parse_permission_rule(rule: str) -> Tuple[str, Optional[str]]:
    """Split a rule string into ``(tool, pattern)``; ``pattern`` is None when bare."""

    match = _RULE_RE.match(str(rule or "").strip())
    if match is None:
        raise ValueError("invalid permission rule: {0!r}".format(rule))
    return match.group("tool").strip(), match.group("pattern")


def normalize_rule(rule: str) -> str:
    tool, pattern = parse_permission_rule(rule)
    return create_permission_rule(tool, pattern)


def _string_list(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


@dataclass
class AgentPermissions:
    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)
    ask: List[str] = field(default_factory=list)
    default_mode: Optional[str] = None
    additional_directories: Optional[List[str]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentPermissions":
        default_mode = data.get("defaultMode")
        directories = data.get("additionalDirectories")
        return cls(
            allow=_string_list(data.get("allow")),
            deny=_string_list(data.get("deny")),
            ask=_string_list(data.get("ask")),
            default_mode=default_mode if isinstance(default_mode, str) else None,
            additional_directories=list(directories) if isinstance(directories, list) else None,
            extra={
                key: value
                for key, value in data.items()
                if key not in {"allow", "deny", "ask", "defaultMode", "additionalDirectories"}
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "allow": list(self.allow),
            "deny": list(self.deny),
            "ask": list(self.ask),
        }
        if self.default_mode is not None:
            payload["defaultMode"] = self.default_mode
        if self.additional_directories is not None:
            payload["additionalDirectories"] = list(self.additional_directories)
        payload.update(self.extra)
        return payload

    def all_rules(self) -> List[Tuple[str, str]]:
        rows: List[Tuple[str, str]] = []
        for bucket in ("allow", "deny", "ask"):
            rows.extend((bucket, rule) for rule in getattr(self, bucket))
        return rows


def default_permissions() -> AgentPermissions:
    return AgentPermissions()


@dataclass(frozen=True)
class LegacyPermission:
    tool_name: str
    pattern: str
    approved_at: int = 0
    scope: str = SCOPE_ALWAYS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["LegacyPermission"]:
        tool_name = data.get("toolName")
        if not isinstance(tool_name, str) or not tool_name.strip():
            return None
        pattern = data.get("pattern")
        approved_at = data.get("approvedAt")
        scope = data.get("scope")
        return cls(
            tool_name=tool_name.strip(),
            pattern=pattern if isinstance(pattern, str) else "",
            approved_at=approved_at if isinstance(approved_at, int) else 0,
            scope=scope if isinstance(scope, str) else SCOPE_ALWAYS,
        )

    def to_rule(self) -> str:
        return create_permission_rule(self.tool_name, self.pattern)


# The permissions field of an old combined settings file is either the
# legacy flat array, the CLI's structured object, or missing/garbage.


@dataclass(frozen=True)
class LegacyPermissionList:
    records: Sequence[LegacyPermission]


@dataclass(frozen=True)
class StructuredPermissions:
    permissions: AgentPermissions


@dataclass(frozen=True)
class MissingPermissions:
    reason: str = "absent"


PermissionsField = Union[LegacyPermissionList, StructuredPermissions, MissingPermissions]


def classify_permissions(value: object) -> PermissionsField:
    if isinstance(value, list):
        records = []
        for item in value:
            if not isinstance(item, dict):
                continue
            record = LegacyPermission.from_dict(item)
            if record is not None:
                records.append(record)
        return LegacyPermissionList(records=tuple(records))
    if isinstance(value, dict):
        return StructuredPermissions(permissions=AgentPermissions.from_dict(value))
    if value is None:
        return MissingPermissions()
    return MissingPermissions(reason="unsupported type {0}".format(type(value).__name__))


def legacy_to_agent_permissions(records: Sequence[LegacyPermission]) -> AgentPermissions:
    """Convert legacy approvals; session-scoped ones do not survive a restart."""

    permissions = default_permissions()
    seen = set()
    for record in records:
        if record.scope != SCOPE_ALWAYS:
            continue
        rule = record.to_rule()
        if rule in seen:
            continue
        seen.add(rule)
        # Legacy records only ever expressed approvals.
        permissions.allow.append(rule)
    return permissions


def resolve_permissions_field(value: object) -> AgentPermissions:
    classified = classify_permissions(value)
    if isinstance(classified, LegacyPermissionList):
        return legacy_to_agent_permissions(classified.records)
    if isinstance(classified, StructuredPermissions):
        return classified.permissions
    return default_permissions()
