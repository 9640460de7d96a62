"""Per-item outcome records for loads and content migration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    path: str
    value: T


@dataclass(frozen=True)
class Skip:
    path: str
    reason: str


ParseOutcome = Union[Ok[T], Skip]


@dataclass
class LoadReport(Generic[T]):
    items: List[T] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def fold_outcomes(
    outcomes: Iterable[ParseOutcome],
    on_skip: Optional[Callable[[Skip], None]] = None,
) -> LoadReport:
    """Keep ``Ok`` values in order, collect ``Skip`` reasons by path."""

    report: LoadReport = LoadReport()
    for outcome in outcomes:
        if isinstance(outcome, Ok):
            report.items.append(outcome.value)
            continue
        report.skipped[outcome.path] = outcome.reason
        if on_skip is not None:
            on_skip(outcome)
    return report


MIGRATED = "migrated"
SKIPPED_EXISTING = "skipped_existing"
FAILED = "failed"


@dataclass(frozen=True)
class ContentItemOutcome:
    kind: str
    key: str
    path: str
    status: str
    reason: str = ""


@dataclass
class ContentMigrationReport:
    outcomes: List[ContentItemOutcome] = field(default_factory=list)

    def record(self, *, kind: str, key: str, path: str, status: str, reason: str = "") -> None:
        self.outcomes.append(ContentItemOutcome(kind=kind, key=key, path=path, status=status, reason=reason))

    @property
    def had_errors(self) -> bool:
        return any(item.status == FAILED for item in self.outcomes)

    def count(self, status: str, kind: Optional[str] = None) -> int:
        return sum(
            1
            for item in self.outcomes
            if item.status == status and (kind is None or item.kind == kind)
        )

    def failures(self) -> List[Tuple[str, str]]:
        return [(item.path, item.reason) for item in self.outcomes if item.status == FAILED]
