from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Mapping, Optional

from backlog_planner.core.errors import TaskNotFound


TaskStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETE", "CANCELLED", "BLOCKED"]
BusinessValue = Literal["critical", "high", "medium", "low"]

ALLOWED_STATUSES: set[str] = {"PENDING", "IN_PROGRESS", "COMPLETE", "CANCELLED", "BLOCKED"}
ALLOWED_BUSINESS_VALUES: set[str] = {"critical", "high", "medium", "low"}


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class StatusChange:
    timestamp: str
    action: str
    previous_value: Optional[str]
    new_value: str
    reason: str = ""
    actor: str = "system"

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "action": self.action,
            "actor": self.actor,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Task:
    id: str
    short_id: str
    depends_on: tuple[str, ...] = ()
    priority: int = 3
    business_value: str = "medium"
    name: str = ""
    effort: Optional[Mapping[str, Any]] = None
    history: tuple[StatusChange, ...] = ()

    @property
    def status(self) -> str:
        """Current status, projected from the append-only history."""
        if not self.history:
            return "PENDING"
        return self.history[-1].new_value

    @property
    def label(self) -> str:
        return self.short_id or self.id

    @classmethod
    def create(
        cls,
        id: str,
        short_id: str = "",
        *,
        depends_on: tuple[str, ...] | list[str] = (),
        priority: int = 3,
        business_value: str = "medium",
        name: str = "",
        effort: Optional[Mapping[str, Any]] = None,
        actor: str = "architect",
        timestamp: Optional[str] = None,
    ) -> "Task":
        created = StatusChange(
            timestamp=timestamp or now_iso(),
            action="CREATED",
            previous_value=None,
            new_value="PENDING",
            reason="Initial creation",
            actor=actor,
        )
        return cls(
            id=id,
            short_id=short_id,
            depends_on=tuple(depends_on),
            priority=priority,
            business_value=business_value,
            name=name,
            effort=effort,
            history=(created,),
        )

    def with_status(
        self,
        new_status: str,
        *,
        reason: str = "Status update",
        actor: str = "system",
        timestamp: Optional[str] = None,
    ) -> "Task":
        """Return a copy with one more history entry; self is left untouched."""
        if new_status not in ALLOWED_STATUSES:
            raise ValueError(
                f"invalid status: {new_status} (valid: {', '.join(sorted(ALLOWED_STATUSES))})"
            )
        change = StatusChange(
            timestamp=timestamp or now_iso(),
            action="STATUS_CHANGED",
            previous_value=self.status,
            new_value=new_status,
            reason=reason,
            actor=actor,
        )
        return replace(self, history=self.history + (change,))


@dataclass(frozen=True)
class TaskGraph:
    """One immutable snapshot of the task DAG.

    Edges are not stored as such; `deps` holds the resolved dependency ids of
    each task and `dependents` the inverted relation.
    """

    order: tuple[str, ...]
    tasks_by_id: dict[str, Task]
    deps: dict[str, tuple[str, ...]]
    dependents: dict[str, tuple[str, ...]]
    unresolved: dict[str, tuple[str, ...]] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    duplicates: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.order)

    @property
    def is_empty(self) -> bool:
        return not self.order

    @property
    def edges(self) -> list[tuple[str, str]]:
        # (dependency_id, dependent_id)
        return [(dep, tid) for tid in self.order for dep in self.deps[tid]]

    @property
    def roots(self) -> list[str]:
        return [tid for tid in self.order if not self.deps[tid]]

    @property
    def leaves(self) -> list[str]:
        return [tid for tid in self.order if not self.dependents[tid]]

    def resolve(self, token: str) -> Optional[str]:
        return self.aliases.get(token)

    def get(self, token: str) -> Task:
        tid = self.resolve(token)
        if tid is None:
            raise TaskNotFound.of(token)
        return self.tasks_by_id[tid]

    def completed_ids(self) -> frozenset[str]:
        return frozenset(tid for tid in self.order if self.tasks_by_id[tid].status == "COMPLETE")

    def normalize_ids(self, tokens: Optional[Iterable[str]]) -> frozenset[str]:
        """Map a caller-supplied id collection onto canonical ids.

        None means "derive from the snapshot". Unknown tokens are ignored: they
        cannot satisfy any resolved dependency.
        """
        if tokens is None:
            return self.completed_ids()
        out: set[str] = set()
        for tok in tokens:
            tid = self.resolve(tok)
            if tid is not None:
                out.add(tid)
        return frozenset(out)
