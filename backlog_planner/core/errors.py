from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BacklogError(Exception):
    """A coded backlog problem, located by file and field path when known."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<backlog>"
        return f"{loc}: {self.code}: {self.message}"


class BacklogLoadError(BacklogError):
    pass


class StaleSnapshotError(BacklogError):
    pass


class GraphValidationError(BacklogError):
    pass


@dataclass(frozen=True)
class UnknownDependency(GraphValidationError):
    task_id: str = ""
    token: str = ""

    @classmethod
    def of(cls, task_id: str, token: str) -> "UnknownDependency":
        return cls(
            code="E_UNKNOWN_DEPENDENCY",
            message=f"depends_on references unknown id: {token}",
            path=f"{task_id}.depends_on",
            task_id=task_id,
            token=token,
        )


@dataclass(frozen=True)
class CycleDetected(GraphValidationError):
    # Each cycle starts and ends with the same task id.
    cycles: tuple[tuple[str, ...], ...] = ()
    batches: tuple[tuple[str, ...], ...] = ()
    unassigned: tuple[str, ...] = ()

    @classmethod
    def of(
        cls,
        cycles: list[list[str]],
        *,
        batches: Optional[list[list[str]]] = None,
        unassigned: Optional[list[str]] = None,
    ) -> "CycleDetected":
        if cycles:
            message = "dependency cycle detected: " + "; ".join(" -> ".join(c) for c in cycles)
        else:
            message = "dependency cycle detected: cannot resolve " + ", ".join(unassigned or [])
        return cls(
            code="E_CYCLE_DETECTED",
            message=message,
            path="depends_on",
            cycles=tuple(tuple(c) for c in cycles),
            batches=tuple(tuple(b) for b in (batches or [])),
            unassigned=tuple(unassigned or []),
        )


@dataclass(frozen=True)
class TaskNotFound(BacklogError):
    task_id: str = ""

    @classmethod
    def of(cls, task_id: str) -> "TaskNotFound":
        return cls(
            code="E_TASK_NOT_FOUND",
            message=f"task not found: {task_id}",
            path="task_id",
            task_id=task_id,
        )
