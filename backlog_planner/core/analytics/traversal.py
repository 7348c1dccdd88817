from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from backlog_planner.core.model import TaskGraph
from backlog_planner.core.validate.validate_graph import ensure_valid


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CriticalPath:
    path: tuple[str, ...]
    length: int
    fully_parallel: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "length": self.length,
            "fully_parallel": self.fully_parallel,
        }


@dataclass(frozen=True)
class ImpactReport:
    task_id: str
    direct: tuple[str, ...]
    transitive: tuple[str, ...]

    @property
    def total_affected(self) -> int:
        return len(self.direct) + len(self.transitive)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "direct": list(self.direct),
            "transitive": list(self.transitive),
            "total_affected": self.total_affected,
        }


@dataclass(frozen=True)
class Blocker:
    task_id: str
    status: str


@dataclass(frozen=True)
class BlockerReport:
    task_id: str
    blockers: tuple[Blocker, ...]

    @property
    def blocking_count(self) -> int:
        return sum(1 for b in self.blockers if b.status != "COMPLETE")

    @property
    def ready(self) -> bool:
        return self.blocking_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "blockers": [{"task_id": b.task_id, "status": b.status} for b in self.blockers],
            "blocking_count": self.blocking_count,
            "ready": self.ready,
        }


def critical_path(graph: TaskGraph) -> CriticalPath:
    """Longest root-to-leaf chain, counted in tasks.

    Ties go to the chain found first when roots, and the dependents of each
    node, are walked in input order. A graph without edges has no critical
    path (full parallelism).
    """

    ensure_valid(graph)
    if not graph.edges:
        return CriticalPath(path=(), length=0, fully_parallel=True)

    # Longest chain starting at each node; successor is the first dependent
    # reaching the maximum, which keeps the discovery-order tie-break.
    memo: dict[str, tuple[int, str | None]] = {}

    def longest_from(u: str) -> int:
        hit = memo.get(u)
        if hit is not None:
            return hit[0]
        best_len, best_next = 1, None
        for v in graph.dependents[u]:
            n = 1 + longest_from(v)
            if n > best_len:
                best_len, best_next = n, v
        memo[u] = (best_len, best_next)
        return best_len

    start: str | None = None
    best = 0
    for root in graph.roots:
        n = longest_from(root)
        if n > best:
            best, start = n, root

    path: list[str] = []
    cur = start
    while cur is not None:
        path.append(cur)
        cur = memo[cur][1]

    log.debug("critical path length %d from %s", best, start)
    return CriticalPath(path=tuple(path), length=len(path))


def impact(graph: TaskGraph, task: str) -> ImpactReport:
    """Everything downstream of `task`, direct dependents reported apart."""

    ensure_valid(graph)
    tid = graph.get(task).id

    direct = list(graph.dependents[tid])
    seen: set[str] = {tid, *direct}
    transitive: list[str] = []

    layer = direct
    while layer:
        nxt: list[str] = []
        for cur in layer:
            for dep in graph.dependents[cur]:
                if dep not in seen:
                    seen.add(dep)
                    nxt.append(dep)
        transitive.extend(nxt)
        layer = nxt

    return ImpactReport(task_id=tid, direct=tuple(direct), transitive=tuple(transitive))


def blockers(graph: TaskGraph, task: str) -> BlockerReport:
    """Direct dependencies of `task` with their current status."""

    ensure_valid(graph)
    tid = graph.get(task).id
    found = tuple(
        Blocker(task_id=dep, status=graph.tasks_by_id[dep].status) for dep in graph.deps[tid]
    )
    return BlockerReport(task_id=tid, blockers=found)
