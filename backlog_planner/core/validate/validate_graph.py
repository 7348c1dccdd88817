from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

from backlog_planner.core.errors import CycleDetected, GraphValidationError, UnknownDependency
from backlog_planner.core.model import TaskGraph


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnknownRef:
    task_id: str
    token: str


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    cycles: list[list[str]]
    unknown_refs: list[UnknownRef]
    isolated: list[str]
    duplicate_ids: list[str]

    def errors(self) -> list[GraphValidationError]:
        out: list[GraphValidationError] = [
            UnknownDependency.of(r.task_id, r.token) for r in self.unknown_refs
        ]
        for cycle in self.cycles:
            out.append(CycleDetected.of([cycle]))
        for dup in self.duplicate_ids:
            out.append(
                GraphValidationError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate task id: {dup}",
                    path=f"{dup}.id",
                )
            )
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "cycles": [list(c) for c in self.cycles],
            "unknown_refs": [{"task_id": r.task_id, "token": r.token} for r in self.unknown_refs],
            "isolated": list(self.isolated),
            "duplicate_ids": list(self.duplicate_ids),
        }


def validate_graph(graph: TaskGraph) -> ValidationReport:
    """Run the structural checks on a graph.

    Never raises and never repairs: bad edges and cycles are reported as found.
    Isolated tasks are informational and do not affect `valid`.
    """

    unknown_refs = find_unknown_refs(graph)
    cycles = find_cycles(graph)
    isolated = find_isolated(graph)
    duplicate_ids = sorted(set(graph.duplicates))

    valid = not unknown_refs and not cycles and not duplicate_ids
    log.debug(
        "validated graph: valid=%s cycles=%d unknown_refs=%d isolated=%d",
        valid,
        len(cycles),
        len(unknown_refs),
        len(isolated),
    )
    return ValidationReport(
        valid=valid,
        cycles=cycles,
        unknown_refs=unknown_refs,
        isolated=isolated,
        duplicate_ids=duplicate_ids,
    )


def ensure_valid(graph: TaskGraph) -> None:
    """Fail fast on a graph the derived views cannot trust."""
    unknown_refs = find_unknown_refs(graph)
    if unknown_refs:
        first = unknown_refs[0]
        raise UnknownDependency.of(first.task_id, first.token)
    if graph.duplicates:
        dup = graph.duplicates[0]
        raise GraphValidationError(
            code="E_DUPLICATE_ID",
            message=f"duplicate task id: {dup}",
            path=f"{dup}.id",
        )
    cycles = find_cycles(graph)
    if cycles:
        raise CycleDetected.of(cycles)


def find_unknown_refs(graph: TaskGraph) -> list[UnknownRef]:
    out: list[UnknownRef] = []
    for tid in graph.order:
        for token in graph.unresolved.get(tid, ()):
            out.append(UnknownRef(task_id=tid, token=token))
    return out


def find_isolated(graph: TaskGraph) -> list[str]:
    return [
        tid
        for tid in graph.order
        if not graph.deps[tid] and not graph.dependents[tid]
    ]


def find_cycles(graph: TaskGraph) -> list[list[str]]:
    """Every distinct elementary cycle along depends_on edges.

    A cycle is reported as [first, ..., first], where first is its earliest
    task in input order. A path DFS is restarted from every task and only
    prunes tasks already on the current path, so cycles that share tasks are
    all found. Each search is restricted to tasks at or after the start and
    to tasks that can lead back to it.
    """

    index = {tid: i for i, tid in enumerate(graph.order)}
    emitted: set[tuple[str, ...]] = set()
    out: list[list[str]] = []

    for start in graph.order:
        floor = index[start]
        closes = _leads_back_to(graph, start, floor, index)
        path: list[str] = [start]
        on_path: set[str] = {start}

        def walk(u: str) -> None:
            for v in graph.deps.get(u, ()):
                if v == start:
                    key = _rotation_key(path)
                    if key not in emitted:
                        emitted.add(key)
                        out.append(path + [start])
                elif v in closes and v not in on_path:
                    path.append(v)
                    on_path.add(v)
                    walk(v)
                    on_path.discard(v)
                    path.pop()

        walk(start)

    return out


def _leads_back_to(
    graph: TaskGraph, start: str, floor: int, index: dict[str, int]
) -> set[str]:
    # Tasks at or after `floor` from which `start` is reachable along depends_on.
    seen: set[str] = {start}
    queue = deque([start])
    while queue:
        cur = queue.popleft()
        for prev in graph.dependents.get(cur, ()):
            if prev not in seen and index[prev] >= floor:
                seen.add(prev)
                queue.append(prev)
    return seen


def summarize_report(report: ValidationReport, graph: TaskGraph) -> str:
    lines: list[str] = []
    if report.cycles:
        for cycle in report.cycles:
            lines.append("Cycle: " + " -> ".join(_labels(graph, cycle)))
    else:
        lines.append("No cycles detected")

    if report.unknown_refs:
        for r in report.unknown_refs:
            lines.append(f"Unknown reference: {_label(graph, r.task_id)} depends on {r.token}")
    else:
        lines.append("All references valid")

    for dup in report.duplicate_ids:
        lines.append(f"Duplicate id: {dup}")

    if report.isolated:
        lines.append("Isolated: " + ", ".join(_labels(graph, report.isolated)))
    else:
        lines.append("All tasks connected")

    issues = len(report.cycles) + len(report.unknown_refs) + len(report.duplicate_ids)
    if issues:
        lines.append(f"FAIL: found {issues} issues")
    else:
        lines.append(f"OK: {len(graph)} tasks, {len(graph.edges)} dependencies")
    return "\n".join(lines)


def _rotation_key(cycle: list[str]) -> tuple[str, ...]:
    i = cycle.index(min(cycle))
    return tuple(cycle[i:] + cycle[:i])


def _label(graph: TaskGraph, tid: str) -> str:
    task = graph.tasks_by_id.get(tid)
    return task.label if task else tid


def _labels(graph: TaskGraph, ids: list[str]) -> list[str]:
    return [_label(graph, tid) for tid in ids]
