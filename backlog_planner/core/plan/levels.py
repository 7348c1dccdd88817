from __future__ import annotations

import logging

from backlog_planner.core.errors import CycleDetected, UnknownDependency
from backlog_planner.core.model import TaskGraph
from backlog_planner.core.validate.validate_graph import find_cycles, find_unknown_refs


log = logging.getLogger(__name__)


def compute_levels(graph: TaskGraph) -> dict[str, int]:
    """Static topological level of every task.

    level = 0 without dependencies, else 1 + max(level of each dependency).
    Fixed-point iteration in input order; a pass without progress while tasks
    remain unleveled means a cycle.
    """

    unknown = find_unknown_refs(graph)
    if unknown:
        raise UnknownDependency.of(unknown[0].task_id, unknown[0].token)

    levels: dict[str, int] = {}
    pending = list(graph.order)
    passes = 0

    while pending:
        passes += 1
        progressed = False
        still: list[str] = []
        for tid in pending:
            deps = graph.deps[tid]
            if all(d in levels for d in deps):
                levels[tid] = 1 + max((levels[d] for d in deps), default=-1)
                progressed = True
            else:
                still.append(tid)
        pending = still
        if not progressed:
            raise CycleDetected.of(find_cycles(graph), unassigned=pending)

    log.debug("leveled %d tasks in %d passes", len(levels), passes)
    # Report in input order regardless of the pass that assigned each level.
    return {tid: levels[tid] for tid in graph.order}


def group_by_level(levels: dict[str, int]) -> list[list[str]]:
    if not levels:
        return []
    out: list[list[str]] = [[] for _ in range(max(levels.values()) + 1)]
    for tid, lvl in levels.items():
        out[lvl].append(tid)
    return out
