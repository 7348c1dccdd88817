from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from backlog_planner.core.model import Task, TaskGraph


log = logging.getLogger(__name__)

Resolver = Callable[[str], Optional[str]]


def build_graph(tasks: Iterable[Task], resolver: Optional[Resolver] = None) -> TaskGraph:
    """Build an immutable TaskGraph from a flat, ordered task collection.

    Input order is kept: it is the tie-break source for every later component.

    Each depends_on token is resolved against the graph's own node set (an id
    or a short_id). When `resolver` is given it is consulted for tokens the
    node set does not know; its answer only counts if it names a node.
    Tokens that still do not resolve are kept in `unresolved` for the
    validator. No validation happens here.
    """

    order: list[str] = []
    tasks_by_id: dict[str, Task] = {}
    aliases: dict[str, str] = {}
    duplicates: list[str] = []

    for t in tasks:
        if t.id in tasks_by_id:
            duplicates.append(t.id)
            continue
        order.append(t.id)
        tasks_by_id[t.id] = t

    # Canonical ids win over short ids when the two namespaces overlap.
    for tid in order:
        sid = tasks_by_id[tid].short_id
        if sid and sid not in tasks_by_id:
            aliases.setdefault(sid, tid)
    for tid in order:
        aliases[tid] = tid

    deps: dict[str, tuple[str, ...]] = {}
    unresolved: dict[str, tuple[str, ...]] = {}
    dependents_acc: dict[str, list[str]] = {tid: [] for tid in order}

    for tid in order:
        resolved: list[str] = []
        missing: list[str] = []
        for token in tasks_by_id[tid].depends_on:
            dep = aliases.get(token)
            if dep is None and resolver is not None:
                candidate = resolver(token)
                if candidate is not None and candidate in tasks_by_id:
                    dep = candidate
            if dep is None:
                if token not in missing:
                    missing.append(token)
                continue
            if dep not in resolved:
                resolved.append(dep)
        deps[tid] = tuple(resolved)
        if missing:
            unresolved[tid] = tuple(missing)
        for dep in resolved:
            dependents_acc[dep].append(tid)

    graph = TaskGraph(
        order=tuple(order),
        tasks_by_id=tasks_by_id,
        deps=deps,
        dependents={tid: tuple(ds) for tid, ds in dependents_acc.items()},
        unresolved=unresolved,
        aliases=aliases,
        duplicates=tuple(duplicates),
    )
    log.debug(
        "built graph: %d tasks, %d edges, %d unresolved refs",
        len(order),
        sum(len(d) for d in deps.values()),
        sum(len(u) for u in unresolved.values()),
    )
    return graph
