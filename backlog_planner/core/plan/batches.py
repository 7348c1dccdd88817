from __future__ import annotations

import logging
from typing import Iterable, Optional

from backlog_planner.core.errors import CycleDetected, UnknownDependency
from backlog_planner.core.model import TaskGraph
from backlog_planner.core.validate.validate_graph import find_cycles, find_unknown_refs


log = logging.getLogger(__name__)


def parallel_batches(
    graph: TaskGraph, completed: Optional[Iterable[str]] = None
) -> list[list[str]]:
    """Partition every task into lockstep waves from the live completion state.

    Batch 1 holds the tasks whose dependencies are all in `completed`; batch
    n+1 those whose dependencies are completed or in batches 1..n. Tasks keep
    input order inside a batch. `completed` defaults to the snapshot's
    COMPLETE tasks and may use ids or short ids.

    May run without prior validation: a wave that assigns nothing while
    tasks remain raises CycleDetected.
    """

    unknown = find_unknown_refs(graph)
    if unknown:
        raise UnknownDependency.of(unknown[0].task_id, unknown[0].token)

    done: set[str] = set(graph.normalize_ids(completed))
    remaining = list(graph.order)
    batches: list[list[str]] = []

    while remaining:
        batch = [tid for tid in remaining if all(d in done for d in graph.deps[tid])]
        if not batch:
            raise CycleDetected.of(find_cycles(graph), batches=batches, unassigned=remaining)
        batches.append(batch)
        done.update(batch)
        in_batch = set(batch)
        remaining = [tid for tid in remaining if tid not in in_batch]

    log.debug("planned %d tasks into %d batches", len(graph), len(batches))
    return batches
