from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from backlog_planner.core.model import Task, TaskGraph
from backlog_planner.core.validate.validate_graph import ensure_valid


log = logging.getLogger(__name__)


# Weights in percent, so the weighted sum can be floored with integer division.
PRIORITY_WEIGHT = 35
UNLOCK_WEIGHT = 25
BUSINESS_WEIGHT = 20
READINESS_WEIGHT = 20

UNLOCK_PER_DEPENDENT = 20
UNLOCK_CAP = 100

BUSINESS_VALUE_POINTS: dict[str, int] = {
    "critical": 100,
    "high": 75,
    "medium": 50,
}
DEFAULT_BUSINESS_POINTS = 25

# The ready queue only holds ready tasks: readiness is fixed at 100 * 0.20.
READY_QUEUE_READINESS_POINTS = 20


@dataclass(frozen=True)
class TaskScore:
    task_id: str
    score: int
    breakdown: dict[str, int]
    ready: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "score": self.score,
            "breakdown": dict(self.breakdown),
            "ready": self.ready,
        }


@dataclass(frozen=True)
class Selection:
    task: Optional[Task]
    score: Optional[int]
    candidates: int

    @property
    def none_ready(self) -> bool:
        return self.task is None


def priority_points(priority: int) -> int:
    """Priority 1..5 maps to 100..20."""
    return (6 - priority) * 20


def business_points(business_value: str) -> int:
    return BUSINESS_VALUE_POINTS.get(business_value, DEFAULT_BUSINESS_POINTS)


def unlock_points(dependent_count: int) -> int:
    return min(UNLOCK_CAP, UNLOCK_PER_DEPENDENT * dependent_count)


def is_ready(graph: TaskGraph, tid: str, completed: frozenset[str]) -> bool:
    return all(d in completed for d in graph.deps[tid])


def score_task(
    graph: TaskGraph, task: str, completed: Optional[Iterable[str]] = None
) -> TaskScore:
    """Composite score used when inspecting a single task."""

    ensure_valid(graph)
    t = graph.get(task)
    done = graph.normalize_ids(completed)

    readiness = 100 if is_ready(graph, t.id, done) else 0
    unlock = unlock_points(len(graph.dependents[t.id]))
    business = business_points(t.business_value)
    priority = priority_points(t.priority)

    score = (
        PRIORITY_WEIGHT * priority
        + UNLOCK_WEIGHT * unlock
        + BUSINESS_WEIGHT * business
        + READINESS_WEIGHT * readiness
    ) // 100

    return TaskScore(
        task_id=t.id,
        score=score,
        breakdown={
            "priority": priority,
            "unlock": unlock,
            "business": business,
            "readiness": readiness,
        },
        ready=readiness == 100,
    )


def ready_queue_score(task: Task) -> int:
    # No unlock term here, unlike score_task.
    return (
        PRIORITY_WEIGHT * priority_points(task.priority)
        + BUSINESS_WEIGHT * business_points(task.business_value)
    ) // 100 + READY_QUEUE_READINESS_POINTS


def ready_tasks(graph: TaskGraph, completed: Optional[Iterable[str]] = None) -> list[Task]:
    """PENDING tasks whose dependencies are all complete, by priority then input order."""

    ensure_valid(graph)
    done = graph.normalize_ids(completed)
    ready = [
        graph.tasks_by_id[tid]
        for tid in graph.order
        if graph.tasks_by_id[tid].status == "PENDING" and is_ready(graph, tid, done)
    ]
    return sorted(ready, key=lambda t: t.priority)


def select_next_task(graph: TaskGraph, completed: Optional[Iterable[str]] = None) -> Selection:
    """Pick the single best ready task; the first maximum in input order wins."""

    ensure_valid(graph)
    done = graph.normalize_ids(completed)

    best: Optional[Task] = None
    best_score: Optional[int] = None
    candidates = 0
    for tid in graph.order:
        t = graph.tasks_by_id[tid]
        if t.status != "PENDING" or not is_ready(graph, tid, done):
            continue
        candidates += 1
        s = ready_queue_score(t)
        if best_score is None or s > best_score:
            best, best_score = t, s

    log.debug("ready queue: %d candidates, selected %s", candidates, best.id if best else None)
    return Selection(task=best, score=best_score, candidates=candidates)
