import pytest

from backlog_planner.core.analytics.traversal import blockers, critical_path, impact
from backlog_planner.core.errors import CycleDetected, TaskNotFound, UnknownDependency
from backlog_planner.core.graph.build_graph import build_graph
from backlog_planner.core.model import Task, TaskGraph


def _t(tid: str, *deps: str, status: str = "PENDING", short: str = "") -> Task:
    t = Task.create(tid, short, depends_on=list(deps), timestamp="2026-01-01T00:00:00Z")
    if status != "PENDING":
        t = t.with_status(status, timestamp="2026-01-02T00:00:00Z")
    return t


def _reaches(g: TaskGraph, start: str, target: str) -> bool:
    # Follow depends_on one or more times.
    stack = list(g.deps[start])
    seen: set[str] = set()
    while stack:
        cur = stack.pop()
        if cur == target:
            return True
        if cur in seen:
            continue
        seen.add(cur)
        stack.extend(g.deps[cur])
    return False


def test_critical_path_longest_chain():
    g = build_graph([_t("a"), _t("b", "a"), _t("c", "b"), _t("d", "a"), _t("e")])
    cp = critical_path(g)
    assert cp.path == ("a", "b", "c")
    assert cp.length == 3
    assert cp.fully_parallel is False


def test_critical_path_tie_break_is_input_order():
    # Two chains of equal length; the first root in input order wins.
    g = build_graph([_t("r2"), _t("r1"), _t("x", "r2"), _t("y", "r1")])
    assert critical_path(g).path == ("r2", "x")

    # Within a node, the first dependent in input order wins.
    g2 = build_graph([_t("r"), _t("late", "r"), _t("early", "r")])
    assert critical_path(g2).path == ("r", "late")


def test_critical_path_follows_longest_branch_not_first():
    g = build_graph([_t("r"), _t("short", "r"), _t("long1", "r"), _t("long2", "long1")])
    assert critical_path(g).path == ("r", "long1", "long2")


def test_critical_path_full_parallelism():
    cp = critical_path(build_graph([_t("a"), _t("b")]))
    assert cp.fully_parallel is True
    assert cp.path == ()
    assert cp.length == 0


def test_critical_path_empty_graph():
    assert critical_path(build_graph([])).fully_parallel is True


def test_critical_path_revalidates():
    with pytest.raises(CycleDetected):
        critical_path(build_graph([_t("a", "b"), _t("b", "a")]))


def test_impact_direct_and_transitive():
    g = build_graph([_t("a"), _t("b", "a"), _t("c", "a"), _t("d", "b"), _t("e", "d", "c")])
    rep = impact(g, "a")
    assert rep.direct == ("b", "c")
    assert rep.transitive == ("d", "e")
    assert rep.total_affected == 4
    assert rep.to_dict()["total_affected"] == 4


def test_impact_leaf_has_no_dependents():
    g = build_graph([_t("a"), _t("b", "a")])
    rep = impact(g, "b")
    assert rep.direct == ()
    assert rep.transitive == ()


def test_impact_is_inverse_of_dependency_reachability():
    g = build_graph(
        [_t("a"), _t("b", "a"), _t("c", "a", "b"), _t("d", "c"), _t("e"), _t("f", "e", "b")]
    )
    for dep in g.order:
        rep = impact(g, dep)
        affected = set(rep.direct) | set(rep.transitive)
        for tid in g.order:
            assert (tid in affected) == _reaches(g, tid, dep)


def test_impact_accepts_short_id():
    g = build_graph([_t("task_1", short="T1"), _t("task_2", "T1")])
    assert impact(g, "T1").direct == ("task_2",)


def test_impact_unknown_task():
    with pytest.raises(TaskNotFound) as exc:
        impact(build_graph([_t("a")]), "zzz")
    assert exc.value.task_id == "zzz"


def test_blockers_report_status_and_count():
    g = build_graph(
        [_t("a", status="COMPLETE"), _t("b", status="IN_PROGRESS"), _t("c"), _t("x", "a", "b", "c")]
    )
    rep = blockers(g, "x")
    assert [(b.task_id, b.status) for b in rep.blockers] == [
        ("a", "COMPLETE"),
        ("b", "IN_PROGRESS"),
        ("c", "PENDING"),
    ]
    assert rep.blocking_count == 2
    assert rep.ready is False


def test_blockers_none_means_ready():
    g = build_graph([_t("a", status="COMPLETE"), _t("b", "a")])
    assert blockers(g, "b").ready is True
    assert blockers(g, "a").blockers == ()


def test_blockers_revalidate_unknown_refs():
    with pytest.raises(UnknownDependency):
        blockers(build_graph([_t("a", "ghost")]), "a")
