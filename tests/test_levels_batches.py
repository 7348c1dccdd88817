import pytest

from backlog_planner.core.errors import CycleDetected, UnknownDependency
from backlog_planner.core.graph.build_graph import build_graph
from backlog_planner.core.model import Task
from backlog_planner.core.plan.batches import parallel_batches
from backlog_planner.core.plan.levels import compute_levels, group_by_level


def _t(tid: str, *deps: str, status: str = "PENDING", short: str = "") -> Task:
    t = Task.create(tid, short, depends_on=list(deps), timestamp="2026-01-01T00:00:00Z")
    if status != "PENDING":
        t = t.with_status(status, timestamp="2026-01-02T00:00:00Z")
    return t


def _diamond() -> list[Task]:
    # a -> b, a -> c, (b, c) -> d, e isolated
    return [_t("d", "b", "c"), _t("b", "a"), _t("c", "a"), _t("a"), _t("e")]


def test_levels_on_diamond():
    g = build_graph(_diamond())
    lv = compute_levels(g)
    assert lv == {"d": 2, "b": 1, "c": 1, "a": 0, "e": 0}
    for tid, deps in g.deps.items():
        for d in deps:
            assert lv[tid] > lv[d]


def test_levels_keep_input_order_and_group():
    g = build_graph(_diamond())
    lv = compute_levels(g)
    assert list(lv) == ["d", "b", "c", "a", "e"]
    assert group_by_level(lv) == [["a", "e"], ["b", "c"], ["d"]]


def test_levels_uses_max_not_min_of_dependencies():
    g = build_graph([_t("a"), _t("b", "a"), _t("c", "b"), _t("d", "a", "c")])
    assert compute_levels(g)["d"] == 3


def test_levels_cycle_is_fatal():
    g = build_graph([_t("a"), _t("b", "c"), _t("c", "b")])
    with pytest.raises(CycleDetected) as exc:
        compute_levels(g)
    assert set(exc.value.unassigned) == {"b", "c"}
    assert len(exc.value.cycles) == 1


def test_levels_reject_unknown_refs():
    with pytest.raises(UnknownDependency):
        compute_levels(build_graph([_t("a", "ghost")]))


def test_levels_empty_graph():
    assert compute_levels(build_graph([])) == {}
    assert group_by_level({}) == []


def test_batches_without_completion_match_kahn_layers():
    g = build_graph(_diamond())
    assert parallel_batches(g, completed=[]) == [["a", "e"], ["b", "c"], ["d"]]


def test_batches_use_live_completion_state():
    tasks = [_t("a", status="COMPLETE"), _t("b", "a"), _t("c", "b"), _t("d", "a")]
    g = build_graph(tasks)
    # a is complete, so b and d are unblocked in the first wave.
    assert parallel_batches(g) == [["a", "b", "d"], ["c"]]
    # Static levels ignore status.
    assert compute_levels(g) == {"a": 0, "b": 1, "c": 2, "d": 1}


def test_batches_accept_short_ids_in_completed_set():
    g = build_graph([_t("task_1", short="T1"), _t("task_2", "T1", short="T2"), _t("task_3", "T2")])
    assert parallel_batches(g, completed={"T1"}) == [["task_1", "task_2"], ["task_3"]]


def test_batches_partition_every_task_once():
    tasks = _diamond() + [_t("f", "d", "e"), _t("g", "a")]
    g = build_graph(tasks)
    waves = parallel_batches(g, completed=[])
    flat = [tid for w in waves for tid in w]
    assert sorted(flat) == sorted(g.order)
    assert len(flat) == len(set(flat))

    wave_of = {tid: i for i, w in enumerate(waves) for tid in w}
    for tid in g.order:
        for d in g.deps[tid]:
            assert wave_of[d] < wave_of[tid]


def test_batches_cycle_safety_net():
    g = build_graph([_t("a"), _t("b", "a"), _t("x", "y"), _t("y", "x")])
    with pytest.raises(CycleDetected) as exc:
        parallel_batches(g, completed=[])
    assert exc.value.batches == (("a",), ("b",))
    assert exc.value.unassigned == ("x", "y")


def test_batches_empty_graph():
    assert parallel_batches(build_graph([])) == []
