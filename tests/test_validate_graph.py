import pytest

from backlog_planner.core.errors import CycleDetected, GraphValidationError, UnknownDependency
from backlog_planner.core.graph.build_graph import build_graph
from backlog_planner.core.model import Task
from backlog_planner.core.validate.validate_graph import ensure_valid, find_cycles, validate_graph


def _t(tid: str, *deps: str) -> Task:
    return Task.create(tid, depends_on=list(deps), timestamp="2026-01-01T00:00:00Z")


def test_three_node_cycle_reported():
    g = build_graph([_t("A", "B"), _t("B", "C"), _t("C", "A")])
    report = validate_graph(g)
    assert report.valid is False
    assert len(report.cycles) == 1
    cycle = report.cycles[0]
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"A", "B", "C"}


def test_acyclic_graph_reports_no_cycles():
    g = build_graph([_t("A"), _t("B", "A"), _t("C", "A", "B")])
    report = validate_graph(g)
    assert report.valid is True
    assert report.cycles == []
    assert report.unknown_refs == []


def test_disjoint_cycles_all_reported():
    g = build_graph([_t("A", "B"), _t("B", "A"), _t("X", "Y"), _t("Y", "Z"), _t("Z", "X"), _t("ok")])
    cycles = find_cycles(g)
    assert sorted(sorted(set(c)) for c in cycles) == [["A", "B"], ["X", "Y", "Z"]]


def test_self_dependency_is_a_cycle():
    g = build_graph([_t("A", "A")])
    assert find_cycles(g) == [["A", "A"]]


def test_unknown_refs_reported_not_dropped():
    g = build_graph([_t("A"), _t("B", "A", "T99")])
    report = validate_graph(g)
    assert report.valid is False
    assert [(r.task_id, r.token) for r in report.unknown_refs] == [("B", "T99")]


def test_isolated_is_informational():
    g = build_graph([_t("A"), _t("B", "A"), _t("lonely")])
    report = validate_graph(g)
    assert report.valid is True
    assert report.isolated == ["lonely"]


def test_duplicate_ids_make_graph_invalid():
    g = build_graph([_t("A"), _t("A")])
    report = validate_graph(g)
    assert report.valid is False
    assert report.duplicate_ids == ["A"]
    with pytest.raises(GraphValidationError) as exc:
        ensure_valid(g)
    assert exc.value.code == "E_DUPLICATE_ID"


def test_validation_is_idempotent():
    g = build_graph([_t("A", "B"), _t("B", "A"), _t("C", "nope")])
    assert validate_graph(g) == validate_graph(g)


def test_report_to_dict_shape():
    g = build_graph([_t("A", "B"), _t("B", "A"), _t("C", "nope")])
    d = validate_graph(g).to_dict()
    assert d["valid"] is False
    assert d["unknown_refs"] == [{"task_id": "C", "token": "nope"}]
    assert len(d["cycles"]) == 1
    assert d["isolated"] == []


def test_report_errors_carry_codes():
    g = build_graph([_t("A", "B"), _t("B", "A"), _t("C", "nope")])
    codes = {e.code for e in validate_graph(g).errors()}
    assert codes == {"E_CYCLE_DETECTED", "E_UNKNOWN_DEPENDENCY"}


def test_ensure_valid_fails_fast():
    with pytest.raises(UnknownDependency) as exc:
        ensure_valid(build_graph([_t("A", "ghost")]))
    assert exc.value.task_id == "A"
    assert exc.value.token == "ghost"

    with pytest.raises(CycleDetected) as exc2:
        ensure_valid(build_graph([_t("A", "B"), _t("B", "A")]))
    assert len(exc2.value.cycles) == 1


def test_empty_graph_is_valid():
    report = validate_graph(build_graph([]))
    assert report.valid is True
    assert report.isolated == []


def test_cycles_sharing_tasks_are_all_reported():
    # A -> B -> C -> A and A -> C -> A share A and C.
    g = build_graph([_t("A", "B", "C"), _t("B", "C"), _t("C", "A")])
    assert find_cycles(g) == [["A", "B", "C", "A"], ["A", "C", "A"]]

    with pytest.raises(CycleDetected) as exc:
        ensure_valid(g)
    assert exc.value.cycles == (("A", "B", "C", "A"), ("A", "C", "A"))


def test_task_in_two_cycles():
    # B sits on both A <-> B and B <-> D.
    g = build_graph([_t("A", "B"), _t("B", "A", "D"), _t("D", "B")])
    cycles = find_cycles(g)
    assert sorted(sorted(set(c)) for c in cycles) == [["A", "B"], ["B", "D"]]
    assert all(c[0] == c[-1] for c in cycles)


def test_isolated_uses_resolved_dependencies():
    g = build_graph([_t("A", "ghost"), _t("B")])
    assert validate_graph(g).isolated == ["A", "B"]
