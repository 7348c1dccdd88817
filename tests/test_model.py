import logging

import pytest

from backlog_planner.core.errors import TaskNotFound
from backlog_planner.core.graph.build_graph import build_graph
from backlog_planner.core.log import LOGGER_NAME, setup_logging
from backlog_planner.core.model import Task


def test_new_task_is_pending_with_created_entry():
    t = Task.create("task_1", "T1", name="x", actor="architect", timestamp="2026-01-01T00:00:00Z")
    assert t.status == "PENDING"
    assert len(t.history) == 1
    assert t.history[0].action == "CREATED"
    assert t.history[0].previous_value is None


def test_with_status_appends_and_leaves_original_untouched():
    t = Task.create("task_1", "T1", timestamp="2026-01-01T00:00:00Z")
    t2 = t.with_status("IN_PROGRESS", reason="start", actor="dev", timestamp="2026-01-02T00:00:00Z")
    t3 = t2.with_status("COMPLETE", timestamp="2026-01-03T00:00:00Z")

    assert t.status == "PENDING"
    assert t2.status == "IN_PROGRESS"
    assert t3.status == "COMPLETE"
    assert t3.history[:2] == t2.history
    assert t3.history[-1].previous_value == "IN_PROGRESS"


def test_with_status_rejects_unknown_status():
    with pytest.raises(ValueError):
        Task.create("a").with_status("DONE")


def test_task_without_history_defaults_to_pending():
    assert Task(id="a", short_id="").status == "PENDING"


def test_graph_get_and_completed_ids():
    done = Task.create("a", "A").with_status("COMPLETE")
    g = build_graph([done, Task.create("b", "B", depends_on=["A"])])
    assert g.get("B").id == "b"
    assert g.completed_ids() == frozenset({"a"})
    assert g.normalize_ids(["A", "unknown"]) == frozenset({"a"})
    assert g.edges == [("a", "b")]
    assert g.roots == ["a"]
    assert g.leaves == ["b"]
    with pytest.raises(TaskNotFound):
        g.get("C")


def test_setup_logging_is_idempotent():
    logger = setup_logging("debug")
    setup_logging(logging.INFO)
    ours = [h for h in logger.handlers if getattr(h, "_backlog_planner", False)]
    assert len(ours) == 1
    assert logging.getLogger(LOGGER_NAME).level == logging.INFO
    with pytest.raises(ValueError):
        setup_logging("chatty")
