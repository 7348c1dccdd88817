from backlog_planner.core.io.resolve_id import IdResolver
from backlog_planner.core.model import Task


def _tasks() -> list[Task]:
    return [
        Task.create("task_1", "T1", name="Design payment schema"),
        Task.create("task_2", "T2", name="Implement charge API"),
        Task.create("T1", "T9", name="Oddly named task"),
    ]


def test_exact_ids_and_short_ids():
    r = IdResolver(_tasks())
    assert r("task_2") == "task_2"
    assert r("T2") == "task_2"
    assert r("T9") == "T1"


def test_canonical_id_beats_short_id():
    # "T1" is task_1's short id but also a real task id.
    assert IdResolver(_tasks()).resolve("T1") == "T1"


def test_fuzzy_name_match_is_case_insensitive_first_wins():
    r = IdResolver(_tasks())
    assert r("PAYMENT") == "task_1"
    assert r("  charge ") == "task_2"
    assert r("task") == "T1"


def test_unresolvable_input():
    r = IdResolver(_tasks())
    assert r("nothing like it") is None
    assert r("   ") is None
