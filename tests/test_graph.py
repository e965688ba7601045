from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure

from mission_hq.orchestrator.graph import DependencyGraph
from mission_hq.orchestrator.models import EdgeStatus, Task, TaskStatus

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Dependency Graph"),
]

_BASE_TIME = datetime(2026, 10, 1, 9, 0, tzinfo=UTC)


def _task(
    task_id: str,
    *dependencies: str,
    status: TaskStatus = TaskStatus.PENDING,
    offset: int = 0,
) -> Task:
    return Task(
        id=task_id,
        mission_id="m-1",
        title=f"Task {task_id}",
        status=status,
        dependencies=list(dependencies),
        created_at=_BASE_TIME + timedelta(seconds=offset),
    )


def test_level_is_one_plus_deepest_dependency() -> None:
    graph = DependencyGraph(
        [
            _task("a"),
            _task("b", "a"),
            _task("c", "a"),
            _task("d", "b", "c"),
            _task("e", "d", "a"),
        ],
    )

    assert [graph.level(task_id) for task_id in "abcde"] == [0, 1, 1, 2, 3]


def test_level_terminates_on_cycles_and_ignores_unknown_dependencies() -> None:
    graph = DependencyGraph([_task("a", "b"), _task("b", "a"), _task("c", "ghost")])

    assert graph.level("a") == 2
    assert graph.level("b") == 2
    assert graph.level("c") == 1
    assert graph.level("ghost") == 0


def test_two_task_cycle_is_reported_from_either_side() -> None:
    graph = DependencyGraph([_task("a", "b"), _task("b", "a"), _task("c")])

    from_a = graph.detect_cycle("a")
    from_b = graph.detect_cycle("b")

    assert from_a is not None and set(from_a) == {"a", "b"}
    assert from_b is not None and set(from_b) == {"a", "b"}
    assert graph.detect_cycle("c") is None
    assert graph.view().has_cycles is True


def test_cycle_groups_report_each_loop_once() -> None:
    graph = DependencyGraph(
        [
            _task("a", "b"),
            _task("b", "c"),
            _task("c", "a"),
            _task("d", "a"),
            _task("e", "e"),
        ],
    )

    assert len(graph.cycles()) == 5
    assert graph.cycle_groups() == [["a", "b", "c"], ["e"]]


def test_acyclic_graph_has_no_cycles() -> None:
    graph = DependencyGraph([_task("a"), _task("b", "a"), _task("c", "a", "b")])

    assert graph.cycles() == []
    assert graph.cycle_groups() == []
    assert graph.view().has_cycles is False


def test_executability_flips_when_the_dependency_completes() -> None:
    blocked_graph = DependencyGraph([_task("a", status=TaskStatus.IN_PROGRESS), _task("b", "a")])
    result = blocked_graph.check("b")

    assert result.can_execute is False
    assert result.blocking_task_ids == ["a"]
    assert result.reason == "Waiting for 1 dependencies: Task a (in_progress)"

    ready_graph = DependencyGraph([_task("a", status=TaskStatus.COMPLETED), _task("b", "a")])

    assert ready_graph.check("b").can_execute is True


def test_check_rejects_non_pending_missing_and_unknown_tasks() -> None:
    graph = DependencyGraph([_task("a", status=TaskStatus.FAILED), _task("b", "ghost")])

    assert graph.check("a").reason == "Task is failed"
    assert graph.check("b").reason == "Waiting for 1 dependencies: ghost (missing)"
    assert graph.check("b").blocking_task_ids == ["ghost"]
    assert graph.check("nope").can_execute is False


def test_edges_carry_dependency_state() -> None:
    graph = DependencyGraph(
        [
            _task("a", status=TaskStatus.COMPLETED),
            _task("b", "a"),
            _task("c", "b"),
            _task("d", "b", status=TaskStatus.IN_PROGRESS),
            _task("e", "ghost"),
        ],
    )

    edges = {(edge.from_task_id, edge.to_task_id): edge.status for edge in graph.edges()}

    assert edges == {
        ("a", "b"): EdgeStatus.COMPLETED,
        ("b", "c"): EdgeStatus.BLOCKED,
        ("b", "d"): EdgeStatus.VALID,
    }


def test_critical_path_is_the_longest_chain() -> None:
    graph = DependencyGraph(
        [
            _task("a"),
            _task("b", "a"),
            _task("c", "b"),
            _task("x"),
            _task("y", "x"),
        ],
    )

    assert [task.id for task in graph.critical_path()] == ["a", "b", "c"]


def test_executable_blocked_and_stats() -> None:
    graph = DependencyGraph(
        [
            _task("a", status=TaskStatus.COMPLETED),
            _task("b", "a"),
            _task("c"),
            _task("d", "b", "c"),
        ],
    )

    assert [task.id for task in graph.executable()] == ["b", "c"]
    blocked = graph.blocked()
    assert [item.task.id for item in blocked] == ["d"]
    assert {task.id for task in blocked[0].blocking_tasks} == {"b", "c"}

    stats = graph.stats()
    assert stats.total_tasks == 4
    assert stats.tasks_with_dependencies == 2
    assert stats.average_dependencies == 1.5
    assert stats.max_dependencies == 2
    assert stats.parallelism_potential == 2
    assert stats.current_blocking == 1


def test_view_levels_count_depth_plus_one() -> None:
    graph = DependencyGraph([_task("a"), _task("b", "a"), _task("c", "b")])

    view = graph.view()

    assert view.levels == 3
    assert [node.level for node in view.nodes] == [0, 1, 2]
    assert [node.can_execute for node in view.nodes] == [True, False, False]


def test_can_proceed_messages() -> None:
    assert DependencyGraph([]).can_proceed().message == "No pending tasks"

    ready = DependencyGraph([_task("a"), _task("b", "a")]).can_proceed()
    assert ready.can_proceed is True
    assert ready.executable_count == 1
    assert ready.blocked_count == 1
    assert ready.message == "1 tasks ready to execute"

    stuck = DependencyGraph(
        [_task("a", status=TaskStatus.IN_PROGRESS), _task("b", "a")],
    ).can_proceed()
    assert stuck.can_proceed is False
    assert stuck.message.startswith("1 tasks blocked, Waiting for 1 dependencies")
