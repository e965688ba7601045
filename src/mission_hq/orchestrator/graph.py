"""Dependency graph analysis over the task set of one mission.

All queries are pure functions of the task snapshot passed to
``DependencyGraph``. Cycles are tolerated: every recursive walk carries the
ids already on its path so it terminates on cyclic input.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from mission_hq.orchestrator.models import EdgeStatus, Task, TaskStatus


@dataclass(slots=True)
class Executability:
    """Whether a task can start now and, if not, why."""

    can_execute: bool
    reason: str | None = None
    blocking_task_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DependencyEdge:
    """Edge from a dependency to the task that depends on it."""

    from_task_id: str
    to_task_id: str
    status: EdgeStatus


@dataclass(slots=True)
class GraphNode:
    task_id: str
    title: str
    status: TaskStatus
    dependencies: list[str]
    level: int
    can_execute: bool
    blocking_reason: str | None


@dataclass(slots=True)
class BlockedTask:
    """Pending task that cannot start, with the tasks holding it back."""

    task: Task
    reason: str
    blocking_tasks: list[Task]


@dataclass(slots=True)
class GraphStats:
    total_tasks: int
    tasks_with_dependencies: int
    average_dependencies: float
    max_dependencies: int
    parallelism_potential: int
    current_blocking: int


@dataclass(slots=True)
class GraphView:
    """Full DAG rendering for one mission."""

    nodes: list[GraphNode]
    edges: list[DependencyEdge]
    levels: int
    has_cycles: bool
    cycles: list[list[str]]


@dataclass(slots=True)
class ProceedCheck:
    can_proceed: bool
    executable_count: int
    blocked_count: int
    message: str


class DependencyGraph:
    """Read-only analysis of one mission's task dependencies."""

    def __init__(self, tasks: Iterable[Task]) -> None:
        self.tasks = list(tasks)
        self._by_id = {task.id: task for task in self.tasks}
        self._dependents: dict[str, list[str]] = {task.id: [] for task in self.tasks}
        for task in self.tasks:
            for dependency_id in task.dependencies:
                if dependency_id in self._dependents:
                    self._dependents[dependency_id].append(task.id)

    def get(self, task_id: str) -> Task | None:
        return self._by_id.get(task_id)

    def dependents(self, task_id: str) -> list[Task]:
        """Tasks of this mission that list ``task_id`` as a dependency."""

        return [self._by_id[dependent] for dependent in self._dependents.get(task_id, [])]

    def level(self, task_id: str) -> int:
        """Depth of a task in the DAG: 0 without dependencies, else 1 + max dependency level."""

        return self._level(task_id, on_path=set(), memo={})

    def _level(self, task_id: str, *, on_path: set[str], memo: dict[str, int]) -> int:
        if task_id in memo:
            return memo[task_id]
        task = self._by_id.get(task_id)
        if task is None or task_id in on_path:
            return 0
        if not task.dependencies:
            memo[task_id] = 0
            return 0

        on_path.add(task_id)
        deepest = max(
            self._level(dependency_id, on_path=on_path, memo=memo)
            for dependency_id in task.dependencies
        )
        on_path.discard(task_id)
        memo[task_id] = deepest + 1
        return deepest + 1

    def check(self, task_id: str) -> Executability:
        """Executable iff pending and every dependency is completed."""

        task = self._by_id.get(task_id)
        if task is None:
            return Executability(can_execute=False, reason=f"Task {task_id} is not in this mission")
        if task.status != TaskStatus.PENDING:
            return Executability(can_execute=False, reason=f"Task is {task.status.value}")

        unmet: list[str] = []
        labels: list[str] = []
        for dependency_id in task.dependencies:
            dependency = self._by_id.get(dependency_id)
            if dependency is None:
                unmet.append(dependency_id)
                labels.append(f"{dependency_id} (missing)")
            elif dependency.status != TaskStatus.COMPLETED:
                unmet.append(dependency_id)
                labels.append(f"{dependency.title} ({dependency.status.value})")
        if not unmet:
            return Executability(can_execute=True)
        return Executability(
            can_execute=False,
            reason=f"Waiting for {len(unmet)} dependencies: {', '.join(labels)}",
            blocking_task_ids=unmet,
        )

    def edges(self) -> list[DependencyEdge]:
        """One edge per dependency pair where both tasks belong to the mission."""

        edges: list[DependencyEdge] = []
        for task in self.tasks:
            for dependency_id in task.dependencies:
                dependency = self._by_id.get(dependency_id)
                if dependency is None:
                    continue
                if dependency.status == TaskStatus.COMPLETED:
                    status = EdgeStatus.COMPLETED
                elif task.status == TaskStatus.PENDING:
                    status = EdgeStatus.BLOCKED
                else:
                    status = EdgeStatus.VALID
                edges.append(
                    DependencyEdge(from_task_id=dependency_id, to_task_id=task.id, status=status),
                )
        return edges

    def detect_cycle(self, task_id: str) -> list[str] | None:
        """Return the first dependency loop reachable from ``task_id``, in walk order."""

        path: list[str] = []
        on_path: set[str] = set()
        finished: set[str] = set()

        def walk(current_id: str) -> list[str] | None:
            if current_id in on_path:
                return path[path.index(current_id) :]
            if current_id in finished or current_id not in self._by_id:
                return None
            path.append(current_id)
            on_path.add(current_id)
            for dependency_id in self._by_id[current_id].dependencies:
                cycle = walk(dependency_id)
                if cycle is not None:
                    return cycle
            path.pop()
            on_path.discard(current_id)
            finished.add(current_id)
            return None

        return walk(task_id)

    def cycles(self) -> list[list[str]]:
        """Per-task cycle reports; a loop over n tasks may appear up to n times."""

        found: list[list[str]] = []
        for task in self.tasks:
            cycle = self.detect_cycle(task.id)
            if cycle:
                found.append(cycle)
        return found

    def cycle_groups(self) -> list[list[str]]:
        """Each dependency cycle exactly once, as sorted strongly connected components."""

        index_of: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        groups: list[list[str]] = []

        def connect(task_id: str) -> None:
            index_of[task_id] = lowlink[task_id] = len(index_of)
            stack.append(task_id)
            on_stack.add(task_id)
            for dependency_id in self._by_id[task_id].dependencies:
                if dependency_id not in self._by_id:
                    continue
                if dependency_id not in index_of:
                    connect(dependency_id)
                    lowlink[task_id] = min(lowlink[task_id], lowlink[dependency_id])
                elif dependency_id in on_stack:
                    lowlink[task_id] = min(lowlink[task_id], index_of[dependency_id])
            if lowlink[task_id] != index_of[task_id]:
                return
            component: list[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == task_id:
                    break
            self_loop = task_id in self._by_id[task_id].dependencies
            if len(component) > 1 or self_loop:
                groups.append(sorted(component))

        for task in self.tasks:
            if task.id not in index_of:
                connect(task.id)
        return groups

    def critical_path(self) -> list[Task]:
        """Longest dependency chain ending at a task nothing depends on."""

        def longest_to(task: Task, visited: frozenset[str]) -> list[str]:
            if task.id in visited:
                return []
            visited = visited | {task.id}
            best: list[str] = []
            for dependency_id in task.dependencies:
                dependency = self._by_id.get(dependency_id)
                if dependency is None:
                    continue
                path = longest_to(dependency, visited)
                if len(path) > len(best):
                    best = path
            return [*best, task.id]

        critical: list[str] = []
        for task in self.tasks:
            if self._dependents[task.id]:
                continue
            path = longest_to(task, frozenset())
            if len(path) > len(critical):
                critical = path
        return [self._by_id[task_id] for task_id in critical]

    def executable(self) -> list[Task]:
        return [
            task
            for task in self.tasks
            if task.status == TaskStatus.PENDING and self.check(task.id).can_execute
        ]

    def blocked(self) -> list[BlockedTask]:
        """Pending tasks with unmet dependencies, plus the existing tasks blocking them."""

        blocked: list[BlockedTask] = []
        for task in self.tasks:
            if task.status != TaskStatus.PENDING:
                continue
            result = self.check(task.id)
            if result.can_execute:
                continue
            blocked.append(
                BlockedTask(
                    task=task,
                    reason=result.reason or "Unknown",
                    blocking_tasks=[
                        self._by_id[blocking_id]
                        for blocking_id in result.blocking_task_ids
                        if blocking_id in self._by_id
                    ],
                ),
            )
        return blocked

    def stats(self) -> GraphStats:
        with_dependencies = [task for task in self.tasks if task.dependencies]
        total_dependencies = sum(len(task.dependencies) for task in with_dependencies)
        average = total_dependencies / len(with_dependencies) if with_dependencies else 0.0
        return GraphStats(
            total_tasks=len(self.tasks),
            tasks_with_dependencies=len(with_dependencies),
            average_dependencies=round(average, 2),
            max_dependencies=max((len(task.dependencies) for task in self.tasks), default=0),
            parallelism_potential=len(self.executable()),
            current_blocking=len(self.blocked()),
        )

    def view(self) -> GraphView:
        nodes: list[GraphNode] = []
        for task in self.tasks:
            result = self.check(task.id)
            nodes.append(
                GraphNode(
                    task_id=task.id,
                    title=task.title,
                    status=task.status,
                    dependencies=list(task.dependencies),
                    level=self.level(task.id),
                    can_execute=result.can_execute,
                    blocking_reason=result.reason,
                ),
            )
        cycles = self.cycles()
        return GraphView(
            nodes=nodes,
            edges=self.edges(),
            levels=max((node.level for node in nodes), default=0) + 1,
            has_cycles=bool(cycles),
            cycles=cycles,
        )

    def can_proceed(self) -> ProceedCheck:
        """Whether any pending task can be picked up right now."""

        executable = self.executable()
        blocked = self.blocked()
        if not executable and not blocked:
            return ProceedCheck(
                can_proceed=False,
                executable_count=0,
                blocked_count=0,
                message="No pending tasks",
            )
        if executable:
            return ProceedCheck(
                can_proceed=True,
                executable_count=len(executable),
                blocked_count=len(blocked),
                message=f"{len(executable)} tasks ready to execute",
            )
        return ProceedCheck(
            can_proceed=False,
            executable_count=0,
            blocked_count=len(blocked),
            message=f"{len(blocked)} tasks blocked, {blocked[0].reason}",
        )
