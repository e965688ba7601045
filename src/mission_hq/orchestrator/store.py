"""Record-store contract and an in-process implementation.

The engine never talks to a database directly. Every component receives a
``RecordStore`` and performs short read/modify/save sequences against it.
Filters are equality or set-membership tests; ``None`` inside a membership
collection matches an absent reference (for example an unassigned task).
"""

from __future__ import annotations

import copy
from collections.abc import Collection
from typing import Protocol, TypeVar

from mission_hq.orchestrator.models import (
    PRIORITY_RANK,
    Agent,
    AgentStatus,
    Mission,
    MissionStatus,
    Task,
    TaskStatus,
    TaskType,
)

RecordT = TypeVar("RecordT")


class RecordStore(Protocol):
    """Persistence contract for missions, tasks and agents."""

    def get_mission(self, mission_id: str) -> Mission | None: ...

    def save_mission(self, mission: Mission) -> Mission: ...

    def delete_mission(self, mission_id: str) -> None: ...

    def find_missions(
        self,
        *,
        statuses: Collection[MissionStatus] | None = None,
        squad_lead_id: str | None = None,
    ) -> list[Mission]: ...

    def get_task(self, task_id: str) -> Task | None: ...

    def save_task(self, task: Task) -> Task: ...

    def find_tasks(  # noqa: PLR0913
        self,
        *,
        mission_id: str | None = None,
        statuses: Collection[TaskStatus] | None = None,
        task_types: Collection[TaskType] | None = None,
        exclude_types: Collection[TaskType] | None = None,
        assignees: Collection[str | None] | None = None,
        task_ids: Collection[str] | None = None,
        by_priority: bool = False,
        limit: int | None = None,
    ) -> list[Task]: ...

    def count_tasks(self, *, assigned_to: str, statuses: Collection[TaskStatus]) -> int: ...

    def get_agent(self, agent_id: str) -> Agent | None: ...

    def save_agent(self, agent: Agent) -> Agent: ...

    def delete_agent(self, agent_id: str) -> None: ...

    def find_agents(
        self,
        *,
        roles: Collection[str] | None = None,
        statuses: Collection[AgentStatus] | None = None,
        is_reusable: bool | None = None,
        current_mission_ids: Collection[str | None] | None = None,
    ) -> list[Agent]: ...


class InMemoryRecordStore:
    """Dictionary-backed store; returns copies so callers never share state."""

    def __init__(self) -> None:
        self._missions: dict[str, Mission] = {}
        self._tasks: dict[str, Task] = {}
        self._agents: dict[str, Agent] = {}

    def get_mission(self, mission_id: str) -> Mission | None:
        return _copy_or_none(self._missions.get(mission_id))

    def save_mission(self, mission: Mission) -> Mission:
        self._missions[mission.id] = copy.deepcopy(mission)
        return copy.deepcopy(mission)

    def delete_mission(self, mission_id: str) -> None:
        self._missions.pop(mission_id, None)

    def find_missions(
        self,
        *,
        statuses: Collection[MissionStatus] | None = None,
        squad_lead_id: str | None = None,
    ) -> list[Mission]:
        return [
            copy.deepcopy(mission)
            for mission in self._missions.values()
            if (statuses is None or mission.status in statuses)
            and (squad_lead_id is None or mission.squad_lead_id == squad_lead_id)
        ]

    def get_task(self, task_id: str) -> Task | None:
        return _copy_or_none(self._tasks.get(task_id))

    def save_task(self, task: Task) -> Task:
        self._tasks[task.id] = copy.deepcopy(task)
        return copy.deepcopy(task)

    def find_tasks(  # noqa: PLR0913
        self,
        *,
        mission_id: str | None = None,
        statuses: Collection[TaskStatus] | None = None,
        task_types: Collection[TaskType] | None = None,
        exclude_types: Collection[TaskType] | None = None,
        assignees: Collection[str | None] | None = None,
        task_ids: Collection[str] | None = None,
        by_priority: bool = False,
        limit: int | None = None,
    ) -> list[Task]:
        matched = [
            task
            for task in self._tasks.values()
            if (mission_id is None or task.mission_id == mission_id)
            and (statuses is None or task.status in statuses)
            and (task_types is None or task.task_type in task_types)
            and (exclude_types is None or task.task_type not in exclude_types)
            and (assignees is None or task.assigned_to in assignees)
            and (task_ids is None or task.id in task_ids)
        ]
        if by_priority:
            matched.sort(key=lambda task: (PRIORITY_RANK[task.priority], task.created_at))
        if limit is not None:
            matched = matched[:limit]
        return [copy.deepcopy(task) for task in matched]

    def count_tasks(self, *, assigned_to: str, statuses: Collection[TaskStatus]) -> int:
        return sum(
            1
            for task in self._tasks.values()
            if task.assigned_to == assigned_to and task.status in statuses
        )

    def get_agent(self, agent_id: str) -> Agent | None:
        return _copy_or_none(self._agents.get(agent_id))

    def save_agent(self, agent: Agent) -> Agent:
        self._agents[agent.id] = copy.deepcopy(agent)
        return copy.deepcopy(agent)

    def delete_agent(self, agent_id: str) -> None:
        self._agents.pop(agent_id, None)

    def find_agents(
        self,
        *,
        roles: Collection[str] | None = None,
        statuses: Collection[AgentStatus] | None = None,
        is_reusable: bool | None = None,
        current_mission_ids: Collection[str | None] | None = None,
    ) -> list[Agent]:
        return [
            copy.deepcopy(agent)
            for agent in self._agents.values()
            if (roles is None or agent.role in roles)
            and (statuses is None or agent.status in statuses)
            and (is_reusable is None or agent.is_reusable == is_reusable)
            and (current_mission_ids is None or agent.current_mission_id in current_mission_ids)
        ]


def _copy_or_none(record: RecordT | None) -> RecordT | None:
    return copy.deepcopy(record) if record is not None else None
