"""Turn a squad lead's execution plan into agents, tasks and dependency edges.

Plans reference agents and tasks by temporary ids chosen by the squad lead.
Ingestion creates records first and rewires dependencies in a second pass, so
edges may point forward or backward in the plan. A single bad item is logged
on the mission and skipped; it never aborts the rest of the plan.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from mission_hq.orchestrator.agents import provision_agent
from mission_hq.orchestrator.errors import NotFoundError, OrchestrationError, ValidationError
from mission_hq.orchestrator.missions import MissionController
from mission_hq.orchestrator.models import (
    Agent,
    AgentStatus,
    Priority,
    Task,
    TaskStatus,
    TaskType,
)
from mission_hq.orchestrator.runtime import WorkerRuntime
from mission_hq.orchestrator.store import RecordStore
from mission_hq.orchestrator.templates import DEFAULT_PROVIDER, get_template
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)

FALLBACK_PERSONALITY = "You are a helpful AI assistant."
FALLBACK_LLM_MODEL = "glm-4"
_ROLE_LOOKUP_STATUSES = (AgentStatus.ACTIVE, AgentStatus.IDLE, AgentStatus.INACTIVE)


@dataclass(slots=True)
class PlannedAgent:
    temp_id: str
    name: str
    role: str
    capabilities: list[str] = field(default_factory=list)
    template: str | None = None
    llm_model: str | None = None
    personality: str | None = None


@dataclass(slots=True)
class PlannedTask:
    temp_id: str
    title: str
    description: str = ""
    task_type: TaskType = TaskType.CUSTOM
    priority: Priority = Priority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    assigned_agent_role: str | None = None
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PlannedDependency:
    task_id: str
    depends_on: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RejectedItem:
    kind: str
    temp_id: str | None
    error: str


@dataclass(slots=True)
class SquadPlan:
    """Validated coordinator output."""

    complexity: str
    summary: str
    agents: list[PlannedAgent]
    tasks: list[PlannedTask]
    dependencies: list[PlannedDependency] = field(default_factory=list)
    rejected: list[RejectedItem] = field(default_factory=list)


@dataclass(slots=True)
class IngestResult:
    agents_created: int
    tasks_created: int
    agent_ids: dict[str, str] = field(default_factory=dict)
    task_ids: dict[str, str] = field(default_factory=dict)


def parse_plan(payload: Mapping[str, Any]) -> SquadPlan:
    """Validate a coordinator JSON plan.

    Only the plan shape is fatal: ``tasks`` and ``agents`` must be non-empty
    arrays. Items that fail their own checks (a task without ``id`` or
    ``title``, an agent without ``id``, ``name`` or ``role``) land in
    ``rejected`` so ingestion can log them on the mission and carry on.
    Unknown task types fall back to ``custom`` and unknown priorities to
    ``medium``.
    """

    if not isinstance(payload, Mapping):
        raise ValidationError("Plan must be a JSON object.")
    raw_tasks = payload.get("tasks")
    raw_agents = payload.get("agents")
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise ValidationError("Plan must contain a non-empty 'tasks' array.")
    if not isinstance(raw_agents, list) or not raw_agents:
        raise ValidationError("Plan must contain a non-empty 'agents' array.")

    plan = SquadPlan(
        complexity=str(payload.get("complexity") or "medium").lower(),
        summary=str(payload.get("summary") or ""),
        agents=[],
        tasks=[],
    )
    for index, item in enumerate(raw_agents):
        try:
            plan.agents.append(_parse_agent(index, item))
        except ValidationError as error:
            plan.rejected.append(RejectedItem("agent", _temp_id(item), str(error)))
    for index, item in enumerate(raw_tasks):
        try:
            plan.tasks.append(_parse_task(index, item))
        except ValidationError as error:
            plan.rejected.append(RejectedItem("task", _temp_id(item), str(error)))

    raw_dependencies = payload.get("dependencies") or []
    if not isinstance(raw_dependencies, list):
        logger.warning("Ignoring plan dependencies: expected an array")
        raw_dependencies = []
    for index, item in enumerate(raw_dependencies):
        if not isinstance(item, Mapping) or not item.get("taskId"):
            logger.warning("Ignoring plan dependency #%d: no taskId", index)
            continue
        try:
            depends_on = _string_list(item.get("dependsOn"), f"dependency #{index} dependsOn")
        except ValidationError as error:
            logger.warning("Ignoring plan dependency #%d: %s", index, error)
            continue
        plan.dependencies.append(
            PlannedDependency(task_id=str(item["taskId"]), depends_on=depends_on),
        )

    return plan


class PlanIngestor:
    """Materialises a ``SquadPlan`` inside one mission."""

    def __init__(
        self,
        *,
        store: RecordStore,
        runtime: WorkerRuntime,
        missions: MissionController,
    ) -> None:
        self.store = store
        self.runtime = runtime
        self.missions = missions

    def ingest_coordinator_output(self, task_id: str, payload: Mapping[str, Any]) -> IngestResult:
        """Ingest the plan a squad lead produced for its ``mission_analysis`` task."""

        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if task.task_type != TaskType.MISSION_ANALYSIS:
            raise ValidationError(
                f"Task {task_id} is {task.task_type.value}; only mission_analysis output "
                "can be ingested as a plan.",
            )
        plan = parse_plan(payload)
        self.missions.log(
            task.mission_id,
            "squad_lead_output_received",
            {
                "complexity": plan.complexity,
                "summary": plan.summary,
                "taskCount": len(plan.tasks),
                "agentCount": len(plan.agents),
                "rejectedCount": len(plan.rejected),
            },
        )
        return self.ingest(task.mission_id, plan)

    def ingest(self, mission_id: str, plan: SquadPlan) -> IngestResult:
        mission = self.missions.get(mission_id)
        result = IngestResult(agents_created=0, tasks_created=0)

        for rejected in plan.rejected:
            logger.warning(
                "Skipping planned %s %s: %s",
                rejected.kind,
                rejected.temp_id,
                rejected.error,
            )
            self.missions.log(
                mission.id,
                f"{rejected.kind}_creation_failed",
                {"tempId": rejected.temp_id, "error": rejected.error},
            )

        for planned_agent in plan.agents:
            try:
                agent = self._create_agent(mission.id, planned_agent)
            except OrchestrationError as error:
                logger.warning("Skipping planned agent %s: %s", planned_agent.temp_id, error)
                self.missions.log(
                    mission.id,
                    "agent_creation_failed",
                    {"tempId": planned_agent.temp_id, "name": planned_agent.name, "error": str(error)},
                )
                continue
            result.agent_ids[planned_agent.temp_id] = agent.id
            result.agents_created += 1
            self.missions.log(
                mission.id,
                "agent_created",
                {
                    "agentId": agent.id,
                    "name": agent.name,
                    "role": agent.role,
                    "status": agent.status.value,
                },
            )

        created: dict[str, Task] = {}
        for planned_task in plan.tasks:
            try:
                task = self._create_task(mission.id, planned_task)
                self.missions.attach_task(
                    mission.id,
                    task,
                    details={"tempId": planned_task.temp_id, "type": task.task_type.value},
                )
            except OrchestrationError as error:
                logger.warning("Skipping planned task %s: %s", planned_task.temp_id, error)
                self.missions.log(
                    mission.id,
                    "task_creation_failed",
                    {"tempId": planned_task.temp_id, "title": planned_task.title, "error": str(error)},
                )
                continue
            result.task_ids[planned_task.temp_id] = task.id
            created[task.id] = task
            result.tasks_created += 1

        self._link_dependencies(plan, result.task_ids, created)
        logger.info(
            "Plan ingested into mission %s: %d agents, %d tasks",
            mission.id,
            result.agents_created,
            result.tasks_created,
        )
        return result

    def _create_agent(self, mission_id: str, planned: PlannedAgent) -> Agent:
        template = get_template(planned.template or planned.role)
        personality = planned.personality or (
            template.personality if template is not None else FALLBACK_PERSONALITY
        )
        now = utc_now()
        agent = Agent(
            id=str(uuid4()),
            name=planned.name,
            role=planned.role,
            capabilities=list(planned.capabilities),
            status=AgentStatus.INACTIVE,
            personality=personality,
            llm_model=planned.llm_model
            or (template.default_llm_model if template is not None else FALLBACK_LLM_MODEL),
            provider=template.default_provider if template is not None else DEFAULT_PROVIDER,
            current_mission_id=mission_id,
            is_reusable=True,
            created_at=now,
            updated_at=now,
        )
        self.store.save_agent(agent)
        return self.store.save_agent(provision_agent(self.runtime, agent))

    def _create_task(self, mission_id: str, planned: PlannedTask) -> Task:
        assigned_to = None
        if planned.assigned_agent_role:
            candidates = self.store.find_agents(
                roles=(planned.assigned_agent_role,),
                statuses=_ROLE_LOOKUP_STATUSES,
                current_mission_ids=(mission_id,),
            )
            if candidates:
                assigned_to = candidates[0].id
        now = utc_now()
        task = Task(
            id=str(uuid4()),
            mission_id=mission_id,
            title=planned.title,
            description=planned.description,
            task_type=planned.task_type,
            status=TaskStatus.PENDING,
            priority=planned.priority,
            assigned_to=assigned_to,
            max_retries=self.missions.default_max_retries,
            input=dict(planned.input),
            created_at=now,
            updated_at=now,
        )
        return self.store.save_task(task)

    def _link_dependencies(
        self,
        plan: SquadPlan,
        id_map: dict[str, str],
        created: dict[str, Task],
    ) -> None:
        edges: dict[str, list[str]] = {}

        def add(temp_task_id: str, temp_dependency_ids: list[str]) -> None:
            real_task_id = id_map.get(temp_task_id)
            if real_task_id is None:
                return
            targets = edges.setdefault(real_task_id, [])
            for temp_dependency_id in temp_dependency_ids:
                real_dependency_id = id_map.get(temp_dependency_id)
                if real_dependency_id is None:
                    logger.debug(
                        "Dropping dependency %s -> %s: unknown plan id",
                        temp_task_id,
                        temp_dependency_id,
                    )
                    continue
                if real_dependency_id not in targets:
                    targets.append(real_dependency_id)

        for planned_task in plan.tasks:
            add(planned_task.temp_id, planned_task.dependencies)
        for dependency in plan.dependencies:
            add(dependency.task_id, dependency.depends_on)

        for task_id, dependency_ids in edges.items():
            if not dependency_ids:
                continue
            task = created[task_id]
            task.dependencies = dependency_ids
            task.updated_at = utc_now()
            self.store.save_task(task)


def _parse_agent(index: int, item: Any) -> PlannedAgent:
    if not isinstance(item, Mapping):
        raise ValidationError(f"Plan agent #{index} must be an object.")
    missing = [key for key in ("id", "name", "role") if not item.get(key)]
    if missing:
        raise ValidationError(f"Plan agent #{index} is missing {', '.join(missing)}.")
    return PlannedAgent(
        temp_id=str(item["id"]),
        name=str(item["name"]),
        role=str(item["role"]),
        capabilities=_string_list(item.get("capabilities"), f"agent #{index} capabilities"),
        template=item.get("template") or None,
        llm_model=item.get("llmModel") or None,
        personality=item.get("personality") or None,
    )


def _parse_task(index: int, item: Any) -> PlannedTask:
    if not isinstance(item, Mapping):
        raise ValidationError(f"Plan task #{index} must be an object.")
    missing = [key for key in ("id", "title") if not item.get(key)]
    if missing:
        raise ValidationError(f"Plan task #{index} is missing {', '.join(missing)}.")
    raw_input = item.get("input") or {}
    if not isinstance(raw_input, Mapping):
        raise ValidationError(f"Plan task #{index} input must be an object.")
    return PlannedTask(
        temp_id=str(item["id"]),
        title=str(item["title"]),
        description=str(item.get("description") or ""),
        task_type=_enum_or_default(TaskType, item.get("type"), TaskType.CUSTOM),
        priority=_enum_or_default(Priority, item.get("priority"), Priority.MEDIUM),
        dependencies=_string_list(item.get("dependencies"), f"task #{index} dependencies"),
        assigned_agent_role=item.get("assignedAgentRole") or None,
        input=dict(raw_input),
    )


def _enum_or_default(enum_type, raw: Any, default):
    if raw is None:
        return default
    try:
        return enum_type(str(raw).lower())
    except ValueError:
        return default


def _string_list(raw: Any, label: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"Plan {label} must be an array.")
    return [str(value) for value in raw]


def _temp_id(item: Any) -> str | None:
    if isinstance(item, Mapping) and item.get("id"):
        return str(item["id"])
    return None
