"""Controllers for mission, task and agent CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mission_hq.config import Settings
from mission_hq.orchestrator.decisions import parse_audit_decision
from mission_hq.orchestrator.errors import ValidationError
from mission_hq.orchestrator.models import (
    Agent,
    AgentCreate,
    AgentStatus,
    Mission,
    MissionCreate,
    MissionStatus,
    Priority,
    Task,
    TaskCreate,
    TaskStatus,
    TaskType,
)
from mission_hq.orchestrator.plan import parse_plan
from mission_hq.orchestrator.repository import SqlRecordStore
from mission_hq.orchestrator.runtime import build_runtime
from mission_hq.orchestrator.scoring import ScoringCriteria
from mission_hq.orchestrator.services import OrchestratorService
from mission_hq.orchestrator.templates import get_template


@dataclass(slots=True)
class MissionCreateCommand:
    """CLI input for mission creation."""

    db_path: Path | None
    title: str
    description: str
    objective: str
    priority: str
    auto_orchestrate: bool | None


@dataclass(slots=True)
class MissionCommand:
    """CLI input for commands addressing one mission."""

    db_path: Path | None
    mission_id: str


@dataclass(slots=True)
class MissionListCommand:
    db_path: Path | None
    status: str | None


@dataclass(slots=True)
class MissionCancelCommand:
    db_path: Path | None
    mission_id: str
    reason: str


@dataclass(slots=True)
class PlanIngestCommand:
    """CLI input for loading a squad lead plan from a JSON file."""

    db_path: Path | None
    plan_path: Path
    mission_id: str | None
    task_id: str | None


@dataclass(slots=True)
class TaskCreateCommand:
    db_path: Path | None
    mission_id: str
    title: str
    description: str
    task_type: str
    priority: str
    dependencies: tuple[str, ...]
    assigned_to: str | None
    max_retries: int | None
    input_json: str | None


@dataclass(slots=True)
class TaskListCommand:
    db_path: Path | None
    mission_id: str | None
    status: str | None
    task_type: str | None
    awaiting_human: bool = False


@dataclass(slots=True)
class TaskCommand:
    """CLI input for commands addressing one task."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class TaskNextCommand:
    db_path: Path | None
    agent_id: str
    mission_id: str | None


@dataclass(slots=True)
class TaskCompleteCommand:
    db_path: Path | None
    task_id: str
    output_json: str | None
    success: bool


@dataclass(slots=True)
class TaskFailCommand:
    db_path: Path | None
    task_id: str
    reason: str
    agent_id: str | None


@dataclass(slots=True)
class TaskRetryCommand:
    db_path: Path | None
    task_id: str
    clear_assignment: bool


@dataclass(slots=True)
class TaskDecisionCommand:
    """CLI input for an audit decision."""

    db_path: Path | None
    task_id: str
    decision: str
    reason: str
    role: str | None
    description: str | None
    question: str | None


@dataclass(slots=True)
class HumanResponseCommand:
    db_path: Path | None
    task_id: str
    response: str


@dataclass(slots=True)
class AgentCreateCommand:
    """CLI input for manual agent registration."""

    db_path: Path | None
    name: str
    role: str
    template: str | None
    capabilities: tuple[str, ...]
    personality: str | None
    llm_model: str | None
    provider: str | None
    provision: bool


@dataclass(slots=True)
class AgentListCommand:
    db_path: Path | None
    role: str | None
    status: str | None


@dataclass(slots=True)
class AgentStatusCommand:
    db_path: Path | None
    agent_id: str
    status: str


@dataclass(slots=True)
class AgentScoreCommand:
    db_path: Path | None
    task_type: str | None
    capabilities: tuple[str, ...]
    preferred_agent_id: str | None
    mission_id: str | None
    limit: int


@dataclass(slots=True)
class AgentCommand:
    """CLI input for commands addressing one agent."""

    db_path: Path | None
    agent_id: str


class OrchestratorCliController:
    """Turns CLI commands into service calls and printable lines."""

    def create_mission(self, command: MissionCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        auto_orchestrate = (
            settings.orchestrator.auto_orchestrate
            if command.auto_orchestrate is None
            else command.auto_orchestrate
        )
        with _service(settings) as service:
            mission = service.missions.create(
                MissionCreate(
                    title=command.title,
                    description=command.description,
                    objective=command.objective,
                    priority=_parse_priority(command.priority),
                    auto_orchestrate=auto_orchestrate,
                ),
            )
        return [f"Mission created: {mission.id}", *_mission_summary(mission)]

    def start_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.start(command.mission_id)
        lines = [f"Mission started: {mission.id}"]
        if mission.squad_lead_id is not None:
            lines.append(f"Squad lead: {mission.squad_lead_id}")
            lines.append(f"Analysis task: {mission.initial_analysis_task_id}")
        return lines

    def pause_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.pause(command.mission_id)
        return [f"Mission paused: {mission.id}"]

    def resume_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.resume(command.mission_id)
        return [f"Mission resumed: {mission.id}"]

    def cancel_mission(self, command: MissionCancelCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.cancel(command.mission_id, reason=command.reason)
        return [f"Mission cancelled: {mission.id}"]

    def complete_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.complete(command.mission_id)
        return [f"Mission completed: {mission.id}"]

    def orchestrate_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            task = service.missions.orchestrate(command.mission_id)
            squad_lead = service.agents.get(task.assigned_to or "")
        return [
            f"Squad lead: {squad_lead.id} ({squad_lead.name}) status={squad_lead.status.value}",
            f"Analysis task: {task.id}",
        ]

    def list_missions(self, command: MissionListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            missions = service.missions.list_missions(
                statuses=[_parse_mission_status(command.status)] if command.status else None,
            )
        lines = [f"Missions: {len(missions)}"]
        for mission in missions:
            lines.append(
                f"  {mission.id} status={mission.status.value} priority={mission.priority.value} "
                f"tasks={len(mission.task_ids)} title={mission.title}",
            )
        return lines

    def show_mission(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            mission = service.missions.get(command.mission_id)
            metrics = service.missions.metrics(command.mission_id)

        lines = [f"Mission: {mission.id}", *_mission_summary(mission)]
        lines.append(
            f"Tasks: total={metrics.total_tasks} completed={metrics.completed} "
            f"failed={metrics.failed} in_progress={metrics.in_progress} "
            f"pending={metrics.pending} awaiting_human={metrics.awaiting_human}",
        )
        lines.append(f"Agents involved: {metrics.agent_count}")
        if metrics.duration_ms is not None:
            lines.append(f"Duration: {metrics.duration_ms} ms")
        lines.append(f"Log entries: {len(mission.orchestration_log)}")
        for entry in mission.orchestration_log:
            details = json.dumps(entry.details, ensure_ascii=False, sort_keys=True)
            lines.append(f"  {entry.timestamp.isoformat()} {entry.action} {details}")
        return lines

    def mission_dag(self, command: MissionCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            graph = service.graph(command.mission_id)
        view = graph.view()
        stats = graph.stats()
        proceed = graph.can_proceed()

        lines = [
            f"Levels: {view.levels}",
            f"Nodes: {len(view.nodes)} edges: {len(view.edges)}",
            f"Parallelism potential: {stats.parallelism_potential} "
            f"blocking: {stats.current_blocking} "
            f"avg dependencies: {stats.average_dependencies}",
        ]
        for node in sorted(view.nodes, key=lambda item: (item.level, item.task_id)):
            marker = "ready" if node.can_execute else (node.blocking_reason or "-")
            lines.append(
                f"  L{node.level} {node.task_id} [{node.status.value}] {node.title} :: {marker}",
            )
        for edge in view.edges:
            lines.append(f"  {edge.from_task_id} -> {edge.to_task_id} ({edge.status.value})")
        critical = graph.critical_path()
        if critical:
            lines.append("Critical path: " + " -> ".join(task.id for task in critical))
        if view.has_cycles:
            for cycle in graph.cycle_groups():
                lines.append("Cycle: " + " -> ".join(cycle))
        lines.append(proceed.message)
        return lines

    def ingest_plan(self, command: PlanIngestCommand) -> list[str]:
        if (command.mission_id is None) == (command.task_id is None):
            raise ValidationError("Pass exactly one of --mission-id or --task-id.")
        payload = _parse_json_object(command.plan_path.read_text("utf-8"), label="plan")
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            if command.task_id is not None:
                result = service.plans.ingest_coordinator_output(command.task_id, payload)
            else:
                result = service.plans.ingest(command.mission_id or "", parse_plan(payload))

        lines = [f"Agents created: {result.agents_created}", f"Tasks created: {result.tasks_created}"]
        for temp_id, real_id in result.agent_ids.items():
            lines.append(f"  agent {temp_id} -> {real_id}")
        for temp_id, real_id in result.task_ids.items():
            lines.append(f"  task {temp_id} -> {real_id}")
        return lines

    def create_task(self, command: TaskCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        payload = TaskCreate(
            mission_id=command.mission_id,
            title=command.title,
            description=command.description,
            task_type=_parse_task_type(command.task_type),
            priority=_parse_priority(command.priority),
            dependencies=command.dependencies,
            assigned_to=command.assigned_to,
            max_retries=command.max_retries,
            input=_parse_json_object(command.input_json, label="input") if command.input_json else {},
        )
        with _service(settings) as service:
            task = service.tasks.create_task(payload)
        return [f"Task created: {task.id}", *_task_summary(task)]

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            if command.awaiting_human:
                tasks = service.tasks.pending_human_tasks(mission_id=command.mission_id)
            else:
                tasks = service.tasks.list_tasks(
                    mission_id=command.mission_id,
                    statuses=[_parse_task_status(command.status)] if command.status else None,
                    task_types=[_parse_task_type(command.task_type)] if command.task_type else None,
                )

        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.id} type={task.task_type.value} status={task.status.value} "
                f"priority={task.priority.value} retries={task.retry_count}/{task.max_retries} "
                f"assigned_to={task.assigned_to or '-'} title={task.title}",
            )
        return lines

    def inspect_task(self, command: TaskCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            task = service.tasks.get(command.task_id)
            executability = service.graph(task.mission_id).check(task.id)

        lines = [f"Task: {task.id}", *_task_summary(task)]
        lines.append(f"Description: {task.description or '-'}")
        lines.append(f"Dependencies: {', '.join(task.dependencies) or '-'}")
        lines.append(
            "Executable: yes"
            if executability.can_execute
            else f"Executable: no ({executability.reason})",
        )
        lines.append(f"Needs audit: {'yes' if task.needs_audit else 'no'}")
        lines.append(f"Auditor review: {task.auditor_review_id or '-'}")
        lines.append(f"Human task: {task.human_task_id or '-'}")
        lines.append(f"Error: {task.error or '-'}")
        lines.append(f"Input: {json.dumps(task.input, ensure_ascii=False, sort_keys=True)}")
        if task.output is not None:
            lines.append(f"Output: {json.dumps(task.output, ensure_ascii=False, sort_keys=True)}")
        for attempt in task.retry_history:
            lines.append(
                f"  attempt={attempt.attempt} at={attempt.timestamp.isoformat()} "
                f"agent={attempt.agent_id or '-'} error={attempt.error}",
            )
        return lines

    def next_task(self, command: TaskNextCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            task = service.tasks.claim_next_task(command.agent_id, mission_id=command.mission_id)
        if task is None:
            return ["No task available."]
        return [f"Task claimed: {task.id}", *_task_summary(task)]

    def start_task(self, command: TaskCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            task = service.tasks.start(command.task_id)
        return [f"Task started: {task.id}"]

    def complete_task(self, command: TaskCompleteCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        output = (
            _parse_json_object(command.output_json, label="output") if command.output_json else None
        )
        with _service(settings) as service:
            task = service.tasks.complete(command.task_id, output=output, success=command.success)
            mission = service.missions.get(task.mission_id)
        lines = [f"Task {task.status.value}: {task.id}"]
        lines.append(f"Mission status: {mission.status.value}")
        return lines

    def fail_task(self, command: TaskFailCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            result = service.tasks.fail(
                command.task_id,
                reason=command.reason,
                agent_id=command.agent_id,
            )
        return [
            f"Task failed: {result.task.id}",
            f"Retries: {result.task.retry_count}/{result.task.max_retries}",
            f"Needs audit: {'yes' if result.needs_audit else 'no'}",
            f"Can retry: {'yes' if result.can_retry else 'no'}",
        ]

    def retry_task(self, command: TaskRetryCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            task = service.tasks.retry(command.task_id, clear_assignment=command.clear_assignment)
        return [f"Task re-queued: {task.id}", f"Retries: {task.retry_count}/{task.max_retries}"]

    def request_audit(self, command: TaskCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            audit_task = service.tasks.request_audit(command.task_id)
        return [
            f"Audit task created: {audit_task.id}",
            f"Auditor: {audit_task.assigned_to or '-'}",
        ]

    def decide(self, command: TaskDecisionCommand) -> list[str]:
        payload: dict[str, Any] = {"decision": command.decision, "reason": command.reason}
        if command.role is not None:
            payload["suggestedAgentRole"] = command.role
        if command.description is not None:
            payload["refinedDescription"] = command.description
        if command.question is not None:
            payload["questionForHuman"] = command.question
        decision = parse_audit_decision(payload)

        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            outcome = service.tasks.apply_audit_decision(command.task_id, decision)

        lines = [
            f"Decision applied: {decision.kind.value}",
            f"Task: {outcome.task.id} status={outcome.task.status.value}",
            f"Retries: {outcome.task.retry_count}/{outcome.task.max_retries}",
        ]
        if outcome.assigned_agent is not None:
            lines.append(f"Assigned to: {outcome.assigned_agent.id} ({outcome.assigned_agent.name})")
        if outcome.human_task is not None:
            lines.append(f"Human task: {outcome.human_task.id}")
        return lines

    def human_response(self, command: HumanResponseCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            result = service.tasks.submit_human_response(command.task_id, response=command.response)
        return [
            f"Human task completed: {result.human_task.id}",
            f"Parent task completed: {result.parent_task.id}",
            f"Continuation task: {result.continuation_task.id}",
        ]

    def create_agent(self, command: AgentCreateCommand) -> list[str]:
        template = get_template(command.template or command.role)
        if command.template is not None and template is None:
            raise ValidationError(f"Unknown agent template: {command.template}")
        payload = AgentCreate(
            name=command.name,
            role=command.role,
            capabilities=command.capabilities
            or (template.capabilities if template is not None else ()),
            personality=command.personality
            or (template.personality if template is not None else ""),
            llm_model=command.llm_model
            or (template.default_llm_model if template is not None else None),
            provider=command.provider
            or (template.default_provider if template is not None else None),
        )
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.create_agent(payload, provision=command.provision)
        return [f"Agent created: {agent.id}", *_agent_summary(agent)]

    def list_agents(self, command: AgentListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agents = service.agents.list_agents(
                roles=[command.role] if command.role else None,
                statuses=[_parse_agent_status(command.status)] if command.status else None,
            )
        lines = [f"Agents: {len(agents)}"]
        for agent in agents:
            lines.append(
                f"  {agent.id} name={agent.name} role={agent.role} status={agent.status.value} "
                f"success_rate={agent.success_rate} mission={agent.current_mission_id or '-'}",
            )
        return lines

    def score_agents(self, command: AgentScoreCommand) -> list[str]:
        criteria = ScoringCriteria(
            task_type=_parse_task_type(command.task_type) if command.task_type else None,
            required_capabilities=command.capabilities,
            preferred_agent_id=command.preferred_agent_id,
            mission_id=command.mission_id,
        )
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            scores = service.scorer.score_agents(criteria)[: command.limit]

        lines = [f"Candidates: {len(scores)}"]
        for score in scores:
            breakdown = score.breakdown
            lines.append(
                f"  {score.total:>3} {score.agent_id} {score.agent_name} ({score.role}) "
                f"role={breakdown.role_match} availability={breakdown.availability} "
                f"track_record={breakdown.track_record} workload={breakdown.workload}",
            )
            lines.extend(f"      - {reason}" for reason in score.reasons)
        return lines

    def deploy_agent(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.deploy(command.agent_id)
        return [f"Agent deployed: {agent.id}", f"Runtime: {agent.runtime_id}"]

    def stop_agent(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.stop(command.agent_id)
        return [f"Agent stopped: {agent.id}"]

    def start_agent(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.start(command.agent_id)
        return [f"Agent started: {agent.id}"]

    def release_agent(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.release(command.agent_id)
        return [f"Agent released: {agent.id}"]

    def agent_status(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.get(command.agent_id)
            state = service.agents.runtime_status(command.agent_id)
        return [
            *_agent_summary(agent),
            f"Runtime: {agent.runtime_id or '-'} state={state.value if state else '-'}",
        ]

    def destroy_runtime(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.destroy_runtime(command.agent_id)
        return [f"Runtime removed for agent: {agent.id}"]

    def set_agent_status(self, command: AgentStatusCommand) -> list[str]:
        status = _parse_agent_status(command.status)
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            agent = service.agents.update_status(command.agent_id, status)
        return [f"Agent status updated: {agent.id} status={agent.status.value}"]

    def delete_agent(self, command: AgentCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings) as service:
            service.agents.delete(command.agent_id)
        return [f"Agent deleted: {command.agent_id}"]


def _mission_summary(mission: Mission) -> list[str]:
    return [
        f"Title: {mission.title}",
        f"Status: {mission.status.value}",
        f"Priority: {mission.priority.value}",
        f"Squad lead: {mission.squad_lead_id or '-'}",
        f"Tasks: {len(mission.task_ids)}",
        f"Awaiting human: {mission.awaiting_human_task_id or '-'}",
    ]


def _task_summary(task: Task) -> list[str]:
    return [
        f"Title: {task.title}",
        f"Mission: {task.mission_id}",
        f"Type: {task.task_type.value}",
        f"Status: {task.status.value}",
        f"Priority: {task.priority.value}",
        f"Assigned to: {task.assigned_to or '-'}",
        f"Retries: {task.retry_count}/{task.max_retries}",
    ]


def _agent_summary(agent: Agent) -> list[str]:
    return [
        f"Name: {agent.name}",
        f"Role: {agent.role}",
        f"Status: {agent.status.value}",
        f"Model: {agent.llm_model or '-'} provider={agent.provider or '-'}",
        f"Tasks: completed={agent.tasks_completed} failed={agent.tasks_failed} "
        f"success_rate={agent.success_rate}",
    ]


def _parse_json_object(raw: str | None, *, label: str) -> dict[str, Any]:
    try:
        value = json.loads(raw or "")
    except json.JSONDecodeError as error:
        raise ValidationError(f"Invalid {label} JSON: {error}") from error
    if not isinstance(value, dict):
        raise ValidationError(f"The {label} JSON must be an object.")
    return value


def _parse_priority(value: str) -> Priority:
    try:
        return Priority(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unknown priority: {value}") from error


def _parse_task_type(value: str) -> TaskType:
    try:
        return TaskType(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unknown task type: {value}") from error


def _parse_mission_status(value: str) -> MissionStatus:
    try:
        return MissionStatus(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unknown mission status: {value}") from error


def _parse_task_status(value: str) -> TaskStatus:
    try:
        return TaskStatus(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unknown task status: {value}") from error


def _parse_agent_status(value: str) -> AgentStatus:
    try:
        return AgentStatus(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unknown agent status: {value}") from error


@contextmanager
def _service(settings: Settings) -> Iterator[OrchestratorService]:
    settings.validate()
    store = SqlRecordStore(settings.db_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    store.init_schema()
    try:
        yield OrchestratorService(
            store=store,
            runtime=build_runtime(settings.runtime),
            settings=settings.orchestrator,
        )
    finally:
        store.close()
