"""CLI entrypoint for mission-hq."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from mission_hq import __version__
from mission_hq.config import LOG_LEVELS, Settings
from mission_hq.orchestrator.controllers import (
    AgentCommand,
    AgentCreateCommand,
    AgentListCommand,
    AgentScoreCommand,
    AgentStatusCommand,
    HumanResponseCommand,
    MissionCancelCommand,
    MissionCommand,
    MissionCreateCommand,
    MissionListCommand,
    OrchestratorCliController,
    PlanIngestCommand,
    TaskCommand,
    TaskCompleteCommand,
    TaskCreateCommand,
    TaskDecisionCommand,
    TaskFailCommand,
    TaskListCommand,
    TaskNextCommand,
    TaskRetryCommand,
)
from mission_hq.orchestrator.decisions import DecisionKind
from mission_hq.orchestrator.errors import OrchestrationError
from mission_hq.orchestrator.models import (
    AgentStatus,
    MissionStatus,
    Priority,
    TaskStatus,
    TaskType,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = OrchestratorCliController()

PRIORITY_CHOICES = [priority.value for priority in Priority]
TASK_TYPE_CHOICES = [task_type.value for task_type in TaskType]
MISSION_STATUS_CHOICES = [status.value for status in MissionStatus]
TASK_STATUS_CHOICES = [status.value for status in TaskStatus]
AGENT_STATUS_CHOICES = [status.value for status in AgentStatus]
DECISION_CHOICES = [kind.value for kind in DecisionKind]
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="mission-hq")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level; defaults to MISSION_HQ_LOG_LEVEL.",
)
def mission_hq(log_level: str | None) -> None:
    """Mission orchestration CLI.

    Missions are decomposed into **tasks** executed by **agents**; a squad lead
    plans the work and an auditor decides what happens to tasks that keep failing.
    """

    with _cli_errors():
        level = (log_level or Settings.from_env().log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format=LOG_FORMAT)


@mission_hq.group()
def mission() -> None:
    """Mission lifecycle commands."""


@mission.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--title", required=True, help="Mission title.")
@click.option("--description", default="", help="Mission description.")
@click.option("--objective", default="", help="What counts as success.")
@click.option(
    "--priority",
    type=click.Choice(PRIORITY_CHOICES),
    default=Priority.MEDIUM.value,
    show_default=True,
    help="Mission priority.",
)
@click.option(
    "--auto-orchestrate/--no-auto-orchestrate",
    default=None,
    help="Staff a squad lead on start; defaults to MISSION_HQ_AUTO_ORCHESTRATE.",
)
def mission_create(  # noqa: PLR0913
    db_path: Path | None,
    title: str,
    description: str,
    objective: str,
    priority: str,
    auto_orchestrate: bool | None,
) -> None:
    """Create a draft mission."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.create_mission(
                MissionCreateCommand(
                    db_path=db_path,
                    title=title,
                    description=description,
                    objective=objective,
                    priority=priority,
                    auto_orchestrate=auto_orchestrate,
                ),
            ),
        )


@mission.command("start")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_start(db_path: Path | None, mission_id: str) -> None:
    """Start a draft or paused mission."""

    with _cli_errors():
        _emit_lines(CONTROLLER.start_mission(MissionCommand(db_path=db_path, mission_id=mission_id)))


@mission.command("pause")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_pause(db_path: Path | None, mission_id: str) -> None:
    """Pause an active mission."""

    with _cli_errors():
        _emit_lines(CONTROLLER.pause_mission(MissionCommand(db_path=db_path, mission_id=mission_id)))


@mission.command("resume")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_resume(db_path: Path | None, mission_id: str) -> None:
    """Resume a paused mission."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.resume_mission(MissionCommand(db_path=db_path, mission_id=mission_id)),
        )


@mission.command("cancel")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--reason", required=True, help="Why the mission is cancelled.")
@click.argument("mission_id")
def mission_cancel(db_path: Path | None, reason: str, mission_id: str) -> None:
    """Cancel a mission; tasks already running are left alone."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.cancel_mission(
                MissionCancelCommand(db_path=db_path, mission_id=mission_id, reason=reason),
            ),
        )


@mission.command("complete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_complete(db_path: Path | None, mission_id: str) -> None:
    """Mark a mission completed and release its squad lead."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.complete_mission(MissionCommand(db_path=db_path, mission_id=mission_id)),
        )


@mission.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(MISSION_STATUS_CHOICES),
    default=None,
    help="Status filter.",
)
def mission_list(db_path: Path | None, status: str | None) -> None:
    """List missions, oldest first."""

    with _cli_errors():
        _emit_lines(CONTROLLER.list_missions(MissionListCommand(db_path=db_path, status=status)))


@mission.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_show(db_path: Path | None, mission_id: str) -> None:
    """Show mission state, task counts and the orchestration log."""

    with _cli_errors():
        _emit_lines(CONTROLLER.show_mission(MissionCommand(db_path=db_path, mission_id=mission_id)))


@mission.command("dag")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_dag(db_path: Path | None, mission_id: str) -> None:
    """Render the mission's task dependency graph."""

    with _cli_errors():
        _emit_lines(CONTROLLER.mission_dag(MissionCommand(db_path=db_path, mission_id=mission_id)))


@mission.command("orchestrate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("mission_id")
def mission_orchestrate(db_path: Path | None, mission_id: str) -> None:
    """Assign a squad lead and queue the mission analysis task."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.orchestrate_mission(MissionCommand(db_path=db_path, mission_id=mission_id)),
        )


@mission.command("ingest-plan")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--plan",
    "plan_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="JSON file with the squad lead plan.",
)
@click.option("--mission-id", default=None, help="Mission to ingest the plan into.")
@click.option(
    "--task-id",
    default=None,
    help="Mission analysis task whose output the plan is.",
)
def mission_ingest_plan(
    db_path: Path | None,
    plan_path: Path,
    mission_id: str | None,
    task_id: str | None,
) -> None:
    """Create agents, tasks and dependencies from a squad lead plan."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.ingest_plan(
                PlanIngestCommand(
                    db_path=db_path,
                    plan_path=plan_path,
                    mission_id=mission_id,
                    task_id=task_id,
                ),
            ),
        )


@mission_hq.group()
def task() -> None:
    """Task lifecycle and audit commands."""


@task.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--mission-id", required=True, help="Owning mission.")
@click.option("--title", required=True, help="Task title.")
@click.option("--description", default="", help="Task description.")
@click.option(
    "--type",
    "task_type",
    type=click.Choice(TASK_TYPE_CHOICES),
    default=TaskType.CUSTOM.value,
    show_default=True,
    help="Task type.",
)
@click.option(
    "--priority",
    type=click.Choice(PRIORITY_CHOICES),
    default=Priority.MEDIUM.value,
    show_default=True,
    help="Task priority.",
)
@click.option(
    "--depends-on",
    "dependencies",
    multiple=True,
    help="Task id that must complete first. Can be repeated.",
)
@click.option("--assign-to", "assigned_to", default=None, help="Agent id to assign.")
@click.option(
    "--max-retries",
    type=click.IntRange(min=0),
    default=None,
    help="Retry budget; defaults to MISSION_HQ_DEFAULT_MAX_RETRIES.",
)
@click.option("--input", "input_json", default=None, help="Task input as a JSON object.")
def task_create(  # noqa: PLR0913
    db_path: Path | None,
    mission_id: str,
    title: str,
    description: str,
    task_type: str,
    priority: str,
    dependencies: tuple[str, ...],
    assigned_to: str | None,
    max_retries: int | None,
    input_json: str | None,
) -> None:
    """Create a pending task inside a mission."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.create_task(
                TaskCreateCommand(
                    db_path=db_path,
                    mission_id=mission_id,
                    title=title,
                    description=description,
                    task_type=task_type,
                    priority=priority,
                    dependencies=dependencies,
                    assigned_to=assigned_to,
                    max_retries=max_retries,
                    input_json=input_json,
                ),
            ),
        )


@task.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--mission-id", default=None, help="Only tasks of this mission.")
@click.option("--status", type=click.Choice(TASK_STATUS_CHOICES), default=None, help="Status filter.")
@click.option(
    "--type",
    "task_type",
    type=click.Choice(TASK_TYPE_CHOICES),
    default=None,
    help="Task type filter.",
)
@click.option(
    "--awaiting-human",
    is_flag=True,
    default=False,
    help="List open human questions, newest first.",
)
def task_list(
    db_path: Path | None,
    mission_id: str | None,
    status: str | None,
    task_type: str | None,
    awaiting_human: bool,
) -> None:
    """List tasks."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.list_tasks(
                TaskListCommand(
                    db_path=db_path,
                    mission_id=mission_id,
                    status=status,
                    task_type=task_type,
                    awaiting_human=awaiting_human,
                ),
            ),
        )


@task.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("task_id")
def task_inspect(db_path: Path | None, task_id: str) -> None:
    """Show task details, executability and retry history."""

    with _cli_errors():
        _emit_lines(CONTROLLER.inspect_task(TaskCommand(db_path=db_path, task_id=task_id)))


@task.command("next")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--agent-id", required=True, help="Agent polling for work.")
@click.option("--mission-id", default=None, help="Only claim tasks of this mission.")
def task_next(db_path: Path | None, agent_id: str, mission_id: str | None) -> None:
    """Claim the next ready task for an agent."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.next_task(
                TaskNextCommand(db_path=db_path, agent_id=agent_id, mission_id=mission_id),
            ),
        )


@task.command("start")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("task_id")
def task_start(db_path: Path | None, task_id: str) -> None:
    """Move a pending task to in_progress."""

    with _cli_errors():
        _emit_lines(CONTROLLER.start_task(TaskCommand(db_path=db_path, task_id=task_id)))


@task.command("complete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--output", "output_json", default=None, help="Task output as a JSON object.")
@click.option(
    "--success/--failure",
    default=True,
    show_default=True,
    help="Outcome of the run.",
)
@click.argument("task_id")
def task_complete(
    db_path: Path | None,
    output_json: str | None,
    success: bool,
    task_id: str,
) -> None:
    """Finish an in-progress task."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.complete_task(
                TaskCompleteCommand(
                    db_path=db_path,
                    task_id=task_id,
                    output_json=output_json,
                    success=success,
                ),
            ),
        )


@task.command("fail")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--reason", required=True, help="Failure reason.")
@click.option("--agent-id", default=None, help="Agent that made the attempt.")
@click.argument("task_id")
def task_fail(db_path: Path | None, reason: str, agent_id: str | None, task_id: str) -> None:
    """Record a failed attempt."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.fail_task(
                TaskFailCommand(db_path=db_path, task_id=task_id, reason=reason, agent_id=agent_id),
            ),
        )


@task.command("retry")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--clear-assignment",
    is_flag=True,
    default=False,
    help="Let any agent pick the task up again.",
)
@click.argument("task_id")
def task_retry(db_path: Path | None, clear_assignment: bool, task_id: str) -> None:
    """Put a failed task back in the queue, spending one retry."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.retry_task(
                TaskRetryCommand(
                    db_path=db_path,
                    task_id=task_id,
                    clear_assignment=clear_assignment,
                ),
            ),
        )


@task.command("request-audit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("task_id")
def task_request_audit(db_path: Path | None, task_id: str) -> None:
    """Open an auditor review for a task out of retries."""

    with _cli_errors():
        _emit_lines(CONTROLLER.request_audit(TaskCommand(db_path=db_path, task_id=task_id)))


@task.command("decide")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--decision", type=click.Choice(DECISION_CHOICES), required=True, help="Decision.")
@click.option("--reason", required=True, help="Why the auditor decided this.")
@click.option("--role", default=None, help="Agent role for `reassign`.")
@click.option("--description", default=None, help="New task description for `refine`.")
@click.option("--question", default=None, help="Question for a human for `escalate_human`.")
@click.argument("task_id")
def task_decide(  # noqa: PLR0913
    db_path: Path | None,
    decision: str,
    reason: str,
    role: str | None,
    description: str | None,
    question: str | None,
    task_id: str,
) -> None:
    """Apply an audit decision to a failed task or to its audit task."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.decide(
                TaskDecisionCommand(
                    db_path=db_path,
                    task_id=task_id,
                    decision=decision,
                    reason=reason,
                    role=role,
                    description=description,
                    question=question,
                ),
            ),
        )


@task.command("human-response")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--response", required=True, help="The human's answer.")
@click.argument("task_id")
def task_human_response(db_path: Path | None, response: str, task_id: str) -> None:
    """Answer a human_input task and resume the blocked work."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.human_response(
                HumanResponseCommand(db_path=db_path, task_id=task_id, response=response),
            ),
        )


@mission_hq.group()
def agent() -> None:
    """Agent registry and runtime commands."""


@agent.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--name", required=True, help="Agent display name.")
@click.option("--role", required=True, help="Agent role, for example researcher.")
@click.option("--template", default=None, help="Template supplying defaults; defaults to role.")
@click.option(
    "--capability",
    "capabilities",
    multiple=True,
    help="Capability tag. Can be repeated.",
)
@click.option("--personality", default=None, help="System prompt for the agent.")
@click.option("--llm-model", default=None, help="LLM model name.")
@click.option("--provider", default=None, help="LLM provider.")
@click.option(
    "--provision/--no-provision",
    default=True,
    show_default=True,
    help="Start a worker runtime for the agent.",
)
def agent_create(  # noqa: PLR0913
    db_path: Path | None,
    name: str,
    role: str,
    template: str | None,
    capabilities: tuple[str, ...],
    personality: str | None,
    llm_model: str | None,
    provider: str | None,
    provision: bool,
) -> None:
    """Register an agent."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.create_agent(
                AgentCreateCommand(
                    db_path=db_path,
                    name=name,
                    role=role,
                    template=template,
                    capabilities=capabilities,
                    personality=personality,
                    llm_model=llm_model,
                    provider=provider,
                    provision=provision,
                ),
            ),
        )


@agent.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--role", default=None, help="Role filter.")
@click.option("--status", type=click.Choice(AGENT_STATUS_CHOICES), default=None, help="Status.")
def agent_list(db_path: Path | None, role: str | None, status: str | None) -> None:
    """List agents."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.list_agents(AgentListCommand(db_path=db_path, role=role, status=status)),
        )


@agent.command("score")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--task-type", type=click.Choice(TASK_TYPE_CHOICES), default=None, help="Task type.")
@click.option(
    "--capability",
    "capabilities",
    multiple=True,
    help="Required capability. Can be repeated.",
)
@click.option("--preferred-agent-id", default=None, help="Agent to favour.")
@click.option("--mission-id", default=None, help="Mission the work belongs to.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=10,
    show_default=True,
    help="How many candidates to print.",
)
def agent_score(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str | None,
    capabilities: tuple[str, ...],
    preferred_agent_id: str | None,
    mission_id: str | None,
    limit: int,
) -> None:
    """Rank available agents for a piece of work."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.score_agents(
                AgentScoreCommand(
                    db_path=db_path,
                    task_type=task_type,
                    capabilities=capabilities,
                    preferred_agent_id=preferred_agent_id,
                    mission_id=mission_id,
                    limit=limit,
                ),
            ),
        )


@agent.command("deploy")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_deploy(db_path: Path | None, agent_id: str) -> None:
    """Replace the agent's runtime with a fresh one."""

    with _cli_errors():
        _emit_lines(CONTROLLER.deploy_agent(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("stop")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_stop(db_path: Path | None, agent_id: str) -> None:
    """Stop the agent's runtime."""

    with _cli_errors():
        _emit_lines(CONTROLLER.stop_agent(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("start")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_start(db_path: Path | None, agent_id: str) -> None:
    """Start the agent's stopped runtime."""

    with _cli_errors():
        _emit_lines(CONTROLLER.start_agent(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("release")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_release(db_path: Path | None, agent_id: str) -> None:
    """Detach the agent from its mission and mark it idle."""

    with _cli_errors():
        _emit_lines(CONTROLLER.release_agent(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_status(db_path: Path | None, agent_id: str) -> None:
    """Show the agent and its runtime state."""

    with _cli_errors():
        _emit_lines(CONTROLLER.agent_status(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("destroy-runtime")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_destroy_runtime(db_path: Path | None, agent_id: str) -> None:
    """Remove the agent's runtime and take the agent offline."""

    with _cli_errors():
        _emit_lines(CONTROLLER.destroy_runtime(AgentCommand(db_path=db_path, agent_id=agent_id)))


@agent.command("set-status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--status", type=click.Choice(AGENT_STATUS_CHOICES), required=True, help="Status.")
@click.argument("agent_id")
def agent_set_status(db_path: Path | None, status: str, agent_id: str) -> None:
    """Override the agent's status without touching its runtime."""

    with _cli_errors():
        _emit_lines(
            CONTROLLER.set_agent_status(
                AgentStatusCommand(db_path=db_path, agent_id=agent_id, status=status),
            ),
        )


@agent.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("agent_id")
def agent_delete(db_path: Path | None, agent_id: str) -> None:
    """Remove the agent and its runtime."""

    with _cli_errors():
        _emit_lines(CONTROLLER.delete_agent(AgentCommand(db_path=db_path, agent_id=agent_id)))


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except (OrchestrationError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    mission_hq()
