"""Worker runtime adapters that host agent processes."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from mission_hq.config import RuntimeSettings
from mission_hq.orchestrator.errors import RuntimeProvisionError

logger = logging.getLogger(__name__)

_MISSING_CONTAINER_MARKERS = ("no such container", "no such object")


class RuntimeState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"


_DOCKER_STATES = {
    "running": RuntimeState.RUNNING,
    "restarting": RuntimeState.RUNNING,
    "paused": RuntimeState.PAUSED,
    "created": RuntimeState.EXITED,
    "exited": RuntimeState.EXITED,
    "dead": RuntimeState.EXITED,
    "removing": RuntimeState.EXITED,
}


@dataclass(slots=True)
class RuntimeConfig:
    """Agent identity passed into its runtime environment."""

    name: str
    role: str
    personality: str = ""
    llm_model: str | None = None
    provider: str | None = None


class WorkerRuntime(Protocol):
    """Hosts agent processes; stop/remove tolerate a runtime that is already gone."""

    def provision(self, agent_id: str, config: RuntimeConfig) -> str: ...

    def get_status(self, runtime_id: str) -> RuntimeState | None: ...

    def start(self, runtime_id: str) -> None: ...

    def stop(self, runtime_id: str) -> None: ...

    def remove(self, runtime_id: str) -> None: ...


class DisabledRuntime:
    """Runtime used when no container backend is configured; agents degrade to offline."""

    def provision(self, agent_id: str, config: RuntimeConfig) -> str:
        raise RuntimeProvisionError(
            f"Worker runtime is disabled; cannot provision agent {agent_id}. "
            "Set MISSION_HQ_RUNTIME_BACKEND=docker to enable containers.",
        )

    def get_status(self, runtime_id: str) -> RuntimeState | None:
        return None

    def start(self, runtime_id: str) -> None:
        raise RuntimeProvisionError(f"Worker runtime is disabled; cannot start {runtime_id}.")

    def stop(self, runtime_id: str) -> None:
        return None

    def remove(self, runtime_id: str) -> None:
        return None


class DockerCliRuntime:
    """Manage one container per agent through the docker CLI."""

    def __init__(self, settings: RuntimeSettings) -> None:
        self.settings = settings

    def container_name(self, agent_id: str) -> str:
        return f"{self.settings.container_prefix}{agent_id}"

    def provision(self, agent_id: str, config: RuntimeConfig) -> str:
        """Create and start the agent container; return the container id."""

        workspace = self.settings.workspace_path / agent_id
        env = {
            "AGENT_ID": agent_id,
            "AGENT_NAME": config.name,
            "AGENT_ROLE": config.role,
            "AGENT_PERSONALITY": config.personality,
            "LLM_MODEL": config.llm_model or "",
            "LLM_PROVIDER": config.provider or "",
        }
        args = [
            "run",
            "--detach",
            "--name",
            self.container_name(agent_id),
            "--network",
            self.settings.network,
            "--restart",
            "unless-stopped",
            "--volume",
            f"{workspace}:/data:rw",
            "--label",
            f"hq-agent-id={agent_id}",
            "--label",
            "hq-managed=true",
        ]
        for key, value in env.items():
            args.extend(["--env", f"{key}={value}"])
        args.append(self.settings.image)

        result = self._docker(args)
        if result.returncode != 0:
            raise RuntimeProvisionError(
                f"Failed to create container for agent {agent_id}: {result.stderr.strip()}",
            )
        runtime_id = result.stdout.strip()
        logger.info("Provisioned container %s for agent %s", runtime_id[:12], agent_id)
        return runtime_id

    def get_status(self, runtime_id: str) -> RuntimeState | None:
        result = self._docker(["inspect", "--format", "{{.State.Status}}", runtime_id])
        if result.returncode != 0:
            if _is_missing(result.stderr):
                return None
            raise RuntimeProvisionError(
                f"Failed to inspect container {runtime_id}: {result.stderr.strip()}",
            )
        return _DOCKER_STATES.get(result.stdout.strip().lower(), RuntimeState.EXITED)

    def start(self, runtime_id: str) -> None:
        result = self._docker(["start", runtime_id])
        if result.returncode != 0:
            raise RuntimeProvisionError(
                f"Failed to start container {runtime_id}: {result.stderr.strip()}",
            )

    def stop(self, runtime_id: str) -> None:
        result = self._docker(
            ["stop", "--time", str(self.settings.stop_timeout_seconds), runtime_id],
        )
        self._check_idempotent(result, action="stop", runtime_id=runtime_id)

    def remove(self, runtime_id: str) -> None:
        result = self._docker(["rm", "--force", runtime_id])
        self._check_idempotent(result, action="remove", runtime_id=runtime_id)

    def _check_idempotent(
        self,
        result: subprocess.CompletedProcess[str],
        *,
        action: str,
        runtime_id: str,
    ) -> None:
        if result.returncode == 0:
            return
        if _is_missing(result.stderr):
            logger.info("Container %s not found on %s, already removed", runtime_id, action)
            return
        raise RuntimeProvisionError(
            f"Failed to {action} container {runtime_id}: {result.stderr.strip()}",
        )

    def _docker(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        command = [self.settings.docker_binary, *args]
        try:
            return subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=self.settings.command_timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise RuntimeProvisionError(
                f"Docker binary not found: {self.settings.docker_binary}",
            ) from error
        except subprocess.TimeoutExpired as error:
            raise RuntimeProvisionError(
                f"Docker command timed out after {self.settings.command_timeout_seconds}s: "
                f"{' '.join(args[:2])}",
            ) from error


def build_runtime(settings: RuntimeSettings) -> WorkerRuntime:
    if settings.backend == "docker":
        return DockerCliRuntime(settings)
    return DisabledRuntime()


def _is_missing(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _MISSING_CONTAINER_MARKERS)
