"""Runtime configuration for the orchestration engine and its adapters."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

RUNTIME_BACKENDS = ("docker", "disabled")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(slots=True)
class OrchestratorSettings:
    """Task lifecycle and assignment policy settings."""

    default_max_retries: int = 3
    claim_candidate_limit: int = 10
    auditor_role: str = "auditor"
    auto_orchestrate: bool = False


@dataclass(slots=True)
class RuntimeSettings:
    """Worker runtime (agent container) settings."""

    backend: str = "disabled"
    image: str = "hq-agent:latest"
    network: str = "hq-network"
    workspace_path: Path = Path("/data/agent-workspace")
    docker_binary: str = "docker"
    container_prefix: str = "hq-agent-"
    stop_timeout_seconds: int = 10
    command_timeout_seconds: float = 60.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".mission_hq.db")
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "WARNING"
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    runtime: RuntimeSettings = field(default_factory=RuntimeSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("MISSION_HQ_DB_PATH", ".mission_hq.db")),
            sqlite_busy_timeout_ms=int(os.getenv("MISSION_HQ_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("MISSION_HQ_LOG_LEVEL", "WARNING").strip().upper(),
            orchestrator=OrchestratorSettings(
                default_max_retries=int(os.getenv("MISSION_HQ_DEFAULT_MAX_RETRIES", "3")),
                claim_candidate_limit=int(os.getenv("MISSION_HQ_CLAIM_CANDIDATE_LIMIT", "10")),
                auditor_role=os.getenv("MISSION_HQ_AUDITOR_ROLE", "auditor").strip(),
                auto_orchestrate=_env_bool("MISSION_HQ_AUTO_ORCHESTRATE", default=False),
            ),
            runtime=RuntimeSettings(
                backend=os.getenv("MISSION_HQ_RUNTIME_BACKEND", "disabled").strip().lower(),
                image=os.getenv("MISSION_HQ_AGENT_IMAGE", "hq-agent:latest"),
                network=os.getenv("MISSION_HQ_AGENT_NETWORK", "hq-network"),
                workspace_path=Path(
                    os.getenv("MISSION_HQ_AGENT_WORKSPACE_PATH", "/data/agent-workspace"),
                ),
                docker_binary=os.getenv("MISSION_HQ_DOCKER_BINARY", "docker"),
                container_prefix=os.getenv("MISSION_HQ_CONTAINER_PREFIX", "hq-agent-"),
                stop_timeout_seconds=int(
                    os.getenv("MISSION_HQ_RUNTIME_STOP_TIMEOUT_SECONDS", "10"),
                ),
                command_timeout_seconds=float(
                    os.getenv("MISSION_HQ_RUNTIME_COMMAND_TIMEOUT_SECONDS", "60"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("MISSION_HQ_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"MISSION_HQ_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, "
                f"got {self.log_level!r}.",
            )
        if self.orchestrator.default_max_retries < 0:
            raise ValueError("MISSION_HQ_DEFAULT_MAX_RETRIES must be >= 0.")
        if self.orchestrator.claim_candidate_limit <= 0:
            raise ValueError("MISSION_HQ_CLAIM_CANDIDATE_LIMIT must be > 0.")
        if not self.orchestrator.auditor_role:
            raise ValueError("MISSION_HQ_AUDITOR_ROLE must not be empty.")
        if self.runtime.backend not in RUNTIME_BACKENDS:
            raise ValueError(
                "MISSION_HQ_RUNTIME_BACKEND must be one of "
                f"{', '.join(RUNTIME_BACKENDS)}, got {self.runtime.backend!r}.",
            )
        if self.runtime.stop_timeout_seconds < 0:
            raise ValueError("MISSION_HQ_RUNTIME_STOP_TIMEOUT_SECONDS must be >= 0.")
        if self.runtime.command_timeout_seconds <= 0:
            raise ValueError("MISSION_HQ_RUNTIME_COMMAND_TIMEOUT_SECONDS must be > 0.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
