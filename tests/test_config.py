from __future__ import annotations

from pathlib import Path

import allure
import pytest

from mission_hq.config import OrchestratorSettings, RuntimeSettings, Settings

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Configuration"),
]


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MISSION_HQ_DB_PATH", "/tmp/hq-test.db")
    monkeypatch.setenv("MISSION_HQ_LOG_LEVEL", " debug ")
    monkeypatch.setenv("MISSION_HQ_DEFAULT_MAX_RETRIES", "5")
    monkeypatch.setenv("MISSION_HQ_AUTO_ORCHESTRATE", "yes")
    monkeypatch.setenv("MISSION_HQ_RUNTIME_BACKEND", "Docker")
    monkeypatch.setenv("MISSION_HQ_AGENT_IMAGE", "registry.local/agent:1")

    settings = Settings.from_env()

    assert settings.db_path == Path("/tmp/hq-test.db")
    assert settings.log_level == "DEBUG"
    assert settings.orchestrator.default_max_retries == 5
    assert settings.orchestrator.auto_orchestrate is True
    assert settings.runtime.backend == "docker"
    assert settings.runtime.image == "registry.local/agent:1"
    settings.validate()


def test_explicit_db_path_wins_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MISSION_HQ_DB_PATH", "/tmp/ignored.db")

    assert Settings.from_env(db_path=Path("explicit.db")).db_path == Path("explicit.db")


def test_invalid_boolean_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MISSION_HQ_AUTO_ORCHESTRATE", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for MISSION_HQ_AUTO_ORCHESTRATE"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(sqlite_busy_timeout_ms=0), "BUSY_TIMEOUT"),
        (Settings(log_level="LOUD"), "LOG_LEVEL"),
        (Settings(orchestrator=OrchestratorSettings(default_max_retries=-1)), "MAX_RETRIES"),
        (Settings(orchestrator=OrchestratorSettings(claim_candidate_limit=0)), "CANDIDATE_LIMIT"),
        (Settings(orchestrator=OrchestratorSettings(auditor_role="")), "AUDITOR_ROLE"),
        (Settings(runtime=RuntimeSettings(backend="podman")), "RUNTIME_BACKEND"),
        (Settings(runtime=RuntimeSettings(command_timeout_seconds=0)), "COMMAND_TIMEOUT"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_defaults_are_valid() -> None:
    settings = Settings()

    settings.validate()
    assert settings.runtime.backend == "disabled"
    assert settings.orchestrator.default_max_retries == 3
