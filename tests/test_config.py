from __future__ import annotations

from pathlib import Path

import allure
import pytest

from uatgen.config import (
    DEFAULT_COMMAND_TEMPLATES,
    AgentSettings,
    GenerationSettings,
    Settings,
    parse_quality_levels,
)
from uatgen.orchestrator.models import QualityLevel

pytestmark = [
    allure.epic("Job Orchestrator"),
    allure.feature("Configuration"),
]

_UATGEN_ENV = (
    "UATGEN_DB_PATH",
    "UATGEN_MAX_ATTEMPTS",
    "UATGEN_ACCEPTABLE_QUALITY_LEVELS",
    "UATGEN_AGENT",
    "UATGEN_MODEL",
    "UATGEN_GENERATION_COMMAND_TEMPLATE",
    "UATGEN_VALIDATION_COMMAND_TEMPLATE",
    "UATGEN_WORKER_THREADS",
    "UATGEN_STALE_JOB_SECONDS",
)


@pytest.fixture()
def clean_env(monkeypatch) -> None:
    for name in _UATGEN_ENV:
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults(clean_env) -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".uatgen.db")
    assert settings.generation.max_attempts == 3
    assert settings.generation.acceptable_quality_levels == (
        QualityLevel.HIGH,
        QualityLevel.MEDIUM,
    )
    assert settings.generation.log_message_max_chars == 1000
    assert settings.generation.stale_job_seconds == 1800
    assert settings.agents.agent == "codex"
    assert settings.agents.generation_command_template == DEFAULT_COMMAND_TEMPLATES["codex"]
    assert settings.agents.validation_command_template == DEFAULT_COMMAND_TEMPLATES["codex"]
    settings.validate()
    settings.validate_for_agents()


def test_from_env_reads_overrides(clean_env, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("UATGEN_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("UATGEN_ACCEPTABLE_QUALITY_LEVELS", "high")
    monkeypatch.setenv("UATGEN_AGENT", "Claude")
    monkeypatch.setenv("UATGEN_STALE_JOB_SECONDS", "120")
    monkeypatch.setenv("UATGEN_VALIDATION_COMMAND_TEMPLATE", "reviewer --file {prompt_file}")

    settings = Settings.from_env(db_path=tmp_path / "explicit.db")

    assert settings.db_path == tmp_path / "explicit.db"
    assert settings.generation.max_attempts == 5
    assert settings.generation.acceptable_quality_levels == (QualityLevel.HIGH,)
    assert settings.generation.stale_job_seconds == 120
    assert settings.agents.agent == "claude"
    assert settings.agents.generation_command_template == DEFAULT_COMMAND_TEMPLATES["claude"]
    assert settings.agents.validation_command_template == "reviewer --file {prompt_file}"


def test_parse_quality_levels_accepts_short_and_full_forms() -> None:
    assert parse_quality_levels("QUALITY_MEDIUM, low,medium") == (
        QualityLevel.MEDIUM,
        QualityLevel.LOW,
    )
    assert parse_quality_levels("  ") == (QualityLevel.HIGH, QualityLevel.MEDIUM)


def test_parse_quality_levels_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="Invalid UATGEN_ACCEPTABLE_QUALITY_LEVELS entry"):
        parse_quality_levels("HIGH,EXCELLENT")


def test_validate_rejects_non_positive_max_attempts() -> None:
    settings = Settings(generation=GenerationSettings(max_attempts=0))

    with pytest.raises(ValueError, match="UATGEN_MAX_ATTEMPTS"):
        settings.validate()


def test_validate_for_agents_rejects_unknown_agent_and_bad_template() -> None:
    with pytest.raises(ValueError, match="Unsupported UATGEN_AGENT"):
        Settings(agents=AgentSettings(agent="copilot")).validate_for_agents()

    with pytest.raises(ValueError, match="UATGEN_VALIDATION_COMMAND_TEMPLATE"):
        Settings(
            agents=AgentSettings(validation_command_template="reviewer --quiet"),
        ).validate_for_agents()


def test_validate_rejects_non_positive_stale_job_seconds() -> None:
    settings = Settings(generation=GenerationSettings(stale_job_seconds=0))

    with pytest.raises(ValueError, match="UATGEN_STALE_JOB_SECONDS"):
        settings.validate()
