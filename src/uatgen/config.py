"""Runtime configuration for job orchestration and agent execution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from uatgen.orchestrator.models import QualityLevel

SUPPORTED_AGENTS: tuple[str, ...] = ("codex", "claude", "gemini")

DEFAULT_COMMAND_TEMPLATES: dict[str, str] = {
    "codex": "codex exec --model {model} {prompt}",
    "claude": "claude -p --model {model} -- {prompt}",
    "gemini": "gemini --model {model} --prompt {prompt}",
}

_DEFAULT_ACCEPTABLE_LEVELS = (QualityLevel.HIGH, QualityLevel.MEDIUM)


@dataclass(slots=True)
class GenerationSettings:
    """Quality gate and retry loop settings."""

    max_attempts: int = 3
    acceptable_quality_levels: tuple[QualityLevel, ...] = _DEFAULT_ACCEPTABLE_LEVELS
    log_message_max_chars: int = 1_000
    error_message_max_chars: int = 500
    worker_threads: int = 4
    stale_job_seconds: int = 1_800


@dataclass(slots=True)
class AgentSettings:
    """CLI agent invocation settings."""

    agent: str = "codex"
    model: str = "default"
    generation_command_template: str = DEFAULT_COMMAND_TEMPLATES["codex"]
    validation_command_template: str = DEFAULT_COMMAND_TEMPLATES["codex"]
    timeout_seconds: int = 600
    workdir: Path = Path(".uatgen_work")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".uatgen.db")
    log_level: str = "INFO"
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    agents: AgentSettings = field(default_factory=AgentSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        agent = os.getenv("UATGEN_AGENT", "codex").strip().lower()
        generation_template = os.getenv(
            "UATGEN_GENERATION_COMMAND_TEMPLATE",
            DEFAULT_COMMAND_TEMPLATES.get(agent, ""),
        )
        return cls(
            db_path=db_path or Path(os.getenv("UATGEN_DB_PATH", ".uatgen.db")),
            log_level=os.getenv("UATGEN_LOG_LEVEL", "INFO").strip().upper(),
            generation=GenerationSettings(
                max_attempts=int(os.getenv("UATGEN_MAX_ATTEMPTS", "3")),
                acceptable_quality_levels=parse_quality_levels(
                    os.getenv("UATGEN_ACCEPTABLE_QUALITY_LEVELS", ""),
                ),
                log_message_max_chars=int(os.getenv("UATGEN_LOG_MESSAGE_MAX_CHARS", "1000")),
                error_message_max_chars=int(os.getenv("UATGEN_ERROR_MESSAGE_MAX_CHARS", "500")),
                worker_threads=int(os.getenv("UATGEN_WORKER_THREADS", "4")),
                stale_job_seconds=int(os.getenv("UATGEN_STALE_JOB_SECONDS", "1800")),
            ),
            agents=AgentSettings(
                agent=agent,
                model=os.getenv("UATGEN_MODEL", "default"),
                generation_command_template=generation_template,
                validation_command_template=os.getenv(
                    "UATGEN_VALIDATION_COMMAND_TEMPLATE",
                    generation_template,
                ),
                timeout_seconds=int(os.getenv("UATGEN_AGENT_TIMEOUT_SECONDS", "600")),
                workdir=Path(os.getenv("UATGEN_WORKDIR", ".uatgen_work")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the orchestrator cannot run with."""

        if self.generation.max_attempts <= 0:
            raise ValueError("UATGEN_MAX_ATTEMPTS must be a positive integer.")
        if not self.generation.acceptable_quality_levels:
            raise ValueError("UATGEN_ACCEPTABLE_QUALITY_LEVELS must name at least one level.")
        if self.generation.log_message_max_chars < 10:
            raise ValueError("UATGEN_LOG_MESSAGE_MAX_CHARS must be >= 10.")
        if self.generation.error_message_max_chars < 10:
            raise ValueError("UATGEN_ERROR_MESSAGE_MAX_CHARS must be >= 10.")
        if self.generation.worker_threads <= 0:
            raise ValueError("UATGEN_WORKER_THREADS must be a positive integer.")
        if self.generation.stale_job_seconds <= 0:
            raise ValueError("UATGEN_STALE_JOB_SECONDS must be > 0.")
        if self.agents.timeout_seconds <= 0:
            raise ValueError("UATGEN_AGENT_TIMEOUT_SECONDS must be > 0.")

    def validate_for_agents(self) -> None:
        """Raise configuration error if agent command templates are unusable."""

        if self.agents.agent not in SUPPORTED_AGENTS:
            raise ValueError(
                f"Unsupported UATGEN_AGENT={self.agents.agent!r}. "
                f"Expected one of: {', '.join(SUPPORTED_AGENTS)}.",
            )
        for name, template in (
            ("UATGEN_GENERATION_COMMAND_TEMPLATE", self.agents.generation_command_template),
            ("UATGEN_VALIDATION_COMMAND_TEMPLATE", self.agents.validation_command_template),
        ):
            if "{prompt}" not in template and "{prompt_file}" not in template:
                raise ValueError(f"{name} must include {{prompt}} or {{prompt_file}}.")


def parse_quality_levels(raw: str) -> tuple[QualityLevel, ...]:
    """Parse a comma-separated list of quality levels, accepting short forms."""

    if not raw.strip():
        return _DEFAULT_ACCEPTABLE_LEVELS

    levels: list[QualityLevel] = []
    for part in raw.split(","):
        token = part.strip().upper()
        if not token:
            continue
        if not token.startswith("QUALITY_"):
            token = f"QUALITY_{token}"
        try:
            level = QualityLevel(token)
        except ValueError as error:
            raise ValueError(
                f"Invalid UATGEN_ACCEPTABLE_QUALITY_LEVELS entry: {part.strip()!r}",
            ) from error
        if level not in levels:
            levels.append(level)
    return tuple(levels)
