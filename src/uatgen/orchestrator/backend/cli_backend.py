"""Subprocess-based agents backed by CLI LLM tools."""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from uatgen.orchestrator.backend.base import AgentReply
from uatgen.orchestrator.models import TicketContext
from uatgen.orchestrator.prompts import build_generation_prompt, build_validation_prompt
from uatgen.storage.common import truncate_text

logger = logging.getLogger(__name__)

_STDERR_PREVIEW_CHARS = 500
_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


@dataclass(slots=True)
class CliAgentConfig:
    """How to invoke one CLI agent."""

    command_template: str
    model: str = "default"
    timeout_seconds: int = 600
    workdir: Path = Path(".uatgen_work")


class CliAgentRunner:
    """Render a command template, run it and map the outcome to an AgentReply."""

    def __init__(self, config: CliAgentConfig) -> None:
        self.config = config

    def run(self, *, prompt: str, ticket_id: str, purpose: str) -> AgentReply:
        prompt_file = self._write_prompt_file(prompt=prompt, ticket_id=ticket_id, purpose=purpose)
        run_args = _build_run_args(
            command_template=self.config.command_template,
            model=self.config.model,
            prompt=prompt,
            prompt_file=prompt_file,
            ticket_id=ticket_id,
        )

        env = os.environ.copy()
        env["UATGEN_AGENT_PURPOSE"] = purpose
        env["UATGEN_TICKET_ID"] = ticket_id
        env["UATGEN_MODEL"] = self.config.model

        started = time.monotonic()
        try:
            completed = subprocess.run(  # noqa: S603
                run_args,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return AgentReply.failure(
                f"{purpose} agent timed out after {self.config.timeout_seconds}s",
            )
        except FileNotFoundError as error:
            raise BackendRunError(
                f"CLI backend command not found: {run_args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            raise BackendRunError(
                f"CLI backend failed to start: {error}",
                transient=True,
            ) from error

        logger.debug(
            "%s agent for %s exited with %s in %.1fs",
            purpose,
            ticket_id,
            completed.returncode,
            time.monotonic() - started,
        )
        if completed.returncode != 0:
            stderr = truncate_text(completed.stderr.strip(), max_chars=_STDERR_PREVIEW_CHARS)
            return AgentReply.failure(
                f"{purpose} agent exited with code {completed.returncode}: {stderr or 'no stderr'}",
            )
        return AgentReply.from_text(completed.stdout)

    def _write_prompt_file(self, *, prompt: str, ticket_id: str, purpose: str) -> Path:
        safe_ticket = _UNSAFE_PATH_CHARS.sub("_", ticket_id) or "ticket"
        prompt_file = self.config.workdir / safe_ticket / f"{purpose}-{uuid4().hex[:8]}.txt"
        prompt_file.parent.mkdir(parents=True, exist_ok=True)
        prompt_file.write_text(prompt, "utf-8")
        return prompt_file


class CliGenerationAgent:
    """Generation agent adapter over a CLI tool."""

    def __init__(self, config: CliAgentConfig) -> None:
        self._runner = CliAgentRunner(config)

    def generate(self, ticket: TicketContext, instructions: str) -> AgentReply:
        return self._runner.run(
            prompt=build_generation_prompt(ticket, instructions),
            ticket_id=ticket.ticket_id,
            purpose="generation",
        )


class CliValidationAgent:
    """Validation agent adapter over a CLI tool."""

    def __init__(self, config: CliAgentConfig) -> None:
        self._runner = CliAgentRunner(config)

    def validate(self, ticket: TicketContext, generated_text: str) -> AgentReply:
        return self._runner.run(
            prompt=build_validation_prompt(ticket, generated_text),
            ticket_id=ticket.ticket_id,
            purpose="validation",
        )


def _build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
    ticket_id: str,
) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("CLI backend command template is empty.", transient=False)
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise BackendRunError(
            "CLI backend command template must include {prompt} or {prompt_file}.",
            transient=False,
        )

    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
            ticket_id=shlex.quote(ticket_id),
        )
    except KeyError as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError(
            "CLI backend command template rendered empty command.",
            transient=False,
        )
    return argv
