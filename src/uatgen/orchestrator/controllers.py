"""Controllers for job CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from uatgen.config import Settings
from uatgen.orchestrator.backend import CliAgentConfig, CliGenerationAgent, CliValidationAgent
from uatgen.orchestrator.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobStatus,
    JobView,
    TicketContext,
)
from uatgen.orchestrator.repository import JobRepository
from uatgen.orchestrator.services import JobOrchestrator
from uatgen.orchestrator.worker import JobWorker


@dataclass(slots=True)
class JobSubmitCommand:
    """CLI input for job submission."""

    db_path: Path | None
    ticket_id: str
    content: str
    components: tuple[str, ...]
    wait: bool


@dataclass(slots=True)
class JobIdCommand:
    """CLI input for single-job commands (status, logs, result, delete)."""

    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobListCommand:
    """CLI input for job listing."""

    db_path: Path | None
    scope: str = "all"
    limit: int = 50


@dataclass(slots=True)
class RunPendingCommand:
    """CLI input for processing PENDING jobs in the foreground."""

    db_path: Path | None


_SCOPE_STATUSES: dict[str, frozenset[JobStatus]] = {
    "active": ACTIVE_STATUSES,
    "finished": TERMINAL_STATUSES,
    "all": ACTIVE_STATUSES | TERMINAL_STATUSES,
}


class JobCliController:
    """Coordinates job submission, processing and inspection CLI operations."""

    def submit(self, command: JobSubmitCommand) -> list[str]:
        ticket = TicketContext(
            ticket_id=command.ticket_id,
            content=command.content,
            components=command.components,
        )
        settings = _settings(command.db_path, require_agents=command.wait)
        if not command.wait:
            with _repository(settings) as repository:
                orchestrator = JobOrchestrator(repository=repository, worker=None)
                try:
                    job_id = orchestrator.submit(ticket, schedule=False)
                finally:
                    orchestrator.shutdown()
            return [
                f"Job submitted: job_id={job_id} ticket={ticket.ticket_id} "
                f"status={JobStatus.PENDING.value}",
                "Run `uatgen jobs run-pending` to process it.",
            ]

        with _orchestrator(settings) as orchestrator:
            job_id = orchestrator.submit(ticket)
            job = orchestrator.wait(job_id)
        return [f"Job submitted: job_id={job_id} ticket={ticket.ticket_id}", *_job_lines(job)]

    def status(self, command: JobIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            job = repository.get_job(command.job_id)
        return _job_lines(job)

    def logs(self, command: JobIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            entries = repository.list_job_logs(command.job_id)

        lines = [f"Logs for job {command.job_id}: {len(entries)}"]
        for entry in entries:
            lines.append(
                f"  {entry.timestamp.isoformat()} [{entry.level.value}] {entry.message}",
            )
        return lines

    def result(self, command: JobIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            orchestrator = JobOrchestrator(repository=repository, worker=None)
            try:
                test_result = orchestrator.result(command.job_id)
            finally:
                orchestrator.shutdown()
        return test_result.splitlines() or [""]

    def delete(self, command: JobIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            repository.delete_job(command.job_id)
        return [f"Job deleted: {command.job_id}"]

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            jobs = repository.list_jobs_by_status(
                _SCOPE_STATUSES[command.scope],
                limit=command.limit,
            )

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} ticket={job.ticket_id} status={job.status.value} "
                f"attempts={job.attempts} created_at={job.created_at.isoformat()}",
            )
        return lines

    def run_pending(self, command: RunPendingCommand) -> list[str]:
        settings = _settings(command.db_path, require_agents=True)
        with _orchestrator(settings) as orchestrator:
            recovered = orchestrator.recover_stale_jobs()
            job_ids = orchestrator.resume_pending()
            jobs = [orchestrator.wait(job_id) for job_id in job_ids]

        lines: list[str] = []
        if recovered:
            lines.append(f"Recovered stale jobs as FAILED: {len(recovered)}")
            lines.extend(f"  {job_id}" for job_id in recovered)
        lines.append(f"Processed pending jobs: {len(jobs)}")
        for job in jobs:
            lines.append(
                f"  {job.job_id} ticket={job.ticket_id} status={job.status.value} "
                f"attempts={job.attempts}",
            )
        return lines


def _settings(db_path: Path | None, *, require_agents: bool = False) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    if require_agents:
        settings.validate_for_agents()
    return settings


def _job_lines(job: JobView) -> list[str]:
    return [
        f"Job: {job.job_id}",
        f"Ticket: {job.ticket_id}",
        f"Status: {job.status.value}",
        f"Attempts: {job.attempts}",
        f"Failure class: {job.failure_class.value if job.failure_class else '-'}",
        f"Error: {job.error_message or '-'}",
        f"Created: {job.created_at.isoformat()}",
        f"Completed: {job.completed_at.isoformat() if job.completed_at else '-'}",
    ]


@contextmanager
def _repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(
        settings.db_path,
        log_message_max_chars=settings.generation.log_message_max_chars,
        error_message_max_chars=settings.generation.error_message_max_chars,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _orchestrator(settings: Settings) -> Iterator[JobOrchestrator]:
    agents = settings.agents
    with _repository(settings) as repository:
        worker = JobWorker(
            repository=repository,
            generation_agent=CliGenerationAgent(
                CliAgentConfig(
                    command_template=agents.generation_command_template,
                    model=agents.model,
                    timeout_seconds=agents.timeout_seconds,
                    workdir=agents.workdir,
                ),
            ),
            validation_agent=CliValidationAgent(
                CliAgentConfig(
                    command_template=agents.validation_command_template,
                    model=agents.model,
                    timeout_seconds=agents.timeout_seconds,
                    workdir=agents.workdir,
                ),
            ),
            max_attempts=settings.generation.max_attempts,
            acceptable_quality_levels=settings.generation.acceptable_quality_levels,
        )
        orchestrator = JobOrchestrator(
            repository=repository,
            worker=worker,
            max_workers=settings.generation.worker_threads,
            stale_job_seconds=settings.generation.stale_job_seconds,
        )
        try:
            yield orchestrator
        finally:
            orchestrator.shutdown(wait=True)
