"""CLI entrypoint for uatgen."""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from uatgen import __version__
from uatgen.orchestrator.backend import BackendRunError
from uatgen.orchestrator.controllers import (
    JobCliController,
    JobIdCommand,
    JobListCommand,
    JobSubmitCommand,
    RunPendingCommand,
)
from uatgen.orchestrator.errors import InvalidJobStateError, JobNotFoundError

click.rich_click.USE_MARKDOWN = True
JOB_CONTROLLER = JobCliController()

CommandT = TypeVar("CommandT")


@click.group()
@click.version_option(version=__version__, prog_name="uatgen")
def uatgen() -> None:
    """Generate UAT test cases from tickets with a quality-gated agent loop."""

    logging.basicConfig(
        level=os.getenv("UATGEN_LOG_LEVEL", "INFO").strip().upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@uatgen.group()
def jobs() -> None:
    """Test generation job commands."""


@jobs.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--ticket-id", required=True, help="Ticket identifier, for example PROJ-123.")
@click.option("--content", required=True, help="Ticket description text.")
@click.option(
    "--component",
    "components",
    multiple=True,
    help="Affected component. Can be repeated.",
)
@click.option(
    "--wait/--no-wait",
    default=False,
    show_default=True,
    help="Process the job in the foreground and print its final status.",
)
def jobs_submit(
    db_path: Path | None,
    ticket_id: str,
    content: str,
    components: tuple[str, ...],
    wait: bool,
) -> None:
    """Create a test generation job for one ticket."""

    _emit_lines(
        _run(
            JOB_CONTROLLER.submit,
            JobSubmitCommand(
                db_path=db_path,
                ticket_id=ticket_id,
                content=content,
                components=components,
                wait=wait,
            ),
        ),
    )


@jobs.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_status(db_path: Path | None, job_id: str) -> None:
    """Show job status and failure reason."""

    _emit_lines(_run(JOB_CONTROLLER.status, JobIdCommand(db_path=db_path, job_id=job_id)))


@jobs.command("logs")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_logs(db_path: Path | None, job_id: str) -> None:
    """Show job log entries, most recent first."""

    _emit_lines(_run(JOB_CONTROLLER.logs, JobIdCommand(db_path=db_path, job_id=job_id)))


@jobs.command("result")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_result(db_path: Path | None, job_id: str) -> None:
    """Print accepted test cases of a completed job."""

    _emit_lines(_run(JOB_CONTROLLER.result, JobIdCommand(db_path=db_path, job_id=job_id)))


@jobs.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_delete(db_path: Path | None, job_id: str) -> None:
    """Delete a job that is not in progress, together with its logs."""

    _emit_lines(_run(JOB_CONTROLLER.delete, JobIdCommand(db_path=db_path, job_id=job_id)))


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--active",
    "scope",
    flag_value="active",
    help="Only PENDING and IN_PROGRESS jobs.",
)
@click.option(
    "--finished",
    "scope",
    flag_value="finished",
    help="Only COMPLETED and FAILED jobs.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, scope: str | None, limit: int) -> None:
    """List jobs, newest first."""

    _emit_lines(
        _run(
            JOB_CONTROLLER.list_jobs,
            JobListCommand(db_path=db_path, scope=scope or "all", limit=limit),
        ),
    )


@jobs.command("run-pending")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def jobs_run_pending(db_path: Path | None) -> None:
    """Process every PENDING job and wait for the outcomes."""

    _emit_lines(_run(JOB_CONTROLLER.run_pending, RunPendingCommand(db_path=db_path)))


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (JobNotFoundError, InvalidJobStateError, BackendRunError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    uatgen()
