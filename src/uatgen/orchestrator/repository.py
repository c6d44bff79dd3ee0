"""Persistent job store for test generation jobs."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from uatgen.orchestrator.errors import InvalidJobStateError, JobNotFoundError
from uatgen.orchestrator.models import (
    ALLOWED_TRANSITIONS,
    FailureClass,
    JobLogView,
    JobStatus,
    JobView,
    LogLevel,
    TicketContext,
)
from uatgen.storage.alembic_runner import upgrade_head
from uatgen.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    truncate_text,
    utc_now,
)
from uatgen.storage.sqlmodel_models import GenerationJob, JobLog

logger = logging.getLogger(__name__)


class JobRepository:
    """Job persistence facade backed by SQLModel + SQLite."""

    def __init__(
        self,
        db_path: Path,
        *,
        log_message_max_chars: int = 1_000,
        error_message_max_chars: int = 500,
        sqlite_busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.log_message_max_chars = log_message_max_chars
        self.error_message_max_chars = error_message_max_chars
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create_job(self, ticket: TicketContext) -> JobView:
        """Insert a PENDING job for one ticket."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = GenerationJob(
                job_id=uuid4().hex,
                ticket_id=ticket.ticket_id,
                description=ticket.content,
                components_json=json.dumps(list(ticket.components), ensure_ascii=False),
                status=JobStatus.PENDING.value,
                attempts=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def transition(  # noqa: PLR0913
        self,
        job_id: str,
        status: JobStatus,
        *,
        test_result: str | None = None,
        error_message: str | None = None,
        failure_class: FailureClass | None = None,
    ) -> bool:
        """Move a job one step along its lifecycle.

        The update is conditional on the job still being in the only status
        that may precede ``status``, so a concurrent writer or a deleted job
        turns this into a logged no-op returning ``False``.
        """

        previous = _previous_status(status)
        now = to_db_datetime(utc_now())
        values: dict[str, object] = {"status": status.value, "updated_at": now}
        if status == JobStatus.COMPLETED:
            if test_result is None:
                raise ValueError("COMPLETED transition requires test_result.")
            values.update(
                test_result=test_result,
                error_message=None,
                failure_class=None,
                completed_at=now,
            )
        elif status == JobStatus.FAILED:
            if error_message is None:
                raise ValueError("FAILED transition requires error_message.")
            values.update(
                test_result=None,
                error_message=truncate_text(
                    error_message,
                    max_chars=self.error_message_max_chars,
                ),
                failure_class=(failure_class or FailureClass.UNEXPECTED_ERROR).value,
                completed_at=now,
            )

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(GenerationJob)
                .where(
                    col(GenerationJob.job_id) == job_id,
                    col(GenerationJob.status) == previous.value,
                )
                .values(**values),
            )
            if result.rowcount == 1:
                session.commit()
                return True
            session.rollback()
            current = session.get(GenerationJob, job_id)

        if current is None:
            logger.critical(
                "Job %s no longer exists; transition %s -> %s dropped",
                job_id,
                previous.value,
                status.value,
            )
        else:
            logger.warning(
                "Job %s transition %s -> %s rejected: current status is %s",
                job_id,
                previous.value,
                status.value,
                current.status,
            )
        return False

    def mark_in_progress(self, job_id: str) -> bool:
        """Claim a PENDING job for exactly one worker."""

        return self.transition(job_id, JobStatus.IN_PROGRESS)

    def complete_job(self, job_id: str, *, test_result: str) -> bool:
        """Mark a running job as completed with its accepted result."""

        return self.transition(job_id, JobStatus.COMPLETED, test_result=test_result)

    def fail_job(
        self,
        job_id: str,
        *,
        error_message: str,
        failure_class: FailureClass,
    ) -> bool:
        """Mark a running job as failed."""

        return self.transition(
            job_id,
            JobStatus.FAILED,
            error_message=error_message,
            failure_class=failure_class,
        )

    def record_attempt(self, job_id: str, *, attempt: int) -> bool:
        """Persist the number of generate attempts started for a running job."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(GenerationJob)
                .where(
                    col(GenerationJob.job_id) == job_id,
                    col(GenerationJob.status) == JobStatus.IN_PROGRESS.value,
                )
                .values(attempts=attempt, updated_at=to_db_datetime(utc_now())),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def touch_job(self, job_id: str) -> bool:
        """Refresh the progress timestamp of a running job."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(GenerationJob)
                .where(
                    col(GenerationJob.job_id) == job_id,
                    col(GenerationJob.status) == JobStatus.IN_PROGRESS.value,
                )
                .values(updated_at=to_db_datetime(utc_now())),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def fail_stale_jobs(
        self,
        *,
        stale_after: timedelta,
        exclude_job_ids: Iterable[str] = (),
    ) -> list[str]:
        """Fail IN_PROGRESS jobs whose worker stopped reporting progress.

        A job is stale when its ``updated_at`` is older than ``stale_after``.
        Each row is updated conditionally on that same cutoff, so a worker
        that touches the job concurrently keeps it.
        """

        if stale_after.total_seconds() <= 0:
            raise ValueError("stale_after must be > 0")

        cutoff = to_db_datetime(utc_now() - stale_after)
        excluded = set(exclude_job_ids)
        with Session(self.engine) as session:
            candidates = session.exec(
                select(GenerationJob.job_id).where(
                    col(GenerationJob.status) == JobStatus.IN_PROGRESS.value,
                    col(GenerationJob.updated_at) < cutoff,
                ),
            ).all()

        error_message = (
            f"Worker lost: no progress for more than {int(stale_after.total_seconds())}s; "
            "job recovered as FAILED"
        )
        recovered: list[str] = []
        for job_id in candidates:
            if job_id in excluded:
                continue
            now = to_db_datetime(utc_now())
            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(GenerationJob)
                    .where(
                        col(GenerationJob.job_id) == job_id,
                        col(GenerationJob.status) == JobStatus.IN_PROGRESS.value,
                        col(GenerationJob.updated_at) < cutoff,
                    )
                    .values(
                        status=JobStatus.FAILED.value,
                        test_result=None,
                        error_message=truncate_text(
                            error_message,
                            max_chars=self.error_message_max_chars,
                        ),
                        failure_class=FailureClass.UNEXPECTED_ERROR.value,
                        updated_at=now,
                        completed_at=now,
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue
                session.commit()
            recovered.append(job_id)
            self.append_log(job_id, LogLevel.ERROR, f"Job failed: {error_message}")
            logger.warning("Recovered stale IN_PROGRESS job %s as FAILED", job_id)
        return recovered

    def append_log(self, job_id: str, level: LogLevel, message: str) -> bool:
        """Append one truncated log entry; never raises."""

        try:
            with Session(self.engine) as session:
                if session.get(GenerationJob, job_id) is None:
                    logger.warning("[JOB_%s] %s - %s (job missing)", job_id, level.value, message)
                    return False
                session.add(
                    JobLog(
                        job_id=job_id,
                        level=level.value,
                        message=truncate_text(message, max_chars=self.log_message_max_chars),
                        timestamp=to_db_datetime(utc_now()),
                    ),
                )
                session.commit()
                return True
        except Exception:  # noqa: BLE001
            logger.warning("Failed to persist log entry for job %s", job_id, exc_info=True)
            logger.info("[JOB_%s] %s - %s", job_id, level.value, message)
            return False

    def delete_job(self, job_id: str) -> None:
        """Delete a job and its logs unless it is running."""

        with Session(self.engine) as session:
            row = session.get(GenerationJob, job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            status = JobStatus(row.status)
            if status == JobStatus.IN_PROGRESS:
                raise InvalidJobStateError(job_id, status, "delete")

            session.exec(sa_delete(JobLog).where(col(JobLog.job_id) == job_id))
            result = session.exec(
                sa_delete(GenerationJob).where(
                    col(GenerationJob.job_id) == job_id,
                    col(GenerationJob.status) == status.value,
                ),
            )
            if result.rowcount == 1:
                session.commit()
                return
            session.rollback()

        current = self.find_job(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        raise InvalidJobStateError(job_id, current.status, "delete")

    def find_job(self, job_id: str) -> JobView | None:
        """Return one job or None."""

        with Session(self.engine) as session:
            row = session.get(GenerationJob, job_id)
            if row is None:
                return None
            return _to_job_view(row)

    def get_job(self, job_id: str) -> JobView:
        """Return one job or raise JobNotFoundError."""

        job = self.find_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs_by_status(
        self,
        statuses: Iterable[JobStatus],
        *,
        limit: int | None = None,
    ) -> list[JobView]:
        """List jobs in any of the given statuses, newest first."""

        wanted = [status.value for status in statuses]
        if not wanted:
            return []
        with Session(self.engine) as session:
            statement = (
                select(GenerationJob)
                .where(col(GenerationJob.status).in_(wanted))
                .order_by(col(GenerationJob.created_at).desc())
            )
            if limit is not None:
                statement = statement.limit(limit)
            rows = session.exec(statement).all()
            return [_to_job_view(row) for row in rows]

    def list_job_logs(self, job_id: str) -> list[JobLogView]:
        """Return log entries for one job, most recent first."""

        with Session(self.engine) as session:
            if session.get(GenerationJob, job_id) is None:
                raise JobNotFoundError(job_id)
            rows = session.exec(
                select(JobLog)
                .where(JobLog.job_id == job_id)
                .order_by(col(JobLog.timestamp).desc(), col(JobLog.id).desc()),
            ).all()
            return [
                JobLogView(
                    log_id=row.id or 0,
                    job_id=row.job_id,
                    level=LogLevel(row.level),
                    message=row.message,
                    timestamp=to_utc_aware_datetime(row.timestamp),
                )
                for row in rows
            ]


def _previous_status(status: JobStatus) -> JobStatus:
    for source, targets in ALLOWED_TRANSITIONS.items():
        if status in targets:
            return source
    raise ValueError(f"Unsupported transition target: {status.value}")


def _parse_components(raw: str) -> tuple[str, ...]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return ()
    if not isinstance(parsed, list):
        return ()
    return tuple(str(item) for item in parsed)


def _to_job_view(row: GenerationJob) -> JobView:
    return JobView(
        job_id=row.job_id,
        ticket_id=row.ticket_id,
        description=row.description,
        components=_parse_components(row.components_json),
        status=JobStatus(row.status),
        attempts=row.attempts,
        failure_class=FailureClass(row.failure_class) if row.failure_class is not None else None,
        error_message=row.error_message,
        test_result=row.test_result,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
    )
