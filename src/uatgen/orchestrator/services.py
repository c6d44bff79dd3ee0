"""Use-case services exposed to callers of the job orchestrator."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from uatgen.orchestrator.errors import InvalidJobStateError
from uatgen.orchestrator.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobLogView,
    JobRunOutcome,
    JobStatus,
    JobStatusView,
    JobView,
    LogLevel,
    TicketContext,
)
from uatgen.orchestrator.repository import JobRepository
from uatgen.orchestrator.worker import JobWorker

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """Creates jobs synchronously and runs them on a background worker pool.

    The submitting thread only waits for the PENDING row to be written. The
    outcome of each job is written to the job record by its worker and is
    observed through ``status``/``logs``/``result``.

    Without a worker the orchestrator is read/submit-only.
    """

    def __init__(
        self,
        *,
        repository: JobRepository,
        worker: JobWorker | None = None,
        max_workers: int = 4,
        stale_job_seconds: int = 1_800,
    ) -> None:
        self.repository = repository
        self.worker = worker
        self.stale_job_seconds = stale_job_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="uatgen-worker",
        )
        self._futures: dict[str, Future[JobRunOutcome]] = {}
        self._futures_lock = threading.Lock()

    def submit(self, ticket: TicketContext, *, schedule: bool = True) -> str:
        """Create a PENDING job, schedule it and return its id.

        With ``schedule=False`` the job is only persisted; a later
        ``resume_pending`` call (possibly from another process) picks it up.
        """

        if schedule and self.worker is None:
            raise RuntimeError("JobOrchestrator has no worker; cannot schedule jobs.")
        job = self.repository.create_job(ticket)
        self.repository.append_log(
            job.job_id,
            LogLevel.INFO,
            f"Job created with ID: {job.job_id} for ticket: {ticket.ticket_id}",
        )
        self.repository.append_log(
            job.job_id,
            LogLevel.INFO,
            f"Components: {', '.join(ticket.components) if ticket.components else 'N/A'}",
        )
        if schedule:
            self._schedule(job.job_id)
        logger.info("Submitted job %s for ticket %s", job.job_id, ticket.ticket_id)
        return job.job_id

    def recover_stale_jobs(self) -> list[str]:
        """Fail IN_PROGRESS jobs abandoned by a worker that is no longer running."""

        with self._futures_lock:
            running_here = [
                job_id for job_id, future in self._futures.items() if not future.done()
            ]
        return self.repository.fail_stale_jobs(
            stale_after=timedelta(seconds=self.stale_job_seconds),
            exclude_job_ids=running_here,
        )

    def resume_pending(self) -> list[str]:
        """Schedule PENDING jobs left behind by a previous process.

        Stale IN_PROGRESS jobs are failed first so they do not linger.
        """

        self.recover_stale_jobs()
        scheduled: list[str] = []
        for job in reversed(self.repository.list_jobs_by_status([JobStatus.PENDING])):
            with self._futures_lock:
                if job.job_id in self._futures:
                    continue
            self._schedule(job.job_id)
            scheduled.append(job.job_id)
        if scheduled:
            logger.info("Resumed %d pending job(s)", len(scheduled))
        return scheduled

    def status(self, job_id: str) -> JobStatusView:
        job = self.repository.get_job(job_id)
        return JobStatusView(job_id=job.job_id, status=job.status, error_message=job.error_message)

    def logs(self, job_id: str) -> list[JobLogView]:
        """Job log entries, most recent first."""

        return self.repository.list_job_logs(job_id)

    def result(self, job_id: str) -> str:
        """Accepted test cases of a COMPLETED job."""

        job = self.repository.get_job(job_id)
        if job.status != JobStatus.COMPLETED or job.test_result is None:
            raise InvalidJobStateError(job_id, job.status, "read result of")
        return job.test_result

    def get_job(self, job_id: str) -> JobView:
        return self.repository.get_job(job_id)

    def delete(self, job_id: str) -> None:
        """Delete a job that is not running."""

        self.repository.delete_job(job_id)
        with self._futures_lock:
            self._futures.pop(job_id, None)
        logger.info("Deleted job %s", job_id)

    def list_active_jobs(self) -> list[JobView]:
        return self.repository.list_jobs_by_status(ACTIVE_STATUSES)

    def list_finished_jobs(self) -> list[JobView]:
        return self.repository.list_jobs_by_status(TERMINAL_STATUSES)

    def wait(self, job_id: str, *, timeout: float | None = None) -> JobView:
        """Block until this process's worker for ``job_id`` is done, then return the job."""

        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning("Timed out waiting for job %s", job_id)
        return self.repository.get_job(job_id)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _schedule(self, job_id: str) -> None:
        if self.worker is None:
            raise RuntimeError("JobOrchestrator has no worker; cannot schedule jobs.")
        future = self._executor.submit(self.worker.process_job, job_id)
        with self._futures_lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda done, job_id=job_id: self._on_done(job_id, done))

    def _on_done(self, job_id: str, future: Future[JobRunOutcome]) -> None:
        with self._futures_lock:
            if self._futures.get(job_id) is future:
                del self._futures[job_id]
        error = future.exception()
        if error is not None:
            logger.error("Worker for job %s raised %r", job_id, error)
            return
        outcome = future.result()
        if outcome.skipped:
            logger.info("Job %s was not processed by this worker", job_id)
            return
        logger.info(
            "Job %s finished with status %s after %d attempt(s)",
            job_id,
            outcome.status.value if outcome.status is not None else "unknown",
            outcome.attempts,
        )
