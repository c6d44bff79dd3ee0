"""Typed failures surfaced to callers of the job store and orchestrator."""

from __future__ import annotations

from uatgen.orchestrator.models import JobStatus


class JobNotFoundError(RuntimeError):
    """Raised when a caller references a job id that does not exist."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidJobStateError(RuntimeError):
    """Raised when an operation is not allowed from the job's current status."""

    def __init__(self, job_id: str, status: JobStatus, operation: str) -> None:
        super().__init__(f"Cannot {operation} job {job_id} while status={status.value}")
        self.job_id = job_id
        self.status = status
        self.operation = operation
