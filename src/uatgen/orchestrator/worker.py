"""Job worker that drives one job through the generate/validate loop."""

from __future__ import annotations

import logging

from uatgen.orchestrator.backend import GenerationAgent, ValidationAgent
from uatgen.orchestrator.models import (
    FailureClass,
    JobRunOutcome,
    JobStatus,
    JobView,
    LogLevel,
    QualityLevel,
    QualityMetrics,
)
from uatgen.orchestrator.prompt_enhancer import build_improvement_instructions
from uatgen.orchestrator.prompts import UAT_GENERATION_PROMPT
from uatgen.orchestrator.quality import extract_quality_metrics
from uatgen.orchestrator.repository import JobRepository

logger = logging.getLogger(__name__)

_PROCESS_LOG_LEVELS: dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

DEFAULT_ACCEPTABLE_QUALITY_LEVELS = frozenset({QualityLevel.HIGH, QualityLevel.MEDIUM})


class JobWorker:
    """Owns one job at a time from IN_PROGRESS to a terminal status."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        generation_agent: GenerationAgent,
        validation_agent: ValidationAgent,
        max_attempts: int = 3,
        acceptable_quality_levels: frozenset[QualityLevel] | tuple[QualityLevel, ...] = (
            DEFAULT_ACCEPTABLE_QUALITY_LEVELS
        ),
        base_instructions: str = UAT_GENERATION_PROMPT,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer.")
        self.repository = repository
        self.generation_agent = generation_agent
        self.validation_agent = validation_agent
        self.max_attempts = max_attempts
        self.acceptable_quality_levels = frozenset(acceptable_quality_levels)
        self.base_instructions = base_instructions

    def process_job(self, job_id: str) -> JobRunOutcome:
        """Run a PENDING job to completion; never raises."""

        outcome = JobRunOutcome(job_id=job_id, status=None)
        try:
            job = self.repository.find_job(job_id)
            if job is None:
                logger.critical("Job %s vanished before processing started", job_id)
                outcome.skipped = True
                return outcome
            if not self.repository.mark_in_progress(job_id):
                outcome.skipped = True
                outcome.status = job.status
                return outcome
        except Exception:  # noqa: BLE001
            logger.exception("Failed to claim job %s", job_id)
            outcome.skipped = True
            return outcome

        outcome.status = JobStatus.IN_PROGRESS
        self._log(job_id, LogLevel.INFO, f"Processing job {job_id} for ticket {job.ticket_id}")
        self._log(job_id, LogLevel.INFO, "Job status updated to IN_PROGRESS")

        try:
            self._run_attempts(job=job, outcome=outcome)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected error while processing job %s", job_id)
            reason = str(error) or type(error).__name__
            self._fail(
                job_id=job_id,
                outcome=outcome,
                error_message=f"Process failed: {reason}",
                failure_class=FailureClass.UNEXPECTED_ERROR,
            )
        return outcome

    def _run_attempts(self, *, job: JobView, outcome: JobRunOutcome) -> None:
        job_id = job.job_id
        ticket = job.ticket()
        previous_metrics: QualityMetrics | None = None

        for attempt in range(1, self.max_attempts + 1):
            outcome.attempts = attempt
            self.repository.record_attempt(job_id, attempt=attempt)
            self._log(
                job_id,
                LogLevel.INFO,
                f"Attempt {attempt}/{self.max_attempts}: calling generation agent",
            )
            generation = self.generation_agent.generate(
                ticket,
                self._build_instructions(previous_metrics),
            )
            if not generation.ok or generation.text is None:
                self._log(job_id, LogLevel.ERROR, f"Generation agent failed: {generation.error}")
                self._fail(
                    job_id=job_id,
                    outcome=outcome,
                    error_message=f"Test generation failed: {generation.error}",
                    failure_class=FailureClass.AGENT_SIGNALED,
                )
                return
            generated = generation.text
            self.repository.touch_job(job_id)
            self._log(job_id, LogLevel.DEBUG, f"Generated tests:\n{generated}")

            self._log(job_id, LogLevel.INFO, f"Attempt {attempt}: calling validation agent")
            validation = self.validation_agent.validate(ticket, generated)
            if not validation.ok:
                self._log(job_id, LogLevel.ERROR, f"Validation agent failed: {validation.error}")
                self._fail(
                    job_id=job_id,
                    outcome=outcome,
                    error_message=f"Test validation failed: {validation.error}",
                    failure_class=FailureClass.AGENT_SIGNALED,
                )
                return

            metrics = extract_quality_metrics(validation.text)
            outcome.quality_history.append(metrics.overall)
            self._log(
                job_id,
                LogLevel.INFO,
                f"Attempt {attempt} overall quality: {metrics.overall.value}; "
                f"quality history: {_format_history(outcome.quality_history)}",
            )

            if metrics.overall in self.acceptable_quality_levels:
                self._complete(job_id=job_id, outcome=outcome, test_result=generated)
                return

            if attempt < self.max_attempts:
                self._log(
                    job_id,
                    LogLevel.WARN,
                    f"Quality {metrics.overall.value} is not acceptable; "
                    f"retrying with improvement instructions "
                    f"({len(metrics.low_metrics())} low metrics, {len(metrics.issues)} issues)",
                )
            previous_metrics = metrics

        self._fail(
            job_id=job_id,
            outcome=outcome,
            error_message=(
                f"Quality insufficient after {self.max_attempts} attempts "
                f"(history: {_format_history(outcome.quality_history)})"
            ),
            failure_class=FailureClass.QUALITY_INSUFFICIENT,
        )

    def _build_instructions(self, previous_metrics: QualityMetrics | None) -> str:
        if previous_metrics is None:
            return self.base_instructions
        return self.base_instructions + build_improvement_instructions(previous_metrics)

    def _complete(self, *, job_id: str, outcome: JobRunOutcome, test_result: str) -> None:
        if not self.repository.complete_job(job_id, test_result=test_result):
            outcome.status = None
            return
        outcome.status = JobStatus.COMPLETED
        self._log(
            job_id,
            LogLevel.INFO,
            f"Job completed after {outcome.attempts} attempt(s); "
            f"quality history: {_format_history(outcome.quality_history)}",
        )

    def _fail(
        self,
        *,
        job_id: str,
        outcome: JobRunOutcome,
        error_message: str,
        failure_class: FailureClass,
    ) -> None:
        outcome.error_message = error_message
        outcome.failure_class = failure_class
        try:
            failed = self.repository.fail_job(
                job_id,
                error_message=error_message,
                failure_class=failure_class,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Critical: could not mark job %s as FAILED", job_id)
            return
        if not failed:
            outcome.status = None
            return
        outcome.status = JobStatus.FAILED
        self._log(job_id, LogLevel.ERROR, f"Job failed: {error_message}")

    def _log(self, job_id: str, level: LogLevel, message: str) -> None:
        logger.log(_PROCESS_LOG_LEVELS[level], "[job %s] %s", job_id, message)
        try:
            self.repository.append_log(job_id, level, message)
        except Exception:  # noqa: BLE001
            logger.warning("Job log write failed for %s", job_id, exc_info=True)


def _format_history(history: list[QualityLevel]) -> str:
    return "[" + ", ".join(level.value for level in history) + "]"
