from __future__ import annotations

import logging

import allure
import pytest

from agent_stubs import (
    GENERATED_TESTS,
    ScriptedGenerationAgent,
    ScriptedValidationAgent,
    validation_report,
)
from sqlalchemy import text

from uatgen.orchestrator.backend import AgentReply
from uatgen.orchestrator.models import (
    FailureClass,
    JobStatus,
    LogLevel,
    QualityLevel,
    TicketContext,
)
from uatgen.orchestrator.prompt_enhancer import QUALITY_SUFFICIENT_FALLBACK
from uatgen.orchestrator.prompts import UAT_GENERATION_PROMPT
from uatgen.orchestrator.repository import JobRepository
from uatgen.orchestrator.worker import JobWorker

pytestmark = [
    allure.epic("Job Orchestrator"),
    allure.feature("Quality-Gated Retry Loop"),
]

LOW_REPORT = validation_report(
    "QUALITY_LOW",
    issues="Type: Coverage\nSeverity: High\nFix: Add a negative case\n",
)


def _worker(
    repository: JobRepository,
    generation: ScriptedGenerationAgent,
    validation: ScriptedValidationAgent,
    **kwargs,
) -> JobWorker:
    return JobWorker(
        repository=repository,
        generation_agent=generation,
        validation_agent=validation,
        **kwargs,
    )


def _log_messages(repository: JobRepository, job_id: str) -> list[str]:
    return [entry.message for entry in reversed(repository.list_job_logs(job_id))]


def test_high_quality_on_first_attempt_completes_job(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_HIGH"))])
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(repository, generation, validation).process_job(job_id)

    job = repository.get_job(job_id)
    assert outcome.status == JobStatus.COMPLETED
    assert outcome.attempts == 1
    assert outcome.quality_history == [QualityLevel.HIGH]
    assert job.status == JobStatus.COMPLETED
    assert job.test_result == GENERATED_TESTS
    assert job.error_message is None
    assert job.attempts == 1
    assert generation.calls == 1
    assert generation.instructions == [UAT_GENERATION_PROMPT]
    messages = _log_messages(repository, job_id)
    assert "Job status updated to IN_PROGRESS" in messages
    assert messages[-1] == "Job completed after 1 attempt(s); quality history: [QUALITY_HIGH]"


def test_low_quality_retries_until_medium_and_keeps_last_result(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent(
        [
            AgentReply.success("attempt one"),
            AgentReply.success("attempt two"),
            AgentReply.success("attempt three"),
        ],
    )
    validation = ScriptedValidationAgent(
        [
            AgentReply.success(LOW_REPORT),
            AgentReply.success(LOW_REPORT),
            AgentReply.success(validation_report("QUALITY_MEDIUM")),
        ],
    )
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(repository, generation, validation, max_attempts=3).process_job(job_id)

    job = repository.get_job(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.test_result == "attempt three"
    assert job.attempts == 3
    assert outcome.quality_history == [QualityLevel.LOW, QualityLevel.LOW, QualityLevel.MEDIUM]
    assert validation.validated == ["attempt one", "attempt two", "attempt three"]
    assert generation.instructions[0] == UAT_GENERATION_PROMPT
    assert generation.instructions[1].startswith(UAT_GENERATION_PROMPT)
    assert "## Required Improvements" in generation.instructions[1]
    assert "Resolve the high-severity Coverage issue: Add a negative case." in (
        generation.instructions[2]
    )
    assert (
        "Attempt 3 overall quality: QUALITY_MEDIUM; "
        "quality history: [QUALITY_LOW, QUALITY_LOW, QUALITY_MEDIUM]"
    ) in _log_messages(repository, job_id)
    warnings = [
        entry
        for entry in repository.list_job_logs(job_id)
        if entry.level == LogLevel.WARN and "retrying" in entry.message
    ]
    assert len(warnings) == 2


def test_low_quality_on_every_attempt_fails_job(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success(LOW_REPORT)])
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(repository, generation, validation, max_attempts=3).process_job(job_id)

    job = repository.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.test_result is None
    assert job.failure_class == FailureClass.QUALITY_INSUFFICIENT
    assert job.error_message is not None
    assert "3" in job.error_message
    assert "insufficient" in job.error_message
    assert outcome.quality_history == [QualityLevel.LOW] * 3
    assert generation.calls == 3
    assert validation.calls == 3


def test_generation_failure_sentinel_fails_fast_without_validation(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent(
        [AgentReply.from_text("Error: model refused the request")],
    )
    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_HIGH"))])
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(repository, generation, validation).process_job(job_id)

    job = repository.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1
    assert job.failure_class == FailureClass.AGENT_SIGNALED
    assert job.error_message == "Test generation failed: Error: model refused the request"
    assert validation.calls == 0
    assert outcome.attempts == 1
    assert outcome.quality_history == []


def test_validation_agent_failure_fails_job(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.failure("validation agent timed out")])
    job_id = repository.create_job(ticket).job_id

    _worker(repository, generation, validation).process_job(job_id)

    job = repository.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.failure_class == FailureClass.AGENT_SIGNALED
    assert job.error_message == "Test validation failed: validation agent timed out"


def test_unparseable_validation_counts_as_unacceptable(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success("looks fine to me")])
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(repository, generation, validation, max_attempts=2).process_job(job_id)

    assert outcome.status == JobStatus.FAILED
    assert outcome.quality_history == [QualityLevel.UNKNOWN, QualityLevel.UNKNOWN]
    assert generation.instructions[1] == UAT_GENERATION_PROMPT + QUALITY_SUFFICIENT_FALLBACK


def test_acceptable_levels_are_configurable(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_MEDIUM"))])
    job_id = repository.create_job(ticket).job_id

    outcome = _worker(
        repository,
        generation,
        validation,
        max_attempts=1,
        acceptable_quality_levels=(QualityLevel.HIGH,),
    ).process_job(job_id)

    assert outcome.status == JobStatus.FAILED
    assert outcome.failure_class == FailureClass.QUALITY_INSUFFICIENT


def test_unexpected_exception_is_recorded_as_failure(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    class ExplodingGenerationAgent:
        def generate(self, ticket: TicketContext, instructions: str) -> AgentReply:
            raise RuntimeError("boom")

    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_HIGH"))])
    job_id = repository.create_job(ticket).job_id
    worker = JobWorker(
        repository=repository,
        generation_agent=ExplodingGenerationAgent(),
        validation_agent=validation,
    )

    outcome = worker.process_job(job_id)

    job = repository.get_job(job_id)
    assert outcome.status == JobStatus.FAILED
    assert job.status == JobStatus.FAILED
    assert job.failure_class == FailureClass.UNEXPECTED_ERROR
    assert job.error_message == "Process failed: boom"


def test_job_that_is_not_pending_is_skipped(
    repository: JobRepository,
    ticket: TicketContext,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_HIGH"))])
    job_id = repository.create_job(ticket).job_id
    repository.mark_in_progress(job_id)
    worker = _worker(repository, generation, validation)

    claimed_elsewhere = worker.process_job(job_id)
    missing = worker.process_job("missing")

    assert claimed_elsewhere.skipped is True
    assert claimed_elsewhere.status == JobStatus.IN_PROGRESS
    assert missing.skipped is True
    assert generation.calls == 0
    assert repository.get_job(job_id).status == JobStatus.IN_PROGRESS


def test_max_attempts_must_be_positive(repository: JobRepository) -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        JobWorker(
            repository=repository,
            generation_agent=ScriptedGenerationAgent([AgentReply.success("x")]),
            validation_agent=ScriptedValidationAgent([AgentReply.success("y")]),
            max_attempts=0,
        )


def test_failing_job_log_writes_do_not_abort_the_loop(
    repository: JobRepository,
    ticket: TicketContext,
    caplog: pytest.LogCaptureFixture,
) -> None:
    generation = ScriptedGenerationAgent([AgentReply.success(GENERATED_TESTS)])
    validation = ScriptedValidationAgent([AgentReply.success(validation_report("QUALITY_HIGH"))])
    job_id = repository.create_job(ticket).job_id
    with repository.engine.begin() as connection:
        connection.execute(text("DROP TABLE job_logs"))

    with caplog.at_level(logging.INFO, logger="uatgen.orchestrator.repository"):
        outcome = _worker(repository, generation, validation).process_job(job_id)

    job = repository.get_job(job_id)
    assert outcome.status == JobStatus.COMPLETED
    assert job.status == JobStatus.COMPLETED
    assert job.test_result == GENERATED_TESTS
    assert f"Failed to persist log entry for job {job_id}" in caplog.text
    assert f"[JOB_{job_id}] INFO - Job status updated to IN_PROGRESS" in caplog.text
