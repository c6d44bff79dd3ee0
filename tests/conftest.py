"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from agent_stubs import ECHO_GENERATION_COMMAND_TEMPLATE, ECHO_VALIDATION_COMMAND_TEMPLATE

from uatgen.orchestrator.models import TicketContext
from uatgen.orchestrator.repository import JobRepository


@pytest.fixture()
def ticket() -> TicketContext:
    return TicketContext(
        ticket_id="PROJ-123",
        content="Users can reset their password from the login page.",
        components=("auth", "web"),
    )


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobRepository]:
    repo = JobRepository(tmp_path / "jobs.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def echo_agent_env(monkeypatch, tmp_path: Path) -> None:
    """Point Settings.from_env at the local echo agent."""

    monkeypatch.setenv("UATGEN_GENERATION_COMMAND_TEMPLATE", ECHO_GENERATION_COMMAND_TEMPLATE)
    monkeypatch.setenv("UATGEN_VALIDATION_COMMAND_TEMPLATE", ECHO_VALIDATION_COMMAND_TEMPLATE)
    monkeypatch.setenv("UATGEN_WORKDIR", str(tmp_path / "work"))
    monkeypatch.delenv("UATGEN_ECHO_FAIL", raising=False)
    monkeypatch.delenv("UATGEN_ECHO_QUALITY", raising=False)
