"""Agent contracts consumed by the job worker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from uatgen.orchestrator.models import TicketContext

FAILURE_SENTINEL = "Error:"


@dataclass(frozen=True, slots=True)
class AgentReply:
    """Either the agent's text or the reason it failed."""

    text: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> AgentReply:
        return cls(text=text)

    @classmethod
    def failure(cls, reason: str) -> AgentReply:
        return cls(error=reason or "Agent failed without a reason.")

    @classmethod
    def from_text(cls, text: str | None) -> AgentReply:
        """Map raw agent output, which may carry the failure sentinel, to a reply."""

        if text is None or not text.strip():
            return cls.failure("Agent returned empty output.")
        sentinel_reason = detect_failure_sentinel(text)
        if sentinel_reason is not None:
            return cls.failure(sentinel_reason)
        return cls.success(text)


def detect_failure_sentinel(text: str) -> str | None:
    """Return the agent's self-reported failure line, if the output is one."""

    stripped = text.lstrip()
    if not stripped.startswith(FAILURE_SENTINEL):
        return None
    return stripped.splitlines()[0].strip()


class GenerationAgent(Protocol):
    """Produces candidate UAT test cases for a ticket."""

    def generate(self, ticket: TicketContext, instructions: str) -> AgentReply:
        """Return generated test cases or a failure reply."""


class ValidationAgent(Protocol):
    """Assesses generated test cases against the ticket."""

    def validate(self, ticket: TicketContext, generated_text: str) -> AgentReply:
        """Return the raw validation report or a failure reply."""
