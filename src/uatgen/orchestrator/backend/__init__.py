"""Agent backend implementations."""

from uatgen.orchestrator.backend.base import (
    AgentReply,
    GenerationAgent,
    ValidationAgent,
    detect_failure_sentinel,
)
from uatgen.orchestrator.backend.cli_backend import (
    BackendRunError,
    CliAgentConfig,
    CliGenerationAgent,
    CliValidationAgent,
)

__all__ = [
    "AgentReply",
    "BackendRunError",
    "CliAgentConfig",
    "CliGenerationAgent",
    "CliValidationAgent",
    "GenerationAgent",
    "ValidationAgent",
    "detect_failure_sentinel",
]
