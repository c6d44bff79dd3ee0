"""Prompt templates for the generation and validation agents."""

from __future__ import annotations

from uatgen.orchestrator.models import TicketContext

UAT_GENERATION_PROMPT = """\
You are a UAT test case generator.
Analyze the provided Ticket Description below.
Generate a numbered list of UAT test cases based ONLY on the information present in the description.
Each test case MUST strictly follow this format:

ID: [Test ID, e.g., UAT-001]
Title: [Concise test title reflecting a requirement in the description]
Steps:
1. [Simple step 1, from an end-user perspective, e.g., "Navigate to the login page."]
2. [Simple step 2, from an end-user perspective, e.g., "Enter valid username and password."]
...
Result: [Expected outcome based on the description]

Constraints:
- DO NOT invent scenarios or test functionality not explicitly mentioned in the description.
- Keep the steps simple and focused on user actions.
- Adhere strictly to the output format provided above for each test case.
- If the description lacks detail for a test, say so in its Result or omit the test case.
- Provide only the formatted test cases, nothing else.
- If you cannot produce test cases at all, answer with a single line starting with "Error:".
"""

UAT_VALIDATION_PROMPT = """\
You are a QA reviewer validating UAT test cases against the ticket they were written for.
Rate each dimension with one of QUALITY_HIGH, QUALITY_MEDIUM, QUALITY_LOW.

Answer in exactly this format:

Coherence: <rating>
Completeness: <rating>
Clarity: <rating>
TestData: <rating>
OVERALL_QUALITY: <rating>

ISSUES:
Type: <issue category>
Severity: <HIGH|MEDIUM|LOW>
Fix: <one concrete fix>
(repeat Type/Severity/Fix for every issue; write "ISSUES: none" when there are none)
"""


def build_generation_prompt(ticket: TicketContext, instructions: str) -> str:
    """Full prompt sent to the generation agent."""

    return f"{instructions.rstrip()}\n\n{ticket.format_for_prompt()}"


def build_validation_prompt(ticket: TicketContext, generated_text: str) -> str:
    """Full prompt sent to the validation agent."""

    return (
        f"{UAT_VALIDATION_PROMPT}\n"
        f"{ticket.format_for_prompt()}\n"
        f"Generated Tests:\n{generated_text.strip()}\n"
    )
