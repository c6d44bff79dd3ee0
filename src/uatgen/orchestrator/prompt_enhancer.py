"""Turn quality shortfalls into corrective instructions for the next attempt."""

from __future__ import annotations

from uatgen.orchestrator.models import QualityIssue, QualityMetrics

_DIRECTIVES: dict[str, tuple[str, ...]] = {
    "coherence": (
        "* Coherence: Ensure tests align with ticket requirements and business logic",
        "  - Validate test cases against acceptance criteria",
        "  - Verify business rule coverage",
    ),
    "completeness": (
        "* Completeness: Add coverage for missing scenarios",
        "  - Include edge cases and boundary conditions",
        "  - Add negative test cases",
    ),
    "clarity": (
        "* Clarity: Improve test readability",
        "  - Give every test case a clear, specific title",
        "  - Keep steps short and written from the end-user perspective",
    ),
    "test_data": (
        "* Test Data: Enhance data specificity and realism",
        "  - Use realistic test data values",
        "  - Include diverse data scenarios",
    ),
}

QUALITY_SUFFICIENT_FALLBACK = (
    "\n# Test Improvement Analysis\n\n"
    "No specific quality shortfalls were reported for the previous attempt.\n"
    "Keep its structure, stay strictly within the ticket description and make "
    "every test case as precise as possible.\n"
)


def build_improvement_instructions(metrics: QualityMetrics) -> str:
    """Render LOW-metric directives and per-issue instructions as one block."""

    low_metrics = metrics.low_metrics()
    if not low_metrics and not metrics.issues:
        return QUALITY_SUFFICIENT_FALLBACK

    lines = ["", "# Test Improvement Analysis", ""]
    if low_metrics:
        lines.append("## Required Improvements")
        for name in low_metrics:
            lines.extend(_DIRECTIVES[name])
        lines.append("")
    if metrics.issues:
        lines.append("## Specific Issues")
        lines.extend(
            f"{index}. {_issue_instruction(issue)}"
            for index, issue in enumerate(metrics.issues, start=1)
        )
        lines.append("")
    return "\n".join(lines)


def _issue_instruction(issue: QualityIssue) -> str:
    fix = issue.fix.strip().rstrip(".")
    return f"Resolve the {issue.severity.lower()}-severity {issue.type} issue: {fix}."
