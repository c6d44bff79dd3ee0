from __future__ import annotations

import allure

from uatgen.orchestrator.models import QualityIssue, QualityLevel, QualityMetrics
from uatgen.orchestrator.prompt_enhancer import (
    QUALITY_SUFFICIENT_FALLBACK,
    build_improvement_instructions,
)

pytestmark = [
    allure.epic("Quality Gate"),
    allure.feature("Improvement Instructions"),
]


def test_low_metrics_produce_directives_in_stable_order() -> None:
    metrics = QualityMetrics(
        coherence=QualityLevel.HIGH,
        completeness=QualityLevel.LOW,
        clarity=QualityLevel.MEDIUM,
        test_data=QualityLevel.LOW,
        overall=QualityLevel.LOW,
    )

    instructions = build_improvement_instructions(metrics)

    assert "## Required Improvements" in instructions
    assert "* Completeness: Add coverage for missing scenarios" in instructions
    assert "* Test Data: Enhance data specificity and realism" in instructions
    assert "Coherence:" not in instructions
    assert "Clarity:" not in instructions
    assert instructions.index("Completeness:") < instructions.index("Test Data:")
    assert "## Specific Issues" not in instructions


def test_issues_are_rendered_as_numbered_instructions() -> None:
    metrics = QualityMetrics(
        overall=QualityLevel.MEDIUM,
        issues=[
            QualityIssue(type="Coverage", severity="HIGH", fix="Add an expired link case."),
            QualityIssue(type="Data", severity="Low", fix="Use real emails"),
        ],
    )

    instructions = build_improvement_instructions(metrics)

    assert "## Required Improvements" not in instructions
    assert "1. Resolve the high-severity Coverage issue: Add an expired link case." in instructions
    assert "2. Resolve the low-severity Data issue: Use real emails." in instructions


def test_no_shortfalls_yield_fallback_block() -> None:
    metrics = QualityMetrics(
        coherence=QualityLevel.HIGH,
        completeness=QualityLevel.HIGH,
        clarity=QualityLevel.HIGH,
        test_data=QualityLevel.HIGH,
        overall=QualityLevel.HIGH,
    )

    assert build_improvement_instructions(metrics) == QUALITY_SUFFICIENT_FALLBACK
    assert build_improvement_instructions(QualityMetrics()) == QUALITY_SUFFICIENT_FALLBACK
