"""Best-effort quality metrics extraction from validator output.

Validators answer in one of two shapes:

* a JSON object (bare, fenced in a ```json block, or embedded in prose)
  carrying rating fields and an ``issues`` array;
* a line-oriented report with ``Key: VALUE`` metric lines, an
  ``OVERALL_QUALITY: <MARKER>`` line and an ``ISSUES:`` block of
  ``Type:``/``Severity:``/``Fix:`` triples.

Both are normalized into ``QualityMetrics``. Extraction never raises.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum

from uatgen.orchestrator.models import QualityIssue, QualityLevel, QualityMetrics

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
_OVERALL_LINE = re.compile(
    r"OVERALL_QUALITY\s*:\s*(QUALITY_HIGH|QUALITY_MEDIUM|QUALITY_LOW)\b",
)
_BULLET_PREFIX = re.compile(r"^[\-\*•]+\s*")
_RATING_TOKEN = re.compile(r"(?:QUALITY_)?(HIGH|MEDIUM|LOW)\b")

_OVERALL_MARKERS: dict[str, QualityLevel] = {
    QualityLevel.HIGH.value: QualityLevel.HIGH,
    QualityLevel.MEDIUM.value: QualityLevel.MEDIUM,
    QualityLevel.LOW.value: QualityLevel.LOW,
}

# Normalized key -> QualityMetrics attribute.
_METRIC_KEYS: dict[str, str] = {
    "coherence": "coherence",
    "completeness": "completeness",
    "clarity": "clarity",
    "testdata": "test_data",
    "testdataquality": "test_data",
}
_OVERALL_KEYS = frozenset({"overallquality", "overall"})
_ISSUES_HEADER = "ISSUES:"
_SECTION_BOUNDARIES: tuple[str, ...] = (
    "DETAILED VALIDATION:",
    "BASE VALIDATION:",
    "OVERALL_QUALITY:",
    "SUMMARY:",
    "RECOMMENDATIONS:",
)


class ValidatorSchema(str, Enum):
    """Detected validator output shape."""

    JSON = "json"
    LINES = "lines"
    EMPTY = "empty"


def detect_schema(text: str | None) -> ValidatorSchema:
    """Classify validator text without raising.

    A whole-text or fenced JSON object wins. Otherwise any line-format
    marker (``OVERALL_QUALITY:``, ``ISSUES:`` or a metric line) selects the
    line schema, so JSON quoted inside a line report is left alone. A JSON
    object embedded in prose is the last resort.
    """

    try:
        schema, _ = _detect(text)
    except Exception:  # noqa: BLE001
        logger.warning("Validator schema detection failed; treating as line format", exc_info=True)
        return ValidatorSchema.LINES
    return schema


def extract_overall_quality(text: str | None) -> QualityLevel:
    """Return the overall quality marker, or UNKNOWN for anything unrecognized."""

    try:
        schema, payload = _detect(text)
        if schema == ValidatorSchema.EMPTY or text is None:
            return QualityLevel.UNKNOWN
        if payload is not None:
            return _overall_from_payload(payload)
        # First marker wins; later markers in commentary do not override it.
        match = _OVERALL_LINE.search(text)
        if match is None:
            return QualityLevel.UNKNOWN
        return _OVERALL_MARKERS[match.group(1)]
    except Exception:  # noqa: BLE001
        logger.warning("Overall quality extraction failed", exc_info=True)
        return QualityLevel.UNKNOWN


def extract_quality_metrics(text: str | None) -> QualityMetrics:
    """Parse validator text into QualityMetrics; degrade to defaults on any error."""

    metrics = QualityMetrics()
    if text is None or not text.strip():
        logger.warning("Empty or missing validation results")
        return metrics

    try:
        _, payload = _detect(text)
        if payload is not None:
            _fill_from_payload(metrics, payload)
        else:
            _fill_from_lines(metrics, text)
    except Exception:  # noqa: BLE001
        logger.warning(
            "Error extracting validation metrics; returning partial result",
            exc_info=True,
        )
    return metrics


def _detect(text: str | None) -> tuple[ValidatorSchema, dict[str, object] | None]:
    if text is None or not text.strip():
        return ValidatorSchema.EMPTY, None
    stripped = text.strip()

    candidates = [stripped]
    fenced = _FENCED_JSON.search(stripped)
    if fenced is not None:
        candidates.append(fenced.group(1))
    payload = _first_known_payload(candidates)
    if payload is not None:
        return ValidatorSchema.JSON, payload

    if _has_line_markers(stripped):
        return ValidatorSchema.LINES, None

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        payload = _first_known_payload([stripped[start : end + 1]])
        if payload is not None:
            return ValidatorSchema.JSON, payload
    return ValidatorSchema.LINES, None


def _first_known_payload(candidates: list[str]) -> dict[str, object] | None:
    for candidate in candidates:
        payload = _try_load_dict(candidate)
        if payload is not None and _has_known_key(payload):
            return payload
    return None


def _has_line_markers(text: str) -> bool:
    if _OVERALL_LINE.search(text) is not None:
        return True
    for line in text.splitlines():
        stripped = _strip_bullet(line)
        if stripped.startswith(_ISSUES_HEADER):
            return True
        key, separator, value = stripped.partition(":")
        if not separator or _normalize_key(key) not in _METRIC_KEYS:
            continue
        if _normalize_rating(value) is not None:
            return True
    return False


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _normalize_key(key: object) -> str:
    return re.sub(r"[\s_\-\*#]+", "", str(key)).lower()


def _has_known_key(payload: dict[str, object]) -> bool:
    for key in payload:
        normalized = _normalize_key(key)
        if normalized in _METRIC_KEYS or normalized in _OVERALL_KEYS or normalized == "issues":
            return True
    return False


def _normalize_rating(value: object) -> QualityLevel | None:
    if not isinstance(value, str):
        return None
    match = _RATING_TOKEN.match(value.strip().upper())
    if match is None:
        return None
    return _OVERALL_MARKERS[f"QUALITY_{match.group(1)}"]


def _overall_from_payload(payload: dict[str, object]) -> QualityLevel:
    for key, value in payload.items():
        if _normalize_key(key) in _OVERALL_KEYS and isinstance(value, str):
            return _OVERALL_MARKERS.get(value.strip(), QualityLevel.UNKNOWN)
    return QualityLevel.UNKNOWN


def _fill_from_payload(metrics: QualityMetrics, payload: dict[str, object]) -> None:
    for key, value in payload.items():
        attribute = _METRIC_KEYS.get(_normalize_key(key))
        if attribute is not None:
            setattr(metrics, attribute, _normalize_rating(value))
    metrics.overall = _overall_from_payload(payload)

    raw_issues: object = None
    for key, value in payload.items():
        if _normalize_key(key) == "issues":
            raw_issues = value
            break
    if not isinstance(raw_issues, list):
        return
    for item in raw_issues:
        if not isinstance(item, dict):
            continue
        fields = {_normalize_key(key): value for key, value in item.items()}
        issue_type = fields.get("type")
        severity = fields.get("severity")
        fix = fields.get("fix", fields.get("suggestedfix"))
        values = (issue_type, severity, fix)
        if not all(isinstance(value, str) and value.strip() for value in values):
            continue
        metrics.issues.append(
            QualityIssue(
                type=str(issue_type).strip(),
                severity=str(severity).strip(),
                fix=str(fix).strip(),
            ),
        )


def _fill_from_lines(metrics: QualityMetrics, text: str) -> None:
    for line in text.splitlines():
        key, separator, value = _strip_bullet(line).partition(":")
        if not separator:
            continue
        attribute = _METRIC_KEYS.get(_normalize_key(key))
        if attribute is None:
            continue
        rating = _normalize_rating(value)
        if rating is not None:
            setattr(metrics, attribute, rating)

    match = _OVERALL_LINE.search(text)
    metrics.overall = (
        _OVERALL_MARKERS[match.group(1)] if match is not None else QualityLevel.UNKNOWN
    )

    if _ISSUES_HEADER in text:
        try:
            metrics.issues.extend(_parse_issue_block(text))
        except Exception:  # noqa: BLE001
            logger.warning("Error parsing ISSUES section", exc_info=True)


def _parse_issue_block(text: str) -> list[QualityIssue]:
    block = text.split(_ISSUES_HEADER, 1)[1]
    for boundary in _SECTION_BOUNDARIES:
        block = block.split(boundary, 1)[0]

    issues: list[QualityIssue] = []
    current: dict[str, str] = {}
    for line in block.splitlines():
        key, separator, value = _strip_bullet(line).partition(":")
        if not separator:
            continue
        field_name = _normalize_key(key)
        if field_name == "type":
            _flush_issue(current, issues)
            current = {"type": value.strip()}
        elif field_name in {"severity", "fix"} and current:
            current[field_name] = value.strip()
    _flush_issue(current, issues)
    return issues


def _flush_issue(current: dict[str, str], issues: list[QualityIssue]) -> None:
    if all(current.get(name) for name in ("type", "severity", "fix")):
        issues.append(
            QualityIssue(type=current["type"], severity=current["severity"], fix=current["fix"]),
        )


def _strip_bullet(line: str) -> str:
    return _BULLET_PREFIX.sub("", line.strip())
