"""Heuristic 0-100 quality score for extracted records.

Weights: +25 per non-empty key field, -30 for script code, -20 for
placeholder values, -20 for less than 10 characters of real text, -10 for
leftover JSON-like fragments. The constants are kept stable so scores stay
comparable between runs; they are not calibrated against labelled data.
"""
from __future__ import annotations

import re
from typing import List, Union

from .models import KEY_FIELDS, Classification, ExtractedRecord, PartialRecord, QualityReport

FIELD_POINTS = 25
SCRIPT_PENALTY = 30
PLACEHOLDER_PENALTY = 20
SHORT_TEXT_PENALTY = 20
JSON_FRAGMENT_PENALTY = 10
MIN_TEXT_LENGTH = 10

SCRIPT_PATTERNS = (
    re.compile(r"\bfunction\s*\("),
    re.compile(r"\bvar\s+\w+\s*="),
    re.compile(r"\b(?:let|const)\s+\w+\s*="),
    re.compile(r"=>\s*\{"),
    re.compile(r"\b(?:document|window)\.\w+"),
    re.compile(r"\$\(\s*['\"]"),
    re.compile(r"\breturn\s+[^;\n]{0,40};"),
)

PLACEHOLDER_PATTERNS = (
    re.compile(r"\bundefined\b", re.IGNORECASE),
    re.compile(r"\[object Object\]"),
    re.compile(r"\bNaN\b"),
    re.compile(r"^\s*null\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\{\{\s*\w+\s*\}\}"),
)

JSON_FRAGMENT_RE = re.compile(r"\{[^{}]{0,50}\}")


def classify(score: int) -> Classification:
    if score >= 75:
        return Classification.EXCELLENT
    if score >= 50:
        return Classification.GOOD
    if score >= 25:
        return Classification.POOR
    return Classification.FAILED


def assess_quality(record: Union[PartialRecord, ExtractedRecord]) -> QualityReport:
    values = [(getattr(record, name) or "").strip() for name in KEY_FIELDS]
    text = " ".join(v for v in values if v)

    score = FIELD_POINTS * sum(1 for v in values if v)
    issues: List[str] = []

    if any(p.search(text) for p in SCRIPT_PATTERNS):
        score -= SCRIPT_PENALTY
        issues.append("Contains script code")
    if any(p.search(text) for p in PLACEHOLDER_PATTERNS):
        score -= PLACEHOLDER_PENALTY
        issues.append("Contains placeholder values")
    if len(_real_text(text)) < MIN_TEXT_LENGTH:
        score -= SHORT_TEXT_PENALTY
        issues.append("Text too short")
    if JSON_FRAGMENT_RE.search(text):
        score -= JSON_FRAGMENT_PENALTY
        issues.append("Contains JSON fragments")

    score = max(0, min(100, score))
    return QualityReport(score=score, issues=tuple(issues), classification=classify(score))


def _real_text(text: str) -> str:
    for pattern in SCRIPT_PATTERNS + PLACEHOLDER_PATTERNS:
        text = pattern.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()
