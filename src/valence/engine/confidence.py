"""Confidence and severity annotation, and the confidence threshold filter."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from valence.engine.models import (
    DEFAULT_CONFIDENCE,
    DEFAULT_SEVERITY,
    blocking_violations,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from valence.engine.definitions import RuleDefinition, ValidatorDefinition
    from valence.engine.models import EvaluationResult, Violation


def annotate(
    violation: Violation,
    rule: RuleDefinition | None = None,
    validator: ValidatorDefinition | None = None,
) -> Violation:
    """Fill in confidence and severity, keeping values the violation already has.

    Defaults come from the rule, then the validator, then the engine-wide
    defaults (confidence 1.0, severity ``error``).
    """
    confidence = violation.confidence
    if confidence is None:
        if rule is not None and rule.confidence is not None:
            confidence = rule.confidence
        elif validator is not None and validator.confidence is not None:
            confidence = validator.confidence
        else:
            confidence = DEFAULT_CONFIDENCE

    severity = violation.severity
    if severity is None:
        if rule is not None and rule.severity is not None:
            severity = rule.severity
        elif validator is not None and validator.severity is not None:
            severity = validator.severity
        else:
            severity = DEFAULT_SEVERITY

    if confidence == violation.confidence and severity == violation.severity:
        return violation
    return replace(violation, confidence=min(1.0, max(0.0, confidence)), severity=severity)


def filter_by_confidence(
    violations: Iterable[Violation], min_confidence: float
) -> list[Violation]:
    """Drop violations whose confidence is strictly below *min_confidence*.

    Order is preserved.  An unannotated violation counts as fully confident.
    """
    return [
        v
        for v in violations
        if (v.confidence if v.confidence is not None else DEFAULT_CONFIDENCE) >= min_confidence
    ]


def apply_threshold(
    results: Iterable[EvaluationResult], min_confidence: float | None
) -> list[EvaluationResult]:
    """Apply :func:`filter_by_confidence` to every result and recompute ``passed``."""
    if min_confidence is None:
        return list(results)

    filtered: list[EvaluationResult] = []
    for result in results:
        kept = tuple(filter_by_confidence(result.violations, min_confidence))
        if len(kept) == len(result.violations):
            filtered.append(result)
            continue
        filtered.append(
            replace(result, violations=kept, passed=not blocking_violations(kept))
        )
    return filtered
