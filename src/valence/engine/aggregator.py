"""Result aggregation: fold evaluation results into a deterministic RunSummary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from valence.engine.models import EvaluationResult, Violation


@dataclass(frozen=True)
class RunSummary:
    """Final aggregate of one run, handed to a reporter."""

    total_files: int
    total_validators: int
    passed: int
    failed: int
    total_violations: int
    results: tuple[EvaluationResult, ...]
    validators: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def violations(self) -> list[Violation]:
        return [v for result in self.results for v in result.violations]

    @property
    def internal_errors(self) -> list[Violation]:
        return [v for v in self.violations if v.is_internal]


def aggregate(
    results: Iterable[EvaluationResult],
    *,
    files: Sequence[str],
    validator_names: Sequence[str],
) -> RunSummary:
    """Order results by input file order, then validator order, and count them.

    Ordering does not depend on the order *results* arrive in, so results
    collected from concurrent workers aggregate identically.
    """
    file_order = {path: idx for idx, path in enumerate(files)}
    validator_order: dict[str, int] = {}
    for idx, name in enumerate(validator_names):
        validator_order.setdefault(name, idx)

    ordered = sorted(
        results,
        key=lambda r: (
            file_order.get(r.file_path, len(file_order)),
            r.file_path,
            validator_order.get(r.validator, len(validator_order)),
        ),
    )

    passed = sum(1 for r in ordered if r.passed)
    return RunSummary(
        total_files=len(files),
        total_validators=len(validator_order),
        passed=passed,
        failed=len(ordered) - passed,
        total_violations=sum(len(r.violations) for r in ordered),
        results=tuple(ordered),
        validators=tuple(validator_order),
    )


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def violation_to_dict(violation: Violation) -> dict[str, Any]:
    return {
        "validator": violation.validator,
        "rule": violation.rule_id,
        "file_path": violation.file_path,
        "message": violation.message,
        "kind": violation.kind,
        "line": violation.line,
        "excerpt": violation.excerpt,
        "confidence": violation.confidence,
        "severity": violation.severity,
        "fingerprint": violation.fingerprint,
        "suggested_fix": violation.suggested_fix,
        "warnings": list(violation.warnings),
        "override_status": violation.override_status,
    }


def summary_to_dict(summary: RunSummary) -> dict[str, Any]:
    """Convert a RunSummary to plain JSON-serialisable data.

    Contains no timestamps, so unchanged inputs serialise identically.
    """
    return {
        "summary": {
            "total_files": summary.total_files,
            "total_validators": summary.total_validators,
            "passed": summary.passed,
            "failed": summary.failed,
            "total_violations": summary.total_violations,
            "validators": list(summary.validators),
        },
        "results": [
            {
                "file_path": r.file_path,
                "validator": r.validator,
                "passed": r.passed,
                "message": r.message,
                "violations": [violation_to_dict(v) for v in r.violations],
                "suppressed": [violation_to_dict(v) for v in r.suppressed],
                "warnings": list(r.warnings),
            }
            for r in summary.results
        ],
    }
