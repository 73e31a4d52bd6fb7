"""Shared value types passed between the engine stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from valence.config import Config

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALIDATION_TYPES: frozenset[str] = frozenset({"content", "structure", "naming"})
VALID_SEVERITIES: frozenset[str] = frozenset({"error", "warning", "info"})
DEFAULT_SEVERITY = "error"
DEFAULT_CONFIDENCE = 1.0

# Violation kinds.  Everything except KIND_RULE is a tooling failure.
KIND_RULE = "rule"
KIND_INTERNAL_ERROR = "internal-error"
KIND_PLUGIN_RESOLUTION = "plugin-resolution"
KIND_PLUGIN_EXECUTION = "plugin-execution"
KIND_PLUGIN_TIMEOUT = "plugin-timeout"

VIOLATION_KINDS: frozenset[str] = frozenset(
    {
        KIND_RULE,
        KIND_INTERNAL_ERROR,
        KIND_PLUGIN_RESOLUTION,
        KIND_PLUGIN_EXECUTION,
        KIND_PLUGIN_TIMEOUT,
    }
)

STATUS_FALSE_POSITIVE = "false-positive"
STATUS_ACCEPTED_RISK = "accepted-risk"

# ---------------------------------------------------------------------------
# Evaluation inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationContext:
    """Everything an operator or plugin may look at for one rule check.

    Exactly one of *content* (content validators), *file_name* (naming
    validators) or *entries* (structure validators) is the subject of the
    check.  The context is rebuilt for every rule and must not be retained.
    """

    file_path: str
    validation_type: str
    root: Path
    params: Mapping[str, Any]
    config: Config
    content: str | None = None
    directory: Path | None = None
    entries: tuple[str, ...] | None = None

    @property
    def file_name(self) -> str:
        return self.file_path.rsplit("/", 1)[-1]

    @property
    def subject(self) -> str | tuple[str, ...]:
        """The value handed to the operator/plugin as its ``content`` argument."""
        if self.validation_type == "structure":
            return self.entries or ()
        if self.validation_type == "naming":
            return self.file_name
        return self.content or ""


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OperatorOutcome:
    """Result of a built-in operator."""

    passed: bool
    message: str | None = None
    line: int | None = None
    excerpt: str | None = None


@dataclass(frozen=True)
class PluginOutcome(OperatorOutcome):
    """Result of an external plugin, validated at the dispatcher boundary.

    *failure* is set when the plugin could not be resolved or did not run to
    completion; it holds the violation kind to report.
    """

    confidence: float | None = None
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    failure: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """A single failed rule application against one file."""

    validator: str
    rule_id: str
    file_path: str
    message: str
    kind: str = KIND_RULE
    line: int | None = None
    excerpt: str | None = None
    confidence: float | None = None  # always set after annotation
    severity: str | None = None  # always set after annotation
    fingerprint: str | None = None
    suggested_fix: str | None = None
    warnings: tuple[str, ...] = ()
    override_status: str | None = None  # "accepted-risk" once matched

    @property
    def is_internal(self) -> bool:
        """True when the violation reports a tooling failure, not a rule failure."""
        return self.kind != KIND_RULE


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one validator against one file.

    *warnings* holds advisory notes from rules that passed; notes from a
    failed rule travel on its violation instead.
    """

    file_path: str
    validator: str
    passed: bool
    violations: tuple[Violation, ...] = ()
    message: str | None = None
    suppressed: tuple[Violation, ...] = ()
    warnings: tuple[str, ...] = ()


def blocking_violations(violations: tuple[Violation, ...]) -> tuple[Violation, ...]:
    """Return the violations that make a result fail (accepted risks do not)."""
    return tuple(v for v in violations if v.override_status != STATUS_ACCEPTED_RISK)
