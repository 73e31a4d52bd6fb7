"""Report formatters: rich console table, JSON, and porcelain lines."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from valence.engine.aggregator import summary_to_dict

if TYPE_CHECKING:
    from collections.abc import Mapping

    from valence.engine.overrides import OverrideRecord
    from valence.engine.runner import RunPlan, ValidationRun

_SEVERITY_STYLES: dict[str, str] = {
    "error": "red",
    "warning": "yellow",
    "info": "blue",
}


def format_rich(run: ValidationRun, *, width: int = 100) -> str:
    """Render a run as a human-readable console report.

    Example output::

        PASS  requires-default-export  src/index.js
        FAIL  requires-default-export  src/util.js
              error  100%  default-export  Module has no default export

        2 results: 1 passed, 1 failed, 1 violation (3 files, 1 validator, 0.1s)
    """
    from io import StringIO

    from rich.console import Console
    from rich.table import Table
    from rich.text import Text

    summary = run.summary
    buf = StringIO()
    console = Console(file=buf, force_terminal=False, width=width, highlight=False)

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Status", no_wrap=True)
    table.add_column("Validator", style="cyan", no_wrap=True)
    table.add_column("Detail")

    for result in summary.results:
        status = Text("PASS", style="green") if result.passed else Text("FAIL", style="bold red")
        table.add_row(status, Text(result.validator), Text(result.file_path))
        for violation in result.violations:
            severity = violation.severity or "error"
            confidence = violation.confidence if violation.confidence is not None else 1.0
            detail = Text()
            detail.append(f"{severity} ", style=_SEVERITY_STYLES.get(severity, "white"))
            detail.append(f"{confidence:.0%} ", style="dim")
            location = f":{violation.line}" if violation.line is not None else ""
            detail.append(f"{violation.rule_id}{location}  {violation.message}")
            if violation.is_internal:
                detail.append(f"  [{violation.kind}]", style="magenta")
            if violation.override_status is not None:
                detail.append(f"  ({violation.override_status})", style="dim")
            table.add_row("", "", detail)
            if violation.suggested_fix:
                table.add_row("", "", Text(f"  fix: {violation.suggested_fix}", style="dim"))
            for note in violation.warnings:
                table.add_row("", "", Text(f"  note: {note}", style="yellow"))
        for note in result.warnings:
            table.add_row("", "", Text(f"  note: {note}", style="yellow"))

    if summary.results:
        console.print(table)
        console.print()

    elapsed_s = run.elapsed_ms / 1000
    validator_label = "validator" if summary.total_validators == 1 else "validators"
    violation_label = "violation" if summary.total_violations == 1 else "violations"
    console.print(
        f"{len(summary.results)} results: {summary.passed} passed, {summary.failed} failed, "
        f"{summary.total_violations} {violation_label} "
        f"({summary.total_files} files, {summary.total_validators} {validator_label}, "
        f"{elapsed_s:.1f}s)"
    )
    if run.suppressed_count:
        console.print(f"{run.suppressed_count} suppressed by overrides")
    if run.filtered_count:
        console.print(
            f"{run.filtered_count} below confidence threshold {run.threshold:.2f} hidden"
        )
    internal = summary.internal_errors
    if internal:
        console.print(f"{len(internal)} internal errors (tooling failures, not rule failures)")

    return buf.getvalue().rstrip("\n")


def format_json(run: ValidationRun) -> str:
    """Serialise the run summary as JSON; timing lives outside ``summary``."""
    output = summary_to_dict(run.summary)
    output["run"] = {
        "confidence_threshold": run.threshold,
        "overrides_applied": run.overrides_applied,
        "suppressed": run.suppressed_count,
        "filtered": run.filtered_count,
        "elapsed_ms": run.elapsed_ms,
    }
    return json.dumps(output, indent=2)


def format_porcelain(run: ValidationRun) -> str:
    """One line per violation: ``validator:rule:file:line:severity:confidence:fingerprint``.

    Empty fields are empty strings.  Returns an empty string when there are
    no violations.
    """
    lines: list[str] = []
    for violation in run.summary.violations:
        line = str(violation.line) if violation.line is not None else ""
        confidence = f"{violation.confidence:.2f}" if violation.confidence is not None else ""
        lines.append(
            f"{violation.validator}:{violation.rule_id}:{violation.file_path}:{line}:"
            f"{violation.severity or ''}:{confidence}:{violation.fingerprint or ''}"
        )
    return "\n".join(lines)


def format_plan(plan: RunPlan) -> str:
    """Describe what a run would do without running it."""
    lines = ["Validators to run:"]
    for idx, validator in enumerate(plan.validators, start=1):
        lines.append(f"  {idx}. {validator.name} ({validator.validation_type})")
    lines.append("")
    lines.append(f"Files to validate: {len(plan.files)} files")
    lines.append("")
    lines.append("Configuration:")
    lines.append(f"  Confidence threshold: {plan.config.confidence_threshold}")
    lines.append(f"  Apply overrides: {plan.config.apply_overrides}")
    lines.append(f"  Workers: {plan.config.workers}")
    lines.append(f"  Plugin timeout: {plan.config.plugin_timeout:g}s")
    if plan.plugins:
        lines.append(f"  Plugins: {', '.join(plan.plugins)}")
    return "\n".join(lines)


def format_override_stats(stats: Mapping[str, object], records: list[OverrideRecord]) -> str:
    """Render override statistics and the most recent records."""
    lines = [f"Total overrides: {stats['total']}"]
    lines.append(f"Recent additions (last 7 days): {stats['recent']}")

    by_status = stats.get("by_status")
    if isinstance(by_status, dict):
        for status, count in by_status.items():
            lines.append(f"  {status}: {count}")

    by_rule = stats.get("by_rule")
    if isinstance(by_rule, dict) and by_rule:
        lines.append("")
        lines.append("By rule:")
        for rule, count in by_rule.items():
            lines.append(f"  - {rule}: {count}")

    if records:
        lines.append("")
        lines.append("Recent overrides:")
        for record in records[-3:]:
            lines.append(f"  - {record.rule} in {record.file_path} ({record.status})")
            lines.append(f"    Reason: {record.reason}")

    return "\n".join(lines)
