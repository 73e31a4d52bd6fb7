"""Tests for valence.infrastructure.reporting — rich, JSON and porcelain output."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from valence.engine.aggregator import aggregate
from valence.engine.overrides import fingerprint, new_record, override_stats
from valence.engine.runner import ValidationRun, plan_validation, run_validation
from valence.infrastructure.reporting import (
    format_json,
    format_override_stats,
    format_plan,
    format_porcelain,
    format_rich,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestFormatPorcelain:
    """Tests for format_porcelain()."""

    def test_one_line_per_violation(self, tmp_project: Path) -> None:
        run = run_validation(tmp_project, profile="default")
        lines = format_porcelain(run).split("\n")
        default_fp = fingerprint("requires-default-export", "default-export", "src/util.js")
        console_fp = fingerprint(
            "no-console", "no-console-log", "src/util.js", "console.log(util);"
        )
        assert lines == [
            f"requires-default-export:default-export:src/util.js::error:1.00:{default_fp}",
            f"no-console:no-console-log:src/util.js:2:warning:1.00:{console_fp}",
        ]
        assert all(len(line.split(":")) == 7 for line in lines)

    def test_empty_when_clean(self) -> None:
        run = ValidationRun(summary=aggregate([], files=[], validator_names=[]), threshold=0.7)
        assert format_porcelain(run) == ""


class TestFormatJson:
    """Tests for format_json()."""

    def test_structure(self, tmp_project: Path) -> None:
        run = run_validation(tmp_project, profile="default")
        data = json.loads(format_json(run))
        assert data["summary"]["total_files"] == 3
        assert data["summary"]["failed"] == 2
        assert data["summary"]["validators"] == ["requires-default-export", "no-console"]
        assert len(data["results"]) == 4
        violation = data["results"][2]["violations"][0]
        assert violation["message"] == "Module has no default export"
        assert violation["severity"] == "error"
        assert data["run"]["confidence_threshold"] == 0.7
        assert data["run"]["suppressed"] == 0


class TestFormatRich:
    """Tests for format_rich()."""

    def test_report(self, tmp_project: Path) -> None:
        output = format_rich(run_validation(tmp_project, profile="default"))
        assert "PASS" in output
        assert "FAIL" in output
        assert "requires-default-export" in output
        assert "Module has no default export" in output
        assert "no-console-log:2" in output
        assert "4 results: 2 passed, 2 failed, 2 violations" in output
        assert "\x1b[" not in output

    def test_internal_errors_are_called_out(
        self, tmp_project: Path, write_file: object
    ) -> None:
        write_file(  # type: ignore[operator]
            tmp_project / "validators" / "ghost.yml",
            """
            name: ghost
            type: content
            rules:
              - plugin: not-installed
            """,
        )
        output = format_rich(run_validation(tmp_project, validators=["ghost"]))
        assert "[plugin-resolution]" in output
        assert "3 internal errors" in output

    def test_notes_of_passing_results_are_shown(
        self, tmp_project: Path, write_file: object
    ) -> None:
        write_file(  # type: ignore[operator]
            tmp_project / "validators" / "naming.yml",
            r"""
            name: naming
            type: content
            filePattern: 'handlers\.js$'
            rules:
              - id: functions
                plugin: naming-conventions
                validateFunctionNaming: true
            """,
        )
        write_file(  # type: ignore[operator]
            tmp_project / "src" / "handlers.js",
            "function Do_thing() {}\nexport default Do_thing;\n",
        )
        run = run_validation(tmp_project, validators=["naming"])
        output = format_rich(run)
        assert "PASS" in output
        assert "note: Function 'Do_thing' should be camelCase" in output
        data = json.loads(format_json(run))
        assert data["results"][0]["warnings"] == ["Function 'Do_thing' should be camelCase"]


class TestFormatPlan:
    """Tests for format_plan()."""

    def test_plan(self, tmp_project: Path) -> None:
        output = format_plan(plan_validation(tmp_project, profile="default"))
        assert "1. requires-default-export (content)" in output
        assert "2. no-console (content)" in output
        assert "Files to validate: 3 files" in output
        assert "Confidence threshold: 0.7" in output
        assert "naming-conventions" in output


class TestFormatOverrideStats:
    """Tests for format_override_stats()."""

    def test_stats(self) -> None:
        now = datetime(2025, 3, 10, tzinfo=timezone.utc)
        record = new_record(
            "abc", rule="default-export", file_path="src/util.js", reason="barrel file", now=now
        )
        output = format_override_stats(override_stats({"abc": record}, now=now), [record])
        assert "Total overrides: 1" in output
        assert "Recent additions (last 7 days): 1" in output
        assert "false-positive: 1" in output
        assert "- default-export: 1" in output
        assert "default-export in src/util.js (false-positive)" in output
        assert "Reason: barrel file" in output
