"""Valence CLI entry point."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from valence import __version__

if TYPE_CHECKING:
    from valence.engine.overrides import OverrideStore

_PROJECT_OPTION = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)


@click.group()
@click.version_option(version=__version__, prog_name="valence")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Valence - rule-driven validation for source trees."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s: %(message)s")
    logging.getLogger("valence").setLevel(level)


def _config_error(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(2)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.option("--profile", "-p", default=None, help="Profile to run.")
@click.option(
    "--validator",
    "-v",
    "validators",
    multiple=True,
    help="Validator to run (repeatable).",
)
@click.option(
    "--files",
    "-f",
    "patterns",
    multiple=True,
    help="Glob of files to validate, relative to the project (repeatable).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich for TTY, porcelain otherwise).",
)
@click.option(
    "--confidence-threshold",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Hide violations below this confidence (default from valence.yml, else 0.7).",
)
@click.option(
    "--apply-overrides/--no-apply-overrides",
    default=None,
    help="Apply the override store (default: on).",
)
@click.option("--show-overrides", is_flag=True, help="Also print override statistics.")
@click.option("--dry-run", is_flag=True, help="Show what would run without validating.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Worker threads.")
@_PROJECT_OPTION
def run(
    *,
    profile: str | None,
    validators: tuple[str, ...],
    patterns: tuple[str, ...],
    fmt: str | None,
    confidence_threshold: float | None,
    apply_overrides: bool | None,
    show_overrides: bool,
    dry_run: bool,
    workers: int | None,
    project: Path | None,
) -> None:
    """Run validators against project files.

    Select validators with --profile or one or more --validator options.
    Exit codes: 0 = every result passed, 1 = at least one failed,
    2 = configuration error.
    """
    from valence.engine.definitions import ConfigError
    from valence.engine.overrides import OverrideStore, OverrideStoreError
    from valence.engine.runner import plan_validation, run_validation
    from valence.infrastructure.reporting import (
        format_json,
        format_override_stats,
        format_plan,
        format_porcelain,
        format_rich,
    )

    project_root = project or Path.cwd()
    options = {
        "confidence_threshold": confidence_threshold,
        "apply_overrides": apply_overrides,
        "workers": workers,
    }

    if dry_run:
        try:
            plan = plan_validation(
                project_root,
                profile=profile,
                validators=validators,
                patterns=patterns,
                **options,
            )
        except ConfigError as exc:
            _config_error(exc)
        click.echo(format_plan(plan))
        return

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        result = run_validation(
            project_root,
            profile=profile,
            validators=validators,
            patterns=patterns,
            **options,
        )
    except ConfigError as exc:
        _config_error(exc)

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if show_overrides:
        from valence.config import load_config

        store = OverrideStore(project_root / load_config(project_root).overrides_path)
        try:
            stats = format_override_stats(store.stats(), store.list_records())
        except OverrideStoreError as exc:
            click.echo(f"Warning: {exc}", err=True)
        else:
            click.echo("", err=fmt != "rich")
            click.echo(stats, err=fmt != "rich")

    if not result.summary.ok:
        sys.exit(1)


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@main.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@_PROJECT_OPTION
def list_definitions(*, as_json: bool, project: Path | None) -> None:
    """List the loaded validators and profiles."""
    from valence.config import load_config
    from valence.engine.definitions import ConfigError, load_rule_set

    project_root = project or Path.cwd()
    try:
        config = load_config(project_root)
        rule_set = load_rule_set(
            project_root / config.validators_dir, project_root / config.profiles_dir
        )
    except ConfigError as exc:
        _config_error(exc)

    validators = [rule_set.validators[name] for name in sorted(rule_set.validators)]
    profiles = [rule_set.profiles[name] for name in sorted(rule_set.profiles)]

    if as_json:
        data = {
            "validators": [
                {
                    "name": v.name,
                    "type": v.validation_type,
                    "file_pattern": v.file_pattern,
                    "rules": len(v.rules),
                    "description": v.description,
                }
                for v in validators
            ],
            "profiles": [
                {"name": p.name, "validators": list(p.validators), "description": p.description}
                for p in profiles
            ],
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"Validators ({len(validators)}):")
    for v in validators:
        suffix = f" - {v.description}" if v.description else ""
        click.echo(f"  {v.name} [{v.validation_type}] {v.file_pattern}{suffix}")
    click.echo("")
    click.echo(f"Profiles ({len(profiles)}):")
    for p in profiles:
        click.echo(f"  {p.name}: {', '.join(p.validators)}")


# ---------------------------------------------------------------------------
# overrides
# ---------------------------------------------------------------------------


def _override_store(project: Path | None) -> OverrideStore:
    from valence.config import load_config
    from valence.engine.definitions import ConfigError
    from valence.engine.overrides import OverrideStore

    project_root = project or Path.cwd()
    try:
        config = load_config(project_root)
    except ConfigError as exc:
        _config_error(exc)
    return OverrideStore(project_root / config.overrides_path)


@main.group()
def overrides() -> None:
    """Manage false-positive and accepted-risk overrides."""


@overrides.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@_PROJECT_OPTION
def overrides_list(*, as_json: bool, project: Path | None) -> None:
    """List stored overrides, oldest first."""
    from valence.engine.overrides import OverrideStoreError

    store = _override_store(project)
    try:
        records = store.list_records()
    except OverrideStoreError as exc:
        _config_error(exc)

    if as_json:
        payload = {r.fingerprint: r.to_dict() for r in records}
        click.echo(json.dumps(payload, indent=2))
        return

    if not records:
        click.echo("No overrides.")
        return
    for record in records:
        click.echo(
            f"{record.fingerprint}  {record.status:<14}  {record.rule}  {record.file_path}"
        )
        click.echo(f"    {record.reason} ({record.added_by}, {record.timestamp})")


@overrides.command("add")
@click.option("--fingerprint", required=True, help="Fingerprint of the violation.")
@click.option("--rule", required=True, help="Rule id the violation came from.")
@click.option("--file", "file_path", required=True, help="File the violation was found in.")
@click.option(
    "--status",
    type=click.Choice(["false-positive", "accepted-risk"]),
    default="false-positive",
    show_default=True,
)
@click.option("--reason", required=True, help="Why the violation is overridden.")
@click.option("--author", default=None, help="Who added the override (default: $USER).")
@_PROJECT_OPTION
def overrides_add(
    *,
    fingerprint: str,
    rule: str,
    file_path: str,
    status: str,
    reason: str,
    author: str | None,
    project: Path | None,
) -> None:
    """Record an override for a violation fingerprint."""
    from valence.engine.overrides import OverrideStoreError, new_record

    store = _override_store(project)
    record = new_record(
        fingerprint,
        rule=rule,
        file_path=file_path,
        reason=reason,
        status=status,
        added_by=author or os.environ.get("USER", "unknown"),
    )
    try:
        replaced = store.get(fingerprint) is not None
        store.add(record)
    except OverrideStoreError as exc:
        _config_error(exc)

    verb = "Updated" if replaced else "Added"
    click.echo(f"{verb} {status} override {fingerprint} for {rule} in {file_path}")


@overrides.command("remove")
@click.argument("fingerprint")
@_PROJECT_OPTION
def overrides_remove(*, fingerprint: str, project: Path | None) -> None:
    """Remove the override stored under FINGERPRINT."""
    from valence.engine.overrides import OverrideStoreError

    store = _override_store(project)
    try:
        removed = store.remove(fingerprint)
    except OverrideStoreError as exc:
        _config_error(exc)

    if not removed:
        click.echo(f"Error: no override with fingerprint '{fingerprint}'.", err=True)
        sys.exit(1)
    click.echo(f"Removed override {fingerprint}")


@overrides.command("stats")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@_PROJECT_OPTION
def overrides_stats(*, as_json: bool, project: Path | None) -> None:
    """Show override totals by status, rule and author."""
    from valence.engine.overrides import OverrideStoreError
    from valence.infrastructure.reporting import format_override_stats

    store = _override_store(project)
    try:
        stats = store.stats()
        records = store.list_records()
    except OverrideStoreError as exc:
        _config_error(exc)

    if as_json:
        click.echo(json.dumps(stats, indent=2))
        return
    click.echo(format_override_stats(stats, records))
