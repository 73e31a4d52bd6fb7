"""Validation pipeline: config, rule set, files, evaluation, overrides, threshold.

Not re-exported from :mod:`valence.engine` because it depends on
:mod:`valence.config`, which itself imports the engine.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from valence.config import CONFIG_FILENAME, load_config
from valence.engine.aggregator import aggregate
from valence.engine.confidence import apply_threshold
from valence.engine.definitions import ConfigError, load_rule_set
from valence.engine.evaluator import evaluate_results
from valence.engine.overrides import apply_overrides, load_overrides
from valence.engine.plugins import PluginDispatcher, build_manifest, discover_entry_points
from valence.infrastructure.files import DEFAULT_PATTERN, collect_files
from valence.plugins import BUILTIN_PLUGINS

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from valence.config import Config
    from valence.engine.aggregator import RunSummary
    from valence.engine.definitions import RuleSet, ValidatorDefinition
    from valence.engine.evaluator import FileSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationRun:
    """A finished run: the summary plus what the pipeline did to get there."""

    summary: RunSummary
    threshold: float
    overrides_applied: int = 0
    suppressed_count: int = 0
    filtered_count: int = 0
    elapsed_ms: float = 0.0
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class RunPlan:
    """What a run would evaluate, without evaluating anything."""

    validators: list[ValidatorDefinition]
    files: list[str]
    config: Config
    plugins: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------


def select_validators(
    rule_set: RuleSet, *, profile: str | None = None, validators: Sequence[str] = ()
) -> list[str]:
    """Resolve the validator names for a run from a profile or an explicit list.

    Exactly one of *profile* and *validators* must be given.
    """
    if profile and validators:
        msg = "Specify either a profile or a list of validators, not both"
        raise ConfigError(msg)
    if profile:
        return rule_set.resolve_profile(profile)
    if not validators:
        msg = "Specify either a profile or at least one validator"
        raise ConfigError(msg)
    for name in validators:
        rule_set.get_validator(name)
    return list(dict.fromkeys(validators))


def _exclusions(config: Config) -> tuple[str, ...]:
    """Configured exclusions plus the definition, config and override files."""
    own = (
        f"{config.validators_dir.rstrip('/')}/**",
        f"{config.profiles_dir.rstrip('/')}/**",
        CONFIG_FILENAME,
        config.overrides_path,
    )
    return (*config.exclude, *own)


def _prepare(
    project_root: Path,
    *,
    profile: str | None,
    validators: Sequence[str],
    patterns: Sequence[str],
    config: Config | None,
    options: Mapping[str, Any],
) -> tuple[Config, RuleSet, list[str], list[str]]:
    if config is None:
        config = load_config(project_root)
    config = config.with_overrides(**options)

    rule_set = load_rule_set(
        project_root / config.validators_dir, project_root / config.profiles_dir
    )
    names = select_validators(rule_set, profile=profile, validators=validators)
    files = collect_files(
        project_root, patterns or (DEFAULT_PATTERN,), exclude=_exclusions(config)
    )
    return config, rule_set, names, files


def plugin_manifest(
    config: Config, plugins: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Merge bundled, installed, configured and in-process plugins, in that order."""
    return build_manifest(BUILTIN_PLUGINS, discover_entry_points(), config.plugins, plugins)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def plan_validation(
    project_root: Path,
    *,
    profile: str | None = None,
    validators: Sequence[str] = (),
    patterns: Sequence[str] = (),
    config: Config | None = None,
    **options: Any,
) -> RunPlan:
    """Load and resolve everything a run needs, then stop (``--dry-run``).

    Raises ``ConfigError`` exactly where :func:`run_validation` would.
    """
    config, rule_set, names, files = _prepare(
        project_root,
        profile=profile,
        validators=validators,
        patterns=patterns,
        config=config,
        options=options,
    )
    return RunPlan(
        validators=rule_set.resolve_validators(names),
        files=files,
        config=config,
        plugins=sorted(plugin_manifest(config)),
    )


def run_validation(
    project_root: Path,
    *,
    profile: str | None = None,
    validators: Sequence[str] = (),
    patterns: Sequence[str] = (),
    config: Config | None = None,
    plugins: Mapping[str, Any] | None = None,
    source: FileSource | None = None,
    cancel: threading.Event | None = None,
    **options: Any,
) -> ValidationRun:
    """Run the full validation pipeline for one project.

    Parameters
    ----------
    project_root:
        Directory holding ``valence.yml``, the definition directories and
        the files to validate.
    profile, validators:
        Where the validator list comes from; exactly one must be given.
    patterns:
        Glob patterns selecting target files (default: every file).
    config:
        Use this configuration instead of loading ``valence.yml``.
    plugins:
        Extra manifest entries, merged last (name to import target or
        evaluator object).
    options:
        Config fields to override for this run, e.g.
        ``confidence_threshold=0.9`` or ``apply_overrides=False``.
        ``None`` values are ignored.

    Returns
    -------
    ValidationRun
        The aggregated summary plus threshold, override and timing details.

    Raises
    ------
    ConfigError
        When the configuration or definitions are invalid, or the validator
        selection cannot be resolved.  Nothing is evaluated in that case.
    """
    start = time.monotonic()

    # Step a: Configuration, definitions and targets.
    config, rule_set, names, files = _prepare(
        project_root,
        profile=profile,
        validators=validators,
        patterns=patterns,
        config=config,
        options=options,
    )
    logger.info("Validating %d files with %d validators", len(files), len(names))

    # Step b: Evaluate every applicable (file, validator) pair.
    with PluginDispatcher(
        plugin_manifest(config, plugins), timeout=config.plugin_timeout
    ) as dispatcher:
        results = evaluate_results(
            rule_set,
            names,
            files,
            root=project_root,
            config=config,
            source=source,
            dispatcher=dispatcher,
            cancel=cancel,
        )

    # Step c: Overrides, read once for the whole run.
    overrides_applied = 0
    if config.apply_overrides:
        overrides = load_overrides(project_root / config.overrides_path)
        overrides_applied = len(overrides)
        results = apply_overrides(results, overrides)
    suppressed = sum(len(r.suppressed) for r in results)

    # Step d: Confidence threshold.
    before = sum(len(r.violations) for r in results)
    results = apply_threshold(results, config.confidence_threshold)
    filtered = before - sum(len(r.violations) for r in results)

    summary = aggregate(results, files=files, validator_names=names)
    elapsed = (time.monotonic() - start) * 1000
    logger.info(
        "Validation finished: %d passed, %d failed, %d violations in %.0fms",
        summary.passed,
        summary.failed,
        summary.total_violations,
        elapsed,
    )
    return ValidationRun(
        summary=summary,
        threshold=config.confidence_threshold,
        overrides_applied=overrides_applied,
        suppressed_count=suppressed,
        filtered_count=filtered,
        elapsed_ms=elapsed,
        files=tuple(files),
    )
