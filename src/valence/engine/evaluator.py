"""Rule evaluation engine: run applicable validators over target files.

For every file (in input order) and every requested validator (in caller
order) whose filePattern applies, each rule is dispatched to the operator
registry or the plugin dispatcher.  Every failed rule yields exactly one
annotated, fingerprinted :class:`Violation`.  A failure inside one rule is
contained to that rule.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Protocol

from valence.engine import operators
from valence.engine.aggregator import aggregate
from valence.engine.applicability import applies
from valence.engine.confidence import annotate
from valence.engine.models import (
    DEFAULT_CONFIDENCE,
    KIND_INTERNAL_ERROR,
    KIND_RULE,
    EvaluationContext,
    EvaluationResult,
    OperatorOutcome,
    PluginOutcome,
    Violation,
)
from valence.engine.overrides import fingerprint
from valence.engine.plugins import PluginDispatcher

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence
    from pathlib import Path

    from valence.config import Config
    from valence.engine.aggregator import RunSummary
    from valence.engine.definitions import RuleDefinition, RuleSet, ValidatorDefinition

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class InternalRuleError(Exception):
    """A rule could not be evaluated (bad parameter, operator bug, ...)."""


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------


class FileSource(Protocol):
    """Read access to the files under validation, by relative posix path."""

    def read_text(self, file_path: str) -> str: ...

    def is_dir(self, file_path: str) -> bool: ...

    def list_dir(self, dir_path: str) -> tuple[str, ...]: ...


# ---------------------------------------------------------------------------
# Single rule
# ---------------------------------------------------------------------------


def _dispatch(
    rule: RuleDefinition, context: EvaluationContext, dispatcher: PluginDispatcher
) -> OperatorOutcome:
    try:
        if rule.operator is not None:
            logger.debug(
                "Rule '%s': operator %s on %s", rule.rule_id, rule.operator, context.file_path
            )
            return operators.invoke(rule.operator, context.subject, rule, context)
        logger.debug("Rule '%s': plugin %s on %s", rule.rule_id, rule.plugin, context.file_path)
        return dispatcher.run(str(rule.plugin), context.subject, rule, context)
    except Exception as exc:  # noqa: BLE001 - contained to this rule
        msg = f"Internal error in rule '{rule.rule_id}': {exc}"
        raise InternalRuleError(msg) from exc


def evaluate_rule(
    validator: ValidatorDefinition,
    rule: RuleDefinition,
    context: EvaluationContext,
    dispatcher: PluginDispatcher,
    *,
    fingerprint_path: str | None = None,
) -> tuple[Violation | None, tuple[str, ...]]:
    """Evaluate one rule.

    Returns ``(violation, warnings)``: the annotated violation, or None when
    the rule passed, plus the plugin's advisory warnings when it passed.
    Tooling failures always carry full confidence.  *fingerprint_path*
    replaces the file path in the fingerprint (structure validators use the
    directory).
    """
    subject_path = fingerprint_path or context.file_path
    try:
        outcome = _dispatch(rule, context, dispatcher)
    except InternalRuleError as exc:
        logger.warning("%s (validator '%s', file %s)", exc, validator.name, context.file_path)
        violation = Violation(
            validator=validator.name,
            rule_id=rule.rule_id,
            file_path=context.file_path,
            message=str(exc),
            kind=KIND_INTERNAL_ERROR,
            confidence=DEFAULT_CONFIDENCE,
            fingerprint=fingerprint(validator.name, rule.rule_id, subject_path),
        )
        return annotate(violation, rule, validator), ()

    if outcome.passed:
        passed_warnings = outcome.warnings if isinstance(outcome, PluginOutcome) else ()
        return None, passed_warnings

    kind = KIND_RULE
    confidence: float | None = None
    suggested_fix: str | None = None
    warnings: tuple[str, ...] = ()
    if isinstance(outcome, PluginOutcome):
        kind = outcome.failure or KIND_RULE
        confidence = outcome.confidence if kind == KIND_RULE else DEFAULT_CONFIDENCE
        suggested_fix = outcome.suggestions[0] if outcome.suggestions else None
        warnings = outcome.warnings

    if kind == KIND_RULE:
        message = rule.message or outcome.message or f"Failed {rule.target} check"
    else:
        message = outcome.message or f"Plugin '{rule.plugin}' failed"

    violation = Violation(
        validator=validator.name,
        rule_id=rule.rule_id,
        file_path=context.file_path,
        message=message,
        kind=kind,
        line=outcome.line,
        excerpt=outcome.excerpt,
        confidence=confidence,
        fingerprint=fingerprint(validator.name, rule.rule_id, subject_path, outcome.excerpt),
        suggested_fix=suggested_fix,
        warnings=warnings,
    )
    return annotate(violation, rule, validator), ()


# ---------------------------------------------------------------------------
# One (file, validator) pair
# ---------------------------------------------------------------------------


def _unreadable(
    validator: ValidatorDefinition, file_path: str, error: Exception
) -> EvaluationResult:
    message = f"Cannot read {file_path}: {error}"
    logger.warning("%s", message)
    violation = annotate(
        Violation(
            validator=validator.name,
            rule_id="<read>",
            file_path=file_path,
            message=message,
            kind=KIND_INTERNAL_ERROR,
            confidence=DEFAULT_CONFIDENCE,
            fingerprint=fingerprint(validator.name, "<read>", file_path),
        ),
        validator=validator,
    )
    return EvaluationResult(
        file_path=file_path,
        validator=validator.name,
        passed=False,
        violations=(violation,),
        message=message,
    )


def evaluate_file(
    validator: ValidatorDefinition,
    file_path: str,
    *,
    root: Path,
    config: Config,
    source: FileSource,
    dispatcher: PluginDispatcher,
) -> EvaluationResult | None:
    """Evaluate every rule of *validator* against one file.

    Returns None when the validator does not apply to the file.
    """
    if not applies(validator, file_path):
        return None

    content: str | None = None
    dir_path: str | None = None
    directory: Path | None = None
    entries: tuple[str, ...] | None = None
    try:
        if validator.validation_type == "content":
            content = source.read_text(file_path)
        elif validator.validation_type == "structure":
            dir_path = _structure_dir(file_path, source)
            directory = root / dir_path
            entries = source.list_dir(dir_path)
    except (OSError, UnicodeDecodeError) as exc:
        return _unreadable(validator, file_path, exc)

    violations: list[Violation] = []
    warnings: list[str] = []
    for rule in validator.rules:
        context = EvaluationContext(
            file_path=file_path,
            validation_type=validator.validation_type,
            root=root,
            params=rule.params,
            config=config,
            content=content,
            directory=directory,
            entries=entries,
        )
        violation, notes = evaluate_rule(
            validator, rule, context, dispatcher, fingerprint_path=dir_path
        )
        if violation is not None:
            violations.append(violation)
        warnings.extend(notes)

    return EvaluationResult(
        file_path=file_path,
        validator=validator.name,
        passed=not violations,
        violations=tuple(violations),
        warnings=tuple(warnings),
    )


def _parent(file_path: str) -> str:
    parent = file_path.rsplit("/", 1)[0] if "/" in file_path else ""
    return parent or "."


def _structure_dir(file_path: str, source: FileSource) -> str:
    """Directory whose listing a structure validator checks for *file_path*.

    Files sharing a directory share its violation fingerprints, so a single
    override covers all of them.
    """
    return file_path if source.is_dir(file_path) else _parent(file_path)


# ---------------------------------------------------------------------------
# Whole run
# ---------------------------------------------------------------------------


def evaluate_results(
    rule_set: RuleSet,
    validator_names: Sequence[str],
    files: Sequence[str],
    *,
    root: Path,
    config: Config,
    source: FileSource | None = None,
    dispatcher: PluginDispatcher | None = None,
    cancel: threading.Event | None = None,
) -> list[EvaluationResult]:
    """Evaluate every applicable (file, validator) pair, in deterministic order.

    With ``config.workers > 1`` pairs run on a thread pool; results are
    still returned in input-file order, then validator order.  Setting
    *cancel* stops new pairs from starting; pairs already running finish.
    """
    validators = rule_set.resolve_validators(validator_names)

    if source is None:
        from valence.infrastructure.files import DiskFileSource

        source = DiskFileSource(root)

    owns_dispatcher = dispatcher is None
    if dispatcher is None:
        dispatcher = PluginDispatcher(config.plugins, timeout=config.plugin_timeout)

    pairs = [(file_path, validator) for file_path in files for validator in validators]

    def _task(pair: tuple[str, ValidatorDefinition]) -> EvaluationResult | None:
        if cancel is not None and cancel.is_set():
            return None
        file_path, validator = pair
        return evaluate_file(
            validator,
            file_path,
            root=root,
            config=config,
            source=source,
            dispatcher=dispatcher,
        )

    try:
        if config.workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(
                max_workers=config.workers, thread_name_prefix="valence-eval"
            ) as pool:
                outcomes = list(pool.map(_task, pairs))
        else:
            outcomes = []
            for pair in pairs:
                if cancel is not None and cancel.is_set():
                    break
                outcomes.append(_task(pair))
    finally:
        if owns_dispatcher:
            dispatcher.close()

    return [result for result in outcomes if result is not None]


def evaluate(
    rule_set: RuleSet,
    validator_names: Sequence[str],
    files: Sequence[str],
    *,
    root: Path,
    config: Config,
    source: FileSource | None = None,
    dispatcher: PluginDispatcher | None = None,
    cancel: threading.Event | None = None,
) -> RunSummary:
    """Evaluate and aggregate in one step (no overrides or threshold applied)."""
    results = evaluate_results(
        rule_set,
        validator_names,
        files,
        root=root,
        config=config,
        source=source,
        dispatcher=dispatcher,
        cancel=cancel,
    )
    return aggregate(results, files=files, validator_names=validator_names)
