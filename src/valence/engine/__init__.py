"""Validation engine: definitions, operators, plugins, evaluation, overrides, aggregation."""

from valence.engine.aggregator import RunSummary, aggregate, summary_to_dict
from valence.engine.applicability import applies
from valence.engine.confidence import annotate, apply_threshold, filter_by_confidence
from valence.engine.definitions import (
    ConfigError,
    OperatorConfigError,
    ProfileDefinition,
    RuleDefinition,
    RuleSet,
    ValidatorDefinition,
    build_rule_set,
    load_rule_set,
    parse_profile,
    parse_validator,
)
from valence.engine.evaluator import (
    FileSource,
    InternalRuleError,
    evaluate,
    evaluate_file,
    evaluate_results,
)
from valence.engine.models import (
    EvaluationContext,
    EvaluationResult,
    OperatorOutcome,
    PluginOutcome,
    Violation,
)
from valence.engine.overrides import (
    OverrideRecord,
    OverrideStore,
    OverrideStoreError,
    apply_overrides,
    fingerprint,
    is_overridden,
    load_overrides,
    new_record,
    override_stats,
)
from valence.engine.plugins import (
    PluginDispatcher,
    PluginExecutionError,
    PluginHandle,
    PluginResolutionError,
)

__all__ = [
    "ConfigError",
    "EvaluationContext",
    "EvaluationResult",
    "FileSource",
    "InternalRuleError",
    "OperatorConfigError",
    "OperatorOutcome",
    "OverrideRecord",
    "OverrideStore",
    "OverrideStoreError",
    "PluginDispatcher",
    "PluginExecutionError",
    "PluginHandle",
    "PluginOutcome",
    "PluginResolutionError",
    "ProfileDefinition",
    "RuleDefinition",
    "RuleSet",
    "RunSummary",
    "ValidatorDefinition",
    "Violation",
    "aggregate",
    "annotate",
    "applies",
    "apply_overrides",
    "apply_threshold",
    "build_rule_set",
    "evaluate",
    "evaluate_file",
    "evaluate_results",
    "filter_by_confidence",
    "fingerprint",
    "is_overridden",
    "load_overrides",
    "load_rule_set",
    "new_record",
    "override_stats",
    "parse_profile",
    "parse_validator",
]
