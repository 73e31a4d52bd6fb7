"""Rule definition store: parse validator and profile documents into a RuleSet."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import yaml

from valence.engine.models import VALID_SEVERITIES, VALIDATION_TYPES

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

DOCUMENT_SUFFIXES: tuple[str, ...] = (".yml", ".yaml", ".json")
RESERVED_RULE_KEYS: frozenset[str] = frozenset(
    {"id", "operator", "plugin", "message", "severity", "confidence", "description"}
)
MATCH_ALL_PATTERN = ".*"

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when rule definitions are malformed or self-inconsistent."""


class OperatorConfigError(ConfigError):
    """Raised when a rule names an unknown operator or omits its parameters."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleDefinition:
    """One check inside a validator, backed by an operator or a plugin."""

    rule_id: str
    operator: str | None = None
    plugin: str | None = None
    message: str | None = None
    severity: str | None = None
    confidence: float | None = None
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        """Operator or plugin name, whichever is set."""
        return self.operator if self.operator is not None else str(self.plugin)


@dataclass(frozen=True)
class ValidatorDefinition:
    """A named bundle of rules scoped to files matching ``file_pattern``."""

    name: str
    validation_type: str  # "content" | "structure" | "naming"
    file_pattern: str
    rules: tuple[RuleDefinition, ...]
    description: str = ""
    severity: str | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class ProfileDefinition:
    """An ordered list of validator names run together."""

    name: str
    validators: tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class RuleSet:
    """Validators and profiles loaded for one run, looked up by name."""

    validators: Mapping[str, ValidatorDefinition]
    profiles: Mapping[str, ProfileDefinition] = field(default_factory=dict)

    def get_validator(self, name: str) -> ValidatorDefinition:
        try:
            return self.validators[name]
        except KeyError:
            msg = f"Unknown validator '{name}'"
            raise ConfigError(msg) from None

    def get_profile(self, name: str) -> ProfileDefinition:
        try:
            return self.profiles[name]
        except KeyError:
            msg = f"Unknown profile '{name}'"
            raise ConfigError(msg) from None

    def resolve_profile(self, name: str) -> list[str]:
        """Return the validator names of a profile, checking every one exists."""
        profile = self.get_profile(name)
        for validator_name in profile.validators:
            if validator_name not in self.validators:
                msg = f"Profile '{name}' references unknown validator '{validator_name}'"
                raise ConfigError(msg)
        return list(profile.validators)

    def resolve_validators(self, names: Iterable[str]) -> list[ValidatorDefinition]:
        return [self.get_validator(name) for name in names]


# ---------------------------------------------------------------------------
# Document parsing
# ---------------------------------------------------------------------------


def _parse_severity(raw: object, context: str) -> str | None:
    if raw is None:
        return None
    severity = str(raw).lower()
    if severity not in VALID_SEVERITIES:
        msg = f"{context}: invalid severity '{raw}', must be one of {sorted(VALID_SEVERITIES)}"
        raise ConfigError(msg)
    return severity


def _parse_confidence(raw: object, context: str) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        msg = f"{context}: confidence must be a number"
        raise ConfigError(msg)
    confidence = float(raw)
    if not (0.0 <= confidence <= 1.0):
        msg = f"{context}: confidence must be between 0.0 and 1.0"
        raise ConfigError(msg)
    return confidence


def _parse_rule(data: object, index: int, validator_name: str) -> RuleDefinition:
    """Parse one entry of a validator's ``rules`` list."""
    context = f"Validator '{validator_name}' rule at index {index}"
    if not isinstance(data, dict):
        msg = f"{context} must be a mapping"
        raise ConfigError(msg)

    operator = data.get("operator")
    plugin = data.get("plugin")
    if (operator is None) == (plugin is None):
        msg = f"{context} must have exactly one of 'operator' or 'plugin'"
        raise ConfigError(msg)

    target = operator if operator is not None else plugin
    if not isinstance(target, str) or not target.strip():
        msg = f"{context}: 'operator'/'plugin' must be a non-empty string"
        raise ConfigError(msg)

    rule_id_raw = data.get("id")
    rule_id = str(rule_id_raw) if rule_id_raw is not None else f"{target}#{index}"

    message_raw = data.get("message")
    params = {str(k): v for k, v in data.items() if k not in RESERVED_RULE_KEYS}

    return RuleDefinition(
        rule_id=rule_id,
        operator=str(operator) if operator is not None else None,
        plugin=str(plugin) if plugin is not None else None,
        message=str(message_raw) if message_raw is not None else None,
        severity=_parse_severity(data.get("severity"), context),
        confidence=_parse_confidence(data.get("confidence"), context),
        params=params,
    )


def parse_validator(data: object, source: str = "<document>") -> ValidatorDefinition:
    """Parse a validator document (already decoded from YAML/JSON).

    Raises ``ConfigError`` on missing fields, an unknown type, a pattern
    that does not compile, or a rule that violates the operator/plugin
    exclusivity.
    """
    if not isinstance(data, dict):
        msg = f"{source}: validator document must be a mapping"
        raise ConfigError(msg)

    name = data.get("name")
    if name is None or not isinstance(name, str) or not name.strip():
        msg = f"{source}: validator missing required 'name' field"
        raise ConfigError(msg)

    type_raw = data.get("type")
    if type_raw is None:
        msg = f"Validator '{name}': missing required 'type' field"
        raise ConfigError(msg)
    validation_type = str(type_raw).lower()
    if validation_type not in VALIDATION_TYPES:
        msg = (
            f"Validator '{name}': invalid type '{type_raw}', "
            f"must be one of {sorted(VALIDATION_TYPES)}"
        )
        raise ConfigError(msg)

    pattern_raw = data.get("filePattern")
    file_pattern = MATCH_ALL_PATTERN if pattern_raw is None else str(pattern_raw)
    try:
        re.compile(file_pattern)
    except re.error as exc:
        msg = f"Validator '{name}': filePattern '{file_pattern}' does not compile: {exc}"
        raise ConfigError(msg) from exc

    rules_raw = data.get("rules")
    if not isinstance(rules_raw, list) or not rules_raw:
        msg = f"Validator '{name}': 'rules' must be a non-empty list"
        raise ConfigError(msg)

    rules = tuple(_parse_rule(rule_data, idx, name) for idx, rule_data in enumerate(rules_raw))

    seen_ids: set[str] = set()
    for rule in rules:
        if rule.rule_id in seen_ids:
            msg = f"Validator '{name}': duplicate rule id '{rule.rule_id}'"
            raise ConfigError(msg)
        seen_ids.add(rule.rule_id)

    return ValidatorDefinition(
        name=name,
        validation_type=validation_type,
        file_pattern=file_pattern,
        rules=rules,
        description=str(data.get("description", "")),
        severity=_parse_severity(data.get("severity"), f"Validator '{name}'"),
        confidence=_parse_confidence(data.get("confidence"), f"Validator '{name}'"),
    )


def parse_profile(data: object, source: str = "<document>") -> ProfileDefinition:
    """Parse a profile document."""
    if not isinstance(data, dict):
        msg = f"{source}: profile document must be a mapping"
        raise ConfigError(msg)

    name = data.get("name")
    if name is None or not isinstance(name, str) or not name.strip():
        msg = f"{source}: profile missing required 'name' field"
        raise ConfigError(msg)

    validators_raw = data.get("validators")
    if not isinstance(validators_raw, list):
        msg = f"Profile '{name}': 'validators' must be a list"
        raise ConfigError(msg)

    return ProfileDefinition(
        name=name,
        validators=tuple(str(v) for v in validators_raw),
        description=str(data.get("description", "")),
    )


def validate_operators(
    validators: Iterable[ValidatorDefinition],
    registry: Mapping[str, Any] | None = None,
) -> None:
    """Check every operator-backed rule against the operator registry.

    Runs at load time so a misspelled operator aborts the run before any
    file is evaluated.
    """
    if registry is None:
        from valence.engine.operators import OPERATORS

        registry = OPERATORS

    for validator in validators:
        for rule in validator.rules:
            if rule.operator is None:
                continue
            spec = registry.get(rule.operator)
            if spec is None:
                msg = (
                    f"Validator '{validator.name}' rule '{rule.rule_id}': "
                    f"unknown operator '{rule.operator}'"
                )
                raise OperatorConfigError(msg)
            missing = spec.missing_params(rule.params)
            if missing:
                msg = (
                    f"Validator '{validator.name}' rule '{rule.rule_id}': "
                    f"operator '{rule.operator}' requires {missing}"
                )
                raise OperatorConfigError(msg)


def build_rule_set(
    validators: Iterable[ValidatorDefinition],
    profiles: Iterable[ProfileDefinition] = (),
) -> RuleSet:
    """Assemble a RuleSet, enforcing unique names and resolvable profiles."""
    validator_map: dict[str, ValidatorDefinition] = {}
    for validator in validators:
        if validator.name in validator_map:
            msg = f"Duplicate validator name '{validator.name}'"
            raise ConfigError(msg)
        validator_map[validator.name] = validator

    profile_map: dict[str, ProfileDefinition] = {}
    for profile in profiles:
        if profile.name in profile_map:
            msg = f"Duplicate profile name '{profile.name}'"
            raise ConfigError(msg)
        profile_map[profile.name] = profile

    validate_operators(validator_map.values())

    rule_set = RuleSet(validators=validator_map, profiles=profile_map)
    for profile_name in profile_map:
        rule_set.resolve_profile(profile_name)
    return rule_set


# ---------------------------------------------------------------------------
# Loading from disk
# ---------------------------------------------------------------------------


def _read_document(path: Path) -> object:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"{path}: cannot read document: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"{path}: document is not well-formed: {exc}"
        raise ConfigError(msg) from exc


def _document_paths(directory: Path | None) -> list[Path]:
    if directory is None or not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in DOCUMENT_SUFFIXES
    )


def load_rule_set(validators_dir: Path, profiles_dir: Path | None = None) -> RuleSet:
    """Load every validator and profile document and return a validated RuleSet.

    Documents are read in sorted file-name order.  Any malformed document
    aborts the whole load with ``ConfigError``; an unknown operator raises
    ``OperatorConfigError``.  Missing directories load as empty.
    """
    validators = [
        parse_validator(_read_document(path), str(path))
        for path in _document_paths(validators_dir)
    ]
    profiles = [
        parse_profile(_read_document(path), str(path)) for path in _document_paths(profiles_dir)
    ]
    return build_rule_set(validators, profiles)
