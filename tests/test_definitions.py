"""Tests for valence.engine.definitions — document parsing and rule-set loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from valence.engine.definitions import (
    ConfigError,
    OperatorConfigError,
    build_rule_set,
    load_rule_set,
    parse_profile,
    parse_validator,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def _validator_doc(**overrides: object) -> dict[str, object]:
    doc: dict[str, object] = {
        "name": "requires-default-export",
        "type": "content",
        "filePattern": r".*\.js$",
        "rules": [{"operator": "mustContain", "value": "export default"}],
    }
    doc.update(overrides)
    return doc


# ---------------------------------------------------------------------------
# parse_validator
# ---------------------------------------------------------------------------


class TestParseValidator:
    """Tests for parse_validator()."""

    def test_minimal_document(self) -> None:
        validator = parse_validator(_validator_doc())
        assert validator.name == "requires-default-export"
        assert validator.validation_type == "content"
        assert validator.file_pattern == r".*\.js$"
        assert len(validator.rules) == 1
        rule = validator.rules[0]
        assert rule.operator == "mustContain"
        assert rule.plugin is None
        assert rule.params == {"value": "export default"}

    def test_default_rule_id_uses_target_and_index(self) -> None:
        validator = parse_validator(
            _validator_doc(
                rules=[
                    {"operator": "mustContain", "value": "a"},
                    {"plugin": "naming-conventions", "checkFileNaming": True},
                ]
            )
        )
        assert [r.rule_id for r in validator.rules] == ["mustContain#0", "naming-conventions#1"]

    def test_explicit_rule_fields(self) -> None:
        validator = parse_validator(
            _validator_doc(
                rules=[
                    {
                        "id": "default-export",
                        "operator": "mustContain",
                        "value": "export default",
                        "message": "Module has no default export",
                        "severity": "WARNING",
                        "confidence": 0.8,
                    }
                ]
            )
        )
        rule = validator.rules[0]
        assert rule.rule_id == "default-export"
        assert rule.message == "Module has no default export"
        assert rule.severity == "warning"
        assert rule.confidence == 0.8
        assert rule.params == {"value": "export default"}

    def test_type_is_case_insensitive(self) -> None:
        assert parse_validator(_validator_doc(type="Structure")).validation_type == "structure"

    def test_missing_file_pattern_matches_everything(self) -> None:
        doc = _validator_doc()
        del doc["filePattern"]
        assert parse_validator(doc).file_pattern == ".*"

    def test_validator_defaults(self) -> None:
        validator = parse_validator(_validator_doc(severity="info", confidence=0.5))
        assert validator.severity == "info"
        assert validator.confidence == 0.5

    def test_missing_name(self) -> None:
        doc = _validator_doc()
        del doc["name"]
        with pytest.raises(ConfigError, match="missing required 'name'"):
            parse_validator(doc)

    def test_missing_type(self) -> None:
        doc = _validator_doc()
        del doc["type"]
        with pytest.raises(ConfigError, match="missing required 'type'"):
            parse_validator(doc)

    def test_invalid_type(self) -> None:
        with pytest.raises(ConfigError, match="invalid type 'semantic'"):
            parse_validator(_validator_doc(type="semantic"))

    def test_pattern_that_does_not_compile(self) -> None:
        with pytest.raises(ConfigError, match="does not compile"):
            parse_validator(_validator_doc(filePattern="(["))

    def test_empty_rules(self) -> None:
        with pytest.raises(ConfigError, match="non-empty list"):
            parse_validator(_validator_doc(rules=[]))

    def test_rule_with_operator_and_plugin(self) -> None:
        with pytest.raises(ConfigError, match="exactly one of 'operator' or 'plugin'"):
            parse_validator(
                _validator_doc(rules=[{"operator": "mustContain", "plugin": "x", "value": "a"}])
            )

    def test_rule_with_neither_operator_nor_plugin(self) -> None:
        with pytest.raises(ConfigError, match="exactly one of 'operator' or 'plugin'"):
            parse_validator(_validator_doc(rules=[{"value": "a"}]))

    def test_duplicate_rule_ids(self) -> None:
        rules = [
            {"id": "same", "operator": "mustContain", "value": "a"},
            {"id": "same", "operator": "mustContain", "value": "b"},
        ]
        with pytest.raises(ConfigError, match="duplicate rule id 'same'"):
            parse_validator(_validator_doc(rules=rules))

    def test_invalid_severity(self) -> None:
        with pytest.raises(ConfigError, match="invalid severity"):
            parse_validator(_validator_doc(severity="fatal"))

    def test_confidence_out_of_range(self) -> None:
        rules = [{"operator": "mustContain", "value": "a", "confidence": 1.5}]
        with pytest.raises(ConfigError, match="between 0.0 and 1.0"):
            parse_validator(_validator_doc(rules=rules))

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigError, match="must be a mapping"):
            parse_validator(["not", "a", "mapping"], "bad.yml")


class TestParseProfile:
    """Tests for parse_profile()."""

    def test_profile(self) -> None:
        profile = parse_profile({"name": "ci", "validators": ["a", "b"], "description": "CI"})
        assert profile.name == "ci"
        assert profile.validators == ("a", "b")
        assert profile.description == "CI"

    def test_validators_must_be_a_list(self) -> None:
        with pytest.raises(ConfigError, match="'validators' must be a list"):
            parse_profile({"name": "ci", "validators": "a"})

    def test_missing_name(self) -> None:
        with pytest.raises(ConfigError, match="missing required 'name'"):
            parse_profile({"validators": []})


# ---------------------------------------------------------------------------
# build_rule_set
# ---------------------------------------------------------------------------


class TestBuildRuleSet:
    """Tests for build_rule_set() load-time checks."""

    def test_duplicate_validator_names(self) -> None:
        validator = parse_validator(_validator_doc())
        with pytest.raises(ConfigError, match="Duplicate validator name"):
            build_rule_set([validator, validator])

    def test_unknown_operator(self) -> None:
        validator = parse_validator(
            _validator_doc(rules=[{"operator": "mustContainz", "value": "a"}])
        )
        with pytest.raises(OperatorConfigError, match="unknown operator 'mustContainz'"):
            build_rule_set([validator])

    def test_missing_operator_parameter(self) -> None:
        validator = parse_validator(_validator_doc(rules=[{"operator": "mustContain"}]))
        with pytest.raises(OperatorConfigError, match="requires"):
            build_rule_set([validator])

    def test_line_count_needs_min_or_max(self) -> None:
        bad = parse_validator(_validator_doc(rules=[{"operator": "lineCount"}]))
        with pytest.raises(OperatorConfigError, match="'min' or 'max'"):
            build_rule_set([bad])
        good = parse_validator(_validator_doc(rules=[{"operator": "lineCount", "max": 10}]))
        assert "requires-default-export" in build_rule_set([good]).validators

    def test_operator_config_error_is_a_config_error(self) -> None:
        validator = parse_validator(_validator_doc(rules=[{"operator": "nope", "value": 1}]))
        with pytest.raises(ConfigError):
            build_rule_set([validator])

    def test_plugin_rules_are_not_checked_against_operators(self) -> None:
        validator = parse_validator(_validator_doc(rules=[{"plugin": "not-installed"}]))
        rule_set = build_rule_set([validator])
        assert rule_set.get_validator("requires-default-export").rules[0].plugin == (
            "not-installed"
        )

    def test_profile_referencing_unknown_validator(self) -> None:
        validator = parse_validator(_validator_doc())
        profile = parse_profile(
            {"name": "broken", "validators": ["requires-default-export", "ghost"]}
        )
        with pytest.raises(ConfigError, match="unknown validator 'ghost'"):
            build_rule_set([validator], [profile])

    def test_resolve_profile_keeps_order(self) -> None:
        first = parse_validator(_validator_doc(name="b-validator"))
        second = parse_validator(_validator_doc(name="a-validator"))
        profile = parse_profile({"name": "p", "validators": ["b-validator", "a-validator"]})
        rule_set = build_rule_set([first, second], [profile])
        assert rule_set.resolve_profile("p") == ["b-validator", "a-validator"]

    def test_unknown_lookups(self) -> None:
        rule_set = build_rule_set([parse_validator(_validator_doc())])
        with pytest.raises(ConfigError, match="Unknown validator 'x'"):
            rule_set.get_validator("x")
        with pytest.raises(ConfigError, match="Unknown profile 'x'"):
            rule_set.resolve_profile("x")


# ---------------------------------------------------------------------------
# load_rule_set
# ---------------------------------------------------------------------------


class TestLoadRuleSet:
    """Tests for load_rule_set() reading documents from disk."""

    def test_loads_project_documents(self, tmp_project: Path) -> None:
        rule_set = load_rule_set(tmp_project / "validators", tmp_project / "profiles")
        assert sorted(rule_set.validators) == ["no-console", "requires-default-export"]
        assert rule_set.resolve_profile("default") == ["requires-default-export", "no-console"]
        assert rule_set.get_validator("no-console").severity == "warning"

    def test_json_documents(
        self, tmp_path: Path, write_file: Callable[[Path, str], Path]
    ) -> None:
        write_file(
            tmp_path / "validators" / "naming.json",
            '{"name": "kebab", "type": "naming", "rules": '
            '[{"operator": "followsNamingConvention", "value": "kebab-case"}]}',
        )
        rule_set = load_rule_set(tmp_path / "validators")
        assert rule_set.get_validator("kebab").validation_type == "naming"

    def test_ignores_other_files(
        self, tmp_path: Path, write_file: Callable[[Path, str], Path]
    ) -> None:
        write_file(tmp_path / "validators" / "notes.txt", "not a validator")
        assert load_rule_set(tmp_path / "validators").validators == {}

    def test_missing_directories_load_empty(self, tmp_path: Path) -> None:
        rule_set = load_rule_set(tmp_path / "nope", tmp_path / "nope-either")
        assert rule_set.validators == {}
        assert rule_set.profiles == {}

    def test_malformed_yaml(
        self, tmp_path: Path, write_file: Callable[[Path, str], Path]
    ) -> None:
        write_file(tmp_path / "validators" / "bad.yml", "name: [unclosed\n")
        with pytest.raises(ConfigError, match="not well-formed"):
            load_rule_set(tmp_path / "validators")

    def test_profile_with_unknown_validator_aborts_load(
        self, tmp_project: Path, write_file: Callable[[Path, str], Path]
    ) -> None:
        write_file(
            tmp_project / "profiles" / "broken.yml",
            """
            name: broken
            validators: [requires-default-export, does-not-exist]
            """,
        )
        with pytest.raises(ConfigError, match="does-not-exist"):
            load_rule_set(tmp_project / "validators", tmp_project / "profiles")
