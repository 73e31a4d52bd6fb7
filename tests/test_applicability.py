"""Tests for valence.engine.applicability."""

from __future__ import annotations

from valence.engine.applicability import applies
from valence.engine.definitions import RuleDefinition, ValidatorDefinition


def _validator(pattern: str) -> ValidatorDefinition:
    return ValidatorDefinition(
        name="v",
        validation_type="content",
        file_pattern=pattern,
        rules=(RuleDefinition(rule_id="r", operator="mustContain", params={"value": "x"}),),
    )


class TestApplies:
    """Tests for applies()."""

    def test_extension_pattern(self) -> None:
        validator = _validator(r".*\.js$")
        assert applies(validator, "src/index.js")
        assert not applies(validator, "src/index.ts")
        assert not applies(validator, "src/index.json")

    def test_pattern_is_searched_not_anchored(self) -> None:
        validator = _validator("components/")
        assert applies(validator, "src/components/Button.tsx")
        assert not applies(validator, "src/hooks/useThing.ts")

    def test_match_all(self) -> None:
        validator = _validator(".*")
        assert applies(validator, "README.md")
        assert applies(validator, "a/b/c/d.txt")

    def test_is_deterministic(self) -> None:
        validator = _validator(r"\.py$")
        assert [applies(validator, "x.py") for _ in range(3)] == [True, True, True]
