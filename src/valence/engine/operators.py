"""Operator registry: the fixed catalog of built-in matching primitives.

Every operator has the signature ``(subject, rule, context) -> OperatorOutcome``
where *subject* is the file content (content validators), the file name
(naming validators) or the directory listing (structure validators).
Operators are pure; a malformed parameter (e.g. a regex that does not
compile) raises and is turned into an internal-error violation by the
evaluator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Union

from valence.engine.models import OperatorOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping

    from valence.engine.definitions import RuleDefinition
    from valence.engine.models import EvaluationContext

Subject = Union[str, tuple[str, ...]]
OperatorFn = Callable[[Subject, "RuleDefinition", "EvaluationContext"], OperatorOutcome]

_EXCERPT_LIMIT = 120

_NAMING_CONVENTIONS: dict[str, re.Pattern[str]] = {
    "kebab-case": re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*(\.[a-z0-9]+)+$"),
    "camelCase": re.compile(r"^[a-z][a-zA-Z0-9]*(\.[a-z0-9]+)+$"),
    "PascalCase": re.compile(r"^[A-Z][a-zA-Z0-9]*(\.[a-z0-9]+)+$"),
    "snake_case": re.compile(r"^[a-z0-9]+(_[a-z0-9]+)*(\.[a-z0-9]+)+$"),
}


# ---------------------------------------------------------------------------
# Registry entry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OperatorSpec:
    """A registered operator and the rule parameters it needs.

    Each entry of *required* is either a parameter name or a tuple of
    alternatives of which at least one must be present.
    """

    fn: OperatorFn
    required: tuple[str | tuple[str, ...], ...] = ("value",)

    def missing_params(self, params: Mapping[str, Any]) -> list[str]:
        missing: list[str] = []
        for requirement in self.required:
            if isinstance(requirement, tuple):
                if not any(name in params for name in requirement):
                    missing.append(" or ".join(f"'{name}'" for name in requirement))
            elif requirement not in params:
                missing.append(f"'{requirement}'")
        return missing


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text(subject: Subject) -> str:
    if isinstance(subject, tuple):
        return "\n".join(subject)
    return subject


def _as_list(value: object) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _excerpt(text: str) -> str:
    stripped = text.strip()
    if len(stripped) > _EXCERPT_LIMIT:
        return stripped[:_EXCERPT_LIMIT]
    return stripped


def _locate(text: str, start: int) -> tuple[int, str]:
    """Return the 1-based line number and the stripped line containing *start*."""
    line_number = text.count("\n", 0, start) + 1
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", start)
    if line_end == -1:
        line_end = len(text)
    return line_number, _excerpt(text[line_start:line_end])


def _count_lines(text: str) -> int:
    return len(text.split("\n"))


# ---------------------------------------------------------------------------
# Content operators
# ---------------------------------------------------------------------------


def must_contain(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    needle = str(rule.params["value"])
    if needle.lower() in _text(subject).lower():
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"Missing required text '{needle}'")


def must_not_contain(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    needle = str(rule.params["value"])
    text = _text(subject)
    index = text.lower().find(needle.lower())
    if index == -1:
        return OperatorOutcome(passed=True)
    line, excerpt = _locate(text, index)
    return OperatorOutcome(
        passed=False,
        message=f"Forbidden text '{needle}' found",
        line=line,
        excerpt=excerpt,
    )


def matches_pattern(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    pattern = str(rule.params["value"])
    if re.search(pattern, _text(subject), re.MULTILINE):
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"Pattern '{pattern}' not found")


def must_not_match(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    pattern = str(rule.params["value"])
    text = _text(subject)
    match = re.search(pattern, text, re.MULTILINE)
    if match is None:
        return OperatorOutcome(passed=True)
    line, excerpt = _locate(text, match.start())
    return OperatorOutcome(
        passed=False,
        message=f"Forbidden pattern '{pattern}' matched",
        line=line,
        excerpt=excerpt,
    )


def all_of(subject: Subject, rule: RuleDefinition, context: EvaluationContext) -> OperatorOutcome:
    text = _text(subject)
    patterns = _as_list(rule.params["patterns"])
    missing = [p for p in patterns if not re.search(p, text, re.MULTILINE)]
    if not missing:
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"Patterns not found: {', '.join(missing)}")


def any_of(subject: Subject, rule: RuleDefinition, context: EvaluationContext) -> OperatorOutcome:
    text = _text(subject)
    patterns = _as_list(rule.params["patterns"])
    if any(re.search(p, text, re.MULTILINE) for p in patterns):
        return OperatorOutcome(passed=True)
    return OperatorOutcome(
        passed=False,
        message=f"None of the patterns matched: {', '.join(patterns)}",
    )


def contains_import(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    name = str(rule.params["value"])
    pattern = re.compile(rf"import.*{re.escape(name)}", re.IGNORECASE)
    if pattern.search(_text(subject)):
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"No import of '{name}'")


def line_count(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    count = _count_lines(_text(subject))
    minimum = rule.params.get("min")
    maximum = rule.params.get("max")
    if minimum is not None and count < int(minimum):
        return OperatorOutcome(passed=False, message=f"{count} lines (min {int(minimum)})")
    if maximum is not None and count > int(maximum):
        return OperatorOutcome(passed=False, message=f"{count} lines (max {int(maximum)})")
    return OperatorOutcome(passed=True)


def has_min_lines(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    count = _count_lines(_text(subject))
    minimum = int(rule.params["value"])
    if count >= minimum:
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"{count} lines (min {minimum})")


def has_max_lines(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    count = _count_lines(_text(subject))
    maximum = int(rule.params["value"])
    if count <= maximum:
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"{count} lines (max {maximum})")


# ---------------------------------------------------------------------------
# Path operators
# ---------------------------------------------------------------------------


def file_exists(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    """Check that the named entries exist in the directory under validation.

    For structure validators the directory listing is consulted; otherwise
    the names are looked up next to the file.
    """
    names = _as_list(rule.params["value"])
    if context.entries is not None:
        present = set(context.entries)
        missing = [name for name in names if name not in present]
    else:
        parent = (context.root / context.file_path).parent
        missing = [name for name in names if not (parent / name).exists()]
    if not missing:
        return OperatorOutcome(passed=True)
    return OperatorOutcome(passed=False, message=f"Missing required files: {', '.join(missing)}")


def has_extension(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    allowed = [ext.lower() for ext in _as_list(rule.params["value"])]
    name = context.file_name
    suffix = name[name.rfind(".") :].lower() if "." in name else ""
    if suffix in allowed:
        return OperatorOutcome(passed=True)
    return OperatorOutcome(
        passed=False,
        message=f"Extension '{suffix}' not in allowed list {allowed}",
    )


def filename_matches(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    pattern = str(rule.params["value"])
    if re.fullmatch(pattern, context.file_name):
        return OperatorOutcome(passed=True)
    return OperatorOutcome(
        passed=False,
        message=f"File name '{context.file_name}' does not match '{pattern}'",
    )


def follows_naming_convention(
    subject: Subject, rule: RuleDefinition, context: EvaluationContext
) -> OperatorOutcome:
    convention = str(rule.params["value"])
    regex = _NAMING_CONVENTIONS.get(convention)
    if regex is None:
        msg = (
            f"unknown naming convention '{convention}', "
            f"must be one of {sorted(_NAMING_CONVENTIONS)}"
        )
        raise ValueError(msg)
    if regex.match(context.file_name):
        return OperatorOutcome(passed=True)
    return OperatorOutcome(
        passed=False,
        message=f"File name '{context.file_name}' is not {convention}",
        excerpt=context.file_name,
    )


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

OPERATORS: Mapping[str, OperatorSpec] = {
    "mustContain": OperatorSpec(must_contain),
    "mustNotContain": OperatorSpec(must_not_contain),
    "matchesPattern": OperatorSpec(matches_pattern),
    "mustNotMatch": OperatorSpec(must_not_match),
    "allOf": OperatorSpec(all_of, required=("patterns",)),
    "anyOf": OperatorSpec(any_of, required=("patterns",)),
    "containsImport": OperatorSpec(contains_import),
    "lineCount": OperatorSpec(line_count, required=(("min", "max"),)),
    "hasMinLines": OperatorSpec(has_min_lines),
    "hasMaxLines": OperatorSpec(has_max_lines),
    "fileExists": OperatorSpec(file_exists),
    "hasExtension": OperatorSpec(has_extension),
    "filenameMatches": OperatorSpec(filename_matches),
    "followsNamingConvention": OperatorSpec(follows_naming_convention),
}


def invoke(
    operator_name: str,
    subject: Subject,
    rule: RuleDefinition,
    context: EvaluationContext,
) -> OperatorOutcome:
    """Run a registered operator.

    Unknown names were rejected at load time, so a ``KeyError`` here means
    the caller bypassed :func:`valence.engine.definitions.validate_operators`.
    """
    return OPERATORS[operator_name].fn(subject, rule, context)
