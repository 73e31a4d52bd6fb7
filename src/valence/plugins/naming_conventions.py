"""Naming conventions plugin for JavaScript/TypeScript front-end sources.

Rule parameters (all optional, all booleans):

- ``checkFileNaming``: components under ``components/`` must be
  ``PascalCase.tsx`` (error); hook, utility, type and test file names
  produce warnings.
- ``validateFunctionNaming``: functions should be camelCase.
- ``validateVariableNaming``: variables should be camelCase; boolean
  variables should start with is/has/can/should.
- ``validateClassNaming``: classes and interfaces should be PascalCase.
- ``validateConstantNaming``: all-caps constants should be UPPER_SNAKE_CASE.

Only file naming can fail the rule; everything else is reported as warnings.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from valence.engine.definitions import RuleDefinition
    from valence.engine.models import EvaluationContext

_PASCAL_TSX = re.compile(r"^[A-Z][a-zA-Z0-9]*\.tsx$")
_CAMEL = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_CAMEL_TS = re.compile(r"^[a-z][a-zA-Z0-9]*\.ts$")
_PASCAL = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_UPPER_SNAKE = re.compile(r"^[A-Z][A-Z0-9_]*$")

_FUNCTION_DECL = re.compile(
    r"\bfunction\s+(\w+)\s*\(|\b(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s*)?\("
)
_VARIABLE_DECL = re.compile(r"\b(?:const|let|var)\s+(\w+)")
_CLASS_DECL = re.compile(r"\b(?:class|interface)\s+(\w+)")
_CONSTANT_DECL = re.compile(r"\bconst\s+([A-Z_][A-Z0-9_]*)\s*=")
_BOOLEAN_PREFIX = re.compile(r"^(is|has|can|should)")


def check_file_naming(file_path: str) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for the file name at *file_path*."""
    errors: list[str] = []
    warnings: list[str] = []
    parts = file_path.split("/")
    file_name = parts[-1]
    dirs = parts[:-1]

    if file_name.endswith(".tsx") and "components" in dirs and not _PASCAL_TSX.match(file_name):
        errors.append(f"Component file '{file_name}' should be PascalCase.tsx")

    stem = file_name.split(".", 1)[0]
    if "hooks" in dirs and not stem.startswith("use"):
        warnings.append(f"Hook file '{file_name}' should start with 'use'")

    if "utils" in dirs and file_name.endswith(".ts") and not _CAMEL_TS.match(file_name):
        warnings.append(f"Utility file '{file_name}' should be camelCase.ts")

    if file_name.endswith(".types.ts"):
        base = file_name[: -len(".types.ts")]
        if not _CAMEL.match(base):
            warnings.append(f"Type file '{file_name}' should be camelCase.types.ts")

    if "__tests__" in dirs and ".test." not in file_name and ".spec." not in file_name:
        warnings.append(f"Test file '{file_name}' should use a .test. or .spec. suffix")

    return errors, warnings


def check_function_naming(content: str) -> list[str]:
    warnings: list[str] = []
    for match in _FUNCTION_DECL.finditer(content):
        name = match.group(1) or match.group(2)
        if not _CAMEL.match(name) and not _PASCAL.match(name):
            warnings.append(f"Function '{name}' should be camelCase")
        if "handle" in name and not name.startswith("handle"):
            warnings.append(f"Handler function '{name}' should start with 'handle'")
    return warnings


def check_variable_naming(content: str) -> list[str]:
    warnings: list[str] = []
    for match in _VARIABLE_DECL.finditer(content):
        name = match.group(1)
        if _UPPER_SNAKE.match(name):
            continue
        if not _CAMEL.match(name):
            warnings.append(f"Variable '{name}' should be camelCase")
        elif not _BOOLEAN_PREFIX.match(name) and re.search(
            rf"\b{re.escape(name)}\s*=\s*(true|false)\b", content
        ):
            warnings.append(f"Boolean variable '{name}' should start with is/has/can/should")
    return warnings


def check_class_naming(content: str) -> list[str]:
    return [
        f"Class or interface '{match.group(1)}' should be PascalCase"
        for match in _CLASS_DECL.finditer(content)
        if not _PASCAL.match(match.group(1))
    ]


def check_constant_naming(content: str) -> list[str]:
    return [
        f"Constant '{match.group(1)}' should be UPPER_SNAKE_CASE"
        for match in _CONSTANT_DECL.finditer(content)
        if not _UPPER_SNAKE.match(match.group(1))
    ]


def evaluate(content: object, rule: RuleDefinition, context: EvaluationContext) -> dict[str, Any]:
    params = rule.params
    text = context.content or ""
    errors: list[str] = []
    warnings: list[str] = []

    if params.get("checkFileNaming"):
        file_errors, file_warnings = check_file_naming(context.file_path)
        errors.extend(file_errors)
        warnings.extend(file_warnings)
    if params.get("validateFunctionNaming"):
        warnings.extend(check_function_naming(text))
    if params.get("validateVariableNaming"):
        warnings.extend(check_variable_naming(text))
    if params.get("validateClassNaming"):
        warnings.extend(check_class_naming(text))
    if params.get("validateConstantNaming"):
        warnings.extend(check_constant_naming(text))

    if errors:
        return {
            "passed": False,
            "message": f"Naming convention validation failed: {'; '.join(errors)}",
            "warnings": warnings,
            "suggestions": ["Rename the file to PascalCase, e.g. 'UserCard.tsx'"],
            "metadata": {"excerpt": context.file_name},
        }
    return {"passed": True, "message": "Naming convention validation passed", "warnings": warnings}
