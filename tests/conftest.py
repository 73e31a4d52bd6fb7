"""Shared test fixtures for Valence."""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING, Any

import pytest

from valence.config import Config
from valence.engine.models import EvaluationContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


class MemorySource:
    """In-memory FileSource: relative posix path -> file content."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = files

    def read_text(self, file_path: str) -> str:
        if file_path not in self.files:
            raise FileNotFoundError(file_path)
        return self.files[file_path]

    def is_dir(self, file_path: str) -> bool:
        return any(p.startswith(file_path + "/") for p in self.files)

    def list_dir(self, dir_path: str) -> tuple[str, ...]:
        prefix = "" if dir_path == "." else dir_path + "/"
        names = {p[len(prefix) :].split("/")[0] for p in self.files if p.startswith(prefix)}
        return tuple(sorted(names))


@pytest.fixture()
def memory_source() -> type[MemorySource]:
    """Return the in-memory FileSource class."""
    return MemorySource


@pytest.fixture()
def make_context(tmp_path: Path) -> Callable[..., EvaluationContext]:
    """Factory for EvaluationContext values rooted at tmp_path."""

    def _make(
        file_path: str = "src/index.js",
        *,
        content: str | None = None,
        validation_type: str = "content",
        entries: tuple[str, ...] | None = None,
        params: dict[str, Any] | None = None,
        config: Config | None = None,
    ) -> EvaluationContext:
        return EvaluationContext(
            file_path=file_path,
            validation_type=validation_type,
            root=tmp_path,
            params=params or {},
            config=config or Config(),
            content=content,
            entries=entries,
        )

    return _make


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return path


@pytest.fixture()
def write_file() -> Callable[[Path, str], Path]:
    """Write dedented text to a path, creating parent directories."""
    return write


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create a small JS project with two validators and one profile.

    ``src/index.js`` passes both validators; ``src/util.js`` fails both.
    """
    project = tmp_path / "proj"
    write(
        project / "validators" / "requires-default-export.yml",
        r"""
        name: requires-default-export
        description: Modules must export a default
        type: content
        filePattern: '.*\.js$'
        rules:
          - id: default-export
            operator: mustContain
            value: export default
            message: Module has no default export
        """,
    )
    write(
        project / "validators" / "no-console.yml",
        r"""
        name: no-console
        type: content
        filePattern: '\.js$'
        severity: warning
        rules:
          - id: no-console-log
            operator: mustNotContain
            value: console.log
        """,
    )
    write(
        project / "profiles" / "default.yml",
        """
        name: default
        description: Everything
        validators:
          - requires-default-export
          - no-console
        """,
    )
    write(project / "src" / "index.js", "import x from './util';\nexport default x;\n")
    write(project / "src" / "util.js", "const util = 1;\nconsole.log(util);\n")
    write(project / "README.md", "# demo\n")
    return project
