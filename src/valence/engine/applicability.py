"""File applicability: decide whether a validator's filePattern covers a path."""

from __future__ import annotations

import functools
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from valence.engine.definitions import ValidatorDefinition


@functools.lru_cache(maxsize=512)
def _compiled(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def applies(validator: ValidatorDefinition, file_path: str) -> bool:
    """Return True if *validator* applies to the relative posix *file_path*.

    The pattern is searched, not anchored.  Patterns were already compiled
    once at load time, so this never raises.
    """
    return _compiled(validator.file_pattern).search(file_path) is not None
