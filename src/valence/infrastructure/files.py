"""Target file collection and disk access for the evaluator."""

from __future__ import annotations

import fnmatch
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "**/*"


def _excluded(rel_path: str, exclude: Iterable[str]) -> bool:
    """Return True if *rel_path* matches an exclude glob.

    A ``name/**`` pattern also excludes a directory called *name* at any depth.
    """
    parents = rel_path.split("/")[:-1]
    for pattern in exclude:
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if pattern.endswith("/**"):
            dir_pattern = pattern[:-3]
            if any(fnmatch.fnmatch(part, dir_pattern) for part in parents):
                return True
    return False


def collect_files(
    root: Path,
    patterns: Iterable[str] = (DEFAULT_PATTERN,),
    *,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Expand glob *patterns* under *root* into sorted relative posix file paths.

    Only regular files are returned.  Paths matching any *exclude* glob, or
    lying under an excluded directory, are skipped.
    """
    exclude = tuple(exclude)
    seen: set[str] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            if rel in seen or _excluded(rel, exclude):
                continue
            seen.add(rel)
    files = sorted(seen)
    logger.debug("Collected %d files under %s", len(files), root)
    return files


class DiskFileSource:
    """Reads target files relative to a project root."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def read_text(self, file_path: str) -> str:
        return (self.root / file_path).read_text(encoding="utf-8")

    def is_dir(self, file_path: str) -> bool:
        return (self.root / file_path).is_dir()

    def list_dir(self, dir_path: str) -> tuple[str, ...]:
        directory = self.root / dir_path
        return tuple(sorted(entry.name for entry in directory.iterdir()))
