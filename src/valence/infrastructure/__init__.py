"""Infrastructure: target file collection and report formatting."""

from valence.infrastructure.files import DiskFileSource, collect_files
from valence.infrastructure.reporting import (
    format_json,
    format_override_stats,
    format_plan,
    format_porcelain,
    format_rich,
)

__all__ = [
    "DiskFileSource",
    "collect_files",
    "format_json",
    "format_override_stats",
    "format_plan",
    "format_porcelain",
    "format_rich",
]
