"""Bundled evaluator plugins, registered under their manifest names."""

from __future__ import annotations

BUILTIN_PLUGINS: dict[str, str] = {
    "naming-conventions": "valence.plugins.naming_conventions",
}
