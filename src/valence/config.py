"""Project configuration: ``valence.yml`` at the project root."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

import yaml

from valence.engine.definitions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "valence.yml"
DEFAULT_EXCLUDE: tuple[str, ...] = (".git/**", "node_modules/**", ".venv/**", "__pycache__/**")


@dataclass(frozen=True)
class Config:
    """Run configuration, threaded explicitly into every evaluation context.

    Plugins read ``settings`` for their own options; nothing here is mutated
    after loading.
    """

    validators_dir: str = "validators"
    profiles_dir: str = "profiles"
    overrides_path: str = ".valence-overrides.json"
    confidence_threshold: float = 0.7
    apply_overrides: bool = True
    plugin_timeout: float = 10.0
    workers: int = 1
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE
    plugins: Mapping[str, str] = field(default_factory=dict)
    settings: Mapping[str, Any] = field(default_factory=dict)

    def with_overrides(self, **changes: Any) -> Config:
        """Return a copy with the non-``None`` *changes* applied (CLI flags)."""
        updated = replace(self, **{k: v for k, v in changes.items() if v is not None})
        _check_range(updated)
        return updated


def _check_range(config: Config) -> None:
    if not (0.0 <= config.confidence_threshold <= 1.0):
        msg = (
            "confidence_threshold must be between 0.0 and 1.0, "
            f"got {config.confidence_threshold}"
        )
        raise ConfigError(msg)
    if config.workers < 1:
        msg = f"workers must be at least 1, got {config.workers}"
        raise ConfigError(msg)
    if config.plugin_timeout <= 0:
        msg = f"plugin_timeout must be positive, got {config.plugin_timeout}"
        raise ConfigError(msg)


def parse_config(data: Mapping[str, Any]) -> Config:
    """Build a Config from a decoded mapping, keeping defaults for missing keys."""
    known = {f.name for f in fields(Config)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))

    kwargs: dict[str, Any] = {}
    try:
        for key in ("validators_dir", "profiles_dir", "overrides_path"):
            if key in data:
                kwargs[key] = str(data[key])
        if "confidence_threshold" in data:
            kwargs["confidence_threshold"] = float(data["confidence_threshold"])
        if "apply_overrides" in data:
            kwargs["apply_overrides"] = bool(data["apply_overrides"])
        if "plugin_timeout" in data:
            kwargs["plugin_timeout"] = float(data["plugin_timeout"])
        if "workers" in data:
            kwargs["workers"] = int(data["workers"])
    except (TypeError, ValueError) as exc:
        msg = f"{CONFIG_FILENAME}: invalid value: {exc}"
        raise ConfigError(msg) from exc

    if "exclude" in data:
        exclude = data["exclude"]
        if not isinstance(exclude, list):
            msg = f"{CONFIG_FILENAME}: 'exclude' must be a list"
            raise ConfigError(msg)
        kwargs["exclude"] = tuple(str(e) for e in exclude)

    for key in ("plugins", "settings"):
        if key in data:
            section = data[key]
            if not isinstance(section, dict):
                msg = f"{CONFIG_FILENAME}: '{key}' must be a mapping"
                raise ConfigError(msg)
            kwargs[key] = dict(section)

    config = Config(**kwargs)
    _check_range(config)
    return config


def load_config(project_root: Path, config_path: Path | None = None) -> Config:
    """Load ``valence.yml``; a missing file yields the defaults.

    Raises ``ConfigError`` when the file exists but is unreadable, not
    well-formed YAML, not a mapping, or holds out-of-range values.
    """
    path = config_path or project_root / CONFIG_FILENAME
    if not path.is_file():
        return Config()

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Failed to read {path}: {exc}"
        raise ConfigError(msg) from exc

    if data is None:
        return Config()
    if not isinstance(data, dict):
        msg = f"{path} must be a YAML mapping"
        raise ConfigError(msg)
    return parse_config(data)
