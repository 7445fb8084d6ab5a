"""Load and save analysis settings from the CompileGraph TOML config file."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config

logger = logging.getLogger(__name__)


@dataclass
class AnalysisSettings:
    """Tunables for one analysis session."""

    snippet_padding: int = config.SNIPPET_PADDING
    # None means "bounded by the number of units in the graph"
    max_path_depth: Optional[int] = None
    max_paths: int = config.MAX_PATHS
    background_cache: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = config_file or config.CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_settings(config_file: Optional[Path] = None) -> AnalysisSettings:
    """Build :class:`AnalysisSettings` from the ``[analysis]`` section.

    Unknown keys are ignored; missing keys keep their defaults.
    """
    section = load_full_config(config_file).get("analysis", {})
    settings = AnalysisSettings()

    padding = section.get("snippet_padding")
    if isinstance(padding, int) and padding >= 0:
        settings.snippet_padding = padding

    depth = section.get("max_path_depth")
    if isinstance(depth, int) and depth > 0:
        settings.max_path_depth = depth

    max_paths = section.get("max_paths")
    if isinstance(max_paths, int) and max_paths > 0:
        settings.max_paths = max_paths

    background = section.get("background_cache")
    if isinstance(background, bool):
        settings.background_cache = background

    return settings


def save_settings(settings: AnalysisSettings, config_file: Optional[Path] = None) -> bool:
    """Write *settings* to the ``[analysis]`` section, keeping other sections."""
    path = config_file or config.CONFIG_FILE
    full = load_full_config(path)
    full["analysis"] = settings.to_dict()
    try:
        if config_file is None:
            config.ensure_base_dirs()
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", path, exc)
        return False
