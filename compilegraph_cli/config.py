"""Configuration paths and analysis defaults for CompileGraph."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("COMPILEGRAPH_HOME", str(Path.home() / ".compilegraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# .exs scripts are not compiled into the project
SOURCE_EXTENSIONS = {".ex"}
SKIP_DIRS = {
    "_build", "deps", "node_modules", ".git", ".elixir_ls",
    "cover", "doc", "priv", "tmp", ".compilegraph",
}

# Lines of context shown around each cause
SNIPPET_PADDING = 5
# Upper bound on search expansions while finding recompile paths of one vertex
MAX_PATHS = 200_000


def ensure_base_dirs() -> None:
    """Create the base directory for local settings if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
