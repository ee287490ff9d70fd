"""Default configuration values and paths."""

from __future__ import annotations

from pathlib import Path

CONFIG_FILE_NAMES = [
    "offsetscope.yaml",
    "offsetscope.yml",
    ".offsetscope.yaml",
    ".offsetscope.yml",
]

CONFIG_SEARCH_PATHS = [
    Path.cwd(),
    Path.home() / ".config" / "offsetscope",
    Path.home(),
]

DEFAULT_CONFIDENCE_THRESHOLD = 0.85
DEFAULT_CHUNK_SIZE = 0x10000
DEFAULT_MAX_BACKTRACK_STEPS = 256
DEFAULT_THREADS = 4
DEFAULT_MAX_STRING_HITS = 16
DEFAULT_VALIDATOR_WINDOW = 128
