"""Structural validation and heuristic shape tests over instruction windows."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from offsetscope.arm64.classifier import FEATURES, INSN_SIZE, feature_mask, is_prologue, words
from offsetscope.errors import MemoryReadError
from offsetscope.memory.reader import MemoryReader

MIN_WINDOW = 4 * INSN_SIZE


def read_window(reader: MemoryReader, address: int, window: int) -> bytes | None:
    """Read up to ``window`` bytes, shrinking near the end of a region."""
    length = window
    while length >= MIN_WINDOW:
        try:
            return reader.read_bytes(address, length)
        except MemoryReadError:
            length //= 2
    return None


def _check_features(names: tuple[str, ...]) -> None:
    unknown = [n for n in names if n not in FEATURES]
    if unknown:
        raise ValueError(f"unknown instruction feature(s): {', '.join(unknown)}")


@dataclass(frozen=True)
class StructuralValidator:
    """Target-specific predicate over the first ``window`` bytes of a candidate.

    A candidate passes when every ``required`` feature occurs in the window
    and, if ``any_of`` is non-empty, at least one of those does too.
    """

    required: tuple[str, ...] = ("load",)
    any_of: tuple[str, ...] = ()
    window: int = 128
    require_prologue: bool = False

    def __post_init__(self) -> None:
        _check_features(self.required + self.any_of)
        if self.window < MIN_WINDOW or self.window % INSN_SIZE:
            raise ValueError(f"validator window must be a multiple of 4 and >= {MIN_WINDOW}")

    def features_at(self, reader: MemoryReader, address: int) -> set[str] | None:
        data = read_window(reader, address, self.window)
        if data is None:
            return None
        block = words(data)
        return {
            name for name in set(self.required + self.any_of) if feature_mask(block, name).any()
        }

    def __call__(self, reader: MemoryReader, address: int) -> bool:
        data = read_window(reader, address, self.window)
        if data is None:
            return False
        block = words(data)
        if self.require_prologue and not is_prologue(int(block[0])):
            return False
        if not all(feature_mask(block, name).any() for name in self.required):
            return False
        return not self.any_of or any(feature_mask(block, name).any() for name in self.any_of)


def _window_sums(flags: np.ndarray, width: int) -> np.ndarray:
    """Sum of ``flags[i:i+width]`` for every ``i`` (truncated at the end)."""
    n = len(flags)
    running = np.concatenate(([0], np.cumsum(flags, dtype=np.int64)))
    ends = np.minimum(np.arange(n) + width, n)
    return running[ends] - running[:n]


@dataclass(frozen=True)
class HeuristicShape:
    """Weak prologue signature: a store/load-pair word followed, within
    ``window`` bytes, by at least ``min_loads`` loads and ``min_compares``
    compares."""

    min_loads: int = 2
    min_compares: int = 1
    window: int = 64
    load_feature: str = "load"
    compare_feature: str = "compare_imm"

    def __post_init__(self) -> None:
        _check_features((self.load_feature, self.compare_feature))
        if self.window < INSN_SIZE or self.window % INSN_SIZE:
            raise ValueError("heuristic window must be a positive multiple of 4")

    def candidates(self, block: np.ndarray, limit: int | None = None) -> list[int]:
        """Word indices in ``block`` that satisfy the shape, below ``limit``."""
        if len(block) == 0:
            return []
        width = self.window // INSN_SIZE
        loads = _window_sums(feature_mask(block, self.load_feature), width)
        compares = _window_sums(feature_mask(block, self.compare_feature), width)
        hits = feature_mask(block, "prologue") & (loads >= self.min_loads) & (compares >= self.min_compares)
        indices = np.flatnonzero(hits)
        if limit is not None:
            indices = indices[indices < limit]
        return indices.tolist()

    def matches(self, data: bytes) -> bool:
        block = words(data[: self.window])
        return bool(self.candidates(block, limit=1))
