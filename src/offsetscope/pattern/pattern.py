"""Compiled byte patterns with full-byte wildcards."""

from __future__ import annotations

import re
from dataclasses import dataclass

import numpy as np

from offsetscope.errors import InvalidPatternError

WILDCARD_TOKENS = frozenset({"?", "??"})
_HEX_BYTE = re.compile(r"^[0-9A-Fa-f]{2}$")


@dataclass(frozen=True)
class Pattern:
    """An ordered sequence of ``(byte, is_wildcard)`` elements.

    ``?`` and ``??`` both denote a wildcard for a whole byte. A pattern made
    only of wildcards is legal and matches at every position.
    """

    data: bytes
    mask: tuple[bool, ...]  # True where the byte must match
    name: str = ""

    def __post_init__(self) -> None:
        if len(self.data) == 0:
            raise InvalidPatternError("pattern must contain at least one byte")
        if len(self.data) != len(self.mask):
            raise InvalidPatternError("pattern bytes and mask differ in length")

    @classmethod
    def from_hex(cls, text: str, name: str = "") -> Pattern:
        """Compile whitespace-separated hex byte pairs, e.g. ``"F9 ?? ?? ?? 94"``."""
        data = bytearray()
        mask: list[bool] = []
        for token in text.split():
            if token in WILDCARD_TOKENS:
                data.append(0)
                mask.append(False)
            elif _HEX_BYTE.match(token):
                data.append(int(token, 16))
                mask.append(True)
            else:
                raise InvalidPatternError(f"invalid pattern token {token!r} in {text!r}")
        if not data:
            raise InvalidPatternError(f"empty pattern {text!r}")
        return cls(bytes(data), tuple(mask), name)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "") -> Pattern:
        return cls(bytes(data), (True,) * len(data), name)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def is_literal(self) -> bool:
        return all(self.mask)

    def elements(self) -> list[tuple[int, bool]]:
        return [(byte, not keep) for byte, keep in zip(self.data, self.mask)]

    def to_hex(self) -> str:
        return " ".join(f"{b:02X}" if keep else "??" for b, keep in zip(self.data, self.mask))

    def __str__(self) -> str:
        return self.to_hex()

    def matches_at(self, buffer: bytes, offset: int) -> bool:
        if offset < 0 or offset + len(self.data) > len(buffer):
            return False
        return all(
            not keep or buffer[offset + i] == byte
            for i, (byte, keep) in enumerate(zip(self.data, self.mask))
        )

    def find_all_in(self, buffer: bytes) -> list[int]:
        """Every offset in ``buffer`` where the pattern matches."""
        if self.is_literal:
            return _find_literal(buffer, self.data)

        candidates = len(buffer) - len(self.data) + 1
        if candidates <= 0:
            return []
        view = np.frombuffer(buffer, dtype=np.uint8)
        hits = np.ones(candidates, dtype=bool)
        for i, (byte, keep) in enumerate(zip(self.data, self.mask)):
            if keep:
                hits &= view[i : i + candidates] == byte
        return np.flatnonzero(hits).tolist()

    def find_in(self, buffer: bytes) -> int | None:
        """First matching offset in ``buffer``, or None."""
        if self.is_literal:
            pos = buffer.find(self.data)
            return None if pos == -1 else pos
        hits = self.find_all_in(buffer)
        return hits[0] if hits else None


def _find_literal(buffer: bytes, needle: bytes) -> list[int]:
    hits: list[int] = []
    pos = buffer.find(needle)
    while pos != -1:
        hits.append(pos)
        pos = buffer.find(needle, pos + 1)
    return hits
