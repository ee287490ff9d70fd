"""Chunked pattern scanning through a MemoryReader."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from offsetscope.errors import MemoryReadError, MultipleMatchesError, PatternScanFailedError
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader
from offsetscope.memory.region import MemoryRegion
from offsetscope.pattern.pattern import Pattern
from offsetscope.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 0x10000


class PatternMatcher:
    """Scans address ranges for :class:`Pattern` matches.

    Ranges are read in ``chunk_size`` pieces that overlap by
    ``len(pattern) - 1`` bytes, so matches straddling a chunk boundary are
    found exactly once. A chunk that cannot be read is skipped; only a range
    in which *every* chunk fails raises :class:`PatternScanFailedError`.
    """

    def __init__(self, reader: MemoryReader, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._reader = reader
        self._chunk_size = chunk_size

    @property
    def reader(self) -> MemoryReader:
        return self._reader

    def _chunks(self, pattern_len: int, start: Address, end: Address) -> Iterator[tuple[Address, bytes | None]]:
        chunk = max(self._chunk_size, pattern_len)
        step = chunk - (pattern_len - 1)
        cursor = start
        while cursor < end and end - cursor >= pattern_len:
            length = min(chunk, end - cursor)
            try:
                yield cursor, self._reader.read_bytes(cursor, length)
            except MemoryReadError as exc:
                log.debug("chunk_unreadable", address=str(cursor), length=length, error=str(exc))
                yield cursor, None
            cursor = cursor + step

    def scan_range(
        self,
        pattern: Pattern | str,
        start: int,
        end: int,
        first_only: bool = False,
    ) -> list[Address]:
        pattern = _compile(pattern)
        start, end = Address(start), Address(end)
        matches: list[Address] = []
        chunks = failures = 0

        for chunk_start, data in self._chunks(len(pattern), start, end):
            chunks += 1
            if data is None:
                failures += 1
                continue
            if first_only:
                offset = pattern.find_in(data)
                if offset is not None:
                    return [chunk_start + offset]
            else:
                matches.extend(chunk_start + offset for offset in pattern.find_all_in(data))

        if chunks and failures == chunks:
            raise PatternScanFailedError(f"range {start}-{end} is unreadable ({chunks} chunk(s))")
        return matches

    def find_first(self, pattern: Pattern | str, start: int, end: int) -> Address | None:
        """First match in ``[start, end)``, or None if the range holds no match."""
        hits = self.scan_range(pattern, start, end, first_only=True)
        return hits[0] if hits else None

    def find_all(self, pattern: Pattern | str, start: int, end: int) -> list[Address]:
        return self.scan_range(pattern, start, end)

    def find_unique(self, pattern: Pattern | str, start: int, end: int) -> Address | None:
        hits = self.scan_range(pattern, start, end)
        if len(hits) > 1:
            raise MultipleMatchesError(str(pattern), len(hits))
        return hits[0] if hits else None

    def find_in_regions(
        self,
        pattern: Pattern | str,
        regions: Iterable[MemoryRegion],
        first_only: bool = False,
        limit: int | None = None,
    ) -> list[Address]:
        """Scan every readable region; fail only if all of them are unreadable."""
        pattern = _compile(pattern)
        matches: list[Address] = []
        scanned = failed = 0

        for region in regions:
            if not region.is_readable:
                continue
            scanned += 1
            try:
                hits = self.scan_range(pattern, region.start, region.end, first_only=first_only)
            except PatternScanFailedError as exc:
                failed += 1
                log.warning("region_scan_failed", region=str(region), error=str(exc))
                continue
            matches.extend(hits)
            if first_only and matches:
                return matches[:1]
            if limit is not None and len(matches) >= limit:
                return matches[:limit]

        if scanned and failed == scanned:
            raise PatternScanFailedError(f"all {scanned} region(s) unreadable for {pattern}")
        return matches

    def find_string(
        self,
        text: str | bytes,
        regions: Iterable[MemoryRegion] | None = None,
        limit: int = 16,
    ) -> list[Address]:
        """Locate occurrences of a string literal in readable memory."""
        needle = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        if regions is None:
            regions = self._reader.get_regions()
        return self.find_in_regions(Pattern.from_bytes(needle, name=repr(text)), regions, limit=limit)


def _compile(pattern: Pattern | str) -> Pattern:
    return pattern if isinstance(pattern, Pattern) else Pattern.from_hex(pattern)
