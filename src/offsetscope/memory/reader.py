"""Memory-reader capability interface and an immutable segmented implementation."""

from __future__ import annotations

import bisect
import struct
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from offsetscope.errors import MemoryReadError
from offsetscope.memory.address import Address
from offsetscope.memory.region import MemoryRegion, Protection


@runtime_checkable
class MemoryReader(Protocol):
    """Read-only view of a binary image.

    Implementations must be shareable across threads: no read may depend on
    or mutate a cursor.
    """

    def read_bytes(self, address: int, length: int) -> bytes: ...

    def read_u8(self, address: int) -> int: ...

    def read_u16(self, address: int) -> int: ...

    def read_u32(self, address: int) -> int: ...

    def read_u64(self, address: int) -> int: ...

    def get_base_address(self) -> Address: ...

    def get_regions(self) -> list[MemoryRegion]: ...


class SegmentedMemory:
    """A :class:`MemoryReader` over a fixed set of mapped segments.

    Segment contents shorter than their region are zero-filled (like
    ``.bss``). Reads must fall entirely inside one readable region.
    """

    def __init__(
        self,
        segments: Iterable[tuple[MemoryRegion, bytes]],
        base_address: int | None = None,
    ) -> None:
        ordered = sorted(segments, key=lambda seg: seg[0].start)
        for (prev, _), (cur, _) in zip(ordered, ordered[1:]):
            if prev.range.overlaps(cur.range):
                raise ValueError(f"overlapping segments: {prev} and {cur}")

        self._regions: tuple[MemoryRegion, ...] = tuple(region for region, _ in ordered)
        self._data: tuple[bytes, ...] = tuple(
            bytes(data[: region.size]).ljust(region.size, b"\x00") for region, data in ordered
        )
        self._starts: list[int] = [int(region.start) for region in self._regions]

        if base_address is None:
            base_address = self._regions[0].start if self._regions else 0
        self._base = Address(base_address)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        base_address: int,
        protection: str | Protection = "r-x",
        name: str = "image",
    ) -> SegmentedMemory:
        """Map a flat blob at ``base_address`` as a single region."""
        region = MemoryRegion.create(base_address, len(data), protection, name)
        return cls([(region, data)], base_address=base_address)

    def _locate(self, address: int) -> int | None:
        idx = bisect.bisect_right(self._starts, int(address)) - 1
        if idx < 0 or not self._regions[idx].contains(address):
            return None
        return idx

    def region_at(self, address: int) -> MemoryRegion | None:
        idx = self._locate(address)
        return None if idx is None else self._regions[idx]

    def contains(self, address: int) -> bool:
        return self._locate(address) is not None

    def read_bytes(self, address: int, length: int) -> bytes:
        if length < 0:
            raise ValueError("length must be non-negative")
        idx = self._locate(address)
        if idx is None:
            raise MemoryReadError(address, length)
        region = self._regions[idx]
        if not region.is_readable:
            raise MemoryReadError(address, length, "region not readable")
        offset = int(address) - int(region.start)
        if offset + length > region.size:
            raise MemoryReadError(address, length, f"crosses end of region {region.name or region.start}")
        return self._data[idx][offset : offset + length]

    def _unpack(self, fmt: str, address: int) -> int:
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self.read_bytes(address, size))[0]

    def read_u8(self, address: int) -> int:
        return self._unpack("<B", address)

    def read_u16(self, address: int) -> int:
        return self._unpack("<H", address)

    def read_u32(self, address: int) -> int:
        return self._unpack("<I", address)

    def read_u64(self, address: int) -> int:
        return self._unpack("<Q", address)

    def read_c_string(self, address: int, max_length: int = 256) -> bytes | None:
        """Return the NUL-terminated byte string at ``address`` (without the NUL)."""
        idx = self._locate(address)
        if idx is None or not self._regions[idx].is_readable:
            return None
        data = self._data[idx]
        offset = int(address) - int(self._regions[idx].start)
        end = data.find(b"\x00", offset, offset + max_length)
        if end == -1:
            return None
        return data[offset:end]

    def get_base_address(self) -> Address:
        return self._base

    def get_regions(self) -> list[MemoryRegion]:
        return list(self._regions)

    def executable_regions(self) -> list[MemoryRegion]:
        return [r for r in self._regions if r.is_executable and r.is_readable]

    def __repr__(self) -> str:
        return f"SegmentedMemory(base={self._base}, regions={len(self._regions)})"
