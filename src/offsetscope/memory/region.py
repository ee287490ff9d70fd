"""Memory range and region descriptors."""

from __future__ import annotations

from dataclasses import dataclass

from offsetscope.memory.address import Address

# ELF program header p_flags bits
PF_X = 0x1
PF_W = 0x2
PF_R = 0x4


@dataclass(frozen=True)
class Protection:
    readable: bool = True
    writable: bool = False
    executable: bool = False

    @classmethod
    def from_flags(cls, flags: int) -> Protection:
        return cls(
            readable=bool(flags & PF_R),
            writable=bool(flags & PF_W),
            executable=bool(flags & PF_X),
        )

    @classmethod
    def parse(cls, text: str) -> Protection:
        """Parse an ``rwx``-style string such as ``"r-x"``."""
        text = text.lower()
        return cls(readable="r" in text, writable="w" in text, executable="x" in text)

    def __str__(self) -> str:
        return (
            ("r" if self.readable else "-")
            + ("w" if self.writable else "-")
            + ("x" if self.executable else "-")
        )


@dataclass(frozen=True)
class MemoryRange:
    """Half-open address range ``[start, end)``."""

    start: Address
    end: Address

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", Address(self.start))
        object.__setattr__(self, "end", Address(self.end))
        if self.end < self.start:
            raise ValueError(f"invalid range {self.start}..{self.end}")

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, address: int) -> bool:
        return self.start <= address < self.end

    def overlaps(self, other: MemoryRange) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class MemoryRegion:
    range: MemoryRange
    protection: Protection
    name: str = ""

    @classmethod
    def create(cls, start: int, size: int, protection: str | Protection = "r-x", name: str = "") -> MemoryRegion:
        if isinstance(protection, str):
            protection = Protection.parse(protection)
        return cls(MemoryRange(Address(start), Address(start + size)), protection, name)

    @property
    def start(self) -> Address:
        return self.range.start

    @property
    def end(self) -> Address:
        return self.range.end

    @property
    def size(self) -> int:
        return self.range.size

    def contains(self, address: int) -> bool:
        return self.range.contains(address)

    @property
    def is_readable(self) -> bool:
        return self.protection.readable

    @property
    def is_writable(self) -> bool:
        return self.protection.writable

    @property
    def is_executable(self) -> bool:
        return self.protection.executable

    def __str__(self) -> str:
        label = f" {self.name}" if self.name else ""
        return f"{self.start}-{self.end} {self.protection}{label}"
