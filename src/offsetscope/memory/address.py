"""Opaque 64-bit linear address with offset arithmetic."""

from __future__ import annotations

ADDRESS_BITS = 64
_MASK = (1 << ADDRESS_BITS) - 1


class Address(int):
    """A 64-bit linear address.

    Adding or subtracting an integer offset yields another ``Address``
    (wrapping at 64 bits); subtracting two addresses yields the plain
    integer distance between them. Ordering and hashing are those of the
    underlying integer, so addresses work directly as dict keys.
    """

    __slots__ = ()

    def __new__(cls, value: int = 0) -> Address:
        return super().__new__(cls, int(value) & _MASK)

    def __add__(self, offset: object) -> Address:
        if not isinstance(offset, int):
            return NotImplemented
        return Address(int(self) + int(offset))

    __radd__ = __add__

    def __sub__(self, other: object) -> Address | int:  # type: ignore[override]
        if isinstance(other, Address):
            return int(self) - int(other)
        if not isinstance(other, int):
            return NotImplemented
        return Address(int(self) - int(other))

    def __repr__(self) -> str:
        return f"Address({int(self):#x})"

    def __str__(self) -> str:
        return f"{int(self):#x}"

    def __format__(self, spec: str) -> str:
        return format(int(self), spec) if spec else str(self)

    def align_down(self, alignment: int) -> Address:
        return Address(int(self) - int(self) % alignment)

    def align_up(self, alignment: int) -> Address:
        remainder = int(self) % alignment
        return self if remainder == 0 else Address(int(self) + alignment - remainder)

    def page(self, page_size: int = 0x1000) -> Address:
        return self.align_down(page_size)

    @classmethod
    def parse(cls, text: str) -> Address:
        """Parse ``0x``-prefixed hex, plain decimal, or underscore-grouped text."""
        cleaned = text.strip().replace("_", "").replace("`", "")
        return cls(int(cleaned, 0))
