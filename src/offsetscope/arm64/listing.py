"""Capstone-backed disassembly listing for displaying resolved offsets."""

from __future__ import annotations

from dataclasses import dataclass

import capstone
from capstone import CS_MODE_ARM, Cs

from offsetscope.arm64.classifier import INSN_SIZE, features_of, word_at
from offsetscope.errors import MemoryReadError
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader

# capstone 6 renamed the architecture constant
_CS_ARCH = getattr(capstone, "CS_ARCH_AARCH64", getattr(capstone, "CS_ARCH_ARM64", None))


@dataclass(frozen=True)
class ListingLine:
    address: Address
    raw: bytes
    mnemonic: str
    op_str: str
    features: frozenset[str] = frozenset()

    @property
    def word(self) -> int:
        return word_at(self.raw)

    def __str__(self) -> str:
        return f"{self.address}: {self.raw.hex()}  {self.mnemonic} {self.op_str}".rstrip()


def disassemble(reader: MemoryReader, address: int, count: int = 16) -> list[ListingLine]:
    """Disassemble up to ``count`` instructions starting at ``address``.

    Stops early at the first unreadable byte; undecodable words are shown
    as data.
    """
    start = Address(address)
    data = b""
    for available in range(count, 0, -1):
        try:
            data = reader.read_bytes(start, available * INSN_SIZE)
            break
        except MemoryReadError:
            continue

    md = Cs(_CS_ARCH, CS_MODE_ARM)
    md.skipdata = True
    decoded = {insn.address: insn for insn in md.disasm(data, int(start))}

    lines: list[ListingLine] = []
    for offset in range(0, len(data), INSN_SIZE):
        pc = start + offset
        raw = data[offset : offset + INSN_SIZE]
        insn = decoded.get(int(pc))
        mnemonic, op_str = (insn.mnemonic, insn.op_str) if insn else (".word", f"{word_at(raw):#010x}")
        lines.append(ListingLine(pc, raw, mnemonic, op_str, frozenset(features_of(word_at(raw)))))
    return lines
