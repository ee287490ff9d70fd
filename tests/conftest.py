"""Shared test fixtures."""

from __future__ import annotations

import pytest

from offsetscope.config.models import OffsetScopeConfig, ScanningConfig, TargetConfig
from offsetscope.memory.reader import SegmentedMemory
from offsetscope.memory.region import MemoryRegion
from offsetscope.symbols import Symbol, SymbolKind, SymbolTable


class Asm:
    """Little-endian AArch64 words for building synthetic images."""

    STP = 0xA9017BFD  # stp x29, x30, [sp, #16]
    STP_D = 0x6D0127E8  # stp d8, d9, [sp, #16]
    RET = 0xD65F03C0
    NOP = 0xD503201F
    LDR = 0xF9400400  # ldr x0, [x0, #8]
    LDRB = 0x39402001  # ldrb w1, [x0, #8]
    STR = 0xF9000401  # str x1, [x0, #8]
    STR_W = 0xB9000401  # str w1, [x0, #8]
    CMP = 0x7100041F  # cmp w0, #1
    MOV = 0xAA0103E0  # mov x0, x1

    @staticmethod
    def encode(*insns: int) -> bytes:
        return b"".join(i.to_bytes(4, "little") for i in insns)

    @staticmethod
    def bl(pc: int, target: int) -> int:
        return 0x94000000 | (((target - pc) >> 2) & 0x03FFFFFF)

    @staticmethod
    def b(pc: int, target: int) -> int:
        return 0x14000000 | (((target - pc) >> 2) & 0x03FFFFFF)

    @staticmethod
    def adrp(reg: int, pc: int, target: int) -> int:
        imm = ((target >> 12) - (pc >> 12)) & 0x1FFFFF
        return 0x90000000 | ((imm & 0x3) << 29) | ((imm >> 2) << 5) | reg

    @staticmethod
    def add_imm(rd: int, rn: int, imm12: int) -> int:
        return 0x91000000 | ((imm12 & 0xFFF) << 10) | (rn << 5) | rd

    @staticmethod
    def ldr_x(rt: int, rn: int, offset: int) -> int:
        return 0xF9400000 | (((offset // 8) & 0xFFF) << 10) | (rn << 5) | rt

    @classmethod
    def function(cls, *body: int, size: int = 64) -> list[int]:
        """Prologue + body + RET, NOP-padded to ``size`` bytes."""
        words = [cls.STP, *body, cls.RET]
        words += [cls.NOP] * (size // 4 - len(words))
        return words


@pytest.fixture
def asm() -> type[Asm]:
    return Asm


@pytest.fixture
def make_memory():
    """Build a SegmentedMemory from ``(start, words_or_bytes, protection)`` tuples."""

    def _make(*segments: tuple[int, list[int] | bytes, str]) -> SegmentedMemory:
        mapped = []
        for start, content, protection in segments:
            data = content if isinstance(content, bytes) else Asm.encode(*content)
            mapped.append((MemoryRegion.create(start, len(data), protection), data))
        return SegmentedMemory(mapped)

    return _make


@pytest.fixture
def pattern_image() -> SegmentedMemory:
    """A function at 0x2000_0000 whose body holds F9 ?? ?? ?? 39 ?? ?? ?? 94 at +0x40."""
    words = [Asm.STP, Asm.LDR, Asm.CMP] + [Asm.NOP] * 13
    words += [0x000000F9, 0x00000039, 0x00000094, Asm.RET]
    words += [Asm.NOP] * 12
    return SegmentedMemory.from_bytes(Asm.encode(*words), 0x2000_0000)


@pytest.fixture
def sample_symbols() -> SymbolTable:
    return SymbolTable(
        [
            Symbol("foo", 0x1000_0000, 0x40, SymbolKind.FUNCTION),
            Symbol("_lua_gettop", 0x1000_0100, 0x20, SymbolKind.FUNCTION),
            Symbol("luaL_checklstring", 0x1000_0200, 0x80, SymbolKind.FUNCTION),
            Symbol("DataModelVTable", 0x1000_8000, 0x100, SymbolKind.DATA),
        ]
    )


@pytest.fixture
def sample_config() -> OffsetScopeConfig:
    return OffsetScopeConfig(
        scanning=ScanningConfig(threads=2, chunk_size=0x100, confidence_threshold=0.8),
        targets=[
            TargetConfig(
                name="custom_loader",
                patterns=["F9 ?? ?? ?? 39 ?? ?? ?? 94"],
                required=["load"],
                any_of=["compare"],
            )
        ],
    )
