"""Bit-mask classification of raw little-endian ARM64 instruction words.

Only the prologue and return tests drive boundary location. The remaining
shape features are coarse opcode-class tests used by structural validators
and by the cross-reference builder; none of them interpret operands beyond
what the decoders below extract.
"""

from __future__ import annotations

import numpy as np

INSN_SIZE = 4

# name -> alternatives of (mask, value); a word has the feature if any matches
FEATURES: dict[str, tuple[tuple[int, int], ...]] = {
    "prologue": ((0x7F800000, 0x29000000), (0x7F800000, 0x6D000000)),  # STP/LDP pair class
    "return": ((0xFFFFFC1F, 0xD65F0000),),  # RET Xn
    "load": ((0xFFC00000, 0xF9400000),),  # LDR Xt, [Xn, #imm]
    "store_word": ((0xFFC00000, 0xB9000000),),  # STR Wt, [Xn, #imm]
    "load_word": ((0xFFC00000, 0xB9400000),),  # LDR Wt, [Xn, #imm]
    "load_byte": ((0xFFC00000, 0x39400000),),  # LDRB Wt, [Xn, #imm]
    "store": ((0xFFC00000, 0xF9000000),),  # STR Xt, [Xn, #imm]
    "byte_access": ((0xFF000000, 0x39000000),),  # LDRB / STRB
    "compare": ((0x7F000000, 0x71000000), (0x7F000000, 0x6B000000)),  # SUBS imm / reg
    "compare_imm": ((0x7F000000, 0x71000000),),
    "call": ((0xFC000000, 0x94000000),),  # BL
    "branch": ((0xFC000000, 0x14000000),),  # B
    "cond_branch": ((0xFF000010, 0x54000000),),  # B.cond
    "test_branch": ((0x7E000000, 0x34000000),),  # CBZ / CBNZ
    "null_check": ((0xFF000000, 0xB4000000),),  # CBZ Xt
    "adrp": ((0x9F000000, 0x90000000),),
    "add_imm": ((0xFF800000, 0x91000000),),  # ADD Xd, Xn, #imm
    "sub_sp": ((0xFF0003FF, 0xD10003FF),),  # SUB SP, SP, #imm
    "mov_wide": ((0x7F800000, 0x52800000), (0x7F800000, 0x72800000)),  # MOVZ / MOVK
    "float_op": ((0xFF000000, 0x1E000000),),
}


def word_at(data: bytes, offset: int = 0) -> int:
    return int.from_bytes(data[offset : offset + INSN_SIZE], "little")


def words(data: bytes) -> np.ndarray:
    """View ``data`` as little-endian 32-bit words, ignoring a ragged tail."""
    usable = len(data) - len(data) % INSN_SIZE
    return np.frombuffer(data[:usable], dtype="<u4")


def is_prologue(insn: int) -> bool:
    masked = insn & 0x7F800000
    return masked == 0x29000000 or masked == 0x6D000000


def is_return(insn: int) -> bool:
    return (insn & 0xFFFFFC1F) == 0xD65F0000


def has_feature(insn: int, feature: str) -> bool:
    try:
        alternatives = FEATURES[feature]
    except KeyError:
        raise KeyError(f"unknown instruction feature {feature!r}") from None
    return any((insn & mask) == value for mask, value in alternatives)


def feature_mask(block: np.ndarray, feature: str) -> np.ndarray:
    """Vectorised :func:`has_feature` over an array of instruction words."""
    alternatives = FEATURES[feature]
    result = np.zeros(block.shape, dtype=bool)
    for mask, value in alternatives:
        result |= (block & np.uint32(mask)) == np.uint32(value)
    return result


def features_of(insn: int) -> set[str]:
    return {name for name in FEATURES if has_feature(insn, name)}


def _sign_extend(value: int, bits: int) -> int:
    sign = 1 << (bits - 1)
    return (value ^ sign) - sign


def rd(insn: int) -> int:
    return insn & 0x1F


def rn(insn: int) -> int:
    return (insn >> 5) & 0x1F


def branch_target(insn: int, pc: int) -> int:
    """Target of a ``B``/``BL`` at ``pc``."""
    return pc + (_sign_extend(insn & 0x03FFFFFF, 26) << 2)


def adrp_target(insn: int, pc: int) -> int:
    """Page address materialised by an ``ADRP`` at ``pc``."""
    immlo = (insn >> 29) & 0x3
    immhi = (insn >> 5) & 0x7FFFF
    imm = _sign_extend((immhi << 2) | immlo, 21)
    return (pc & ~0xFFF) + (imm << 12)


def add_immediate(insn: int) -> int:
    imm12 = (insn >> 10) & 0xFFF
    return imm12 << 12 if (insn >> 22) & 1 else imm12


def load_offset(insn: int) -> int:
    """Scaled unsigned offset of ``LDR Xt, [Xn, #imm]``."""
    return ((insn >> 10) & 0xFFF) * 8

