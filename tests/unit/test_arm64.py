"""Tests for the instruction classifier, boundary locator and listing."""

import numpy as np
import pytest

from offsetscope.arm64.boundary import FunctionBoundaryLocator, find_function_start
from offsetscope.arm64.classifier import (
    adrp_target,
    branch_target,
    feature_mask,
    features_of,
    has_feature,
    is_prologue,
    is_return,
    words,
)
from offsetscope.memory.reader import SegmentedMemory


def test_prologue_and_return_markers(asm):
    assert is_prologue(asm.STP)
    assert is_prologue(asm.STP_D)
    assert is_return(asm.RET)
    assert is_return(0xD65F0220)  # ret x17
    for word in (asm.NOP, asm.LDR, asm.CMP, asm.MOV, 0x00000000, 0xFFFFFFFF):
        assert not is_prologue(word)
        assert not is_return(word)


def test_features(asm):
    assert has_feature(asm.LDR, "load")
    assert has_feature(asm.STR, "store")
    assert has_feature(asm.STR_W, "store_word")
    assert has_feature(asm.LDRB, "load_byte") and has_feature(asm.LDRB, "byte_access")
    assert has_feature(asm.CMP, "compare") and has_feature(asm.CMP, "compare_imm")
    assert has_feature(asm.bl(0x1000, 0x2000), "call")
    assert "prologue" in features_of(asm.STP)
    with pytest.raises(KeyError):
        has_feature(asm.NOP, "teleport")


def test_feature_mask_matches_scalar(asm):
    block = words(asm.encode(asm.STP, asm.LDR, asm.NOP, asm.LDR, asm.RET))
    assert feature_mask(block, "load").tolist() == [False, True, False, True, False]
    assert feature_mask(block, "return").tolist() == [False, False, False, False, True]


def test_words_ignores_ragged_tail():
    assert len(words(b"\x00" * 10)) == 2
    assert words(b"\x01\x00\x00\x00").dtype == np.dtype("<u4")


def test_branch_and_adrp_targets(asm):
    assert branch_target(asm.bl(0x1000, 0x2000), 0x1000) == 0x2000
    assert branch_target(asm.bl(0x2000, 0x1000), 0x2000) == 0x1000
    assert adrp_target(asm.adrp(1, 0x4000_0010, 0x4001_0123), 0x4000_0010) == 0x4001_0000
    assert adrp_target(asm.adrp(1, 0x4001_0000, 0x4000_0000), 0x4001_0000) == 0x4000_0000


def test_locator_finds_prologue(asm):
    code = asm.encode(*asm.function(asm.LDR, asm.CMP, asm.NOP, asm.NOP, size=64))
    mem = SegmentedMemory.from_bytes(code, 0x2000_0000)
    assert find_function_start(mem, 0x2000_0010) == 0x2000_0000
    assert find_function_start(mem, 0x2000_0000) == 0x2000_0000


def test_locator_stops_after_return(asm):
    words_ = [asm.NOP, asm.RET, asm.LDR, asm.NOP, asm.CMP, asm.NOP]
    mem = SegmentedMemory.from_bytes(asm.encode(*words_), 0x1000)
    assert find_function_start(mem, 0x1010) == 0x1008


def test_locator_ignores_return_at_origin(asm):
    words_ = [asm.STP, asm.LDR, asm.RET]
    mem = SegmentedMemory.from_bytes(asm.encode(*words_), 0x1000)
    assert find_function_start(mem, 0x1008) == 0x1000


def test_locator_aligns_unaligned_address(asm):
    mem = SegmentedMemory.from_bytes(asm.encode(asm.STP, asm.LDR, asm.NOP), 0x1000)
    assert find_function_start(mem, 0x1006) == 0x1000


@pytest.mark.parametrize("fill", [b"\x00", b"\xFF"])
def test_locator_terminates_on_filler(fill):
    mem = SegmentedMemory.from_bytes(fill * 0x2000, 0x1000)
    assert find_function_start(mem, 0x2000, max_steps=256) == 0x2000
    assert find_function_start(mem, 0x2000, max_steps=1) == 0x2000


def test_locator_respects_step_budget(asm):
    code = asm.encode(asm.STP, *([asm.NOP] * 15))
    mem = SegmentedMemory.from_bytes(code, 0x1000)
    assert find_function_start(mem, 0x103C, max_steps=4) == 0x103C
    assert find_function_start(mem, 0x103C, max_steps=16) == 0x1000


def test_locator_respects_lower_bound(asm):
    code = asm.encode(asm.STP, *([asm.NOP] * 7))
    mem = SegmentedMemory.from_bytes(code, 0x1000)
    assert find_function_start(mem, 0x1010, lower_bound=0x1004) == 0x1010


def test_locator_degrades_when_unreadable():
    mem = SegmentedMemory.from_bytes(b"\x00" * 16, 0x1000)
    assert find_function_start(mem, 0x5000) == 0x5000


def test_cached_locator(asm):
    code = asm.encode(*asm.function(asm.LDR, size=32))
    mem = SegmentedMemory.from_bytes(code, 0x3000)
    locate = FunctionBoundaryLocator(mem, max_steps=32)
    assert locate(0x3008) == 0x3000
    assert locate(0x3008) == 0x3000
    assert locate.max_steps == 32


def test_listing_decodes_instructions(asm):
    from offsetscope.arm64.listing import disassemble

    mem = SegmentedMemory.from_bytes(asm.encode(asm.STP, asm.LDR, asm.RET), 0x1000)
    lines = disassemble(mem, 0x1000, count=8)
    assert len(lines) == 3
    assert lines[0].mnemonic == "stp"
    assert "prologue" in lines[0].features
    assert lines[2].mnemonic == "ret"
    assert lines[2].word == asm.RET
