"""Tests for addresses, regions and the segmented memory reader."""

import pytest

from offsetscope.errors import MemoryReadError
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader, SegmentedMemory
from offsetscope.memory.region import MemoryRange, MemoryRegion, Protection


def test_address_arithmetic():
    a = Address(0x1000)
    assert isinstance(a + 4, Address)
    assert a + 4 == 0x1004
    assert isinstance(a - 4, Address)
    assert Address(0x1010) - a == 0x10
    assert not isinstance(Address(0x1010) - a, Address)


def test_address_wraps_at_64_bits():
    assert Address(0xFFFF_FFFF_FFFF_FFFF) + 1 == 0
    assert Address(0) - 1 == 0xFFFF_FFFF_FFFF_FFFF


def test_address_formatting_and_parse():
    a = Address(0x2000_0040)
    assert str(a) == "0x20000040"
    assert repr(a) == "Address(0x20000040)"
    assert f"{a:08x}" == "20000040"
    assert Address.parse("0x2000_0040") == a
    assert Address.parse("4096") == 0x1000


def test_address_alignment():
    assert Address(0x1003).align_down(4) == 0x1000
    assert Address(0x1001).align_up(4) == 0x1004
    assert Address(0x1234).page() == 0x1000


def test_protection_parse_and_flags():
    prot = Protection.parse("r-x")
    assert prot.readable and prot.executable and not prot.writable
    assert str(prot) == "r-x"
    assert Protection.from_flags(0x4 | 0x1) == prot


def test_range_validation():
    with pytest.raises(ValueError):
        MemoryRange(Address(0x10), Address(0x8))
    r = MemoryRange(Address(0x10), Address(0x20))
    assert r.size == 0x10
    assert r.contains(0x10) and not r.contains(0x20)
    assert r.overlaps(MemoryRange(Address(0x1F), Address(0x30)))
    assert not r.overlaps(MemoryRange(Address(0x20), Address(0x30)))


def test_segmented_memory_reads():
    mem = SegmentedMemory.from_bytes(bytes(range(16)), 0x4000)
    assert isinstance(mem, MemoryReader)
    assert mem.read_bytes(0x4002, 3) == b"\x02\x03\x04"
    assert mem.read_u8(0x4001) == 1
    assert mem.read_u16(0x4000) == 0x0100
    assert mem.read_u32(0x4000) == 0x03020100
    assert mem.read_u64(0x4008) == 0x0F0E0D0C0B0A0908
    assert mem.get_base_address() == 0x4000


def test_read_outside_or_across_regions_fails():
    mem = SegmentedMemory.from_bytes(b"\x00" * 16, 0x4000)
    with pytest.raises(MemoryReadError):
        mem.read_bytes(0x3FFC, 4)
    with pytest.raises(MemoryReadError):
        mem.read_bytes(0x400E, 4)


def test_unreadable_region(make_memory):
    mem = make_memory((0x1000, b"\x01" * 8, "---"), (0x2000, b"\x02" * 8, "r--"))
    with pytest.raises(MemoryReadError, match="not readable"):
        mem.read_bytes(0x1000, 4)
    assert mem.read_bytes(0x2000, 2) == b"\x02\x02"
    assert mem.executable_regions() == []


def test_overlapping_segments_rejected():
    a = MemoryRegion.create(0x1000, 0x100)
    b = MemoryRegion.create(0x10F0, 0x100)
    with pytest.raises(ValueError, match="overlapping"):
        SegmentedMemory([(a, b""), (b, b"")])


def test_short_segment_zero_filled():
    region = MemoryRegion.create(0x1000, 0x10, "rw-")
    mem = SegmentedMemory([(region, b"\xAA")])
    assert mem.read_bytes(0x1000, 4) == b"\xAA\x00\x00\x00"


def test_read_c_string(make_memory):
    mem = make_memory((0x5000, b"hello\x00world", "r--"))
    assert mem.read_c_string(0x5000) == b"hello"
    assert mem.read_c_string(0x5006) is None
