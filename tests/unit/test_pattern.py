"""Tests for pattern compilation and chunked scanning."""

import random

import pytest

from offsetscope.errors import InvalidPatternError, MultipleMatchesError, PatternScanFailedError
from offsetscope.memory.reader import SegmentedMemory
from offsetscope.pattern.matcher import PatternMatcher
from offsetscope.pattern.pattern import Pattern


def test_from_hex_wildcards():
    p = Pattern.from_hex("F9 ?? ? 39")
    assert p.data == b"\xF9\x00\x00\x39"
    assert p.mask == (True, False, False, True)
    assert p.elements()[1] == (0, True)
    assert p.to_hex() == "F9 ?? ?? 39"
    assert not p.is_literal


@pytest.mark.parametrize("text", ["", "   ", "F9 G1", "F", "F9A", "0x94", "F9 ???", "*"])
def test_from_hex_rejects_bad_tokens(text):
    with pytest.raises(InvalidPatternError):
        Pattern.from_hex(text)


def test_invalid_pattern_is_value_error():
    with pytest.raises(ValueError):
        Pattern.from_hex("ZZ")


def test_all_wildcards_match_everywhere():
    p = Pattern.from_hex("?? ??")
    assert p.find_all_in(b"abcd") == [0, 1, 2]


def test_literal_pattern_matches_iff_substring():
    rng = random.Random(1234)
    for _ in range(200):
        haystack = bytes(rng.randrange(4) for _ in range(rng.randrange(1, 40)))
        needle = bytes(rng.randrange(4) for _ in range(rng.randrange(1, 4)))
        p = Pattern.from_bytes(needle)
        assert (p.find_in(haystack) is not None) == (needle in haystack)
        assert p.find_all_in(haystack) == [
            i for i in range(len(haystack)) if haystack.startswith(needle, i)
        ]


def test_wildcarding_never_loses_a_match():
    rng = random.Random(99)
    for _ in range(100):
        haystack = bytes(rng.randrange(3) for _ in range(32))
        start = rng.randrange(28)
        needle = haystack[start : start + 4]
        p = Pattern.from_bytes(needle)
        before = set(p.find_all_in(haystack))
        mask = list(p.mask)
        mask[rng.randrange(4)] = False
        relaxed = Pattern(p.data, tuple(mask))
        assert before <= set(relaxed.find_all_in(haystack))


def test_matches_at_bounds():
    p = Pattern.from_hex("01 ?? 03")
    assert p.matches_at(b"\x01\xFF\x03", 0)
    assert not p.matches_at(b"\x01\xFF", 0)
    assert not p.matches_at(b"\x01\xFF\x03", -1)


def test_matcher_finds_match_across_chunk_boundary():
    data = bytearray(64)
    data[30:34] = b"\xDE\xAD\xBE\xEF"
    mem = SegmentedMemory.from_bytes(bytes(data), 0x1000)
    matcher = PatternMatcher(mem, chunk_size=32)
    assert matcher.find_first("DE AD BE EF", 0x1000, 0x1040) == 0x101E
    assert matcher.find_all("DE ?? BE", 0x1000, 0x1040) == [0x101E]


def test_matcher_reports_each_match_once():
    data = b"\xAA\xBB" * 32
    mem = SegmentedMemory.from_bytes(data, 0x1000)
    hits = PatternMatcher(mem, chunk_size=16).find_all("AA BB", 0x1000, 0x1040)
    assert hits == [0x1000 + 2 * i for i in range(32)]


def test_matcher_no_match_returns_none():
    mem = SegmentedMemory.from_bytes(b"\x00" * 32, 0x1000)
    assert PatternMatcher(mem).find_first("FF", 0x1000, 0x1020) is None


def test_matcher_skips_unreadable_chunks():
    data = bytearray(32)
    data[0x11:0x13] = b"\x11\x22"
    mem = SegmentedMemory.from_bytes(bytes(data), 0x1000)
    # the first chunks start below the mapped region and cannot be read
    matcher = PatternMatcher(mem, chunk_size=16)
    assert matcher.find_first("11 22", 0x0FE0, 0x1020) == 0x1011


def test_matcher_fails_when_range_unreadable():
    mem = SegmentedMemory.from_bytes(b"\x00" * 16, 0x1000)
    with pytest.raises(PatternScanFailedError):
        PatternMatcher(mem, chunk_size=16).find_first("00", 0x9000, 0x9040)


def test_find_unique():
    mem = SegmentedMemory.from_bytes(b"\x01\x02\x00\x01\x02", 0x1000)
    matcher = PatternMatcher(mem)
    assert matcher.find_unique("00 01", 0x1000, 0x1005) == 0x1002
    with pytest.raises(MultipleMatchesError):
        matcher.find_unique("01 02", 0x1000, 0x1005)


def test_find_string_in_regions(make_memory):
    mem = make_memory(
        (0x1000, b"\x00" * 32, "r-x"),
        (0x8000, b"xx attempt to call\x00 attempt to call\x00", "r--"),
    )
    matcher = PatternMatcher(mem)
    assert matcher.find_string("attempt to call") == [0x8003, 0x8014]
    assert matcher.find_string("attempt to call", limit=1) == [0x8003]
    assert matcher.find_string("missing") == []


def test_find_in_regions_skips_failed_region(make_memory):
    mem = make_memory((0x1000, b"\x00\x94" + b"\x00" * 14, "r-x"), (0x2000, b"\x00" * 16, "--x"))
    matcher = PatternMatcher(mem)
    assert matcher.find_in_regions("94", mem.get_regions()) == [0x1001]
