"""Tests for batch cross-validation."""

from offsetscope.finders.crossval import corroboration_count, cross_validate
from offsetscope.finders.result import FinderResult, Method
from offsetscope.memory.address import Address
from offsetscope.xref.graph import EdgeKind, XRefIndex


def locate(address):
    # call sites in these graphs sit 0x10 into their function
    return Address(address & ~0xFF)


def _batch():
    anchor = FinderResult.create("lua_gettop", 0x1000_0000, Method.SYMBOL)
    linked = FinderResult.create("helper", 0x2000_0000, Method.HEURISTIC)
    lonely = FinderResult.create("guess", 0x3000_0000, Method.HEURISTIC)
    pattern = FinderResult.create("lua_settop", 0x4000_0000, Method.PATTERN)
    xref = FinderResult.create("lua_call", 0x5000_0000, Method.XREF)
    return anchor, linked, lonely, pattern, xref


def _index():
    index = XRefIndex()
    index.add_reference(0x1000_0010, 0x2000_0000, EdgeKind.CALL)
    return index.freeze()


def test_uncorroborated_heuristic_dropped():
    anchor, linked, lonely, pattern, xref = _batch()
    survivors = cross_validate([anchor, linked, lonely, pattern, xref], _index(), locate)
    assert survivors == [anchor, linked, pattern, xref]


def test_link_direction_does_not_matter():
    anchor, linked, *_ = _batch()
    index = XRefIndex()
    index.add_reference(0x2000_0020, 0x1000_0000, EdgeKind.JUMP)
    index.freeze()
    assert corroboration_count(linked, [0x1000_0000], index, locate) == 1


def test_data_edges_do_not_corroborate():
    anchor, linked, *_ = _batch()
    index = XRefIndex()
    index.add_reference(0x1000_0010, 0x2000_0000, EdgeKind.DATA)
    index.freeze()
    assert cross_validate([anchor, linked], index, locate) == [anchor]


def test_xref_results_kept_without_links():
    _, _, _, _, xref = _batch()
    assert cross_validate([xref], XRefIndex().freeze(), locate) == [xref]


def test_no_anchor_drops_every_heuristic():
    _, linked, lonely, pattern, _ = _batch()
    assert cross_validate([linked, lonely, pattern], _index(), locate) == [pattern]


def test_idempotent_and_never_rescored():
    batch = list(_batch())
    once = cross_validate(batch, _index(), locate)
    twice = cross_validate(once, _index(), locate)
    assert once == twice
    for before, after in zip([r for r in batch if r in once], once):
        assert after.confidence == before.confidence


def test_executor_matches_serial():
    from concurrent.futures import ThreadPoolExecutor

    batch = list(_batch())
    with ThreadPoolExecutor(max_workers=2) as pool:
        assert cross_validate(batch, _index(), locate, executor=pool) == cross_validate(
            batch, _index(), locate
        )
