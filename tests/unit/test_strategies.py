"""Tests for the strategy steps and the first-success-wins chain."""

import pytest

from offsetscope.errors import FinderError, NotFoundError, PatternScanFailedError, ValidationFailedError
from offsetscope.finders.chain import StrategyChain
from offsetscope.finders.result import FinderResult, Method
from offsetscope.finders.strategies import (
    HeuristicStrategy,
    PatternStrategy,
    SearchContext,
    Strategy,
    SymbolStrategy,
    XRefStrategy,
)
from offsetscope.finders.target import TargetSpec
from offsetscope.finders.validators import StructuralValidator
from offsetscope.memory.reader import SegmentedMemory
from offsetscope.xref.builder import build_xref_index

SCENARIO_PATTERN = "F9 ?? ?? ?? 39 ?? ?? ?? 94"


def _context(mem, **kwargs):
    region = mem.get_regions()[0]
    return SearchContext.for_range(mem, region.start, region.end, chunk_size=0x40, **kwargs)


def test_symbol_scenario(sample_symbols, pattern_image):
    ctx = _context(pattern_image, symbols=sample_symbols)
    result = StrategyChain.default().run(TargetSpec(name="foo", patterns=(SCENARIO_PATTERN,)), ctx)
    assert result.address == 0x1000_0000
    assert result.confidence == 0.99
    assert result.method is Method.SYMBOL


def test_pattern_scenario(pattern_image):
    ctx = _context(pattern_image)
    assert ctx.matcher.find_first(SCENARIO_PATTERN, ctx.start, ctx.end) == 0x2000_0040

    target = TargetSpec(name="foo", patterns=(SCENARIO_PATTERN,), validator=StructuralValidator(required=("load",)))
    result = StrategyChain.default().run(target, ctx)
    assert result.address == 0x2000_0000
    assert result.confidence == 0.85
    assert result.method is Method.PATTERN


def test_pattern_rejected_by_validator_falls_through(pattern_image):
    ctx = _context(pattern_image)
    target = TargetSpec(
        name="foo",
        patterns=(SCENARIO_PATTERN,),
        validator=StructuralValidator(required=("call",)),
        heuristic=None,
    )
    with pytest.raises(ValidationFailedError) as excinfo:
        PatternStrategy().attempt(target, ctx)
    assert excinfo.value.rejected == 1
    assert excinfo.value.method == "pattern"

    chain = StrategyChain.default()
    assert chain.run(target, ctx) is None
    with pytest.raises(ValidationFailedError) as excinfo:
        chain.resolve(target, ctx)
    assert excinfo.value.target == "foo"


def test_resolve_without_candidates_is_not_found(pattern_image):
    target = TargetSpec(name="foo", patterns=("DE AD BE EF",), heuristic=None)
    with pytest.raises(NotFoundError):
        StrategyChain.default().resolve(target, _context(pattern_image))


def test_rejection_in_one_range_does_not_hide_another(asm, make_memory):
    mem = make_memory(
        (0x1000, asm.function(asm.LDR, asm.LDR, asm.CMP, size=64), "r-x"),
        (0x2000, asm.function(asm.LDR, asm.LDR, asm.CMP, asm.LDRB, size=64), "r-x"),
    )
    contexts = [SearchContext.for_range(mem, 0x1000, 0x1040), SearchContext.for_range(mem, 0x2000, 0x2040)]
    target = TargetSpec(name="guess", validator=StructuralValidator(required=("byte_access",)))
    result = StrategyChain([HeuristicStrategy()]).resolve(target, contexts)
    assert result.address == 0x2000

    with pytest.raises(ValidationFailedError, match="heuristic"):
        StrategyChain([HeuristicStrategy()]).resolve(target, contexts[:1])


def test_later_pattern_tried_after_failure(pattern_image):
    ctx = _context(pattern_image)
    target = TargetSpec(name="foo", patterns=("DE AD BE EF", SCENARIO_PATTERN), heuristic=None)
    assert PatternStrategy().attempt(target, ctx).address == 0x2000_0000


def _xref_image(asm, make_memory):
    code_base, data_base = 0x4000_0000, 0x4001_0000
    code = asm.function(size=0x100)
    code += [
        asm.STP,
        asm.LDR,
        asm.adrp(1, code_base + 0x108, data_base),
        asm.add_imm(1, 1, 0x10),
        asm.bl(code_base + 0x110, code_base),
        asm.CMP,
        asm.RET,
    ]
    code += [asm.NOP] * (0x80 - len(code))
    data = bytearray(0x40)
    data[0x10:0x20] = b"attempt to call\x00"
    return make_memory((code_base, code, "r-x"), (data_base, bytes(data), "r--"))


def test_xref_strategy(asm, make_memory):
    mem = _xref_image(asm, make_memory)
    index = build_xref_index(mem)
    ctx = SearchContext.for_range(mem, 0x4000_0000, 0x4000_0200, xrefs=index)
    target = TargetSpec(
        name="lua_call",
        xref_strings=("no such string", "attempt to call"),
        validator=StructuralValidator(required=("load",), any_of=("compare", "call"), require_prologue=True),
        heuristic=None,
    )
    result = StrategyChain.default().run(target, ctx)
    assert result.address == 0x4000_0100
    assert result.confidence == 0.80
    assert result.method is Method.XREF


def test_xref_strategy_needs_index(asm, make_memory):
    mem = _xref_image(asm, make_memory)
    ctx = SearchContext.for_range(mem, 0x4000_0000, 0x4000_0200)
    target = TargetSpec(name="lua_call", xref_strings=("attempt to call",))
    assert XRefStrategy().attempt(target, ctx) is None


def test_heuristic_strategy(asm):
    words_ = asm.function(asm.LDR, size=0x80) + asm.function(asm.LDR, asm.LDR, asm.CMP, size=0x80)
    mem = SegmentedMemory.from_bytes(asm.encode(*words_), 0x3000_0000)
    ctx = _context(mem)
    result = StrategyChain.default().run(TargetSpec(name="guess"), ctx)
    assert result.address == 0x3000_0080
    assert result.confidence == 0.70
    assert result.method is Method.HEURISTIC


def test_heuristic_strategy_spans_chunks(asm):
    words_ = [asm.NOP] * 14 + asm.function(asm.LDR, asm.LDR, asm.CMP, size=0x40)
    mem = SegmentedMemory.from_bytes(asm.encode(*words_), 0x3000_0000)
    # chunk of 0x40 bytes: the prologue sits at +0x38, its loads in the next chunk
    result = HeuristicStrategy().attempt(TargetSpec(name="guess"), _context(mem))
    assert result.address == 0x3000_0038


def test_every_step_uses_its_tier(sample_symbols, pattern_image):
    ctx = _context(pattern_image, symbols=sample_symbols)
    target = TargetSpec(name="foo", patterns=(SCENARIO_PATTERN,))
    for strategy in (SymbolStrategy(), PatternStrategy(), HeuristicStrategy()):
        try:
            result = strategy.attempt(target, ctx)
        except ValidationFailedError:
            continue
        if result is not None:
            assert result.confidence == strategy.method.confidence


def test_chain_orders_by_trust():
    chain = StrategyChain([HeuristicStrategy(), PatternStrategy(), SymbolStrategy(), XRefStrategy()])
    assert chain.methods == (Method.SYMBOL, Method.PATTERN, Method.XREF, Method.HEURISTIC)
    assert len(chain) == 4


def test_chain_rejects_duplicates():
    with pytest.raises(ValueError):
        StrategyChain([PatternStrategy(), PatternStrategy()])


def test_default_chain_toggles():
    chain = StrategyChain.default(enable_symbols=False, enable_xrefs=False, enable_heuristics=False)
    assert chain.methods == (Method.PATTERN,)


class _Failing(Strategy):
    method = Method.SYMBOL

    def attempt(self, target, ctx):
        raise FinderError("boom")


class _Unreadable(Strategy):
    method = Method.PATTERN

    def attempt(self, target, ctx):
        raise PatternScanFailedError("gone")


class _Fixed(Strategy):
    method = Method.HEURISTIC

    def attempt(self, target, ctx):
        return FinderResult.create(target.name, 0x1234, self.method)


def test_chain_falls_through_on_step_errors(pattern_image):
    chain = StrategyChain([_Failing(), _Fixed()])
    result = chain.run(TargetSpec(name="foo"), _context(pattern_image))
    assert result.address == 0x1234


def test_chain_aborts_when_every_range_unreadable(pattern_image):
    chain = StrategyChain([_Unreadable(), _Fixed()])
    with pytest.raises(PatternScanFailedError):
        chain.run(TargetSpec(name="foo"), _context(pattern_image))


def test_chain_tolerates_one_unreadable_range(asm, make_memory):
    mem = make_memory(
        (0x1000, asm.function(asm.LDR, size=64), "r-x"),
        (0x2000, asm.function(asm.LDR, asm.CMP, size=64), "r-x"),
    )
    good = SearchContext.for_range(mem, 0x2000, 0x2040)
    bad = SearchContext.for_range(mem, 0x9000, 0x9040)
    target = TargetSpec(name="foo", patterns=("00 04 40 F9",), heuristic=None)
    result = StrategyChain.default().run(target, [bad, good])
    assert result.address == 0x2000
    assert result.method is Method.PATTERN
