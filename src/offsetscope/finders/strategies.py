"""The four resolution steps tried for every target.

Each step either returns a :class:`FinderResult` carrying its method's fixed
confidence, or ``None`` to let the chain fall through to the next step. A
step that found candidates but saw every one rejected by the target's
validator raises :class:`ValidationFailedError` instead of returning ``None``.
Steps only read memory and the frozen cross-reference index, so one instance
can serve any number of threads.
"""

from __future__ import annotations

import abc
from collections.abc import Sequence
from dataclasses import dataclass

from offsetscope.arm64.boundary import FunctionBoundaryLocator
from offsetscope.arm64.classifier import INSN_SIZE, words
from offsetscope.errors import MemoryReadError, PatternScanFailedError, ValidationFailedError
from offsetscope.finders.result import FinderResult, Method
from offsetscope.finders.target import TargetSpec
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader
from offsetscope.memory.region import MemoryRegion
from offsetscope.pattern.matcher import DEFAULT_CHUNK_SIZE, PatternMatcher
from offsetscope.symbols import SymbolResolver
from offsetscope.utils.logging import get_logger
from offsetscope.xref.graph import EdgeKind, XRefIndex

log = get_logger(__name__)

STRING_EDGE_KINDS = (EdgeKind.STRING, EdgeKind.REFERENCE, EdgeKind.DATA)


@dataclass
class SearchContext:
    """Everything a strategy step may consult for one address range."""

    reader: MemoryReader
    start: Address
    end: Address
    matcher: PatternMatcher
    locator: FunctionBoundaryLocator
    symbols: SymbolResolver | None = None
    xrefs: XRefIndex | None = None
    string_regions: Sequence[MemoryRegion] | None = None
    max_string_hits: int = 16
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    def for_range(
        cls,
        reader: MemoryReader,
        start: int,
        end: int,
        *,
        symbols: SymbolResolver | None = None,
        xrefs: XRefIndex | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_backtrack_steps: int = 256,
        **kwargs,
    ) -> SearchContext:
        """Build a context with a fresh matcher and locator for ``reader``."""
        return cls(
            reader=reader,
            start=Address(start),
            end=Address(end),
            matcher=PatternMatcher(reader, chunk_size=chunk_size),
            locator=FunctionBoundaryLocator(reader, max_steps=max_backtrack_steps),
            symbols=symbols,
            xrefs=xrefs,
            chunk_size=chunk_size,
            **kwargs,
        )

    def in_range(self, address: int) -> bool:
        return self.start <= address < self.end


class Strategy(abc.ABC):
    """One step of the per-target resolution chain."""

    method: Method

    @abc.abstractmethod
    def attempt(self, target: TargetSpec, ctx: SearchContext) -> FinderResult | None:
        ...

    def _result(self, target: TargetSpec, address: int) -> FinderResult:
        return FinderResult.create(
            target.name, address, self.method, category=target.category, signature=target.signature
        )

    def _accept(self, target: TargetSpec, ctx: SearchContext, hit: int) -> FinderResult | None:
        """Normalise ``hit`` to its function start and validate it."""
        start = ctx.locator(hit)
        if not target.validator(ctx.reader, start):
            log.debug(
                "candidate_rejected", target=target.name, method=self.method.value,
                hit=str(Address(hit)), function=str(start),
            )
            return None
        return self._result(target, start)

    def _raise_if_rejected(self, target: TargetSpec, rejected: int) -> None:
        if rejected:
            raise ValidationFailedError(target.name, self.method.value, rejected)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SymbolStrategy(Strategy):
    """Exact lookup of the target name and its aliases. Trusted as-is."""

    method = Method.SYMBOL

    def attempt(self, target: TargetSpec, ctx: SearchContext) -> FinderResult | None:
        if ctx.symbols is None:
            return None
        for name in target.symbol_names:
            address = ctx.symbols.resolve(name)
            if address is not None:
                log.debug("symbol_hit", target=target.name, symbol=name, address=str(address))
                return self._result(target, address)
        return None


class PatternStrategy(Strategy):
    """Try each signature in order; the first validated hit wins."""

    method = Method.PATTERN

    def attempt(self, target: TargetSpec, ctx: SearchContext) -> FinderResult | None:
        rejected = 0
        for pattern in target.compiled_patterns:
            hit = ctx.matcher.find_first(pattern, ctx.start, ctx.end)
            if hit is None:
                continue
            result = self._accept(target, ctx, hit)
            if result is not None:
                return result
            rejected += 1
        self._raise_if_rejected(target, rejected)
        return None


class XRefStrategy(Strategy):
    """Follow references to known diagnostic strings back to their users."""

    method = Method.XREF

    def attempt(self, target: TargetSpec, ctx: SearchContext) -> FinderResult | None:
        if ctx.xrefs is None or not target.xref_strings:
            return None

        seen: set[int] = set()
        rejected = 0
        for text in target.xref_strings:
            try:
                locations = ctx.matcher.find_string(
                    text, ctx.string_regions, limit=ctx.max_string_hits
                )
            except PatternScanFailedError as exc:
                log.debug("string_scan_failed", target=target.name, string=text, error=str(exc))
                continue

            for location in locations:
                for edge in ctx.xrefs.get_references_to(location, STRING_EDGE_KINDS):
                    if not ctx.in_range(edge.from_addr):
                        continue
                    start = ctx.locator(edge.from_addr)
                    if start in seen:
                        continue
                    seen.add(start)
                    result = self._accept(target, ctx, start)
                    if result is not None:
                        return result
                    rejected += 1
        self._raise_if_rejected(target, rejected)
        return None


class HeuristicStrategy(Strategy):
    """Linear word scan for the target's weak prologue shape."""

    method = Method.HEURISTIC

    def attempt(self, target: TargetSpec, ctx: SearchContext) -> FinderResult | None:
        shape = target.heuristic
        if shape is None:
            return None

        step = max(ctx.chunk_size - ctx.chunk_size % INSN_SIZE, INSN_SIZE)
        cursor = ctx.start.align_up(INSN_SIZE)
        rejected = 0

        while cursor < ctx.end:
            block = self._read_block(ctx, cursor, step, shape.window)
            if block is not None:
                limit = min(step, ctx.end - cursor) // INSN_SIZE
                for index in shape.candidates(words(block), limit=limit):
                    result = self._accept(target, ctx, cursor + index * INSN_SIZE)
                    if result is not None:
                        return result
                    rejected += 1
            cursor = cursor + step
        self._raise_if_rejected(target, rejected)
        return None

    @staticmethod
    def _read_block(ctx: SearchContext, cursor: Address, step: int, window: int) -> bytes | None:
        # read a window past the step so shapes near the edge are still counted
        remaining = ctx.end - cursor
        for length in (min(step + window, remaining), min(step, remaining)):
            try:
                return ctx.reader.read_bytes(cursor, length)
            except MemoryReadError:
                continue
        log.debug("heuristic_chunk_unreadable", address=str(cursor))
        return None


STRATEGY_TYPES: dict[Method, type[Strategy]] = {
    Method.SYMBOL: SymbolStrategy,
    Method.PATTERN: PatternStrategy,
    Method.XREF: XRefStrategy,
    Method.HEURISTIC: HeuristicStrategy,
}
