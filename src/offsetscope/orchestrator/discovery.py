"""Batch resolution over an image and the per-strategy discovery passes."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from offsetscope.arm64.boundary import FunctionBoundaryLocator
from offsetscope.config.models import ScanningConfig
from offsetscope.errors import XRefAnalysisFailedError
from offsetscope.finders.catalog import builtin_targets
from offsetscope.finders.chain import StrategyChain
from offsetscope.finders.crossval import cross_validate
from offsetscope.finders.result import FinderResult, FinderResults, Method
from offsetscope.finders.strategies import STRATEGY_TYPES, SearchContext
from offsetscope.finders.target import TargetSpec
from offsetscope.memory.image import LoadedImage
from offsetscope.memory.reader import MemoryReader
from offsetscope.memory.region import MemoryRegion
from offsetscope.pattern.matcher import PatternMatcher
from offsetscope.symbols import CachedSymbolResolver, SymbolResolver, SymbolTable
from offsetscope.utils.logging import get_logger
from offsetscope.xref.builder import build_xref_index
from offsetscope.xref.graph import XRefIndex

log = get_logger(__name__)

FUNCTION_PREFIXES = (
    "lua_", "luau_", "luaL_", "luaB_", "luaC_", "luaD_", "luaE_",
    "luaF_", "luaG_", "luaH_", "luaI_", "luaK_", "luaM_", "luaO_",
    "luaS_", "luaT_", "luaU_", "luaV_", "luaX_", "luaZ_",
)

CLIENT_KEYWORDS = (
    "Roblox", "Instance", "Script", "DataModel", "Workspace",
    "Players", "ReplicatedStorage", "ServerStorage",
)

ProgressCallback = Callable[[TargetSpec, "FinderResult | None"], None]


@dataclass
class BatchReport:
    """Outcome of one batch: survivors, unresolved names and dropped results."""

    results: list[FinderResult] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    dropped: list[FinderResult] = field(default_factory=list)

    def reportable(self, threshold: float = 0.0) -> list[FinderResult]:
        return [r for r in self.results if r.confidence >= threshold]

    def to_finder_results(self, threshold: float = 0.0) -> FinderResults:
        return FinderResults.from_results(self.reportable(threshold))

    def to_dict(self, threshold: float = 0.0, include_metadata: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = self.to_finder_results(threshold).to_dict()
        if include_metadata:
            out["results"] = {r.name: r.to_dict() for r in self.reportable(threshold)}
            out["not_found"] = sorted(self.not_found)
            out["dropped"] = sorted(r.name for r in self.dropped)
        return out

    def __len__(self) -> int:
        return len(self.results)


class DiscoveryOrchestrator:
    """Resolves targets over every executable region of one image.

    The cross-reference index is built and frozen on first use, before any
    worker thread starts, and is read-only afterwards.
    """

    def __init__(
        self,
        reader: MemoryReader,
        symbols: SymbolResolver | None = None,
        config: ScanningConfig | None = None,
        xrefs: XRefIndex | None = None,
        symbol_table: SymbolTable | None = None,
    ) -> None:
        self.reader = reader
        self.config = config or ScanningConfig()
        self._symbol_table = symbol_table
        self.symbols = CachedSymbolResolver(symbols) if symbols is not None else None
        self._xrefs = xrefs.freeze() if xrefs is not None else None
        self.locator = FunctionBoundaryLocator(reader, max_steps=self.config.max_backtrack_steps)
        self.matcher = PatternMatcher(reader, chunk_size=self.config.chunk_size)
        self.chain = StrategyChain.default(
            enable_symbols=self.config.enable_symbols,
            enable_xrefs=self.config.enable_xrefs,
            enable_heuristics=self.config.enable_heuristics,
        )

    @classmethod
    def from_image(cls, image: LoadedImage, config: ScanningConfig | None = None) -> DiscoveryOrchestrator:
        symbols = image.symbols if len(image.symbols) else None
        return cls(image.memory, symbols=symbols, config=config, symbol_table=image.symbols)

    @property
    def code_regions(self) -> list[MemoryRegion]:
        return [r for r in self.reader.get_regions() if r.is_executable and r.is_readable]

    @property
    def xrefs(self) -> XRefIndex:
        """The frozen index; empty when cross-references are disabled."""
        if self._xrefs is None:
            if self.config.enable_xrefs:
                try:
                    self._xrefs = build_xref_index(
                        self.reader, self.code_regions, symbols=self._symbol_table
                    )
                except XRefAnalysisFailedError as exc:
                    log.warning("xref_index_unavailable", error=str(exc))
                    self._xrefs = XRefIndex().freeze()
            else:
                self._xrefs = XRefIndex().freeze()
        return self._xrefs

    def contexts(self) -> list[SearchContext]:
        """One context per code region.

        An image with no executable region still gets a single empty-range
        context so the symbol step can answer from the symbol table.
        """
        xrefs = self.xrefs if self.config.enable_xrefs else None
        regions = self.reader.get_regions()
        spans = [(r.start, r.end) for r in self.code_regions]
        if not spans:
            base = self.reader.get_base_address()
            spans = [(base, base)]
        return [
            SearchContext(
                reader=self.reader,
                start=start,
                end=end,
                matcher=self.matcher,
                locator=self.locator,
                symbols=self.symbols,
                xrefs=xrefs,
                string_regions=regions,
                max_string_hits=self.config.max_string_hits,
                chunk_size=self.config.chunk_size,
            )
            for start, end in spans
        ]

    def resolve_target(
        self, target: TargetSpec, contexts: Sequence[SearchContext] | None = None
    ) -> FinderResult | None:
        return self.chain.run(target, self.contexts() if contexts is None else contexts)

    def resolve_targets(
        self,
        targets: Iterable[TargetSpec] | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchReport:
        """Resolve every target concurrently, then cross-validate the batch."""
        targets = list(builtin_targets() if targets is None else targets)
        index = self.xrefs
        contexts = self.contexts()
        log.info(
            "batch_started", targets=len(targets), regions=len(contexts),
            threads=self.config.threads, methods=[m.value for m in self.chain.methods],
        )

        def run(target: TargetSpec) -> FinderResult | None:
            result = self.resolve_target(target, contexts)
            if progress is not None:
                progress(target, result)
            return result

        with ThreadPoolExecutor(max_workers=self.config.threads) as pool:
            outcomes = list(pool.map(run, targets))
            found = [r for r in outcomes if r is not None]
            survivors = cross_validate(found, index, self.locator, executor=pool)

        kept = {id(r) for r in survivors}
        report = BatchReport(
            results=survivors,
            not_found=[t.name for t, r in zip(targets, outcomes) if r is None],
            dropped=[r for r in found if id(r) not in kept],
        )
        log.info(
            "batch_complete", resolved=len(report.results), not_found=len(report.not_found),
            dropped=len(report.dropped),
        )
        return report

    def discover_from_symbols(self) -> FinderResults:
        """Sweep the symbol table for Lua API prefixes and client keywords."""
        results = FinderResults()
        if self.symbols is None or not self.config.enable_symbols:
            return results

        for prefix in FUNCTION_PREFIXES:
            for sym in self.symbols.find_by_prefix(prefix):
                if sym.is_function():
                    results.add_function(sym.name, sym.address)

        for keyword in CLIENT_KEYWORDS:
            for sym in self.symbols.find_by_contains(keyword):
                if sym.is_function():
                    results.add_function(sym.name, sym.address)
                else:
                    results.add_class(sym.name, sym.address)

        log.info("symbol_sweep_complete", functions=len(results.functions), classes=len(results.classes))
        return results

    def _single_pass(self, method: Method, targets: Iterable[TargetSpec] | None) -> FinderResults:
        chain = StrategyChain([STRATEGY_TYPES[method]()])
        contexts = self.contexts()
        targets = list(builtin_targets() if targets is None else targets)
        with ThreadPoolExecutor(max_workers=self.config.threads) as pool:
            outcomes = list(pool.map(lambda t: chain.run(t, contexts), targets))
        results = FinderResults.from_results(r for r in outcomes if r is not None)
        log.info("discovery_pass_complete", method=method.value, found=len(results))
        return results

    def discover_from_patterns(self, targets: Iterable[TargetSpec] | None = None) -> FinderResults:
        return self._single_pass(Method.PATTERN, targets)

    def discover_from_xrefs(self, targets: Iterable[TargetSpec] | None = None) -> FinderResults:
        if not self.config.enable_xrefs:
            return FinderResults()
        return self._single_pass(Method.XREF, targets)

    def discover_from_heuristics(self, targets: Iterable[TargetSpec] | None = None) -> FinderResults:
        if not self.config.enable_heuristics:
            return FinderResults()
        return self._single_pass(Method.HEURISTIC, targets)

    def discover_all(self, targets: Iterable[TargetSpec] | None = None) -> FinderResults:
        """Run every pass and merge them, most trusted first."""
        targets = list(builtin_targets() if targets is None else targets)
        return FinderResults.merged(
            [
                self.discover_from_symbols(),
                self._symbol_pass(targets),
                self.discover_from_patterns(targets),
                self.discover_from_xrefs(targets),
                self.discover_from_heuristics(targets),
            ]
        )

    def _symbol_pass(self, targets: list[TargetSpec]) -> FinderResults:
        if self.symbols is None or not self.config.enable_symbols:
            return FinderResults()
        return self._single_pass(Method.SYMBOL, targets)
