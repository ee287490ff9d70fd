"""Ordered "first success wins" combinator over strategy steps."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from offsetscope.errors import (
    FinderError,
    MemoryReadError,
    NotFoundError,
    PatternScanFailedError,
    ValidationFailedError,
)
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
from offsetscope.utils.logging import get_logger

log = get_logger(__name__)


class StrategyChain:
    """Runs strategy steps in trust order until one produces a result.

    Steps are always ordered symbol, pattern, xref, heuristic regardless of
    the order they are passed in. A step that raises a read or finder error
    is skipped, as is one whose candidates were all rejected by the target's
    validator. :class:`PatternScanFailedError` from every range at once means
    the image itself is unreadable and is propagated.
    """

    def __init__(self, strategies: Iterable[Strategy]) -> None:
        ordered = sorted(strategies, key=lambda s: s.method.rank)
        methods = [s.method for s in ordered]
        if len(set(methods)) != len(methods):
            raise ValueError(f"duplicate strategy methods: {[m.value for m in methods]}")
        self._strategies: tuple[Strategy, ...] = tuple(ordered)

    @classmethod
    def default(
        cls,
        enable_symbols: bool = True,
        enable_xrefs: bool = True,
        enable_heuristics: bool = True,
    ) -> StrategyChain:
        """The standard chain. The pattern step cannot be disabled."""
        steps: list[Strategy] = [PatternStrategy()]
        if enable_symbols:
            steps.append(SymbolStrategy())
        if enable_xrefs:
            steps.append(XRefStrategy())
        if enable_heuristics:
            steps.append(HeuristicStrategy())
        return cls(steps)

    @property
    def methods(self) -> tuple[Method, ...]:
        return tuple(s.method for s in self._strategies)

    def __iter__(self):
        return iter(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)

    def run(
        self, target: TargetSpec, ctx: SearchContext | Sequence[SearchContext]
    ) -> FinderResult | None:
        """Resolve ``target`` over one or more address ranges.

        Every range is tried with a step before the chain moves on to the
        next, less trusted, step.
        """
        result, _ = self._run(target, ctx)
        return result

    def _run(
        self, target: TargetSpec, ctx: SearchContext | Sequence[SearchContext]
    ) -> tuple[FinderResult | None, list[ValidationFailedError]]:
        contexts = [ctx] if isinstance(ctx, SearchContext) else list(ctx)
        rejections: list[ValidationFailedError] = []
        for strategy in self._strategies:
            try:
                result = self._attempt(strategy, target, contexts)
            except ValidationFailedError as exc:
                rejections.append(exc)
                continue
            if result is not None:
                log.info(
                    "target_resolved",
                    target=target.name,
                    address=str(result.address),
                    method=result.method.value,
                    confidence=result.confidence,
                )
                return result, rejections

        log.info(
            "target_not_found", target=target.name,
            rejected=sum(exc.rejected for exc in rejections),
        )
        return None, rejections

    @staticmethod
    def _attempt(
        strategy: Strategy, target: TargetSpec, contexts: Sequence[SearchContext]
    ) -> FinderResult | None:
        scan_failures: list[PatternScanFailedError] = []
        rejected = 0
        for ctx in contexts:
            try:
                result = strategy.attempt(target, ctx)
            except PatternScanFailedError as exc:
                scan_failures.append(exc)
                log.warning(
                    "range_unreadable", target=target.name, method=strategy.method.value,
                    range=f"{ctx.start}-{ctx.end}", error=str(exc),
                )
                continue
            except ValidationFailedError as exc:
                rejected += exc.rejected
                continue
            except (FinderError, MemoryReadError) as exc:
                log.debug(
                    "strategy_failed", target=target.name, method=strategy.method.value,
                    range=f"{ctx.start}-{ctx.end}", error=str(exc),
                )
                continue
            if result is not None:
                return result
        if contexts and len(scan_failures) == len(contexts):
            raise scan_failures[0]
        if rejected:
            log.debug(
                "candidates_rejected", target=target.name, method=strategy.method.value,
                rejected=rejected,
            )
            raise ValidationFailedError(target.name, strategy.method.value, rejected)
        return None

    def resolve(
        self, target: TargetSpec, ctx: SearchContext | Sequence[SearchContext]
    ) -> FinderResult:
        """Like :meth:`run` but raises when unresolved.

        :class:`ValidationFailedError` (from the most trusted step that had
        candidates) when every candidate found was rejected, otherwise
        :class:`NotFoundError`.
        """
        result, rejections = self._run(target, ctx)
        if result is None:
            if rejections:
                raise rejections[0]
            raise NotFoundError(target.name)
        return result
