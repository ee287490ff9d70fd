"""Cross-validation of a batch of results against the reference graph.

Results below :data:`HIGH_TRUST_THRESHOLD` are checked for call or jump links
to the high-trust results of the same batch. A result with no such link and
a confidence under :data:`DROP_THRESHOLD` is discarded. Nothing is ever
re-scored, so running the pass again on its own output changes nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Executor

from offsetscope.finders.result import FinderResult
from offsetscope.memory.address import Address
from offsetscope.utils.logging import get_logger
from offsetscope.xref.graph import EdgeKind, XRefIndex

log = get_logger(__name__)

HIGH_TRUST_THRESHOLD = 0.9
CORROBORATION_THRESHOLD = 0.8
DROP_THRESHOLD = 0.75

LINK_KINDS = (EdgeKind.CALL, EdgeKind.JUMP)

Locate = Callable[[int], Address]


def _calling_functions(index: XRefIndex, address: int, locate: Locate) -> set[int]:
    return {int(locate(edge.from_addr)) for edge in index.get_references_to(address, LINK_KINDS)}


def corroboration_count(
    result: FinderResult,
    anchors: Sequence[int],
    index: XRefIndex,
    locate: Locate,
) -> int:
    """Number of anchor functions that call ``result`` or are called by it.

    ``anchors`` are already-normalised function starts of high-trust results.
    Reference sources are call sites, so each is mapped to its enclosing
    function before comparison.
    """
    target = int(locate(result.address))
    callers = _calling_functions(index, target, locate)
    count = 0
    for anchor in anchors:
        if anchor == target:
            continue
        if anchor in callers or target in _calling_functions(index, anchor, locate):
            count += 1
    return count


def cross_validate(
    results: Sequence[FinderResult],
    index: XRefIndex,
    locate: Locate,
    executor: Executor | None = None,
) -> list[FinderResult]:
    """Return the surviving results in their original order."""
    anchors = sorted(
        {int(locate(r.address)) for r in results if r.confidence >= HIGH_TRUST_THRESHOLD}
    )
    suspects = [r for r in results if r.confidence < CORROBORATION_THRESHOLD]

    def count(result: FinderResult) -> int:
        return corroboration_count(result, anchors, index, locate)

    if executor is not None:
        counts = list(executor.map(count, suspects))
    else:
        counts = [count(r) for r in suspects]

    dropped = {
        id(r) for r, n in zip(suspects, counts) if n == 0 and r.confidence < DROP_THRESHOLD
    }
    for result in suspects:
        if id(result) in dropped:
            log.info(
                "result_dropped",
                target=result.name,
                address=str(result.address),
                confidence=result.confidence,
                method=result.method.value,
            )

    survivors = [r for r in results if id(r) not in dropped]
    log.debug("cross_validation_complete", kept=len(survivors), dropped=len(dropped), anchors=len(anchors))
    return survivors
