"""Backward scan from a mid-function address to its entry point."""

from __future__ import annotations

import functools

from offsetscope.arm64.classifier import INSN_SIZE, is_prologue, is_return
from offsetscope.errors import MemoryReadError
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader

DEFAULT_MAX_STEPS = 256


def find_function_start(
    reader: MemoryReader,
    address: int,
    lower_bound: int | None = None,
    max_steps: int = DEFAULT_MAX_STEPS,
) -> Address:
    """Return the start of the function containing ``address``.

    Walks backward one instruction at a time. A store/load-pair word is taken
    as the entry itself; a ``RET`` ends the previous function, so the entry is
    the instruction after it. A ``RET`` at ``address`` itself belongs to the
    enclosing function and is not treated as a boundary. If the lower bound
    (inclusive, defaults to the image base) or the step budget runs out first,
    ``address`` is returned unchanged.
    """
    origin = Address(address)
    lower = Address(reader.get_base_address() if lower_bound is None else lower_bound)
    current = origin.align_down(INSN_SIZE)

    for step in range(max_steps):
        if current < lower:
            break
        try:
            insn = reader.read_u32(current)
        except MemoryReadError:
            insn = None
        if insn is not None:
            if is_prologue(insn):
                return current
            if step > 0 and is_return(insn):
                return current + INSN_SIZE
        if current - lower < INSN_SIZE:
            break
        current = current - INSN_SIZE

    return origin


class FunctionBoundaryLocator:
    """Memoising :func:`find_function_start` bound to one reader.

    Safe to share between threads once constructed; the reader is read-only
    and the memo is an ``lru_cache``.
    """

    def __init__(
        self,
        reader: MemoryReader,
        lower_bound: int | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        cache_size: int = 4096,
    ) -> None:
        self._reader = reader
        self._lower = Address(reader.get_base_address() if lower_bound is None else lower_bound)
        self._max_steps = max_steps
        self._cached = functools.lru_cache(maxsize=cache_size)(self._locate)

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def _locate(self, address: int) -> Address:
        return find_function_start(self._reader, address, self._lower, self._max_steps)

    def __call__(self, address: int) -> Address:
        return self._cached(int(address))
