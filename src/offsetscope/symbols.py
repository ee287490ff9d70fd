"""Symbol table resolver and its cached, thread-safe front end."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from offsetscope.errors import SymbolResolutionFailedError
from offsetscope.memory.address import Address
from offsetscope.utils.logging import get_logger
from offsetscope.utils.rwlock import ReadWriteLock

log = get_logger(__name__)


class SymbolKind(str, enum.Enum):
    FUNCTION = "function"
    DATA = "data"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Symbol:
    name: str
    address: Address
    size: int = 0
    kind: SymbolKind = SymbolKind.UNKNOWN

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", Address(self.address))

    def is_function(self) -> bool:
        return self.kind is SymbolKind.FUNCTION

    def is_data(self) -> bool:
        return self.kind is SymbolKind.DATA

    def contains(self, address: int) -> bool:
        if self.size == 0:
            return address == self.address
        return self.address <= address < self.address + self.size


@runtime_checkable
class SymbolResolver(Protocol):
    def resolve(self, name: str) -> Address | None: ...

    def find_by_prefix(self, prefix: str) -> list[Symbol]: ...

    def find_by_contains(self, substring: str) -> list[Symbol]: ...


class SymbolTable:
    """Name-indexed symbol store.

    Lookups fall back to the Mach-O style underscore-prefixed name, so
    ``lua_gettop`` resolves a symbol stored as ``_lua_gettop``.
    """

    def __init__(self, symbols: Iterable[Symbol] = ()) -> None:
        self._by_name: dict[str, Symbol] = {}
        for sym in symbols:
            self.add(sym)

    def add(self, symbol: Symbol) -> None:
        existing = self._by_name.get(symbol.name)
        if existing is not None and existing.is_function() and not symbol.is_function():
            return
        self._by_name[symbol.name] = symbol

    def resolve(self, name: str) -> Address | None:
        sym = self._by_name.get(name)
        if sym is None and not name.startswith("_"):
            sym = self._by_name.get("_" + name)
        return sym.address if sym is not None else None

    def require(self, name: str) -> Address:
        address = self.resolve(name)
        if address is None:
            raise SymbolResolutionFailedError(name)
        return address

    def get(self, name: str) -> Symbol | None:
        return self._by_name.get(name)

    def find_by_prefix(self, prefix: str) -> list[Symbol]:
        return sorted(
            (s for s in self._by_name.values() if s.name.lstrip("_").startswith(prefix)),
            key=lambda s: s.name,
        )

    def find_by_contains(self, substring: str) -> list[Symbol]:
        return sorted(
            (s for s in self._by_name.values() if substring in s.name),
            key=lambda s: s.name,
        )

    def name_at(self, address: int) -> str | None:
        """Name of the function symbol starting exactly at ``address``."""
        for sym in self._by_name.values():
            if sym.address == address and sym.is_function():
                return sym.name
        return None

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)


class CachedSymbolResolver:
    """Memoising wrapper around a :class:`SymbolResolver`.

    Lookups are read-heavy with occasional population, so the cache is guarded
    by a reader-writer lock rather than a plain mutex.
    """

    _MISSING = object()

    def __init__(self, inner: SymbolResolver) -> None:
        self._inner = inner
        self._lock = ReadWriteLock()
        self._resolved: dict[str, Address | None] = {}

    def resolve(self, name: str) -> Address | None:
        with self._lock.read_locked():
            cached = self._resolved.get(name, self._MISSING)
        if cached is not self._MISSING:
            return cached  # type: ignore[return-value]

        address = self._inner.resolve(name)
        with self._lock.write_locked():
            self._resolved.setdefault(name, address)
        log.debug("symbol_cache_populated", name=name, found=address is not None)
        return address

    def find_by_prefix(self, prefix: str) -> list[Symbol]:
        return self._inner.find_by_prefix(prefix)

    def find_by_contains(self, substring: str) -> list[Symbol]:
        return self._inner.find_by_contains(substring)
