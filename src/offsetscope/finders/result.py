"""Finder results, the fixed confidence table and the trust-ordered merge."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from offsetscope.memory.address import Address


class Method(str, enum.Enum):
    """Resolution strategies, declared in trust order."""

    SYMBOL = "symbol"
    PATTERN = "pattern"
    XREF = "xref"
    HEURISTIC = "heuristic"

    @property
    def confidence(self) -> float:
        return CONFIDENCE[self]

    @property
    def rank(self) -> int:
        return TRUST_ORDER.index(self)


CONFIDENCE: dict[Method, float] = {
    Method.SYMBOL: 0.99,
    Method.PATTERN: 0.85,
    Method.XREF: 0.80,
    Method.HEURISTIC: 0.70,
}

TRUST_ORDER: tuple[Method, ...] = (Method.SYMBOL, Method.PATTERN, Method.XREF, Method.HEURISTIC)


@dataclass(frozen=True)
class FinderResult:
    """One resolved target.

    Build results with :meth:`create` so the confidence always comes from the
    method's tier. Later stages may drop a result but never raise its
    confidence.
    """

    name: str
    address: Address
    confidence: float
    method: Method
    category: str = "unknown"
    signature: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", Address(self.address))
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence {self.confidence} outside [0, 1]")

    @classmethod
    def create(
        cls,
        name: str,
        address: int,
        method: Method,
        category: str = "unknown",
        signature: str | None = None,
    ) -> FinderResult:
        return cls(name, Address(address), CONFIDENCE[method], method, category, signature)

    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.85

    def is_medium_confidence(self) -> bool:
        return 0.65 <= self.confidence < 0.85

    def is_low_confidence(self) -> bool:
        return self.confidence < 0.65

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": str(self.address),
            "confidence": self.confidence,
            "method": self.method.value,
            "category": self.category,
            "signature": self.signature,
        }


@dataclass
class FinderResults:
    """Name -> address maps for functions and classes.

    :meth:`merge` never replaces an existing entry, so merging passes in
    trust order (symbol, pattern, xref, heuristic) keeps the most trusted
    address for every name.
    """

    functions: dict[str, Address] = field(default_factory=dict)
    classes: dict[str, Address] = field(default_factory=dict)

    def add_function(self, name: str, address: int) -> bool:
        if name in self.functions:
            return False
        self.functions[name] = Address(address)
        return True

    def add_class(self, name: str, address: int) -> bool:
        if name in self.classes:
            return False
        self.classes[name] = Address(address)
        return True

    def merge(self, other: FinderResults) -> None:
        for name, address in other.functions.items():
            self.add_function(name, address)
        for name, address in other.classes.items():
            self.add_class(name, address)

    @classmethod
    def merged(cls, passes: Iterable[FinderResults]) -> FinderResults:
        combined = cls()
        for results in passes:
            combined.merge(results)
        return combined

    @classmethod
    def from_results(cls, results: Iterable[FinderResult]) -> FinderResults:
        """Collect results into maps, most trusted method first."""
        out = cls()
        for result in sorted(results, key=lambda r: r.method.rank):
            out.add_function(result.name, result.address)
        return out

    def __len__(self) -> int:
        return len(self.functions) + len(self.classes)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            "functions": {name: str(addr) for name, addr in sorted(self.functions.items())},
            "classes": {name: str(addr) for name, addr in sorted(self.classes.items())},
        }
