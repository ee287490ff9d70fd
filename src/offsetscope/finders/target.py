"""Declarative description of one function to resolve."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property

from offsetscope.finders.validators import HeuristicShape, StructuralValidator
from offsetscope.pattern.pattern import Pattern


@dataclass(frozen=True)
class TargetSpec:
    name: str
    aliases: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    xref_strings: tuple[str, ...] = ()
    validator: StructuralValidator = field(default_factory=StructuralValidator)
    heuristic: HeuristicShape | None = field(default_factory=HeuristicShape)
    category: str = "unknown"
    signature: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("target name must not be empty")
        # fail fast on malformed pattern text
        _ = self.compiled_patterns

    @cached_property
    def compiled_patterns(self) -> tuple[Pattern, ...]:
        return tuple(
            Pattern.from_hex(text, name=f"{self.name}#{i}") for i, text in enumerate(self.patterns)
        )

    @property
    def symbol_names(self) -> tuple[str, ...]:
        """Names tried against the symbol table, most specific first."""
        names: list[str] = []
        for candidate in (self.name, f"_{self.name}", *self.aliases):
            if candidate not in names:
                names.append(candidate)
        return tuple(names)
