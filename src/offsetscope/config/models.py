"""Pydantic configuration models with env var support."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from offsetscope.config.defaults import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_MAX_BACKTRACK_STEPS,
    DEFAULT_MAX_STRING_HITS,
    DEFAULT_THREADS,
    DEFAULT_VALIDATOR_WINDOW,
)


class ScanningConfig(BaseModel):
    enable_symbols: bool = True
    enable_xrefs: bool = True
    enable_heuristics: bool = True
    # filters what gets reported; never changes the per-method confidence
    confidence_threshold: float = Field(default=DEFAULT_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    max_backtrack_steps: int = Field(default=DEFAULT_MAX_BACKTRACK_STEPS, gt=0)
    threads: int = Field(default=DEFAULT_THREADS, ge=1)
    max_string_hits: int = Field(default=DEFAULT_MAX_STRING_HITS, ge=1)


class TargetConfig(BaseModel):
    """A caller-defined target, merged into the built-in catalog."""

    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    xref_strings: list[str] = Field(default_factory=list)
    required: list[str] = Field(default_factory=lambda: ["load"])
    any_of: list[str] = Field(default_factory=list)
    window: int = DEFAULT_VALIDATOR_WINDOW
    require_prologue: bool = True
    heuristic: bool = True
    category: str = "custom"
    signature: str | None = None

    @field_validator("required", "any_of")
    @classmethod
    def _check_features(cls, value: list[str]) -> list[str]:
        from offsetscope.arm64.classifier import FEATURES

        unknown = [name for name in value if name not in FEATURES]
        if unknown:
            raise ValueError(f"unknown instruction feature(s): {', '.join(unknown)}")
        return value

    @field_validator("patterns")
    @classmethod
    def _check_patterns(cls, value: list[str]) -> list[str]:
        from offsetscope.pattern.pattern import Pattern

        for text in value:
            Pattern.from_hex(text)
        return value

    @field_validator("window")
    @classmethod
    def _check_window(cls, value: int) -> int:
        from offsetscope.arm64.classifier import INSN_SIZE
        from offsetscope.finders.validators import MIN_WINDOW

        if value < MIN_WINDOW or value % INSN_SIZE:
            raise ValueError(f"window must be a multiple of {INSN_SIZE} and >= {MIN_WINDOW}")
        return value

    def to_spec(self):
        from offsetscope.finders.target import TargetSpec
        from offsetscope.finders.validators import HeuristicShape, StructuralValidator

        return TargetSpec(
            name=self.name,
            aliases=tuple(self.aliases),
            patterns=tuple(self.patterns),
            xref_strings=tuple(self.xref_strings),
            validator=StructuralValidator(
                required=tuple(self.required),
                any_of=tuple(self.any_of),
                window=self.window,
                require_prologue=self.require_prologue,
            ),
            heuristic=HeuristicShape() if self.heuristic else None,
            category=self.category,
            signature=self.signature,
        )


class PatternsConfig(BaseModel):
    disabled_targets: list[str] = Field(default_factory=list)


class OutputConfig(BaseModel):
    pretty: bool = True
    include_metadata: bool = True


class OffsetScopeConfig(BaseModel):
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)
    targets: list[TargetConfig] = Field(default_factory=list)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def target_specs(self):
        """Built-in catalog (minus disabled entries) followed by configured targets.

        A configured target replaces a built-in one of the same name.
        """
        from offsetscope.finders.catalog import builtin_targets

        custom = [t.to_spec() for t in self.targets]
        overridden = {t.name for t in custom}
        disabled = set(self.patterns.disabled_targets)
        builtin = [t for t in builtin_targets() if t.name not in overridden]
        return [t for t in builtin + custom if t.name not in disabled]
