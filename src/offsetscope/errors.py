"""Exception hierarchy for offset resolution."""

from __future__ import annotations


class OffsetScopeError(Exception):
    """Base class for all offsetscope errors."""


class MemoryReadError(OffsetScopeError):
    """A read through the memory-reader boundary failed."""

    def __init__(self, address: int, length: int, reason: str = "unmapped") -> None:
        self.address = int(address)
        self.length = length
        self.reason = reason
        super().__init__(f"cannot read {length} byte(s) at {self.address:#x}: {reason}")


class ImageLoadError(OffsetScopeError):
    """The binary image could not be parsed."""


class InvalidPatternError(OffsetScopeError, ValueError):
    """Pattern text does not follow the hex-with-wildcards grammar."""


class FinderError(OffsetScopeError):
    """Base class for resolution failures."""


class NotFoundError(FinderError):
    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"offset not found: {target}")


class MultipleMatchesError(FinderError):
    def __init__(self, what: str, count: int) -> None:
        self.count = count
        super().__init__(f"multiple matches ({count}) for: {what}")


class PatternScanFailedError(FinderError):
    """The read channel failed for every chunk of the scanned range."""


class SymbolResolutionFailedError(FinderError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"symbol not found: {name}")


class XRefAnalysisFailedError(FinderError):
    pass


class ValidationFailedError(FinderError):
    """The structural validator rejected every candidate."""

    def __init__(self, target: str, method: str, rejected: int) -> None:
        self.target = target
        self.method = method
        self.rejected = rejected
        super().__init__(f"{method}: validator rejected {rejected} candidate(s) for {target}")


class ConfigError(OffsetScopeError):
    """The configuration file is missing or malformed."""
