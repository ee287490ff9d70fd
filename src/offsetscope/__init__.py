"""OffsetScope — multi-strategy function offset resolver for ARM64 images."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from offsetscope.version import __version__

if TYPE_CHECKING:
    from offsetscope.config.models import OffsetScopeConfig
    from offsetscope.memory.image import LoadedImage
    from offsetscope.orchestrator.discovery import DiscoveryOrchestrator


@dataclass
class OffsetScopeContext:
    """Dependency-injection container shared across CLI commands."""

    config: OffsetScopeConfig | None = None
    config_path: str | None = None
    _images: dict[tuple[str, int | None], LoadedImage] = field(default_factory=dict)

    def ensure_config(self) -> OffsetScopeConfig:
        if self.config is None:
            from offsetscope.config.loader import load_config

            self.config = load_config(self.config_path)
        return self.config

    def ensure_image(self, path: str | Path, base_address: int | None = None) -> LoadedImage:
        key = (str(Path(path).resolve()), base_address)
        if key not in self._images:
            from offsetscope.memory.image import load_image

            self._images[key] = load_image(path, base_address)
        return self._images[key]

    def orchestrator(self, image: LoadedImage) -> DiscoveryOrchestrator:
        from offsetscope.orchestrator.discovery import DiscoveryOrchestrator

        return DiscoveryOrchestrator.from_image(image, self.ensure_config().scanning)

    def close(self) -> None:
        self._images.clear()


__all__ = ["OffsetScopeContext", "__version__"]
