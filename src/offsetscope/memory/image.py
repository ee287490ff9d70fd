"""Load binary images into a SegmentedMemory plus symbol table.

ELF images are parsed with pyelftools; anything else can be mapped as a raw
flat image at a caller-supplied base address.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from offsetscope.errors import ImageLoadError
from offsetscope.memory.reader import SegmentedMemory
from offsetscope.memory.region import MemoryRegion, Protection
from offsetscope.symbols import Symbol, SymbolKind, SymbolTable
from offsetscope.utils.logging import get_logger

log = get_logger(__name__)

ELF_MAGIC = b"\x7fELF"


@dataclass(frozen=True)
class LoadedImage:
    name: str
    sha256: str
    architecture: str
    memory: SegmentedMemory
    symbols: SymbolTable = field(default_factory=SymbolTable)


def load_image(path: str | Path, base_address: int | None = None) -> LoadedImage:
    """Load ``path``, detecting ELF by magic; otherwise map it raw."""
    path = Path(path)
    if not path.is_file():
        raise ImageLoadError(f"file not found: {path}")

    file_bytes = path.read_bytes()
    if file_bytes[:4] == ELF_MAGIC:
        return load_elf_image(path)
    if base_address is None:
        raise ImageLoadError(f"{path.name} is not an ELF image; pass a base address to map it raw")
    return load_raw_image(path, base_address)


def load_raw_image(path: str | Path, base_address: int) -> LoadedImage:
    path = Path(path)
    data = path.read_bytes()
    memory = SegmentedMemory.from_bytes(data, base_address, "r-x", name=path.name)
    log.info("raw_image_loaded", path=str(path), base=hex(base_address), size=len(data))
    return LoadedImage(
        name=path.stem,
        sha256=hashlib.sha256(data).hexdigest(),
        architecture="AArch64",
        memory=memory,
    )


def load_elf_image(path: str | Path) -> LoadedImage:
    path = Path(path)
    file_bytes = path.read_bytes()
    sha256 = hashlib.sha256(file_bytes).hexdigest()

    try:
        with open(path, "rb") as f:
            elf = ELFFile(f)
            arch = _get_arch(elf)
            if not elf.little_endian:
                raise ImageLoadError(f"{path.name}: big-endian images are not supported")
            segments = _get_segments(elf)
            symbols = _get_symbols(elf)
    except ELFError as exc:
        log.error("elf_load_failed", path=str(path), error=str(exc))
        raise ImageLoadError(f"{path.name}: {exc}") from exc

    if not segments:
        raise ImageLoadError(f"{path.name}: no PT_LOAD segments")

    if arch != "AArch64":
        log.warning("non_arm64_image", path=str(path), arch=arch)

    memory = SegmentedMemory(segments, base_address=min(region.start for region, _ in segments))
    log.info(
        "elf_loaded",
        path=str(path),
        arch=arch,
        regions=len(segments),
        symbols=len(symbols),
        base=str(memory.get_base_address()),
    )
    return LoadedImage(
        name=path.stem,
        sha256=sha256,
        architecture=arch,
        memory=memory,
        symbols=symbols,
    )


def _get_arch(elf: ELFFile) -> str:
    machine = elf.header.e_machine
    mapping = {
        "EM_AARCH64": "AArch64",
        "EM_ARM": "ARM",
        "EM_X86_64": "x86_64",
        "EM_386": "x86",
    }
    return mapping.get(machine, str(machine))


def _get_segments(elf: ELFFile) -> list[tuple[MemoryRegion, bytes]]:
    """Map every PT_LOAD segment to a region, zero-filling up to p_memsz."""
    segments: list[tuple[MemoryRegion, bytes]] = []
    for index, segment in enumerate(elf.iter_segments()):
        if segment["p_type"] != "PT_LOAD" or segment["p_memsz"] == 0:
            continue
        protection = Protection.from_flags(segment["p_flags"])
        region = MemoryRegion.create(
            segment["p_vaddr"],
            segment["p_memsz"],
            protection,
            name=f"LOAD{index}",
        )
        segments.append((region, segment.data()))
    return segments


def _get_symbols(elf: ELFFile) -> SymbolTable:
    """Collect named, non-zero symbols from .symtab and .dynsym."""
    table = SymbolTable()
    for section in elf.iter_sections():
        if not isinstance(section, SymbolTableSection):
            continue
        for sym in section.iter_symbols():
            if not sym.name or not sym.entry.st_value:
                continue
            sym_type = sym.entry.st_info.type
            if sym_type == "STT_FUNC":
                kind = SymbolKind.FUNCTION
            elif sym_type == "STT_OBJECT":
                kind = SymbolKind.DATA
            else:
                kind = SymbolKind.UNKNOWN
            table.add(
                Symbol(
                    name=sym.name,
                    address=sym.entry.st_value,
                    size=sym.entry.st_size,
                    kind=kind,
                )
            )
    return table
