"""Populate an XRefIndex by decoding branch and address-materialisation sequences."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from offsetscope.arm64.classifier import (
    INSN_SIZE,
    add_immediate,
    adrp_target,
    branch_target,
    feature_mask,
    has_feature,
    load_offset,
    rd,
    rn,
    words,
)
from offsetscope.errors import MemoryReadError, XRefAnalysisFailedError
from offsetscope.memory.address import Address
from offsetscope.memory.reader import MemoryReader
from offsetscope.memory.region import MemoryRegion
from offsetscope.symbols import SymbolTable
from offsetscope.utils.logging import get_logger
from offsetscope.xref.graph import EdgeKind, GraphNode, NodeKind, XRefIndex

log = get_logger(__name__)

ADRP_LOOKAHEAD = 4
MAX_STRING_LENGTH = 256
_PRINTABLE = frozenset(range(0x20, 0x7F)) | {0x09, 0x0A, 0x0D}


def build_xref_index(
    reader: MemoryReader,
    regions: Iterable[MemoryRegion] | None = None,
    symbols: SymbolTable | None = None,
    lookahead: int = ADRP_LOOKAHEAD,
) -> XRefIndex:
    """Scan executable regions and return a frozen :class:`XRefIndex`.

    Recorded references:

    * ``BL`` -> CALL edge; the target becomes a FUNCTION node.
    * ``B`` -> JUMP edge.
    * ``ADRP Xd`` followed within ``lookahead`` instructions by
      ``ADD Xn, Xd, #imm`` -> STRING edge if the target is a printable
      NUL-terminated string, REFERENCE edge otherwise; or by
      ``LDR Xt, [Xd, #imm]`` -> DATA edge. The edge originates at the ADRP.
    """
    all_regions = reader.get_regions()
    code_regions = [
        r for r in (all_regions if regions is None else regions) if r.is_executable and r.is_readable
    ]
    index = XRefIndex()

    if symbols is not None:
        for sym in symbols:
            kind = NodeKind.FUNCTION if sym.is_function() else NodeKind.DATA if sym.is_data() else NodeKind.UNKNOWN
            index.add_node(GraphNode(sym.address, sym.name, kind))

    scanned = 0
    for region in code_regions:
        try:
            data = reader.read_bytes(region.start, region.size)
        except MemoryReadError as exc:
            log.warning("xref_region_unreadable", region=str(region), error=str(exc))
            continue
        scanned += 1
        _scan_region(index, reader, all_regions, region.start, words(data), lookahead)

    if code_regions and scanned == 0:
        raise XRefAnalysisFailedError("no executable region could be read")

    log.info(
        "xref_index_built",
        regions=scanned,
        nodes=index.node_count,
        edges=index.edge_count,
        **index.count_by_kind(),
    )
    return index.freeze()


def _scan_region(
    index: XRefIndex,
    reader: MemoryReader,
    all_regions: list[MemoryRegion],
    start: Address,
    block: np.ndarray,
    lookahead: int,
) -> None:
    for i in np.flatnonzero(feature_mask(block, "call")).tolist():
        pc = start + i * INSN_SIZE
        target = Address(branch_target(int(block[i]), int(pc)))
        index.add_reference(pc, target, EdgeKind.CALL)
        if not index.has_node(target):
            index.add_node(GraphNode(target, f"sub_{int(target):x}", NodeKind.FUNCTION))

    for i in np.flatnonzero(feature_mask(block, "branch")).tolist():
        pc = start + i * INSN_SIZE
        index.add_reference(pc, branch_target(int(block[i]), int(pc)), EdgeKind.JUMP)

    for i in np.flatnonzero(feature_mask(block, "adrp")).tolist():
        pc = start + i * INSN_SIZE
        adrp = int(block[i])
        page = adrp_target(adrp, int(pc))
        base_reg = rd(adrp)
        for follower in block[i + 1 : i + 1 + lookahead].tolist():
            if rn(follower) != base_reg:
                continue
            if has_feature(follower, "add_imm"):
                target = Address(page + add_immediate(follower))
                text = _string_at(reader, all_regions, target)
                if text is not None:
                    index.add_reference(pc, target, EdgeKind.STRING)
                    if not index.has_node(target):
                        index.add_node(GraphNode(target, text, NodeKind.STRING))
                else:
                    index.add_reference(pc, target, EdgeKind.REFERENCE)
                break
            if has_feature(follower, "load"):
                index.add_reference(pc, page + load_offset(follower), EdgeKind.DATA)
                break


def _string_at(reader: MemoryReader, regions: list[MemoryRegion], address: Address) -> str | None:
    region = next((r for r in regions if r.contains(address) and r.is_readable), None)
    if region is None:
        return None
    length = min(MAX_STRING_LENGTH, region.end - address)
    try:
        data = reader.read_bytes(address, length)
    except MemoryReadError:
        return None
    end = data.find(b"\x00")
    if end < 2 or any(b not in _PRINTABLE for b in data[:end]):
        return None
    return data[:end].decode("ascii")
