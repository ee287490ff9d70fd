"""Append-only directed graph of code and data references."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from offsetscope.errors import XRefAnalysisFailedError
from offsetscope.memory.address import Address


class NodeKind(str, enum.Enum):
    FUNCTION = "function"
    DATA = "data"
    STRING = "string"
    CONSTANT = "constant"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


class EdgeKind(str, enum.Enum):
    CALL = "call"
    JUMP = "jump"
    REFERENCE = "reference"
    DATA = "data"
    STRING = "string"
    CONSTANT = "constant"


@dataclass(frozen=True)
class GraphNode:
    address: Address
    name: str = ""
    kind: NodeKind = NodeKind.UNKNOWN

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", Address(self.address))


@dataclass(frozen=True)
class GraphEdge:
    """``from_addr`` references ``to_addr``."""

    from_addr: Address
    to_addr: Address
    kind: EdgeKind

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_addr", Address(self.from_addr))
        object.__setattr__(self, "to_addr", Address(self.to_addr))

    def to_dict(self) -> dict[str, str]:
        return {"from": str(self.from_addr), "to": str(self.to_addr), "kind": self.kind.value}


class XRefIndex:
    """Adjacency-mapped reference graph.

    Construction and querying are separate phases: once :meth:`freeze` is
    called the index rejects writes and may be read from any number of
    threads without locking. Edges may point at addresses with no node.
    """

    def __init__(self) -> None:
        self._nodes: dict[int, GraphNode] = {}
        self._edges: list[GraphEdge] = []
        self._outgoing: dict[int, list[int]] = {}
        self._incoming: dict[int, list[int]] = {}
        self._frozen = False

    def _check_writable(self) -> None:
        if self._frozen:
            raise XRefAnalysisFailedError("cross-reference index is frozen")

    def add_node(self, node: GraphNode) -> None:
        self._check_writable()
        self._nodes[int(node.address)] = node

    def add_edge(self, edge: GraphEdge) -> None:
        self._check_writable()
        idx = len(self._edges)
        self._edges.append(edge)
        self._outgoing.setdefault(int(edge.from_addr), []).append(idx)
        self._incoming.setdefault(int(edge.to_addr), []).append(idx)

    def add_reference(self, from_addr: int, to_addr: int, kind: EdgeKind = EdgeKind.CALL) -> GraphEdge:
        edge = GraphEdge(Address(from_addr), Address(to_addr), kind)
        self.add_edge(edge)
        return edge

    def freeze(self) -> XRefIndex:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has_node(self, address: int) -> bool:
        return int(address) in self._nodes

    def get_node(self, address: int) -> GraphNode | None:
        return self._nodes.get(int(address))

    def get_references_to(self, address: int, kinds: Iterable[EdgeKind] | None = None) -> list[GraphEdge]:
        return self._select(self._incoming.get(int(address), ()), kinds)

    def get_references_from(self, address: int, kinds: Iterable[EdgeKind] | None = None) -> list[GraphEdge]:
        return self._select(self._outgoing.get(int(address), ()), kinds)

    def _select(self, indices: Iterable[int], kinds: Iterable[EdgeKind] | None) -> list[GraphEdge]:
        edges = [self._edges[i] for i in indices]
        if kinds is None:
            return edges
        wanted = set(kinds)
        return [e for e in edges if e.kind in wanted]

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def count_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for edge in self._edges:
            counts[edge.kind.value] = counts.get(edge.kind.value, 0) + 1
        return counts
