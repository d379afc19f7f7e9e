"""
Layout Assist
=============

Deterministic left-to-right rank layout for graphs that arrive without
usable positions (typically freshly decompiled archives).

CONSTRAINTS:
============
- Pure function of the graph: same nodes, links and insertion order give
  the same positions
- Needs the complete node and link set; it cannot run incrementally
- Only ever writes node positions
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import networkx as nx

from ..contracts.base import NodeVariant
from ..contracts.archive import Position
from ..graph import Node, PackGraph


@dataclass
class LayoutConfig:
    """Spacing of the rank layout, in editor pixels."""
    margin_x: float = 30.0
    margin_y: float = 30.0
    rank_separation: float = 50.0
    node_separation: float = 50.0


def node_size(node: Node) -> Tuple[float, float]:
    """Rendered (width, height) of a node in the editor."""
    if node.variant == NodeVariant.ACTION:
        return 150.0, 77.0 + 22.0 * node.option_count
    if node.variant == NodeVariant.MENU:
        return 250.0, 141.0 + 74.0 * node.option_count
    if node.variant == NodeVariant.STAGE:
        return 185.0, 132.0
    return 150.0, 132.0


def needs_layout(graph: PackGraph) -> bool:
    """True when any node is unpositioned or parked at the origin."""
    return any(n.position is None or n.position.is_origin for n in graph.nodes)


class RankLayout:
    """
    Longest-path rank layout.

    1. Directed graph of forward links between nodes
    2. Cycles broken by dropping DFS back edges (visit in insertion order)
    3. Ranks by longest path over a lexicographic topological order
    4. Nodes inside a rank ordered by predecessor barycenter
    """

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def build_digraph(self, graph: PackGraph) -> nx.DiGraph:
        digraph = nx.DiGraph()
        for index, node in enumerate(graph.nodes):
            digraph.add_node(node.id, order=index)
        for link in graph.links:
            source = link.forward_source.node_id
            target = link.forward_target.node_id
            if source != target:
                digraph.add_edge(source, target)
        return digraph

    @staticmethod
    def break_cycles(digraph: nx.DiGraph) -> nx.DiGraph:
        """Return an acyclic copy without the back edges of an ordered DFS."""
        dag = digraph.copy()
        state: Dict[str, int] = {}  # 1 = on stack, 2 = done
        back_edges = []
        for root in digraph.nodes:
            if root in state:
                continue
            state[root] = 1
            stack = [(root, iter(digraph.successors(root)))]
            while stack:
                parent, children = stack[-1]
                child = next(children, None)
                if child is None:
                    state[parent] = 2
                    stack.pop()
                elif state.get(child) == 1:
                    back_edges.append((parent, child))
                elif child not in state:
                    state[child] = 1
                    stack.append((child, iter(digraph.successors(child))))
        dag.remove_edges_from(back_edges)
        return dag

    @staticmethod
    def rank(dag: nx.DiGraph) -> Dict[str, int]:
        order = nx.get_node_attributes(dag, "order")
        ranks: Dict[str, int] = {}
        for node_id in nx.lexicographical_topological_sort(dag, key=order.__getitem__):
            preds = [ranks[p] + 1 for p in dag.predecessors(node_id)]
            ranks[node_id] = max(preds) if preds else 0
        return ranks

    @staticmethod
    def order_ranks(dag: nx.DiGraph, ranks: Dict[str, int]) -> List[List[str]]:
        order = nx.get_node_attributes(dag, "order")
        layers: List[List[str]] = [[] for _ in range(max(ranks.values(), default=-1) + 1)]
        slot: Dict[str, int] = {}
        for r in range(len(layers)):
            members = [n for n in ranks if ranks[n] == r]

            def barycenter(node_id: str) -> float:
                placed = [slot[p] for p in dag.predecessors(node_id) if p in slot]
                return sum(placed) / len(placed) if placed else float(order[node_id])

            members.sort(key=lambda n: (barycenter(n), order[n]))
            for i, node_id in enumerate(members):
                slot[node_id] = i
            layers[r] = members
        return layers

    def compute(self, graph: PackGraph) -> Dict[str, Position]:
        """Positions (top-left corners) for every node of the graph."""
        if len(graph) == 0:
            return {}
        dag = self.break_cycles(self.build_digraph(graph))
        layers = self.order_ranks(dag, self.rank(dag))

        positions: Dict[str, Position] = {}
        x = self.config.margin_x
        for layer in layers:
            sizes = [node_size(graph.get_node(n)) for n in layer]
            y = self.config.margin_y
            for node_id, (width, height) in zip(layer, sizes):
                positions[node_id] = Position(x=x, y=y)
                y += height + self.config.node_separation
            x += max(w for w, _ in sizes) + self.config.rank_separation
        return positions

    def apply(self, graph: PackGraph) -> Dict[str, Position]:
        positions = self.compute(graph)
        for node_id, position in positions.items():
            graph.set_position(node_id, position)
        return positions
