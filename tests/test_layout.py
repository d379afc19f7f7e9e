"""
Layout Tests
============

Rank layout of decompiled graphs: ranks follow forward links, cycles do
not prevent a layout, and the result is deterministic.
"""

import networkx as nx

from packstudio.contracts.archive import Position
from packstudio.graph import PortRef
from packstudio.layout import LayoutConfig, RankLayout, needs_layout, node_size

from tests.fixtures import cover_action_stages, cover_menu, new_graph, ok


class TestRankLayout:

    def test_ranks_follow_links(self):
        graph, ids = cover_action_stages()
        positions = RankLayout().compute(graph)
        assert positions[ids["cover"]].x < positions[ids["action"]].x < positions[ids["stage0"]].x
        assert positions[ids["stage0"]].x == positions[ids["stage1"]].x
        assert positions[ids["stage0"]].y < positions[ids["stage1"]].y

    def test_margins(self):
        graph, ids = cover_action_stages()
        positions = RankLayout(LayoutConfig(margin_x=10, margin_y=20)).compute(graph)
        assert positions[ids["cover"]] == Position(10, 20)

    def test_rank_spacing_uses_widest_node(self):
        graph, ids = cover_action_stages()
        config = LayoutConfig()
        positions = RankLayout(config).compute(graph)
        cover_width, _ = node_size(graph.get_node(ids["cover"]))
        assert positions[ids["action"]].x == config.margin_x + cover_width + config.rank_separation

    def test_cycles_are_broken(self):
        graph, ids = cover_action_stages()
        ok(graph.connect(PortRef.ok(ids["stage0"]), PortRef.option_in(ids["action"], 1)))
        layout = RankLayout()
        digraph = layout.build_digraph(graph)
        assert not nx.is_directed_acyclic_graph(digraph)
        assert nx.is_directed_acyclic_graph(layout.break_cycles(digraph))
        positions = layout.compute(graph)
        assert len(positions) == len(graph)

    def test_deterministic(self):
        graph, _ = cover_menu()
        assert RankLayout().compute(graph) == RankLayout().compute(graph)

    def test_apply_writes_positions(self):
        graph, _ = cover_menu()
        assert needs_layout(graph)
        RankLayout().apply(graph)
        assert not needs_layout(graph)

    def test_empty_graph(self):
        assert RankLayout().compute(new_graph()) == {}

    def test_origin_counts_as_unpositioned(self):
        graph = new_graph()
        ok(graph.add_stage(position=Position(0, 0)))
        assert needs_layout(graph)


class TestNodeSize:

    def test_sizes_grow_with_options(self):
        graph = new_graph()
        small = ok(graph.add_action(option_count=1))
        large = ok(graph.add_action(option_count=4))
        assert node_size(large)[1] > node_size(small)[1]
        menu = ok(graph.add_menu(options=["a", "b"]))
        assert node_size(menu) == (250.0, 141.0 + 74.0 * 2)
