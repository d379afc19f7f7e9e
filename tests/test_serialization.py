"""
Session Document Tests
======================

Graph documents restore the same graph, and documents describing an
illegal graph are rejected.
"""

import json

import pytest

from packstudio.contracts.base import ErrorCode, GraphDocumentError
from packstudio.contracts.archive import Position
from packstudio.graph import (
    PortRef, deserialize_graph, dumps, loads, serialize_graph,
)

from tests.fixtures import cover_action_stages, cover_menu, cover_story, ok, png


def same_graph(a, b):
    assert a.nodes == b.nodes
    assert {l.id: l for l in a.links} == {l.id: l for l in b.links}
    assert (a.title, a.version, a.description, a.night_mode_available) == \
        (b.title, b.version, b.description, b.night_mode_available)


class TestDocuments:

    @pytest.mark.parametrize("builder", [cover_action_stages, cover_menu, cover_story])
    def test_document_restores_graph(self, builder):
        graph, _ = builder()
        same_graph(graph, deserialize_graph(serialize_graph(graph)))

    def test_text_form(self):
        graph, ids = cover_action_stages()
        ok(graph.set_position(ids["cover"], Position(12.5, 40)))
        graph.thumbnail = png(b"thumb")
        restored = loads(dumps(serialize_graph(graph)))
        same_graph(graph, restored)
        assert restored.thumbnail == graph.thumbnail

    def test_inversed_links_survive(self):
        graph, ids = cover_action_stages()
        ok(graph.connect(PortRef.option_in(ids["action"], 1), PortRef.ok(ids["stage0"])))
        restored = deserialize_graph(serialize_graph(graph))
        assert any(l.inversed for l in restored.links)

    def test_media_inlined_as_data_urls(self):
        graph, ids = cover_action_stages()
        document = serialize_graph(graph)
        cover = next(n for n in document["nodes"] if n["id"] == ids["cover"])
        assert cover["image"].startswith("data:image/png;base64,")
        json.dumps(document)


class TestRejectedDocuments:

    def test_not_an_object(self):
        with pytest.raises(GraphDocumentError) as excinfo:
            deserialize_graph([])
        assert excinfo.value.code == ErrorCode.INVALID_DOCUMENT

    def test_not_json(self):
        with pytest.raises(GraphDocumentError):
            loads("{oops")

    def test_unknown_node_type(self):
        with pytest.raises(GraphDocumentError) as excinfo:
            deserialize_graph({"nodes": [{"id": "a", "uuid": "a", "type": "portal"}]})
        assert excinfo.value.code == ErrorCode.INVALID_DOCUMENT

    def test_two_entries(self):
        graph, _ = cover_action_stages()
        document = serialize_graph(graph)
        document["nodes"].append({
            "id": "second", "uuid": "second", "type": "cover", "position": None,
            "name": "Again", "image": None, "audio": None, "controls": {},
        })
        with pytest.raises(GraphDocumentError) as excinfo:
            deserialize_graph(document)
        assert excinfo.value.code == ErrorCode.ENTRY_CONFLICT

    def test_illegal_link(self):
        graph, ids = cover_action_stages()
        document = serialize_graph(graph)
        document["links"].append({
            "id": "bad",
            "source": {"node": ids["stage0"], "role": "ok", "index": None},
            "target": {"node": ids["stage1"], "role": "from", "index": None},
            "inversed": False,
        })
        with pytest.raises(GraphDocumentError) as excinfo:
            deserialize_graph(document)
        assert excinfo.value.code == ErrorCode.ILLEGAL_LINK

    def test_option_count_over_limit(self):
        graph, ids = cover_action_stages()
        document = serialize_graph(graph)
        action = next(n for n in document["nodes"] if n["id"] == ids["action"])
        action["optionCount"] = 10 ** 8
        with pytest.raises(GraphDocumentError) as excinfo:
            deserialize_graph(document)
        assert excinfo.value.code == ErrorCode.INVALID_DOCUMENT
