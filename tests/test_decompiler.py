"""
Decompiler Tests
================

Archive -> graph. Verifies primitive reconstruction, entry handling,
failure modes, and the compile/decompile fixed point.
"""

import asyncio
import json

import pytest

from packstudio.contracts.base import ArchiveError, ErrorCode, NodeVariant
from packstudio.archive import PackReader, PackWriter, write_zip
from packstudio.graph import PortRef

from tests.fixtures import cover_action_stages, cover_menu, cover_story, corrupt_member, ok, png


def compile_bytes(graph) -> bytes:
    return asyncio.run(PackWriter().compile_to_bytes(graph))


def decompile(data: bytes):
    return asyncio.run(PackReader().decompile(data))


def stage_json(uuid, **fields):
    record = {
        "uuid": uuid, "type": "stage", "name": uuid, "position": None,
        "image": None, "audio": None, "okTransition": None, "homeTransition": None,
        "controlSettings": {"wheel": False, "ok": True, "home": False,
                            "pause": False, "autoplay": False},
    }
    record.update(fields)
    return record


def archive(stage_nodes, action_nodes=(), assets=None) -> bytes:
    manifest = {
        "format": "v1", "title": "Raw", "version": 1, "description": "",
        "nightModeAvailable": False,
        "stageNodes": list(stage_nodes), "actionNodes": list(action_nodes),
    }
    members = [("story.json", json.dumps(manifest).encode())]
    members.extend(("assets/" + name, data) for name, data in (assets or {}).items())
    return write_zip(members)


class TestReconstruction:

    def test_primitive_graph_rebuilt(self):
        graph, ids = cover_action_stages()
        result = decompile(compile_bytes(graph))
        rebuilt = result.graph

        cover_uuid = graph.get_node(ids["cover"]).uuid
        assert rebuilt.entry_node.id == cover_uuid
        assert rebuilt.get_node(ids["action"]).variant == NodeVariant.ACTION
        for i in range(2):
            stage_uuid = graph.get_node(ids[f"stage{i}"]).uuid
            target = rebuilt.forward_target(PortRef.option_out(ids["action"], i))
            assert target == PortRef.from_port(stage_uuid)
            assert rebuilt.get_node(stage_uuid).image == graph.get_node(ids[f"stage{i}"]).image
        assert rebuilt.forward_target(PortRef.ok(cover_uuid)) == PortRef.option_in(ids["action"], 0)

    def test_layout_applied_to_unpositioned_graph(self):
        graph, _ = cover_action_stages()
        result = decompile(compile_bytes(graph))
        assert result.layout_applied
        assert all(n.position is not None and not n.position.is_origin for n in result.graph.nodes)

    def test_composites_come_back_flat(self):
        graph, _ = cover_menu()
        rebuilt = decompile(compile_bytes(graph)).graph
        variants = {n.variant for n in rebuilt.nodes}
        assert variants == {NodeVariant.STAGE, NodeVariant.ACTION}

    def test_metadata_and_thumbnail(self):
        graph, _ = cover_action_stages()
        graph.title, graph.version, graph.night_mode_available = "Night", 4, True
        graph.thumbnail = png(b"thumb")
        rebuilt = decompile(compile_bytes(graph)).graph
        assert (rebuilt.title, rebuilt.version, rebuilt.night_mode_available) == ("Night", 4, True)
        assert rebuilt.thumbnail.read() == b"thumb"


class TestFixedPoint:

    @pytest.mark.parametrize("builder", [cover_action_stages, cover_menu, cover_story])
    def test_second_round_is_stable(self, builder):
        graph, _ = builder()
        first = compile_bytes(graph)
        second = compile_bytes(decompile(first).graph)
        third = compile_bytes(decompile(second).graph)
        assert second == third

    def test_positioned_primitive_graph_keeps_positions(self):
        graph, _ = cover_action_stages()
        once = decompile(compile_bytes(graph))
        twice = decompile(compile_bytes(once.graph))
        assert not twice.layout_applied
        assert [n.position for n in twice.graph.nodes] == [n.position for n in once.graph.nodes]


class TestEntry:

    def test_square_one_moved_first(self):
        data = archive([stage_json("a"), stage_json("b", squareOne=True)])
        result = decompile(data)
        assert result.manifest.stage_records[0].uuid == "b"
        assert result.graph.entry_node.id == "b"

    def test_first_record_used_without_square_one(self):
        data = archive([stage_json("a"), stage_json("b")])
        assert decompile(data).graph.entry_node.id == "a"

    def test_only_one_entry_kept(self):
        data = archive([stage_json("a", squareOne=True), stage_json("b", squareOne=True)])
        result = decompile(data)
        assert [r.square_one for r in result.manifest.stage_records] == [True, False]


class TestRawArchives:

    def test_option_index_beyond_declared_options(self):
        data = archive(
            [stage_json("a", okTransition={"actionNode": "act", "optionIndex": 2}), stage_json("b")],
            [{"id": "act", "name": "act", "position": None, "options": ["b"]}],
        )
        rebuilt = decompile(data).graph
        assert rebuilt.get_node("act").option_count == 3
        assert rebuilt.forward_target(PortRef.ok("a")) == PortRef.option_in("act", 2)

    def test_option_index_over_limit_rejected(self):
        data = archive(
            [stage_json("a", okTransition={"actionNode": "act", "optionIndex": 10 ** 8}), stage_json("b")],
            [{"id": "act", "name": "act", "position": None, "options": ["b"]}],
        )
        with pytest.raises(ArchiveError) as excinfo:
            decompile(data)
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_random_transition(self):
        data = archive(
            [stage_json("a", okTransition={"actionNode": "act", "optionIndex": -1}), stage_json("b")],
            [{"id": "act", "name": "act", "position": None, "options": ["b"]}],
        )
        assert decompile(data).graph.forward_target(PortRef.ok("a")) == PortRef.random("act")

    def test_transition_on_disabled_control_ignored(self):
        data = archive(
            [stage_json("a", homeTransition={"actionNode": "act", "optionIndex": 0}), stage_json("b")],
            [{"id": "act", "name": "act", "position": None, "options": ["b"]}],
        )
        rebuilt = decompile(data).graph
        assert not rebuilt.has_port(PortRef.home("a"))

    def test_option_back_to_entry_dropped(self):
        data = archive(
            [stage_json("a", okTransition={"actionNode": "act", "optionIndex": 0}), stage_json("b")],
            [{"id": "act", "name": "act", "position": None, "options": ["a", "b"]}],
        )
        rebuilt = decompile(data).graph
        assert rebuilt.forward_target(PortRef.option_out("act", 0)) is None
        assert rebuilt.forward_target(PortRef.option_out("act", 1)) == PortRef.from_port("b")

    def test_assets_typed_by_extension(self):
        data = archive(
            [stage_json("a", image="abc.png", audio="def.mp3")],
            assets={"abc.png": b"img", "def.mp3": b"snd"},
        )
        stage = decompile(data).graph.get_node("a")
        assert (stage.image.mime_type, stage.image.read()) == ("image/png", b"img")
        assert (stage.audio.mime_type, stage.audio.read()) == ("audio/mpeg", b"snd")


class TestFailures:

    def test_not_a_zip(self):
        with pytest.raises(ArchiveError) as excinfo:
            decompile(b"definitely not a zip")
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_missing_manifest(self):
        with pytest.raises(ArchiveError) as excinfo:
            decompile(write_zip([("assets/x.png", b"x")]))
        assert excinfo.value.code == ErrorCode.MANIFEST_MISSING

    def test_invalid_json(self):
        with pytest.raises(ArchiveError) as excinfo:
            decompile(write_zip([("story.json", b"{not json")]))
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_no_stage_nodes(self):
        with pytest.raises(ArchiveError) as excinfo:
            decompile(archive([]))
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_corrupt_asset_stream(self):
        data = archive(
            [stage_json("a", image="big.png")],
            assets={"big.png": bytes(range(256)) * 20},
        )
        with pytest.raises(ArchiveError) as excinfo:
            decompile(corrupt_member(data, "assets/big.png"))
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_corrupt_manifest_stream(self):
        data = archive([stage_json("a")])
        with pytest.raises(ArchiveError) as excinfo:
            decompile(corrupt_member(data, "story.json"))
        assert excinfo.value.code == ErrorCode.MALFORMED_ARCHIVE

    def test_missing_asset(self):
        with pytest.raises(ArchiveError) as excinfo:
            decompile(archive([stage_json("a", image="gone.png")]))
        assert excinfo.value.code == ErrorCode.ASSET_MISSING

    def test_dangling_stage_reference(self):
        data = archive(
            [stage_json("a")],
            [{"id": "act", "name": "act", "position": None, "options": ["nowhere"]}],
        )
        with pytest.raises(ArchiveError) as excinfo:
            decompile(data)
        assert excinfo.value.code == ErrorCode.DANGLING_REFERENCE

    def test_dangling_action_reference(self):
        data = archive([stage_json("a", okTransition={"actionNode": "nope", "optionIndex": 0})])
        with pytest.raises(ArchiveError) as excinfo:
            decompile(data)
        assert excinfo.value.code == ErrorCode.DANGLING_REFERENCE
