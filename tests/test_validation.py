"""
Validation Tests
================

Diagram validation reports composition problems as data; it never
modifies the graph and never raises.
"""

from packstudio.graph import PortRef, Severity, validate_pack

from tests.fixtures import (
    STAGE_CONTROLS, cover_action_stages, cover_menu, mp3, new_graph, ok,
)


class TestValidation:

    def test_missing_entry_is_pack_issue(self):
        graph = new_graph()
        ok(graph.add_stage(audio=mp3()))
        report = validate_pack(graph)
        assert not report.is_valid
        assert [i.key for i in report.pack_issues] == ["entry"]

    def test_unreachable_nodes(self):
        graph, _ = cover_action_stages()
        stage = ok(graph.add_stage(audio=mp3(b"lonely")))
        action = ok(graph.add_action())
        report = validate_pack(graph)
        assert report.has_issue(stage.id, "fromPort")
        assert report.has_issue(action.id, "optionsIn")

    def test_unlinked_ok_port(self):
        graph, ids = cover_action_stages()
        report = validate_pack(graph)
        assert report.has_issue(ids["stage0"], "okPort")
        assert not report.has_issue(ids["cover"], "okPort")

    def test_unlinked_home_on_plain_stage_is_fine(self):
        graph, ids = cover_action_stages()
        assert not report_keys(validate_pack(graph), ids["stage0"]) & {"homePort", "homeTransition"}

    def test_ok_loop_detected(self):
        graph, ids = cover_action_stages()
        ok(graph.connect(PortRef.ok(ids["stage0"]), PortRef.option_in(ids["action"], 0)))
        report = validate_pack(graph)
        assert report.node_issues(ids["stage0"])["okPort"].message.startswith("Ok transition leads back")

    def test_home_loop_detected(self):
        graph, ids = cover_action_stages()
        ok(graph.connect(PortRef.home(ids["stage1"]), PortRef.option_in(ids["action"], 1)))
        assert validate_pack(graph).has_issue(ids["stage1"], "homeTransition")

    def test_missing_assets(self):
        graph, _ = cover_action_stages()
        bare = ok(graph.add_stage(controls=STAGE_CONTROLS))
        assert validate_pack(graph).has_issue(bare.id, "assets")

    def test_unlinked_action_option(self):
        graph, ids = cover_action_stages()
        ok(graph.add_option(ids["action"]))
        assert validate_pack(graph).has_issue(ids["action"], "optionsOut_2")

    def test_story_custom_home_unlinked(self):
        graph = new_graph()
        story = ok(graph.add_story(audio=mp3(), custom_home_transition=True))
        assert validate_pack(graph).has_issue(story.id, "homePort")

    def test_menu_issues(self):
        graph = new_graph()
        ok(graph.add_cover(audio=mp3()))
        menu = ok(graph.add_menu(options=["a", "b"]))
        report = validate_pack(graph)
        keys = report_keys(report, menu.id)
        assert {"questionAudio", "assets_0", "assets_1", "optionsOut_0", "optionsOut_1", "fromPort"} <= keys

    def test_complete_menu_pack_is_valid(self):
        graph, _ = cover_menu()
        report = validate_pack(graph)
        # Only the unlinked ok ports of the final stages remain
        assert all(set(issues) == {"okPort"} for issues in report.errors.values())
        assert report.warning_count == 0

    def test_unresolvable_return_anchor_warns(self):
        graph, ids = cover_action_stages()
        menu = ok(graph.add_menu(question_audio=mp3(b"q"), options=["a"]))
        ok(graph.connect(PortRef.ok(ids["stage0"]), PortRef.from_port(menu.id)))
        ok(graph.connect(PortRef.ok(ids["stage1"]), PortRef.from_port(menu.id)))
        report = validate_pack(graph)
        issue = report.node_issues(menu.id)["homeTransition"]
        assert issue.severity == Severity.WARNING
        assert report.warning_count == 1

    def test_validation_does_not_mutate(self):
        graph, _ = cover_menu()
        before = (graph.nodes, graph.links)
        validate_pack(graph)
        assert (graph.nodes, graph.links) == before

    def test_report_dict(self):
        graph = new_graph()
        stage = ok(graph.add_stage())
        document = validate_pack(graph).to_dict()
        assert document["valid"] is False
        assert document["packIssues"][0]["key"] == "entry"
        assert document["errors"][stage.id]["assets"]["severity"] == "error"


def report_keys(report, node_id):
    return set(report.node_issues(node_id))
