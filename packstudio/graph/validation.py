"""
Diagram validation.

Builds the per-node error map an editor shows next to ports and media
slots. Issues never block compilation: unterminated options simply
compile to null targets.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum

from ..contracts.base import NodeVariant, PortRole
from .model import PackGraph
from .nodes import Node, PortRef


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Issue:
    key: str
    severity: Severity
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "severity": self.severity.value, "message": self.message}


@dataclass
class ValidationReport:
    """Issues keyed by node id, then by port/slot key."""
    errors: Dict[str, Dict[str, Issue]] = field(default_factory=dict)
    pack_issues: List[Issue] = field(default_factory=list)

    def add(self, node_id: str, key: str, message: str, severity: Severity = Severity.ERROR):
        self.errors.setdefault(node_id, {})[key] = Issue(key, severity, message)

    def node_issues(self, node_id: str) -> Dict[str, Issue]:
        return dict(self.errors.get(node_id, {}))

    def has_issue(self, node_id: str, key: str) -> bool:
        return key in self.errors.get(node_id, {})

    def _all(self) -> List[Issue]:
        issues = list(self.pack_issues)
        for per_node in self.errors.values():
            issues.extend(per_node.values())
        return issues

    @property
    def issue_count(self) -> int:
        return len(self._all())

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self._all() if i.severity == Severity.WARNING)

    @property
    def is_valid(self) -> bool:
        """True when there are no ERROR issues (warnings allowed)."""
        return all(i.severity != Severity.ERROR for i in self._all())

    def to_dict(self) -> Dict:
        return {
            "valid": self.is_valid,
            "errors": {
                node_id: {key: issue.to_dict() for key, issue in per_node.items()}
                for node_id, per_node in self.errors.items()
            },
            "packIssues": [i.to_dict() for i in self.pack_issues],
        }


def validate_pack(graph: PackGraph) -> ValidationReport:
    """Inspect a graph without modifying it."""
    report = ValidationReport()
    if graph.entry_node is None:
        report.pack_issues.append(Issue("entry", Severity.ERROR, "Pack has no entry node"))

    for node in graph.nodes:
        _check_inbound(graph, node, report)
        if node.variant == NodeVariant.ACTION:
            _check_action(graph, node, report)
        elif node.variant == NodeVariant.MENU:
            _check_menu(graph, node, report)
        else:
            _check_stage(graph, node, report)
    return report


def _check_inbound(graph: PackGraph, node: Node, report: ValidationReport):
    if node.variant == NodeVariant.ACTION:
        if not graph.inbound_links(node.id):
            report.add(node.id, "optionsIn", "Action is not reachable")
        return
    from_port = PortRef.from_port(node.id)
    if graph.has_port(from_port) and not graph.links_at(from_port):
        report.add(node.id, "fromPort", "Node is not reachable")


def _loops_back(graph: PackGraph, node: Node, port: PortRef) -> bool:
    """True when following `port` through an action lands on `node` again."""
    target = graph.forward_target(port)
    if target is None or target.role != PortRole.OPTION_IN:
        return False
    after = graph.forward_target(PortRef.option_out(target.node_id, target.index))
    return after is not None and after.node_id == node.id


def _check_stage(graph: PackGraph, node: Node, report: ValidationReport):
    ok_port, home_port = PortRef.ok(node.id), PortRef.home(node.id)
    if graph.has_port(ok_port):
        if not graph.links_at(ok_port):
            report.add(node.id, "okPort", "Ok transition is not linked")
        elif _loops_back(graph, node, ok_port):
            report.add(node.id, "okPort", "Ok transition leads back to this stage")
    if graph.has_port(home_port):
        if not graph.links_at(home_port):
            # An unlinked home port on a plain stage means "back to the entry"
            if node.variant == NodeVariant.STORY:
                report.add(node.id, "homePort", "Custom home transition is not linked")
        elif _loops_back(graph, node, home_port):
            report.add(node.id, "homeTransition", "Home transition leads back to this stage")
    if node.image is None and node.audio is None:
        report.add(node.id, "assets", "Stage has neither image nor audio")


def _check_action(graph: PackGraph, node: Node, report: ValidationReport):
    for i in range(node.option_count):
        if not graph.links_at(PortRef.option_out(node.id, i)):
            report.add(node.id, f"optionsOut_{i}", f"Option {i} has no destination")


def _check_menu(graph: PackGraph, node: Node, report: ValidationReport):
    if node.question.audio is None:
        report.add(node.id, "questionAudio", "Menu question has no audio")
    for i, option in enumerate(node.options):
        if option.image is None and option.audio is None:
            report.add(node.id, f"assets_{i}", f"Option {i} has neither image nor audio")
        if not graph.links_at(PortRef.option_out(node.id, i)):
            report.add(node.id, f"optionsOut_{i}", f"Option {i} has no destination")

    incoming = graph.links_at(PortRef.from_port(node.id))
    if not incoming or graph.menu_return_anchor(node.id) is not None:
        return
    if len(incoming) == 1:
        predecessor: Optional[Node] = graph.get_node(incoming[0].forward_source.node_id)
        if predecessor is not None and predecessor.is_entry:
            return
    report.add(
        node.id, "homeTransition",
        "Cannot tell where home should return to; it will go back to the entry",
        Severity.WARNING,
    )
