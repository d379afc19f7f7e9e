"""
Graph Nodes, Ports and Links

Nodes are immutable values held in the PackGraph arena. Ports are never
stored: they are derived from node state and addressed as PortRef values.
The kind and direction of every port comes from one closed table keyed by
(variant, role).
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import ClassVar, Dict, Optional, Tuple

from ..contracts.base import (
    Control, NodeKind, NodeVariant, PortDirection, PortKind, PortRole,
)
from ..contracts.archive import ControlSettings, Position
from ..storage import MediaAsset


# =============================================================================
# PORT TABLE
# =============================================================================

_C, _B = PortKind.CONTENT, PortKind.BRANCH
_IN, _OUT = PortDirection.INBOUND, PortDirection.OUTBOUND

PORT_TABLE: Dict[Tuple[NodeVariant, PortRole], Tuple[PortKind, PortDirection]] = {
    (NodeVariant.STAGE, PortRole.FROM): (_C, _IN),
    (NodeVariant.STAGE, PortRole.OK): (_C, _OUT),
    (NodeVariant.STAGE, PortRole.HOME): (_C, _OUT),
    (NodeVariant.COVER, PortRole.FROM): (_C, _IN),
    (NodeVariant.COVER, PortRole.OK): (_C, _OUT),
    (NodeVariant.COVER, PortRole.HOME): (_C, _OUT),
    (NodeVariant.STORY, PortRole.FROM): (_B, _IN),
    (NodeVariant.STORY, PortRole.OK): (_C, _OUT),
    (NodeVariant.STORY, PortRole.HOME): (_C, _OUT),
    (NodeVariant.MENU, PortRole.FROM): (_B, _IN),
    (NodeVariant.MENU, PortRole.OPTION_OUT): (_C, _OUT),
    (NodeVariant.ACTION, PortRole.OPTION_IN): (_B, _IN),
    (NodeVariant.ACTION, PortRole.RANDOM): (_B, _IN),
    (NodeVariant.ACTION, PortRole.OPTION_OUT): (_B, _OUT),
}

NODE_KINDS: Dict[NodeVariant, NodeKind] = {
    NodeVariant.STAGE: NodeKind.CONTENT,
    NodeVariant.COVER: NodeKind.CONTENT,
    NodeVariant.STORY: NodeKind.CONTENT,
    NodeVariant.MENU: NodeKind.CONTENT,
    NodeVariant.ACTION: NodeKind.BRANCH,
}

STAGE_FAMILY = (NodeVariant.STAGE, NodeVariant.COVER, NodeVariant.STORY)

# Upper bound on options of one Action or Menu
MAX_OPTIONS = 256


@dataclass(frozen=True)
class PortRef:
    """Address of a port: owning node, role, and option index for indexed roles."""
    node_id: str
    role: PortRole
    index: Optional[int] = None

    def __post_init__(self):
        if self.role.is_indexed:
            if self.index is None or self.index < 0:
                raise ValueError(f"{self.role.value} port needs a non-negative index")
        elif self.index is not None:
            raise ValueError(f"{self.role.value} port takes no index")

    def __str__(self) -> str:
        suffix = f"[{self.index}]" if self.index is not None else ""
        return f"{self.node_id}.{self.role.value}{suffix}"

    @staticmethod
    def from_port(node_id: str) -> PortRef:
        return PortRef(node_id, PortRole.FROM)

    @staticmethod
    def ok(node_id: str) -> PortRef:
        return PortRef(node_id, PortRole.OK)

    @staticmethod
    def home(node_id: str) -> PortRef:
        return PortRef(node_id, PortRole.HOME)

    @staticmethod
    def random(node_id: str) -> PortRef:
        return PortRef(node_id, PortRole.RANDOM)

    @staticmethod
    def option_in(node_id: str, index: int) -> PortRef:
        return PortRef(node_id, PortRole.OPTION_IN, index)

    @staticmethod
    def option_out(node_id: str, index: int) -> PortRef:
        return PortRef(node_id, PortRole.OPTION_OUT, index)


@dataclass(frozen=True)
class Link:
    """
    Edge between two ports.

    `inversed` is set when the nominal source is the inbound side (the
    author dragged the link backwards). Semantic direction must always be
    read through forward_source / forward_target.
    """
    id: str
    source: PortRef
    target: PortRef
    inversed: bool = False

    @property
    def forward_source(self) -> PortRef:
        return self.target if self.inversed else self.source

    @property
    def forward_target(self) -> PortRef:
        return self.source if self.inversed else self.target

    def touches(self, port: PortRef) -> bool:
        return port == self.source or port == self.target

    def touches_node(self, node_id: str) -> bool:
        return self.source.node_id == node_id or self.target.node_id == node_id


# =============================================================================
# NODE VARIANTS
# =============================================================================

@dataclass(frozen=True)
class StageContent:
    """Media block shared by stages and menu question/option slots."""
    name: str = ""
    image: Optional[MediaAsset] = None
    audio: Optional[MediaAsset] = None
    controls: ControlSettings = field(default_factory=ControlSettings)


def menu_option_content(index: int) -> StageContent:
    return StageContent(
        name=f"Option #{index + 1}",
        controls=ControlSettings(wheel=True, ok=True, home=True),
    )


@dataclass(frozen=True)
class Node:
    id: str
    uuid: str
    position: Optional[Position] = None

    variant: ClassVar[NodeVariant]

    @property
    def kind(self) -> NodeKind:
        return NODE_KINDS[self.variant]

    @property
    def is_entry(self) -> bool:
        return False

    def port_refs(self) -> Tuple[PortRef, ...]:
        """Ports that exist given the current node state."""
        raise NotImplementedError

    def normalized(self) -> Node:
        """Return the node with every variant-forced value applied."""
        return self

    def forced_value(self, control: Control) -> Optional[bool]:
        return None


@dataclass(frozen=True)
class StageNode(Node):
    name: str = ""
    image: Optional[MediaAsset] = None
    audio: Optional[MediaAsset] = None
    controls: ControlSettings = field(default_factory=ControlSettings)
    entry: bool = False

    variant: ClassVar[NodeVariant] = NodeVariant.STAGE

    @property
    def is_entry(self) -> bool:
        return self.entry

    @property
    def content(self) -> StageContent:
        return StageContent(self.name, self.image, self.audio, self.controls)

    def has_ok_port(self) -> bool:
        return self.controls.ok or self.controls.autoplay

    def has_home_port(self) -> bool:
        return self.controls.home

    def port_refs(self) -> Tuple[PortRef, ...]:
        ports = []
        if not self.is_entry:
            ports.append(PortRef.from_port(self.id))
        if self.has_ok_port():
            ports.append(PortRef.ok(self.id))
        if self.has_home_port():
            ports.append(PortRef.home(self.id))
        return tuple(ports)

    def normalized(self) -> StageNode:
        controls = self.controls
        for control in Control:
            forced = self.forced_value(control)
            if forced is not None:
                controls = controls.with_control(control, forced)
        if controls == self.controls:
            return self
        return replace(self, controls=controls)


@dataclass(frozen=True)
class CoverNode(StageNode):
    """Entry stage of a pack: wheel and ok always on, never has a from port."""

    variant: ClassVar[NodeVariant] = NodeVariant.COVER

    @property
    def is_entry(self) -> bool:
        return True

    def forced_value(self, control: Control) -> Optional[bool]:
        if control in (Control.WHEEL, Control.OK):
            return True
        return None

    def normalized(self) -> CoverNode:
        node = super().normalized()
        return node if node.entry else replace(node, entry=True)


@dataclass(frozen=True)
class StoryNode(StageNode):
    """
    Self-contained story stage.

    ok/home ports only exist when the author overrides the default
    destination (the first meaningful node after the entry).
    """
    custom_ok_transition: bool = False
    custom_home_transition: bool = False
    disable_home: bool = False

    variant: ClassVar[NodeVariant] = NodeVariant.STORY

    @property
    def is_entry(self) -> bool:
        return False

    def forced_value(self, control: Control) -> Optional[bool]:
        if control == Control.HOME:
            return not self.disable_home
        if control in (Control.PAUSE, Control.AUTOPLAY):
            return True
        return None

    def has_ok_port(self) -> bool:
        return self.custom_ok_transition

    def has_home_port(self) -> bool:
        return self.custom_home_transition and not self.disable_home

    def port_refs(self) -> Tuple[PortRef, ...]:
        ports = [PortRef.from_port(self.id)]
        if self.has_ok_port():
            ports.append(PortRef.ok(self.id))
        if self.has_home_port():
            ports.append(PortRef.home(self.id))
        return tuple(ports)

    def normalized(self) -> StoryNode:
        node = self
        if node.entry:
            node = replace(node, entry=False)
        if node.disable_home and node.custom_home_transition:
            node = replace(node, custom_home_transition=False)
        return StageNode.normalized(node)


@dataclass(frozen=True)
class MenuNode(Node):
    """Question followed by a wheel-selectable list of options."""
    name: str = ""
    question: StageContent = field(default_factory=StageContent)
    options: Tuple[StageContent, ...] = field(default_factory=lambda: (menu_option_content(0),))
    default_option: int = 0

    variant: ClassVar[NodeVariant] = NodeVariant.MENU

    @property
    def option_count(self) -> int:
        return len(self.options)

    def port_refs(self) -> Tuple[PortRef, ...]:
        ports = [PortRef.from_port(self.id)]
        ports.extend(PortRef.option_out(self.id, i) for i in range(self.option_count))
        return tuple(ports)

    def normalized(self) -> MenuNode:
        options = self.options or (menu_option_content(0),)
        options = tuple(
            replace(o, controls=replace(o.controls, wheel=True, ok=True, home=True))
            for o in options
        )
        question = replace(
            self.question,
            controls=self.question.controls.with_control(Control.AUTOPLAY, True),
        )
        default_option = max(-1, min(self.default_option, len(options) - 1))
        return replace(
            self,
            options=options,
            question=question,
            default_option=default_option,
        )


@dataclass(frozen=True)
class ActionNode(Node):
    """Branch node: N numbered options plus a shared random entry."""
    name: str = ""
    option_count: int = 1

    variant: ClassVar[NodeVariant] = NodeVariant.ACTION

    def port_refs(self) -> Tuple[PortRef, ...]:
        ports = []
        for i in range(self.option_count):
            ports.append(PortRef.option_in(self.id, i))
            ports.append(PortRef.option_out(self.id, i))
        ports.append(PortRef.random(self.id))
        return tuple(ports)

    def normalized(self) -> ActionNode:
        if self.option_count >= 1:
            return self
        return replace(self, option_count=1)

