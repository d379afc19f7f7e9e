"""
Pack Graph Model

RESPONSIBILITY: Own the authoring graph and enforce its legality rules
ALLOWED INPUTS: Node values, port references, authoring commands
OUTPUTS: Result values (never raises for authoring mistakes)

WHAT THIS LAYER MUST NOT DO:
============================
- Perform I/O of any kind
- Let a mutation leave a link attached to a port that no longer exists
- Accept a second entry node

BOUNDARY ENFORCEMENT:
=====================
- Nodes and links live in an arena keyed by id; nodes never reference
  links or other nodes directly
- Every mutation goes through _commit, which re-derives ports and drops
  links on vanished ports in the same step
- Invariants: bipartite links, outbound fan-out <= 1, at most one entry
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import uuid as uuid_lib

from ..contracts.base import (
    Control, Error, ErrorCode, NodeVariant, PortDirection, PortKind, Result,
)
from ..contracts.archive import ControlSettings, Position
from ..storage import MediaAsset
from .nodes import (
    MAX_OPTIONS, PORT_TABLE, STAGE_FAMILY, ActionNode, CoverNode, Link, MenuNode,
    Node, PortRef, StageContent, StageNode, StoryNode, menu_option_content,
)


def _new_uuid() -> str:
    return str(uuid_lib.uuid4())


def _fail(code: ErrorCode, message: str, **context) -> Result:
    return Result.failure(Error.of(code, message, **context))


@dataclass(frozen=True)
class ReturnAnchor:
    """
    Where "home" on a menu option goes back to.

    node_id is an Action (option index), a Story (index 0) or a Menu
    (index 0, its question) that led into the menu.
    """
    node_id: str
    index: int


MutationObserver = Callable[[str, Optional[str]], None]


class PackGraph:
    """
    Arena of nodes and links for one pack.

    Pack metadata (title, version, description, night mode, thumbnail)
    are plain attributes; structure is only changed through methods.
    """

    def __init__(
        self,
        title: str = "",
        version: int = 1,
        description: str = "",
        night_mode_available: bool = False,
        thumbnail: Optional[MediaAsset] = None,
        id_factory: Optional[Callable[[], str]] = None,
        uuid_factory: Optional[Callable[[], str]] = None,
    ):
        self.title = title
        self.version = version
        self.description = description
        self.night_mode_available = night_mode_available
        self.thumbnail = thumbnail
        self._new_id = id_factory or _new_uuid
        self._new_uuid = uuid_factory or _new_uuid
        self._nodes: Dict[str, Node] = {}
        self._links: Dict[str, Link] = {}
        self._observer: Optional[MutationObserver] = None

    def set_observer(self, observer: Optional[MutationObserver]):
        """Register a callback receiving (action, entity_id) after each mutation."""
        self._observer = observer

    def _notify(self, action: str, entity_id: Optional[str]):
        if self._observer:
            self._observer(action, entity_id)

    # =========================================================================
    # READ-ONLY INSPECTION
    # =========================================================================

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._nodes.values())

    @property
    def links(self) -> Tuple[Link, ...]:
        return tuple(self._links.values())

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def get_link(self, link_id: str) -> Optional[Link]:
        return self._links.get(link_id)

    def ports(self, node_id: str) -> Tuple[PortRef, ...]:
        node = self._nodes.get(node_id)
        return node.port_refs() if node else ()

    def has_port(self, port: PortRef) -> bool:
        return port in self.ports(port.node_id)

    def port_kind(self, port: PortRef) -> Optional[PortKind]:
        signature = self._signature(port)
        return signature[0] if signature else None

    def port_direction(self, port: PortRef) -> Optional[PortDirection]:
        signature = self._signature(port)
        return signature[1] if signature else None

    def _signature(self, port: PortRef) -> Optional[Tuple[PortKind, PortDirection]]:
        node = self._nodes.get(port.node_id)
        if node is None or port not in node.port_refs():
            return None
        return PORT_TABLE[(node.variant, port.role)]

    def links_at(self, port: PortRef) -> List[Link]:
        return [link for link in self._links.values() if link.touches(port)]

    def outbound_link(self, port: PortRef) -> Optional[Link]:
        """The single link leaving an outbound port, or None."""
        links = [l for l in self._links.values() if l.forward_source == port]
        return links[0] if len(links) == 1 else None

    def forward_target(self, port: PortRef) -> Optional[PortRef]:
        link = self.outbound_link(port)
        return link.forward_target if link else None

    def inbound_links(self, node_id: str) -> List[Link]:
        return [l for l in self._links.values() if l.forward_target.node_id == node_id]

    @property
    def entry_node(self) -> Optional[StageNode]:
        for node in self._nodes.values():
            if node.is_entry:
                return node
        return None

    def first_useful_target(self) -> Optional[PortRef]:
        """Forward target of the entry's ok link: where stories return to by default."""
        entry = self.entry_node
        if entry is None:
            return None
        return self.forward_target(PortRef.ok(entry.id))

    def menu_return_anchor(self, menu_id: str) -> Optional[ReturnAnchor]:
        """
        Resolve where "home" on a menu option leads.

        Needs exactly one inbound link on the menu. Returns None when the
        predecessor is the entry or cannot be resolved; callers fall back
        to the entry in both cases.
        """
        menu = self._nodes.get(menu_id)
        if menu is None or menu.variant != NodeVariant.MENU:
            return None
        incoming = self.links_at(PortRef.from_port(menu_id))
        if len(incoming) != 1:
            return None
        source = incoming[0].forward_source
        predecessor = self._nodes[source.node_id]
        if predecessor.is_entry:
            return None
        if predecessor.variant == NodeVariant.STAGE:
            before = self.links_at(PortRef.from_port(predecessor.id))
            if len(before) != 1:
                return None
            action_port = before[0].forward_source
            return ReturnAnchor(action_port.node_id, action_port.index)
        if predecessor.variant in (NodeVariant.STORY, NodeVariant.MENU):
            return ReturnAnchor(predecessor.id, 0)
        return None

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    # =========================================================================
    # NODE CREATION
    # =========================================================================

    def add_node(self, node: Node) -> Result:
        """Insert a fully built node. Variant-forced values are applied."""
        if node.id in self._nodes:
            return _fail(ErrorCode.DUPLICATE_ID, f"Node id already used: {node.id}", node_id=node.id)
        if node.variant in (NodeVariant.ACTION, NodeVariant.MENU) and node.option_count > MAX_OPTIONS:
            return _fail(
                ErrorCode.TOO_MANY_OPTIONS,
                f"{node.option_count} options exceed the limit of {MAX_OPTIONS}",
                node_id=node.id,
            )
        node = node.normalized()
        if node.is_entry:
            current = self.entry_node
            if current is not None:
                return _fail(
                    ErrorCode.ENTRY_CONFLICT,
                    "Pack already has an entry node",
                    node_id=node.id, entry_id=current.id,
                )
        self._nodes[node.id] = node
        self._notify("add_node", node.id)
        return Result.success(node)

    def _ids(self, node_id: Optional[str], node_uuid: Optional[str]) -> Tuple[str, str]:
        return node_id or self._new_id(), node_uuid or self._new_uuid()

    def add_stage(
        self,
        name: str = "Stage title",
        image: Optional[MediaAsset] = None,
        audio: Optional[MediaAsset] = None,
        controls: Optional[ControlSettings] = None,
        position: Optional[Position] = None,
        entry: bool = False,
        node_id: Optional[str] = None,
        node_uuid: Optional[str] = None,
    ) -> Result:
        node_id, node_uuid = self._ids(node_id, node_uuid)
        return self.add_node(StageNode(
            id=node_id, uuid=node_uuid, position=position, name=name,
            image=image, audio=audio, controls=controls or ControlSettings(),
            entry=entry,
        ))

    def add_cover(
        self,
        name: str = "Cover title",
        image: Optional[MediaAsset] = None,
        audio: Optional[MediaAsset] = None,
        controls: Optional[ControlSettings] = None,
        position: Optional[Position] = None,
        node_id: Optional[str] = None,
        node_uuid: Optional[str] = None,
    ) -> Result:
        node_id, node_uuid = self._ids(node_id, node_uuid)
        return self.add_node(CoverNode(
            id=node_id, uuid=node_uuid, position=position, name=name,
            image=image, audio=audio, controls=controls or ControlSettings(),
            entry=True,
        ))

    def add_story(
        self,
        name: str = "Story title",
        image: Optional[MediaAsset] = None,
        audio: Optional[MediaAsset] = None,
        position: Optional[Position] = None,
        custom_ok_transition: bool = False,
        custom_home_transition: bool = False,
        disable_home: bool = False,
        node_id: Optional[str] = None,
        node_uuid: Optional[str] = None,
    ) -> Result:
        node_id, node_uuid = self._ids(node_id, node_uuid)
        return self.add_node(StoryNode(
            id=node_id, uuid=node_uuid, position=position, name=name,
            image=image, audio=audio,
            custom_ok_transition=custom_ok_transition,
            custom_home_transition=custom_home_transition,
            disable_home=disable_home,
        ))

    def add_menu(
        self,
        name: str = "Menu title",
        question_audio: Optional[MediaAsset] = None,
        options: Optional[Sequence[Union[str, StageContent]]] = None,
        default_option: int = 0,
        position: Optional[Position] = None,
        node_id: Optional[str] = None,
        node_uuid: Optional[str] = None,
    ) -> Result:
        """Options may be given as names or as full StageContent blocks."""
        node_id, node_uuid = self._ids(node_id, node_uuid)
        blocks = []
        for i, option in enumerate(options or ["Option #1"]):
            if isinstance(option, str):
                option = replace(menu_option_content(i), name=option)
            blocks.append(option)
        return self.add_node(MenuNode(
            id=node_id, uuid=node_uuid, position=position, name=name,
            question=StageContent(name=f"{name}.questionstage", audio=question_audio),
            options=tuple(blocks), default_option=default_option,
        ))

    def add_action(
        self,
        name: str = "Action title",
        option_count: int = 1,
        position: Optional[Position] = None,
        node_id: Optional[str] = None,
        node_uuid: Optional[str] = None,
    ) -> Result:
        node_id, node_uuid = self._ids(node_id, node_uuid)
        return self.add_node(ActionNode(
            id=node_id, uuid=node_uuid, position=position, name=name,
            option_count=option_count,
        ))

    def clone_node(self, node_id: str, position: Optional[Position] = None) -> Result:
        """Copy a node under a fresh id and uuid. Links are not copied."""
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant == NodeVariant.COVER:
            return _fail(
                ErrorCode.ENTRY_CONFLICT,
                "Cloning a cover would create a second entry node",
                node_id=node_id,
            )
        changes = {"id": self._new_id(), "uuid": self._new_uuid()}
        if position is not None:
            changes["position"] = position
        if node.variant == NodeVariant.STAGE:
            changes["entry"] = False
        return self.add_node(replace(node, **changes))

    # =========================================================================
    # NODE MUTATION
    # =========================================================================

    def _commit(self, node: Node) -> Node:
        """Store a new version of an existing node and drop orphaned links."""
        node = node.normalized()
        self._nodes[node.id] = node
        alive = set(node.port_refs())
        for link in list(self._links.values()):
            for port in (link.source, link.target):
                if port.node_id == node.id and port not in alive:
                    del self._links[link.id]
                    break
        return node

    def remove_node(self, node_id: str) -> Result:
        if node_id not in self._nodes:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        for link in list(self._links.values()):
            if link.touches_node(node_id):
                del self._links[link.id]
        node = self._nodes.pop(node_id)
        self._notify("remove_node", node_id)
        return Result.success(node)

    def update_node(self, node_id: str, **changes) -> Result:
        """Change plain attributes (name, assets, position, ...) of a node."""
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        for key in ("id", "uuid", "entry"):
            if key in changes:
                return _fail(
                    ErrorCode.INVALID_NODE_VARIANT,
                    f"'{key}' cannot be changed through update_node",
                    node_id=node_id,
                )
        try:
            updated = replace(node, **changes)
        except TypeError as exc:
            return _fail(ErrorCode.INVALID_NODE_VARIANT, str(exc), node_id=node_id)
        updated = self._commit(updated)
        self._notify("update_node", node_id)
        return Result.success(updated)

    def set_position(self, node_id: str, position: Optional[Position]) -> Result:
        return self.update_node(node_id, position=position)

    def add_option(self, node_id: str) -> Result:
        """Append an option to an Action or Menu. Value is the new index."""
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant in (NodeVariant.ACTION, NodeVariant.MENU) and node.option_count >= MAX_OPTIONS:
            return _fail(ErrorCode.TOO_MANY_OPTIONS, f"At most {MAX_OPTIONS} options", node_id=node_id)
        if node.variant == NodeVariant.ACTION:
            index = node.option_count
            self._commit(replace(node, option_count=index + 1))
        elif node.variant == NodeVariant.MENU:
            index = node.option_count
            self._commit(replace(node, options=node.options + (menu_option_content(index),)))
        else:
            return _fail(
                ErrorCode.INVALID_NODE_VARIANT,
                f"{node.variant.value} nodes have no options",
                node_id=node_id,
            )
        self._notify("add_option", node_id)
        return Result.success(index)

    def remove_option(self, node_id: str, index: int = -1) -> Result:
        """
        Remove an option (the last one by default), keeping at least one.

        Links on the removed option are dropped and links on later options
        shift down by one index.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant not in (NodeVariant.ACTION, NodeVariant.MENU):
            return _fail(
                ErrorCode.INVALID_NODE_VARIANT,
                f"{node.variant.value} nodes have no options",
                node_id=node_id,
            )
        count = node.option_count
        if count <= 1:
            return _fail(ErrorCode.LAST_OPTION, "At least one option must remain", node_id=node_id)
        if index == -1:
            index = count - 1
        if not 0 <= index < count:
            return _fail(
                ErrorCode.OPTION_OUT_OF_RANGE,
                f"Option {index} out of range [0, {count})",
                node_id=node_id,
            )

        for link in list(self._links.values()):
            for port in (link.source, link.target):
                if port.node_id == node_id and port.role.is_indexed and port.index == index:
                    del self._links[link.id]
                    break
        for link in list(self._links.values()):
            if link.touches_node(node_id):
                self._links[link.id] = replace(
                    link,
                    source=self._shift_down(link.source, node_id, index),
                    target=self._shift_down(link.target, node_id, index),
                )

        if node.variant == NodeVariant.ACTION:
            self._commit(replace(node, option_count=count - 1))
        else:
            default = node.default_option
            if default > index:
                default -= 1
            else:
                default = min(default, count - 2)
            options = node.options[:index] + node.options[index + 1:]
            self._commit(replace(node, options=options, default_option=default))
        self._notify("remove_option", node_id)
        return Result.success(index)

    @staticmethod
    def _shift_down(port: PortRef, node_id: str, removed: int) -> PortRef:
        if port.node_id == node_id and port.role.is_indexed and port.index > removed:
            return replace(port, index=port.index - 1)
        return port

    def update_menu_option(self, node_id: str, index: int, **changes) -> Result:
        """Change name/image/audio of one menu option."""
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant != NodeVariant.MENU:
            return _fail(ErrorCode.INVALID_NODE_VARIANT, "Not a menu node", node_id=node_id)
        if not 0 <= index < node.option_count:
            return _fail(ErrorCode.OPTION_OUT_OF_RANGE, f"Option {index} out of range", node_id=node_id)
        options = list(node.options)
        options[index] = replace(options[index], **changes)
        updated = self._commit(replace(node, options=tuple(options)))
        self._notify("update_menu_option", node_id)
        return Result.success(updated)

    def set_default_option(self, node_id: str, index: int) -> Result:
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant != NodeVariant.MENU:
            return _fail(ErrorCode.INVALID_NODE_VARIANT, "Not a menu node", node_id=node_id)
        if not -1 <= index < node.option_count:
            return _fail(ErrorCode.OPTION_OUT_OF_RANGE, f"Option {index} out of range", node_id=node_id)
        updated = self._commit(replace(node, default_option=index))
        self._notify("set_default_option", node_id)
        return Result.success(updated)

    def set_control(self, node_id: str, control: Control, value: bool) -> Result:
        """
        Switch a control on a Stage, Cover or Story.

        Switching off ok/autoplay/home removes the matching port and every
        link attached to it.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant not in STAGE_FAMILY:
            return _fail(
                ErrorCode.INVALID_NODE_VARIANT,
                f"{node.variant.value} nodes have no controls",
                node_id=node_id,
            )
        forced = node.forced_value(control)
        if forced is not None and forced != bool(value):
            return _fail(
                ErrorCode.FORCED_CONTROL,
                f"'{control.value}' is fixed on {node.variant.value} nodes",
                node_id=node_id, control=control.value,
            )
        updated = self._commit(replace(node, controls=node.controls.with_control(control, value)))
        self._notify("set_control", node_id)
        return Result.success(updated)

    def toggle_control(self, node_id: str, control: Control) -> Result:
        node = self._nodes.get(node_id)
        if node is None or node.variant not in STAGE_FAMILY:
            return self.set_control(node_id, control, True)
        return self.set_control(node_id, control, not node.controls.is_enabled(control))

    def set_story_flags(
        self,
        node_id: str,
        custom_ok: Optional[bool] = None,
        custom_home: Optional[bool] = None,
        disable_home: Optional[bool] = None,
    ) -> Result:
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant != NodeVariant.STORY:
            return _fail(ErrorCode.INVALID_NODE_VARIANT, "Not a story node", node_id=node_id)
        changes = {}
        if custom_ok is not None:
            changes["custom_ok_transition"] = custom_ok
        if custom_home is not None:
            changes["custom_home_transition"] = custom_home
        if disable_home is not None:
            changes["disable_home"] = disable_home
        updated = self._commit(replace(node, **changes))
        self._notify("set_story_flags", node_id)
        return Result.success(updated)

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def set_entry(self, node_id: str) -> Result:
        """Flag a plain stage as the entry. Its from port and links go away."""
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        current = self.entry_node
        if current is not None and current.id == node_id:
            return Result.success(node)
        if node.variant != NodeVariant.STAGE:
            return _fail(
                ErrorCode.INVALID_NODE_VARIANT,
                f"{node.variant.value} nodes cannot be flagged as entry",
                node_id=node_id,
            )
        if current is not None:
            return _fail(
                ErrorCode.ENTRY_CONFLICT,
                "Pack already has an entry node",
                node_id=node_id, entry_id=current.id,
            )
        updated = self._commit(replace(node, entry=True))
        self._notify("set_entry", node_id)
        return Result.success(updated)

    def clear_entry(self, node_id: str) -> Result:
        node = self._nodes.get(node_id)
        if node is None:
            return _fail(ErrorCode.NODE_NOT_FOUND, f"Unknown node: {node_id}", node_id=node_id)
        if node.variant != NodeVariant.STAGE:
            return _fail(
                ErrorCode.INVALID_NODE_VARIANT,
                f"{node.variant.value} nodes keep their entry status",
                node_id=node_id,
            )
        updated = self._commit(replace(node, entry=False))
        self._notify("clear_entry", node_id)
        return Result.success(updated)

    # =========================================================================
    # LINKS
    # =========================================================================

    def connect(self, source: PortRef, target: PortRef, link_id: Optional[str] = None) -> Result:
        """
        Link two ports. Either end may be the outbound one; the link is
        marked inversed when the nominal source is inbound.
        """
        source_sig = self._signature(source)
        target_sig = self._signature(target)
        if source_sig is None or target_sig is None:
            missing = source if source_sig is None else target
            return _fail(ErrorCode.PORT_NOT_FOUND, f"Port does not exist: {missing}", port=str(missing))
        if source.node_id == target.node_id:
            return _fail(ErrorCode.ILLEGAL_LINK, "A node cannot link to itself", node_id=source.node_id)
        if source_sig[0] == target_sig[0]:
            return _fail(
                ErrorCode.ILLEGAL_LINK,
                f"Cannot link two {source_sig[0].value} ports",
                source=str(source), target=str(target),
            )
        if source_sig[1] == target_sig[1]:
            return _fail(
                ErrorCode.ILLEGAL_LINK,
                f"Cannot link two {source_sig[1].value} ports",
                source=str(source), target=str(target),
            )
        inversed = source_sig[1] == PortDirection.INBOUND
        outbound = target if inversed else source
        if any(l.touches(outbound) for l in self._links.values()):
            return _fail(
                ErrorCode.FAN_OUT_EXCEEDED,
                f"Outbound port already linked: {outbound}",
                port=str(outbound),
            )
        link_id = link_id or self._new_id()
        if link_id in self._links:
            return _fail(ErrorCode.DUPLICATE_ID, f"Link id already used: {link_id}", link_id=link_id)
        link = Link(id=link_id, source=source, target=target, inversed=inversed)
        self._links[link.id] = link
        self._notify("connect", link.id)
        return Result.success(link)

    def disconnect(self, link_id: str) -> Result:
        link = self._links.pop(link_id, None)
        if link is None:
            return _fail(ErrorCode.LINK_NOT_FOUND, f"Unknown link: {link_id}", link_id=link_id)
        self._notify("disconnect", link_id)
        return Result.success(link)

    def clear(self):
        """Drop every node and link; metadata is kept."""
        self._nodes.clear()
        self._links.clear()
        self._notify("clear", None)
