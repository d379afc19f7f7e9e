"""
Playback State Machine
======================

Interprets a live PackGraph stage by stage, the way the device would.

State is the pair (content, branch context): what is on screen, and the
branch node plus option index that led there (empty when the content was
reached directly). Every transition is a function of the graph, the
current step and the random source.

INVARIANT: dead ends are Result failures, never exceptions.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import random

from ..contracts.base import Error, ErrorCode, NodeVariant, PortRole, Result
from ..graph import Node, PackGraph, PortRef, StageContent


# =============================================================================
# STATE
# =============================================================================

MENU_QUESTION = "question"
MENU_OPTION = "option"


@dataclass(frozen=True)
class ContentRef:
    """A displayable block: a stage-like node, or a menu question/option slot."""
    node_id: str
    slot: Optional[str] = None
    index: Optional[int] = None

    @staticmethod
    def stage(node_id: str) -> ContentRef:
        return ContentRef(node_id)

    @staticmethod
    def question(menu_id: str) -> ContentRef:
        return ContentRef(menu_id, MENU_QUESTION)

    @staticmethod
    def option(menu_id: str, index: int) -> ContentRef:
        return ContentRef(menu_id, MENU_OPTION, index)


@dataclass(frozen=True)
class BranchContext:
    node_id: Optional[str] = None
    index: Optional[int] = None

    @staticmethod
    def empty() -> BranchContext:
        return BranchContext()

    @property
    def is_empty(self) -> bool:
        return self.node_id is None


@dataclass(frozen=True)
class PlaybackStep:
    content: ContentRef
    context: BranchContext = BranchContext()


def _dead_end(message: str, **context) -> Result:
    return Result.failure(Error.of(ErrorCode.MISSING_DESTINATION, message, **context))


# =============================================================================
# ENGINE
# =============================================================================

class PlaybackEngine:
    """
    Stateless transition functions over one graph.

    Randomness (random ports, random default options) comes from the
    injected random.Random so simulations can be replayed.
    """

    def __init__(self, graph: PackGraph, rng: Optional[random.Random] = None):
        self.graph = graph
        self.rng = rng or random.Random()

    def content_of(self, step: PlaybackStep) -> Optional[StageContent]:
        """Media and controls shown for a step."""
        node = self.graph.get_node(step.content.node_id)
        if node is None:
            return None
        if node.variant != NodeVariant.MENU:
            return node.content
        if step.content.slot == MENU_QUESTION:
            return node.question
        return node.options[step.content.index]

    def start(self) -> Result:
        return self._entry_step()

    def _entry_step(self) -> Result:
        entry = self.graph.entry_node
        if entry is None:
            return _dead_end("Pack has no entry node")
        return Result.success(PlaybackStep(ContentRef.stage(entry.id), BranchContext.empty()))

    # -------------------------------------------------------------------------
    # Entering nodes
    # -------------------------------------------------------------------------

    def on_enter(self, node_id: str, via_port: Optional[PortRef] = None) -> Result:
        node = self.graph.get_node(node_id)
        if node is None:
            return _dead_end(f"Unknown node: {node_id}", node_id=node_id)
        if node.variant == NodeVariant.MENU:
            return Result.success(PlaybackStep(ContentRef.question(node.id), BranchContext.empty()))
        if node.variant != NodeVariant.ACTION:
            return Result.success(PlaybackStep(ContentRef.stage(node.id), BranchContext.empty()))

        if via_port is not None and via_port.role == PortRole.OPTION_IN:
            index = via_port.index
        else:
            index = self.rng.randrange(node.option_count)
        return self._follow_option(node, index)

    def _follow_option(self, action: Node, index: int) -> Result:
        """Resolve option `index` of an action to the content behind it."""
        target = self.graph.forward_target(PortRef.option_out(action.id, index))
        if target is None:
            return _dead_end(
                f"Option {index} of {action.name or action.id} leads nowhere",
                node_id=action.id, index=index,
            )
        entered = self.on_enter(target.node_id, target)
        if entered.is_failure:
            return entered
        return Result.success(PlaybackStep(entered.value.content, BranchContext(action.id, index)))

    def _follow(self, port: PortRef) -> Result:
        target = self.graph.forward_target(port)
        if target is None:
            return _dead_end(f"Nothing linked to {port}", port=str(port))
        return self.on_enter(target.node_id, target)

    def _follow_first_useful(self) -> Result:
        target = self.graph.first_useful_target()
        if target is None:
            return _dead_end("Entry node has no ok transition")
        return self.on_enter(target.node_id, target)

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def on_ok(self, step: PlaybackStep) -> Result:
        node = self.graph.get_node(step.content.node_id)
        if node is None:
            return _dead_end(f"Unknown node: {step.content.node_id}")

        if node.variant == NodeVariant.MENU:
            if step.content.slot == MENU_QUESTION:
                index = node.default_option
                if index == -1:
                    index = self.rng.randrange(node.option_count)
                return Result.success(PlaybackStep(
                    ContentRef.option(node.id, index), BranchContext(node.id, index),
                ))
            return self._follow(PortRef.option_out(node.id, step.content.index))

        if node.variant == NodeVariant.STORY and not node.custom_ok_transition:
            return self._follow_first_useful()
        if not node.has_ok_port():
            return Result.failure(Error.of(
                ErrorCode.NO_OK_PORT, f"{node.name or node.id} has no ok transition", node_id=node.id,
            ))
        return self._follow(PortRef.ok(node.id))

    def on_home(self, step: PlaybackStep) -> Result:
        node = self.graph.get_node(step.content.node_id)
        if node is None:
            return _dead_end(f"Unknown node: {step.content.node_id}")

        if node.variant == NodeVariant.MENU:
            if step.content.slot == MENU_OPTION:
                return self._return_from_menu(node)
            return self._entry_step()

        if node.variant == NodeVariant.STORY:
            if node.disable_home:
                return Result.failure(Error.of(
                    ErrorCode.HOME_DISABLED, "Home is disabled on this story", node_id=node.id,
                ))
            if not node.custom_home_transition:
                if self.graph.first_useful_target() is None:
                    return self._entry_step()
                return self._follow_first_useful()

        home = PortRef.home(node.id)
        if not self.graph.has_port(home) or self.graph.outbound_link(home) is None:
            # No drawn home link: hard reset to the entry
            return self._entry_step()
        return self._follow(home)

    def _return_from_menu(self, menu: Node) -> Result:
        anchor = self.graph.menu_return_anchor(menu.id)
        if anchor is None:
            return self._entry_step()
        node = self.graph.get_node(anchor.node_id)
        if node.variant == NodeVariant.ACTION:
            return self._follow_option(node, anchor.index)
        if node.variant == NodeVariant.MENU:
            return Result.success(PlaybackStep(ContentRef.question(node.id), BranchContext.empty()))
        return Result.success(PlaybackStep(ContentRef.stage(node.id), BranchContext.empty()))

    def on_wheel_left(self, step: PlaybackStep) -> Result:
        return self._wheel(step, -1)

    def on_wheel_right(self, step: PlaybackStep) -> Result:
        return self._wheel(step, 1)

    def _wheel(self, step: PlaybackStep, delta: int) -> Result:
        context = step.context
        if context.is_empty:
            return Result.failure(Error.of(
                ErrorCode.NO_BRANCH_CONTEXT, "Wheel needs a branch to move along",
            ))
        node = self.graph.get_node(context.node_id)
        if node is None:
            return _dead_end(f"Unknown node: {context.node_id}")
        index = (context.index + delta) % node.option_count
        if node.variant == NodeVariant.MENU:
            return Result.success(PlaybackStep(
                ContentRef.option(node.id, index), BranchContext(node.id, index),
            ))
        return self._follow_option(node, index)
