"""
Pack compiler (authoring graph -> archive).

RESPONSIBILITY: Expand composite nodes into flat stage/action records,
resolve transitions, deduplicate assets, order records
OUTPUTS: CompiledPack (manifest + asset store + thumbnail)

GUARANTEES:
===========
- All-or-nothing: a missing entry or unreadable asset raises
  CompilationError and nothing is produced
- Every asset is read and hashed before any record is assembled
- Synthetic record ids derive from the composite's uuid, so compiling an
  unchanged graph gives byte-identical archives
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import asyncio
import json

from ..contracts.base import CompilationError, Error, ErrorCode, NodeVariant, PortRole
from ..contracts.archive import (
    ARCHIVE_FORMAT, ActionRecord, StageRecord, StoryManifest, TransitionRecord,
)
from ..graph import Node, PackGraph, PortRef, ReturnAnchor, StageContent
from ..storage import AssetStore, MediaAsset
from .container import ASSETS_DIR, STORY_JSON, THUMBNAIL, write_zip


@dataclass
class CompilerConfig:
    """Configuration for the compiler."""
    format_tag: str = ARCHIVE_FORMAT
    hash_algorithm: str = "sha1"
    compress: bool = True


# =============================================================================
# SYNTHETIC RECORD IDS
# =============================================================================

QUESTION_ACTION_SUFFIX = "111111111111"
QUESTION_STAGE_SUFFIX = "222222222222"
OPTIONS_ACTION_SUFFIX = "333333333333"
OPTION_STAGE_PREFIX = "44444444"
STORY_ACTION_SUFFIX = "555555555555"


def synthetic_id(node_uuid: str, suffix: str) -> str:
    """Replace the last 12 characters of a uuid with a role suffix."""
    return node_uuid[:-12] + suffix


def question_action_id(node: Node) -> str:
    return synthetic_id(node.uuid, QUESTION_ACTION_SUFFIX)


def question_stage_id(node: Node) -> str:
    return synthetic_id(node.uuid, QUESTION_STAGE_SUFFIX)


def options_action_id(node: Node) -> str:
    return synthetic_id(node.uuid, OPTIONS_ACTION_SUFFIX)


def option_stage_id(node: Node, index: int) -> str:
    return synthetic_id(node.uuid, f"{OPTION_STAGE_PREFIX}{index:04d}")


def story_action_id(node: Node) -> str:
    return synthetic_id(node.uuid, STORY_ACTION_SUFFIX)


# =============================================================================
# TRANSITIONS
# =============================================================================

def build_transition(graph: PackGraph, target: Optional[PortRef]) -> Optional[TransitionRecord]:
    """Encode a link target as an archive transition."""
    if target is None:
        return None
    node = graph.get_node(target.node_id)
    if node is None:
        return None
    if node.variant == NodeVariant.ACTION:
        index = -1 if target.role == PortRole.RANDOM else target.index
        return TransitionRecord(node.id, index)
    if node.variant == NodeVariant.STORY:
        return TransitionRecord(story_action_id(node), 0)
    if node.variant == NodeVariant.MENU:
        return TransitionRecord(question_action_id(node), 0)
    return None


def anchor_transition(graph: PackGraph, anchor: Optional[ReturnAnchor]) -> Optional[TransitionRecord]:
    """Encode a menu return anchor as an archive transition."""
    if anchor is None:
        return None
    node = graph.get_node(anchor.node_id)
    if node.variant == NodeVariant.ACTION:
        return TransitionRecord(node.id, anchor.index)
    if node.variant == NodeVariant.STORY:
        return TransitionRecord(story_action_id(node), 0)
    if node.variant == NodeVariant.MENU:
        return TransitionRecord(question_action_id(node), 0)
    return None


def archive_filename(graph: PackGraph) -> str:
    """Download name of a pack: <title>-<entry uuid>-v<version>.zip"""
    entry = graph.entry_node
    if entry is None:
        raise CompilationError(Error.of(ErrorCode.ENTRY_MISSING, "Pack has no entry node"))
    return f"{graph.title.replace(' ', '_')}-{entry.uuid}-v{graph.version}.zip"


# =============================================================================
# COMPILED OUTPUT
# =============================================================================

@dataclass(frozen=True)
class CompiledPack:
    manifest: StoryManifest
    assets: AssetStore
    thumbnail: Optional[bytes] = None
    compress: bool = True
    # composite uuid -> ids of the synthetic records it expanded into
    lineage: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default_factory=tuple)

    def manifest_json(self) -> bytes:
        return json.dumps(
            self.manifest.to_dict(), ensure_ascii=False, separators=(",", ":")
        ).encode("utf-8")

    def members(self) -> List[Tuple[str, bytes]]:
        members = [(STORY_JSON, self.manifest_json())]
        members.extend((ASSETS_DIR + name, data) for name, data in self.assets.items())
        if self.thumbnail is not None:
            members.append((THUMBNAIL, self.thumbnail))
        return members

    def to_bytes(self) -> bytes:
        return write_zip(self.members(), compress=self.compress)


# =============================================================================
# COMPILER
# =============================================================================

_Slot = Tuple[str, str]  # (node id, slot name)


class PackWriter:
    """
    Compiles a PackGraph into a CompiledPack.

    The writer holds configuration only; every compile call owns its own
    asset store and records.
    """

    def __init__(self, config: Optional[CompilerConfig] = None):
        self.config = config or CompilerConfig()

    # -------------------------------------------------------------------------
    # Asset phase
    # -------------------------------------------------------------------------

    @staticmethod
    def _content_slots(node: Node) -> List[Tuple[str, StageContent]]:
        if node.variant == NodeVariant.ACTION:
            return []
        if node.variant == NodeVariant.MENU:
            slots = [("question", node.question)]
            slots.extend((f"option{i}", o) for i, o in enumerate(node.options))
            return slots
        return [("stage", node.content)]

    def collect_assets(self, graph: PackGraph) -> List[Tuple[_Slot, MediaAsset]]:
        """Every (slot, asset) pair of the graph, in node order."""
        collected = []
        for node in graph.nodes:
            for slot, content in self._content_slots(node):
                if content.image is not None:
                    collected.append(((node.id, f"{slot}.image"), content.image))
                if content.audio is not None:
                    collected.append(((node.id, f"{slot}.audio"), content.audio))
        return collected

    async def _store_assets(
        self, graph: PackGraph
    ) -> Tuple[AssetStore, Dict[_Slot, str], Optional[bytes]]:
        store = AssetStore(self.config.hash_algorithm)
        collected = self.collect_assets(graph)

        async def read_thumbnail() -> Optional[bytes]:
            if graph.thumbnail is None:
                return None
            return await asyncio.to_thread(graph.thumbnail.read)

        try:
            names, thumbnail = await asyncio.gather(
                store.put_all([asset for _, asset in collected]),
                read_thumbnail(),
            )
        except OSError as exc:
            raise CompilationError(Error.of(
                ErrorCode.ASSET_UNREADABLE, f"Cannot read asset: {exc}",
            )) from exc
        return store, {slot: name for (slot, _), name in zip(collected, names)}, thumbnail

    # -------------------------------------------------------------------------
    # Record phase
    # -------------------------------------------------------------------------

    def _stage_records(
        self, graph: PackGraph, node: Node, files: Dict[_Slot, str]
    ) -> Tuple[List[StageRecord], List[ActionRecord]]:
        image = files.get((node.id, "stage.image"))
        audio = files.get((node.id, "stage.audio"))
        ok_target = graph.forward_target(PortRef.ok(node.id))
        home_target = graph.forward_target(PortRef.home(node.id))

        if node.variant != NodeVariant.STORY:
            return [StageRecord(
                uuid=node.uuid,
                type=node.variant.value,
                name=node.name,
                position=node.position,
                image=image,
                audio=audio,
                ok_transition=build_transition(graph, ok_target),
                home_transition=build_transition(graph, home_target),
                control_settings=node.controls,
                square_one=node.is_entry,
            )], []

        # Without an override a story goes back to the first node after the entry
        first_useful = graph.first_useful_target()
        if not node.custom_ok_transition:
            ok_target = first_useful
        if node.disable_home:
            home_target = None
        elif not node.custom_home_transition:
            home_target = first_useful
        stage = StageRecord(
            uuid=node.uuid,
            type=NodeVariant.STORY.value,
            name=node.name,
            position=None,
            image=image,
            audio=audio,
            ok_transition=build_transition(graph, ok_target),
            home_transition=build_transition(graph, home_target),
            control_settings=node.controls,
            group_id=node.uuid,
        )
        action = ActionRecord(
            id=story_action_id(node),
            type="story.storyaction",
            group_id=node.uuid,
            name=f"{node.name}.storyaction",
            position=node.position,
            options=(node.uuid,),
        )
        return [stage], [action]

    def _menu_records(
        self, graph: PackGraph, node: Node, files: Dict[_Slot, str]
    ) -> Tuple[List[StageRecord], List[ActionRecord]]:
        home = anchor_transition(graph, graph.menu_return_anchor(node.id))
        question = StageRecord(
            uuid=question_stage_id(node),
            type="menu.questionstage",
            group_id=node.uuid,
            name=node.name,
            position=None,
            image=files.get((node.id, "question.image")),
            audio=files.get((node.id, "question.audio")),
            ok_transition=TransitionRecord(options_action_id(node), node.default_option),
            home_transition=None,
            control_settings=node.question.controls,
        )
        stages = [question]
        for i, option in enumerate(node.options):
            target = graph.forward_target(PortRef.option_out(node.id, i))
            stages.append(StageRecord(
                uuid=option_stage_id(node, i),
                type="menu.optionstage",
                group_id=node.uuid,
                name=option.name,
                position=None,
                image=files.get((node.id, f"option{i}.image")),
                audio=files.get((node.id, f"option{i}.audio")),
                ok_transition=build_transition(graph, target),
                home_transition=home,
                control_settings=option.controls,
            ))
        actions = [
            ActionRecord(
                id=question_action_id(node),
                type="menu.questionaction",
                group_id=node.uuid,
                name=f"{node.name}.questionaction",
                position=node.position,
                options=(question.uuid,),
            ),
            ActionRecord(
                id=options_action_id(node),
                type="menu.optionsaction",
                group_id=node.uuid,
                name=f"{node.name}.optionsaction",
                position=None,
                options=tuple(s.uuid for s in stages[1:]),
            ),
        ]
        return stages, actions

    @staticmethod
    def _action_record(graph: PackGraph, node: Node) -> ActionRecord:
        options = []
        for i in range(node.option_count):
            target = graph.forward_target(PortRef.option_out(node.id, i))
            options.append(graph.get_node(target.node_id).uuid if target else None)
        return ActionRecord(
            id=node.id,
            name=node.name,
            position=node.position,
            options=tuple(options),
        )

    def build_manifest(
        self, graph: PackGraph, files: Dict[_Slot, str]
    ) -> Tuple[StoryManifest, Tuple[Tuple[str, Tuple[str, ...]], ...]]:
        """Assemble records once asset names are known."""
        entry = graph.entry_node
        if entry is None:
            raise CompilationError(Error.of(ErrorCode.ENTRY_MISSING, "Pack has no entry node"))

        stage_records: List[StageRecord] = []
        action_records: List[ActionRecord] = []
        lineage = []
        for node in graph.nodes:
            if node.variant == NodeVariant.ACTION:
                action_records.append(self._action_record(graph, node))
                continue
            if node.variant == NodeVariant.MENU:
                stages, actions = self._menu_records(graph, node, files)
            else:
                stages, actions = self._stage_records(graph, node, files)
            stage_records.extend(stages)
            action_records.extend(actions)
            synthetic = tuple(r.uuid for r in stages if r.uuid != node.uuid)
            synthetic += tuple(r.id for r in actions)
            if synthetic:
                lineage.append((node.uuid, synthetic))

        ordered = [r for r in stage_records if r.uuid == entry.uuid]
        ordered += [r for r in stage_records if r.uuid != entry.uuid]

        manifest = StoryManifest(
            format=self.config.format_tag,
            title=graph.title,
            version=graph.version,
            description=graph.description,
            night_mode_available=graph.night_mode_available,
            stage_records=tuple(ordered),
            action_records=tuple(action_records),
        )
        return manifest, tuple(lineage)

    async def compile(self, graph: PackGraph) -> CompiledPack:
        if graph.entry_node is None:
            raise CompilationError(Error.of(ErrorCode.ENTRY_MISSING, "Pack has no entry node"))
        # Barrier: every asset is hashed before records are assembled
        store, files, thumbnail = await self._store_assets(graph)
        manifest, lineage = self.build_manifest(graph, files)
        return CompiledPack(
            manifest=manifest,
            assets=store,
            thumbnail=thumbnail,
            compress=self.config.compress,
            lineage=lineage,
        )

    async def compile_to_bytes(self, graph: PackGraph) -> bytes:
        return (await self.compile(graph)).to_bytes()

