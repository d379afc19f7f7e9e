"""
Pack decompiler (archive -> authoring graph).

Only primitive Stage and Action nodes are rebuilt. Composite nodes that
were expanded at compile time come back as their flat records, so a
decompiled graph compiles to the same archive on every later round.

FAILURE POLICY:
===============
A malformed zip, a missing or unparseable story.json, a missing asset, a
dangling reference or an illegal link raise ArchiveError. No partial
graph is ever returned.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
import asyncio
import json
import zipfile

from ..contracts.base import ArchiveError, Error, ErrorCode, Result
from ..contracts.archive import StageRecord, StoryManifest
from ..graph import MAX_OPTIONS, ActionNode, PackGraph, PortRef, StageNode
from ..layout import LayoutConfig, RankLayout, needs_layout
from ..storage import MediaAsset, mime_for_filename
from .container import ASSETS_DIR, READ_ERRORS, STORY_JSON, THUMBNAIL, list_members, read_member


@dataclass(frozen=True)
class DecompiledPack:
    graph: PackGraph
    manifest: StoryManifest
    layout_applied: bool


def _archive_error(code: ErrorCode, message: str, **context) -> ArchiveError:
    return ArchiveError(Error.of(code, message, **context))


class PackReader:
    """
    Decompiles archive bytes into a PackGraph.

    Holds configuration only; every call works on its own archive.
    """

    def __init__(self, layout_config: Optional[LayoutConfig] = None):
        self.layout = RankLayout(layout_config)

    # -------------------------------------------------------------------------
    # Manifest
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_manifest(raw: bytes) -> StoryManifest:
        try:
            manifest = StoryManifest.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValueError) as exc:
            raise _archive_error(ErrorCode.MALFORMED_ARCHIVE, f"Invalid story.json: {exc}") from exc
        if not manifest.stage_records:
            raise _archive_error(ErrorCode.MALFORMED_ARCHIVE, "story.json has no stage nodes")
        return PackReader.with_entry_first(manifest)

    @staticmethod
    def with_entry_first(manifest: StoryManifest) -> StoryManifest:
        """Move the squareOne record first, or flag the first record as entry."""
        records = list(manifest.stage_records)
        flagged = [r for r in records if r.square_one]
        if flagged:
            entry = flagged[0]
            others = [r for r in records if r is not entry]
        else:
            entry, others = records[0], records[1:]
        # Only one record may be the entry
        records = [replace(entry, square_one=True)]
        records += [replace(r, square_one=False) if r.square_one else r for r in others]
        return replace(manifest, stage_records=tuple(records))

    # -------------------------------------------------------------------------
    # Assets
    # -------------------------------------------------------------------------

    @staticmethod
    def referenced_assets(manifest: StoryManifest) -> List[str]:
        names = set()
        for record in manifest.stage_records:
            for name in (record.image, record.audio):
                if name:
                    names.add(name)
        return sorted(names)

    async def _load_assets(
        self, data: bytes, members: set, manifest: StoryManifest
    ) -> Dict[str, MediaAsset]:
        names = self.referenced_assets(manifest)
        for name in names:
            if ASSETS_DIR + name not in members:
                raise _archive_error(ErrorCode.ASSET_MISSING, f"Missing asset: {name}", asset=name)
        payloads = await asyncio.gather(
            *(asyncio.to_thread(read_member, data, ASSETS_DIR + name) for name in names)
        )
        return {
            name: MediaAsset(mime_type=mime_for_filename(name), data=payload)
            for name, payload in zip(names, payloads)
        }

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------

    @staticmethod
    def _check(result: Result, what: str) -> object:
        if result.is_failure:
            error = result.error
            code = ErrorCode.DANGLING_REFERENCE if error.code in (
                ErrorCode.NODE_NOT_FOUND, ErrorCode.PORT_NOT_FOUND,
            ) else ErrorCode.MALFORMED_ARCHIVE
            raise ArchiveError(Error.of(code, f"{what}: {error.message}")
                               .with_context("cause", error.code.name))
        return result.value

    def build_graph(self, manifest: StoryManifest, assets: Dict[str, MediaAsset]) -> PackGraph:
        graph = PackGraph(
            title=manifest.title,
            version=manifest.version,
            description=manifest.description,
            night_mode_available=manifest.night_mode_available,
        )
        stage_ids = {r.uuid for r in manifest.stage_records}

        # Options can be referenced beyond the declared list; grow to fit
        option_counts: Dict[str, int] = {r.id: max(1, len(r.options)) for r in manifest.action_records}
        for record in manifest.stage_records:
            for transition in (record.ok_transition, record.home_transition):
                if transition and transition.action_node in option_counts:
                    option_counts[transition.action_node] = max(
                        option_counts[transition.action_node], transition.option_index + 1,
                    )
        for action_id, count in option_counts.items():
            if count > MAX_OPTIONS:
                raise _archive_error(
                    ErrorCode.MALFORMED_ARCHIVE,
                    f"Action {action_id} needs {count} options, the limit is {MAX_OPTIONS}",
                    action=action_id,
                )

        for record in manifest.stage_records:
            self._check(graph.add_node(self._stage_node(record, assets)), f"Stage {record.uuid}")
        for record in manifest.action_records:
            self._check(graph.add_node(ActionNode(
                id=record.id,
                uuid=record.id,
                position=record.position,
                name=record.name,
                option_count=option_counts[record.id],
            )), f"Action {record.id}")

        for record in manifest.action_records:
            for index, stage_uuid in enumerate(record.options):
                if stage_uuid is None:
                    continue
                if stage_uuid not in stage_ids:
                    raise _archive_error(
                        ErrorCode.DANGLING_REFERENCE,
                        f"Action {record.id} option {index} points to unknown stage {stage_uuid}",
                    )
                # The entry stage has no from port; options looping back to it are dropped
                if not graph.has_port(PortRef.from_port(stage_uuid)):
                    continue
                self._check(
                    graph.connect(PortRef.option_out(record.id, index), PortRef.from_port(stage_uuid)),
                    f"Action {record.id} option {index}",
                )

        for record in manifest.stage_records:
            for port, transition in (
                (PortRef.ok(record.uuid), record.ok_transition),
                (PortRef.home(record.uuid), record.home_transition),
            ):
                if transition is None:
                    continue
                if transition.action_node not in option_counts:
                    raise _archive_error(
                        ErrorCode.DANGLING_REFERENCE,
                        f"Stage {record.uuid} points to unknown action {transition.action_node}",
                    )
                # A transition on a disabled control has no port to hang from
                if not graph.has_port(port):
                    continue
                target = (
                    PortRef.random(transition.action_node)
                    if transition.option_index == -1
                    else PortRef.option_in(transition.action_node, transition.option_index)
                )
                self._check(graph.connect(port, target), f"Stage {record.uuid} transition")
        return graph

    @staticmethod
    def _stage_node(record: StageRecord, assets: Dict[str, MediaAsset]) -> StageNode:
        return StageNode(
            id=record.uuid,
            uuid=record.uuid,
            position=record.position,
            name=record.name,
            image=assets.get(record.image) if record.image else None,
            audio=assets.get(record.audio) if record.audio else None,
            controls=record.control_settings,
            entry=record.square_one,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def decompile(self, data: bytes) -> DecompiledPack:
        try:
            members = set(list_members(data))
        except zipfile.BadZipFile as exc:
            raise _archive_error(ErrorCode.MALFORMED_ARCHIVE, f"Not a zip archive: {exc}") from exc
        if STORY_JSON not in members:
            raise _archive_error(ErrorCode.MANIFEST_MISSING, "Archive has no story.json")

        try:
            raw_manifest = read_member(data, STORY_JSON)
        except READ_ERRORS as exc:
            raise _archive_error(ErrorCode.MALFORMED_ARCHIVE, f"Unreadable story.json: {exc}") from exc
        manifest = self.parse_manifest(raw_manifest)

        async def load_thumbnail() -> Optional[MediaAsset]:
            if THUMBNAIL not in members:
                return None
            payload = await asyncio.to_thread(read_member, data, THUMBNAIL)
            return MediaAsset(mime_type="image/png", data=payload)

        # Barrier: every asset is loaded before the graph and layout are built
        try:
            assets, thumbnail = await asyncio.gather(
                self._load_assets(data, members, manifest),
                load_thumbnail(),
            )
        except READ_ERRORS as exc:
            raise _archive_error(ErrorCode.MALFORMED_ARCHIVE, f"Unreadable asset: {exc}") from exc
        graph = self.build_graph(manifest, assets)
        graph.thumbnail = thumbnail

        layout_applied = needs_layout(graph)
        if layout_applied:
            self.layout.apply(graph)
        return DecompiledPack(graph=graph, manifest=manifest, layout_applied=layout_applied)

    async def read(self, data: bytes) -> PackGraph:
        return (await self.decompile(data)).graph
