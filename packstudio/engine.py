"""
Engine Orchestration Module

This module provides the unified interface for coordinating the studio
layers while maintaining strict boundary separation.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. Engine orchestrates flow without creating coupling
3. All operations are traceable through observability
4. No shared mutable state between calls
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
import time

from .contracts.base import Error, StudioError
from .contracts.events import AuditEventType, AuditLogEntry
from .graph import PackGraph, ValidationReport, validate_pack, Severity
from .archive import CompiledPack, CompilerConfig, DecompiledPack, PackReader, PackWriter
from .layout import LayoutConfig
from .playback import PlaybackConfig, PlaybackSession
from .observability import ObservabilityEngine, ObservabilityConfig


@dataclass
class StudioConfig:
    """Unified configuration for the entire studio."""
    compiler: CompilerConfig = None
    layout: LayoutConfig = None
    playback: PlaybackConfig = None
    observability: ObservabilityConfig = None

    def __post_init__(self):
        self.compiler = self.compiler or CompilerConfig()
        self.layout = self.layout or LayoutConfig()
        self.playback = self.playback or PlaybackConfig()
        self.observability = self.observability or ObservabilityConfig()


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


class StudioBackend:
    """
    Unified backend for pack authoring.

    LAYER FLOW:
    ===========
    1. Graph: authoring commands -> PackGraph (Result per mutation)
    2. Validation: PackGraph -> ValidationReport (never fatal)
    3. Compiler: PackGraph -> CompiledPack / archive bytes
    4. Decompiler: archive bytes -> PackGraph (+ layout when needed)
    5. Playback: PackGraph -> PlaybackSession
    6. Observability: Records all layer activity
    """

    def __init__(self, config: Optional[StudioConfig] = None):
        self._config = config or StudioConfig()

        self._writer = PackWriter(self._config.compiler)
        self._reader = PackReader(self._config.layout)
        self._observability = ObservabilityEngine(self._config.observability)

    @property
    def config(self) -> StudioConfig:
        return self._config

    # =========================================================================
    # GRAPH INTERFACE
    # =========================================================================

    def new_graph(self, **options) -> PackGraph:
        """Create an empty graph whose mutations are audited."""
        return self.attach(PackGraph(**options))

    def attach(self, graph: PackGraph) -> PackGraph:
        def observe(action: str, entity_id: Optional[str]):
            self._observability.log_audit(
                action=action,
                entity_id=entity_id,
                layer="graph",
                event_type=AuditEventType.GRAPH_MUTATION,
            )

        graph.set_observer(observe)
        return graph

    def validate(self, graph: PackGraph) -> ValidationReport:
        report = validate_pack(graph)
        error_count = report.issue_count - report.warning_count
        if error_count:
            self._observability.collect_metric(
                "validation_issues_total", error_count,
                {"severity": Severity.ERROR.value},
            )
        if report.warning_count:
            self._observability.collect_metric(
                "validation_issues_total", report.warning_count,
                {"severity": Severity.WARNING.value},
            )
        self._observability.log_audit(
            action="validate",
            outcome="valid" if report.is_valid else "invalid",
            details=f"{report.issue_count} issues",
            layer="graph",
            event_type=AuditEventType.VALIDATION,
        )
        return report

    # =========================================================================
    # ARCHIVE INTERFACE
    # =========================================================================

    def _record_failure(self, layer: str, metric: str, error: Error, event_type: AuditEventType):
        self._observability.collect_metric(metric, 1, {"code": error.code.name})
        self._observability.log_audit(
            action=f"{layer}_failed",
            outcome="failure",
            details=error.message,
            layer=layer,
            event_type=event_type,
        )

    async def compile_pack(self, graph: PackGraph) -> CompiledPack:
        """
        Compile a graph into an in-memory archive.

        Raises CompilationError; the failure is audited before it
        propagates.
        """
        started = time.perf_counter()
        try:
            compiled = await self._writer.compile(graph)
        except StudioError as exc:
            self._record_failure("compiler", "compile_failures_total", exc.error,
                                 AuditEventType.COMPILATION)
            raise

        self._observability.collect_metric("compile_duration_ms", _elapsed_ms(started))
        self._observability.collect_metric("compiled_stage_records", len(compiled.manifest.stage_records))
        self._observability.collect_metric("compiled_action_records", len(compiled.manifest.action_records))
        self._observability.collect_metric("assets_written_total", len(compiled.assets))
        self._observability.collect_metric("assets_deduplicated_total", compiled.assets.deduplicated_count)

        for composite_uuid, record_ids in compiled.lineage:
            self._observability.record_lineage(composite_uuid, "composite_node")
            for record_id in record_ids:
                self._observability.record_lineage(
                    record_id, "synthetic_record", parent_ids=[composite_uuid],
                )

        self._observability.log_audit(
            action="compile",
            entity_id=graph.entry_node.uuid,
            details=(
                f"{len(compiled.manifest.stage_records)} stages, "
                f"{len(compiled.manifest.action_records)} actions, "
                f"{len(compiled.assets)} assets"
            ),
            layer="compiler",
            event_type=AuditEventType.COMPILATION,
        )
        return compiled

    async def compile_to_bytes(self, graph: PackGraph) -> bytes:
        return (await self.compile_pack(graph)).to_bytes()

    async def decompile_pack(self, data: bytes) -> DecompiledPack:
        """
        Decompile archive bytes into a primitive graph.

        Raises ArchiveError; the failure is audited before it propagates.
        """
        started = time.perf_counter()
        try:
            decompiled = await self._reader.decompile(data)
        except StudioError as exc:
            self._record_failure("decompiler", "decompile_failures_total", exc.error,
                                 AuditEventType.DECOMPILATION)
            raise

        self._observability.collect_metric("decompile_duration_ms", _elapsed_ms(started))
        if decompiled.layout_applied:
            self._observability.collect_metric("layout_runs_total", 1)
            self._observability.log_audit(
                action="rank_layout",
                details=f"{len(decompiled.graph)} nodes positioned",
                layer="layout",
                event_type=AuditEventType.LAYOUT,
            )
        self._observability.log_audit(
            action="decompile",
            entity_id=decompiled.graph.entry_node.uuid,
            details=f"{len(decompiled.graph)} nodes, {len(decompiled.graph.links)} links",
            layer="decompiler",
            event_type=AuditEventType.DECOMPILATION,
        )
        self.attach(decompiled.graph)
        return decompiled

    async def read_pack(self, data: bytes) -> PackGraph:
        return (await self.decompile_pack(data)).graph

    # =========================================================================
    # PLAYBACK INTERFACE
    # =========================================================================

    def open_playback(self, graph: PackGraph, config: Optional[PlaybackConfig] = None) -> PlaybackSession:
        """Start a preview session; dead ends are counted, not raised."""
        def on_failure(error: Error):
            self._observability.collect_metric(
                "playback_dead_ends_total", 1, {"code": error.code.name},
            )
            self._observability.log_audit(
                action="dead_end",
                entity_id=error.context_value("node_id"),
                outcome="failure",
                details=error.message,
                layer="playback",
                event_type=AuditEventType.PLAYBACK,
            )

        return PlaybackSession(graph, config or self._config.playback, on_failure)

    # =========================================================================
    # OBSERVABILITY INTERFACE
    # =========================================================================

    def get_audit_log(
        self,
        since: Optional[datetime] = None,
        layers: Optional[List[str]] = None
    ) -> List[AuditLogEntry]:
        """Get unified audit log."""
        return self._observability.get_unified_log(since, layers)

    def get_audit_report(self, since: Optional[datetime] = None) -> Dict:
        """Generate audit report."""
        return self._observability.generate_audit_report(since)

    def get_metrics(self):
        """Get metrics collector."""
        return self._observability.get_metrics()

    def get_lineage(self):
        """Get lineage tracker."""
        return self._observability.get_lineage()

    # =========================================================================
    # DIRECT LAYER ACCESS (for advanced use cases)
    # =========================================================================

    @property
    def writer(self) -> PackWriter:
        return self._writer

    @property
    def reader(self) -> PackReader:
        return self._reader

    @property
    def observability_layer(self) -> ObservabilityEngine:
        """Direct access to observability layer."""
        return self._observability
