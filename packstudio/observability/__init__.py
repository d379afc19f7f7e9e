"""
Observability & Audit Layer

RESPONSIBILITY: Audit logging, metrics, lineage of synthetic records
ALLOWED INPUTS: Audit entries and measurements from other layers
OUTPUTS: AuditLog, Metrics, Lineage, audit reports

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret events (only record them)
- Make decisions based on logged data
- Access mutable state in other layers

BOUNDARY ENFORCEMENT:
=====================
- Receives immutable AuditLogEntry / MetricPoint values
- NEVER modifies events or system state
- Provides read-only access to logs and metrics
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from enum import Enum
import hashlib
import itertools

# ONLY import from contracts - never from other layers' implementations
from ..contracts.events import AuditLogEntry, AuditEventType, MetricPoint


LAYERS = ("graph", "compiler", "decompiler", "layout", "playback", "engine")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _in_window(moment: datetime, since: Optional[datetime], until: Optional[datetime]) -> bool:
    if since is not None and moment < since:
        return False
    if until is not None and moment > until:
        return False
    return True


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only audit log of one layer.
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []

    def collect(self, entry: AuditLogEntry):
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)

    def get_entries(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = [e for e in self._entries if _in_window(e.timestamp, since, until)]
        if event_type:
            entries = [e for e in entries if e.event_type == event_type]
        return entries

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


DEFAULT_METRICS = (
    MetricDefinition("compile_duration_ms", MetricType.TIMING, "Compile time in milliseconds"),
    MetricDefinition("compiled_stage_records", MetricType.GAUGE, "Stage records in the last archive"),
    MetricDefinition("compiled_action_records", MetricType.GAUGE, "Action records in the last archive"),
    MetricDefinition("assets_written_total", MetricType.COUNTER, "Asset files written to archives"),
    MetricDefinition("assets_deduplicated_total", MetricType.COUNTER, "Asset references served by an existing file"),
    MetricDefinition("compile_failures_total", MetricType.COUNTER, "Aborted compilations", ("code",)),
    MetricDefinition("decompile_duration_ms", MetricType.TIMING, "Decompile time in milliseconds"),
    MetricDefinition("decompile_failures_total", MetricType.COUNTER, "Rejected archives", ("code",)),
    MetricDefinition("layout_runs_total", MetricType.COUNTER, "Layout passes on imported graphs"),
    MetricDefinition("validation_issues_total", MetricType.COUNTER, "Issues found by diagram validation", ("severity",)),
    MetricDefinition("playback_dead_ends_total", MetricType.COUNTER, "Playback moves that failed", ("code",)),
)


class MetricsCollector:
    """
    Collect and aggregate metrics from all layers.

    Metrics are append-only time series data points.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        for definition in DEFAULT_METRICS:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = []

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=_now(),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

    def get_metric(
        self,
        metric_name: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> List[MetricPoint]:
        """Get metric data points, optionally filtered by time window."""
        points = self._metrics.get(metric_name, [])
        return [p for p in points if _in_window(p.timestamp, since, until)]

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def total(self, metric_name: str) -> float:
        """Sum of all points; the running value of a counter."""
        return sum(p.value for p in self._metrics.get(metric_name, []))

    def get_all_metrics(self) -> Dict[str, List[MetricPoint]]:
        """Get all metrics (copy)."""
        return {k: list(v) for k, v in self._metrics.items()}

    def compute_aggregates(
        self,
        metric_name: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        points = self.get_metric(metric_name, since, until)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# LINEAGE TRACKER
# =============================================================================

@dataclass(frozen=True)
class LineageNode:
    """Immutable node in the lineage graph."""
    entity_id: str
    entity_type: str
    timestamp: datetime
    parent_ids: Tuple[str, ...] = field(default_factory=tuple)
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


class LineageTracker:
    """
    Track which records came from which authoring node.

    Composite nodes expand into synthetic archive records; every synthetic
    record can be traced back to the composite that produced it.
    """

    def __init__(self):
        self._nodes: Dict[str, LineageNode] = {}
        self._children: Dict[str, List[str]] = {}  # parent_id -> child_ids

    def record_lineage(
        self,
        entity_id: str,
        entity_type: str,
        parent_ids: Optional[List[str]] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> LineageNode:
        """Record a lineage entry."""
        node = LineageNode(
            entity_id=entity_id,
            entity_type=entity_type,
            timestamp=_now(),
            parent_ids=tuple(parent_ids) if parent_ids else (),
            metadata=tuple(metadata.items()) if metadata else ()
        )

        self._nodes[entity_id] = node

        for parent_id in node.parent_ids:
            children = self._children.setdefault(parent_id, [])
            if entity_id not in children:
                children.append(entity_id)

        return node

    def get_node(self, entity_id: str) -> Optional[LineageNode]:
        return self._nodes.get(entity_id)

    def get_ancestors(self, entity_id: str) -> List[LineageNode]:
        """Get all ancestors of an entity."""
        ancestors = []
        visited = set()

        def traverse(eid: str):
            if eid in visited:
                return
            visited.add(eid)

            node = self._nodes.get(eid)
            if node:
                ancestors.append(node)
                for parent_id in node.parent_ids:
                    traverse(parent_id)

        node = self._nodes.get(entity_id)
        if node:
            for parent_id in node.parent_ids:
                traverse(parent_id)

        return ancestors

    def get_descendants(self, entity_id: str) -> List[LineageNode]:
        """Get all descendants of an entity (breadth first)."""
        descendants = []
        visited = {entity_id}
        queue = deque(self._children.get(entity_id, []))

        while queue:
            child_id = queue.popleft()
            if child_id in visited:
                continue
            visited.add(child_id)
            node = self._nodes.get(child_id)
            if node:
                descendants.append(node)
                queue.extend(self._children.get(child_id, []))

        return descendants


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    enable_lineage: bool = True


class ObservabilityEngine:
    """
    Central Observability Engine.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._collectors: Dict[str, LogCollector] = {
            layer: LogCollector(layer) for layer in LAYERS
        }
        self._metrics = MetricsCollector() if self._config.enable_metrics else None
        self._lineage = LineageTracker() if self._config.enable_lineage else None
        self._sequence = itertools.count()

    def collect_audit(self, entry: AuditLogEntry):
        """Collect an audit log entry from any layer."""
        collector = self._collectors.get(entry.layer)
        if collector:
            collector.collect(entry)

    def log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        outcome: str = "success",
        details: str = "",
        layer: str = "engine",
        event_type: AuditEventType = AuditEventType.SYSTEM
    ) -> AuditLogEntry:
        """Helper to log audit entry directly."""
        timestamp = _now()
        entry_id = hashlib.sha256(
            f"{layer}_{action}|{timestamp.timestamp()}|{next(self._sequence)}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_{entry_id}",
            event_type=event_type,
            timestamp=timestamp,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=(
                ("outcome", outcome),
                ("details", details)
            )
        )
        self.collect_audit(entry)
        return entry

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Collect a metric data point."""
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def record_lineage(
        self,
        entity_id: str,
        entity_type: str,
        parent_ids: Optional[List[str]] = None,
        metadata: Optional[Dict[str, str]] = None
    ):
        """Record data lineage."""
        if self._lineage:
            self._lineage.record_lineage(
                entity_id=entity_id,
                entity_type=entity_type,
                parent_ids=parent_ids,
                metadata=metadata
            )

    def get_unified_log(
        self,
        since: Optional[datetime] = None,
        layers: Optional[List[str]] = None
    ) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries(since=since))

        # Sort by timestamp
        all_entries.sort(key=lambda e: e.timestamp)

        return all_entries

    def get_layer_log(self, layer_name: str) -> List[AuditLogEntry]:
        """Get log for a specific layer."""
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries()

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def get_lineage(self) -> Optional[LineageTracker]:
        """Get lineage tracker (read-only access)."""
        return self._lineage

    def generate_audit_report(self, since: Optional[datetime] = None) -> Dict:
        """Generate comprehensive audit report."""
        entries = self.get_unified_log(since=since)

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        report = {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'time_range': {
                'start': entries[0].timestamp.isoformat() if entries else None,
                'end': entries[-1].timestamp.isoformat() if entries else None,
            },
            'generated_at': _now().isoformat()
        }
        if self._metrics:
            report['metrics'] = {
                name: self._metrics.compute_aggregates(name)
                for name in sorted(self._metrics.get_all_metrics())
                if self._metrics.get_metric(name)
            }
        return report
