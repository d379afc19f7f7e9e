"""
Observability Contracts

Immutable records handed from every layer to the observability layer.
Layers emit COPIES of these; nothing downstream may mutate them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple
from enum import Enum


class AuditEventType(Enum):
    """Explicit audit event types."""
    GRAPH_MUTATION = "graph_mutation"
    COMPILATION = "compilation"
    DECOMPILATION = "decompilation"
    LAYOUT = "layout"
    VALIDATION = "validation"
    PLAYBACK = "playback"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def metadata_value(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
