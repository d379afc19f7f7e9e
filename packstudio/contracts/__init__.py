"""
Contracts Layer

Immutable types shared by every layer. Nothing in here performs I/O
or depends on another packstudio layer.
"""

from .base import (
    ErrorCode, Error, Result, StudioError, CompilationError, ArchiveError,
    GraphDocumentError, NodeVariant, NodeKind, PortKind, PortDirection,
    PortRole, Control,
)
from .archive import (
    ControlSettings, Position, TransitionRecord, StageRecord, ActionRecord,
    StoryManifest, ARCHIVE_FORMAT,
)
from .events import AuditLogEntry, AuditEventType, MetricPoint

__all__ = [
    'ErrorCode', 'Error', 'Result', 'StudioError', 'CompilationError',
    'ArchiveError', 'GraphDocumentError', 'NodeVariant', 'NodeKind',
    'PortKind', 'PortDirection', 'PortRole', 'Control',
    'ControlSettings', 'Position', 'TransitionRecord', 'StageRecord',
    'ActionRecord', 'StoryManifest', 'ARCHIVE_FORMAT',
    'AuditLogEntry', 'AuditEventType', 'MetricPoint',
]
