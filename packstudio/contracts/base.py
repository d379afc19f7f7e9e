"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Node and port families are closed enums; behavior dispatches on them
  through explicit tables, never through isinstance checks
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Graph model errors
    NODE_NOT_FOUND = auto()
    DUPLICATE_ID = auto()
    LINK_NOT_FOUND = auto()
    PORT_NOT_FOUND = auto()
    INVALID_NODE_VARIANT = auto()
    ILLEGAL_LINK = auto()
    FAN_OUT_EXCEEDED = auto()
    ENTRY_CONFLICT = auto()
    FORCED_CONTROL = auto()
    LAST_OPTION = auto()
    OPTION_OUT_OF_RANGE = auto()
    TOO_MANY_OPTIONS = auto()

    # Compiler errors
    ENTRY_MISSING = auto()
    ASSET_UNREADABLE = auto()

    # Decompiler errors
    MALFORMED_ARCHIVE = auto()
    MANIFEST_MISSING = auto()
    ASSET_MISSING = auto()
    DANGLING_REFERENCE = auto()

    # Session document errors
    INVALID_DOCUMENT = auto()

    # Playback errors
    MISSING_DESTINATION = auto()
    NO_OK_PORT = auto()
    HOME_DISABLED = auto()
    NO_BRANCH_CONTEXT = auto()
    SELF_TRANSITION = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    def context_value(self, key: str) -> Optional[str]:
        for k, v in self.context:
            if k == key:
                return v
        return None

    @staticmethod
    def of(code: ErrorCode, message: str, **context: str) -> Error:
        return Error(
            code=code,
            message=message,
            context=tuple((k, str(v)) for k, v in context.items())
        )


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object = None) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


class StudioError(Exception):
    """
    Raised when an operation must abort as a whole.

    Carries the same Error data that Result failures carry, so callers
    can log or surface both kinds uniformly.
    """

    def __init__(self, error: Error):
        super().__init__(error.message)
        self.error = error

    @property
    def code(self) -> ErrorCode:
        return self.error.code


class CompilationError(StudioError):
    """Compilation aborted; no archive was produced."""
    pass


class ArchiveError(StudioError):
    """Archive is malformed; no graph was produced."""
    pass


class GraphDocumentError(StudioError):
    """A serialized graph document violates the graph model."""
    pass


# =============================================================================
# NODE AND PORT FAMILIES (Closed enums)
# =============================================================================

class NodeVariant(Enum):
    """Authoring node variants. Values double as archive type tags."""
    STAGE = "stage"
    COVER = "cover"
    STORY = "story"
    MENU = "menu"
    ACTION = "action"


class NodeKind(Enum):
    """
    Primitive node kinds.
    CONTENT nodes play media and wait for input, BRANCH nodes route.
    """
    CONTENT = "content"
    BRANCH = "branch"


class PortKind(Enum):
    """Side of the bipartite graph a port belongs to."""
    CONTENT = "content"
    BRANCH = "branch"


class PortDirection(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class PortRole(Enum):
    """Slot of a port on its node. Indexed roles carry an option index."""
    FROM = "from"
    OK = "ok"
    HOME = "home"
    RANDOM = "random"
    OPTION_IN = "optionIn"
    OPTION_OUT = "optionOut"

    @property
    def is_indexed(self) -> bool:
        return self in (PortRole.OPTION_IN, PortRole.OPTION_OUT)


class Control(Enum):
    """Physical inputs of the playback device."""
    WHEEL = "wheel"
    OK = "ok"
    HOME = "home"
    PAUSE = "pause"
    AUTOPLAY = "autoplay"

