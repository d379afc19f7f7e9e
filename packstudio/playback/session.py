"""
Playback session: the stateful wrapper an editor preview drives.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Optional
import random

from ..contracts.base import Error, ErrorCode, Result
from ..graph import PackGraph, StageContent
from .state_machine import PlaybackEngine, PlaybackStep


@dataclass
class PlaybackConfig:
    """Configuration for playback simulation."""
    random_seed: Optional[int] = None

    def make_rng(self) -> random.Random:
        return random.Random(self.random_seed)


class PlaybackSession:
    """
    Holds the current step and applies only successful moves.

    ok/home moves that would land on the content already shown are
    rejected with SELF_TRANSITION, so a looping composition cannot stall
    the preview silently.
    """

    def __init__(
        self,
        graph: PackGraph,
        config: Optional[PlaybackConfig] = None,
        on_failure: Optional[Callable[[Error], None]] = None,
    ):
        self.config = config or PlaybackConfig()
        self.engine = PlaybackEngine(graph, self.config.make_rng())
        self._on_failure = on_failure
        self._current: Optional[PlaybackStep] = None
        self._history: List[PlaybackStep] = []

    @property
    def current(self) -> Optional[PlaybackStep]:
        return self._current

    @property
    def history(self) -> List[PlaybackStep]:
        return list(self._history)

    def current_content(self) -> Optional[StageContent]:
        return self.engine.content_of(self._current) if self._current else None

    def _apply(self, result: Result, reject_same: bool = False) -> Result:
        if result.is_success and reject_same and self._current is not None:
            if result.value.content == self._current.content:
                result = Result.failure(Error.of(
                    ErrorCode.SELF_TRANSITION, "Transition lands on the current stage",
                    node_id=self._current.content.node_id,
                ))
        if result.is_failure:
            if self._on_failure:
                self._on_failure(result.error)
            return result
        self._current = result.value
        self._history.append(result.value)
        return result

    def _require_started(self) -> Optional[Result]:
        if self._current is None:
            return self.start()
        return None

    def start(self) -> Result:
        self._history.clear()
        self._current = None
        return self._apply(self.engine.start())

    def ok(self) -> Result:
        return self._require_started() or self._apply(self.engine.on_ok(self._current), True)

    def home(self) -> Result:
        return self._require_started() or self._apply(self.engine.on_home(self._current), True)

    def wheel_left(self) -> Result:
        return self._require_started() or self._apply(self.engine.on_wheel_left(self._current))

    def wheel_right(self) -> Result:
        return self._require_started() or self._apply(self.engine.on_wheel_right(self._current))
