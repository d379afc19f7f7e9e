"""
Playback Layer

RESPONSIBILITY: Simulate the device stage by stage over a live graph
ALLOWED INPUTS: PackGraph (read-only), user inputs (ok, home, wheel)
OUTPUTS: PlaybackStep results

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate the graph
- Raise on composition errors (dead ends are Result failures)
"""

from .state_machine import (
    MENU_QUESTION, MENU_OPTION, ContentRef, BranchContext, PlaybackStep,
    PlaybackEngine,
)
from .session import PlaybackConfig, PlaybackSession

__all__ = [
    'MENU_QUESTION', 'MENU_OPTION', 'ContentRef', 'BranchContext',
    'PlaybackStep', 'PlaybackEngine', 'PlaybackConfig', 'PlaybackSession',
]
