"""
Archive Layer

RESPONSIBILITY: Compile authoring graphs into portable archives and
decompile archives back into (primitive) authoring graphs
OUTPUTS: CompiledPack, archive bytes, DecompiledPack

WHAT THIS LAYER MUST NOT DO:
============================
- Transmit archives anywhere
- Return partial results after a failure
- Rebuild composite nodes from synthetic records
"""

from .container import STORY_JSON, ASSETS_DIR, THUMBNAIL, write_zip, list_members, read_member
from .writer import (
    CompilerConfig, CompiledPack, PackWriter, build_transition, anchor_transition,
    archive_filename, synthetic_id, question_action_id, question_stage_id,
    options_action_id, option_stage_id, story_action_id,
)
from .reader import DecompiledPack, PackReader

__all__ = [
    'STORY_JSON', 'ASSETS_DIR', 'THUMBNAIL', 'write_zip', 'list_members',
    'read_member', 'CompilerConfig', 'CompiledPack', 'PackWriter',
    'build_transition', 'anchor_transition', 'archive_filename',
    'synthetic_id', 'question_action_id', 'question_stage_id',
    'options_action_id', 'option_stage_id', 'story_action_id',
    'DecompiledPack', 'PackReader',
]
