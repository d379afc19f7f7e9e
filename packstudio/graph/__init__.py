"""
Graph Model Layer

RESPONSIBILITY: Authoring graph, derived ports, link legality, validation
ALLOWED INPUTS: Authoring commands, session documents
OUTPUTS: PackGraph, ValidationReport, session documents

WHAT THIS LAYER MUST NOT DO:
============================
- Read or write archives
- Perform I/O
- Raise for authoring mistakes (those are Result failures)
"""

from .nodes import (
    PORT_TABLE, NODE_KINDS, STAGE_FAMILY, MAX_OPTIONS, PortRef, Link,
    StageContent, Node, StageNode, CoverNode, StoryNode, MenuNode, ActionNode,
    menu_option_content,
)
from .model import PackGraph, ReturnAnchor
from .validation import Severity, Issue, ValidationReport, validate_pack
from .serialization import (
    StrictPackEncoder, serialize_graph, deserialize_graph, serialize_node,
    deserialize_node, dumps, loads,
)

__all__ = [
    'PORT_TABLE', 'NODE_KINDS', 'STAGE_FAMILY', 'MAX_OPTIONS', 'PortRef',
    'Link', 'StageContent', 'Node', 'StageNode', 'CoverNode', 'StoryNode', 'MenuNode',
    'ActionNode', 'menu_option_content', 'PackGraph', 'ReturnAnchor',
    'Severity', 'Issue', 'ValidationReport', 'validate_pack',
    'StrictPackEncoder', 'serialize_graph', 'deserialize_graph',
    'serialize_node', 'deserialize_node', 'dumps', 'loads',
]
