"""
Session documents.

A graph document is the JSON an editor saves and restores: every node with
its variant payload, every link with its nominal ends, media inlined as
base64 data URLs. Loading replays the document through PackGraph
mutations so a document can never smuggle in an illegal graph.
"""

import json
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Optional

from ..contracts.base import Error, ErrorCode, GraphDocumentError, NodeVariant, PortRole
from ..contracts.archive import ControlSettings, Position
from ..storage import MediaAsset
from .model import PackGraph
from .nodes import (
    MAX_OPTIONS, ActionNode, CoverNode, MenuNode, Node, PortRef, StageContent,
    StageNode, StoryNode,
)


DOCUMENT_FORMAT = "packstudio.graph/1"


class StrictPackEncoder(json.JSONEncoder):
    """
    JSON Encoder for documents and reports.

    RULES:
    1. Dates MUST be ISO 8601 strings.
    2. Enums MUST use their .value.
    3. Media assets become data URLs.
    4. Sets -> Lists (sorted for determinism).
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, MediaAsset):
            return obj.to_data_url()
        if isinstance(obj, (set, frozenset)):
            return sorted(list(obj))
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def dumps(document: Dict, **kwargs) -> str:
    return json.dumps(document, cls=StrictPackEncoder, **kwargs)


# =============================================================================
# GRAPH -> DOCUMENT
# =============================================================================

def _asset(asset: Optional[MediaAsset]) -> Optional[str]:
    return asset.to_data_url() if asset else None


def _content(content: StageContent) -> Dict[str, Any]:
    return {
        "name": content.name,
        "image": _asset(content.image),
        "audio": _asset(content.audio),
        "controls": content.controls.to_dict(),
    }


def _port(port: PortRef) -> Dict[str, Any]:
    return {"node": port.node_id, "role": port.role.value, "index": port.index}


def serialize_node(node: Node) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": node.id,
        "uuid": node.uuid,
        "type": node.variant.value,
        "position": node.position.to_dict() if node.position else None,
    }
    if node.variant == NodeVariant.ACTION:
        data.update(name=node.name, optionCount=node.option_count)
    elif node.variant == NodeVariant.MENU:
        data.update(
            name=node.name,
            question=_content(node.question),
            options=[_content(o) for o in node.options],
            defaultOption=node.default_option,
        )
    else:
        data.update(_content(node.content))
        if node.variant == NodeVariant.STAGE:
            data["entry"] = node.entry
        elif node.variant == NodeVariant.STORY:
            data.update(
                customOkTransition=node.custom_ok_transition,
                customHomeTransition=node.custom_home_transition,
                disableHome=node.disable_home,
            )
    return data


def serialize_graph(graph: PackGraph) -> Dict[str, Any]:
    return {
        "format": DOCUMENT_FORMAT,
        "title": graph.title,
        "version": graph.version,
        "description": graph.description,
        "nightModeAvailable": graph.night_mode_available,
        "thumbnail": _asset(graph.thumbnail),
        "nodes": [serialize_node(n) for n in graph.nodes],
        "links": [
            {
                "id": link.id,
                "source": _port(link.source),
                "target": _port(link.target),
                "inversed": link.inversed,
            }
            for link in graph.links
        ],
    }


# =============================================================================
# DOCUMENT -> GRAPH
# =============================================================================

def _invalid(message: str) -> GraphDocumentError:
    return GraphDocumentError(Error.of(ErrorCode.INVALID_DOCUMENT, message))


def _load_asset(value: Optional[str]) -> Optional[MediaAsset]:
    return MediaAsset.from_data_url(value) if value else None


def _load_content(data: Dict[str, Any]) -> StageContent:
    return StageContent(
        name=data.get("name") or "",
        image=_load_asset(data.get("image")),
        audio=_load_asset(data.get("audio")),
        controls=ControlSettings.from_dict(data.get("controls", {})),
    )


def _load_port(data: Dict[str, Any]) -> PortRef:
    return PortRef(data["node"], PortRole(data["role"]), data.get("index"))


def _option_total(count: int) -> int:
    if count > MAX_OPTIONS:
        raise ValueError(f"{count} options exceed the limit of {MAX_OPTIONS}")
    return count


def deserialize_node(data: Dict[str, Any]) -> Node:
    variant = NodeVariant(data["type"])
    common = dict(
        id=data["id"],
        uuid=data["uuid"],
        position=Position.from_dict(data.get("position")),
    )
    if variant == NodeVariant.ACTION:
        return ActionNode(
            name=data.get("name") or "",
            option_count=_option_total(int(data["optionCount"])),
            **common,
        )
    if variant == NodeVariant.MENU:
        _option_total(len(data["options"]))
        return MenuNode(
            name=data.get("name") or "",
            question=_load_content(data.get("question") or {}),
            options=tuple(_load_content(o) for o in data["options"]),
            default_option=int(data.get("defaultOption", 0)),
            **common,
        )
    content = _load_content(data)
    fields = dict(
        name=content.name, image=content.image, audio=content.audio,
        controls=content.controls, **common,
    )
    if variant == NodeVariant.STORY:
        return StoryNode(
            custom_ok_transition=bool(data.get("customOkTransition", False)),
            custom_home_transition=bool(data.get("customHomeTransition", False)),
            disable_home=bool(data.get("disableHome", False)),
            **fields,
        )
    if variant == NodeVariant.COVER:
        return CoverNode(entry=True, **fields)
    return StageNode(entry=bool(data.get("entry", False)), **fields)


def deserialize_graph(document: Any, **graph_options) -> PackGraph:
    """
    Rebuild a PackGraph from a document.

    Raises GraphDocumentError when the document is malformed or describes
    a graph the model would reject.
    """
    if not isinstance(document, dict):
        raise _invalid("Graph document must be an object")
    try:
        graph = PackGraph(
            title=document.get("title") or "",
            version=int(document.get("version", 1)),
            description=document.get("description") or "",
            night_mode_available=bool(document.get("nightModeAvailable", False)),
            thumbnail=_load_asset(document.get("thumbnail")),
            **graph_options,
        )
        nodes = [deserialize_node(n) for n in document.get("nodes") or []]
        links = [
            (l.get("id"), _load_port(l["source"]), _load_port(l["target"]))
            for l in document.get("links") or []
        ]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise _invalid(f"Malformed graph document: {exc}") from exc

    for node in nodes:
        result = graph.add_node(node)
        if result.is_failure:
            raise GraphDocumentError(result.error)
    for link_id, source, target in links:
        result = graph.connect(source, target, link_id=link_id)
        if result.is_failure:
            raise GraphDocumentError(result.error)
    return graph


def loads(text: str, **graph_options) -> PackGraph:
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise _invalid(f"Graph document is not JSON: {exc}") from exc
    return deserialize_graph(document, **graph_options)
