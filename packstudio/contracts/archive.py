"""
Archive Contracts

Immutable record shapes of the portable archive manifest (story.json).

The manifest is a flat, lower-level representation of a pack: composite
authoring nodes never appear in it, only stage and action records, some
of which are synthetic and point back to their composite via groupId.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from .base import Control


ARCHIVE_FORMAT = "v1"


def _require(data: Dict[str, Any], key: str, kind: type, record: str) -> Any:
    if key not in data:
        raise ValueError(f"{record}: missing field '{key}'")
    value = data[key]
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ValueError(f"{record}: field '{key}' must be {kind.__name__}")
    return value


def _optional_str(data: Dict[str, Any], key: str, record: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{record}: field '{key}' must be a string or null")
    return value


@dataclass(frozen=True)
class ControlSettings:
    """Which physical inputs are active while a stage plays."""
    wheel: bool = False
    ok: bool = False
    home: bool = False
    pause: bool = False
    autoplay: bool = False

    def is_enabled(self, control: Control) -> bool:
        return getattr(self, control.value)

    def with_control(self, control: Control, value: bool) -> ControlSettings:
        return replace(self, **{control.value: bool(value)})

    def to_dict(self) -> Dict[str, bool]:
        return {c.value: self.is_enabled(c) for c in Control}

    @staticmethod
    def from_dict(data: Any) -> ControlSettings:
        if not isinstance(data, dict):
            raise ValueError("controlSettings must be an object")
        return ControlSettings(**{c.value: bool(data.get(c.value, False)) for c in Control})


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @property
    def is_origin(self) -> bool:
        return self.x == 0 and self.y == 0

    @staticmethod
    def from_dict(data: Any) -> Optional[Position]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValueError("position must be an object or null")
        x, y = data.get("x"), data.get("y")
        for value in (x, y):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError("position coordinates must be numbers")
        return Position(x=x, y=y)


@dataclass(frozen=True)
class TransitionRecord:
    """
    Reference from a stage record to an action record option.
    option_index == -1 means "pick an option at random".
    """
    action_node: str
    option_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"actionNode": self.action_node, "optionIndex": self.option_index}

    @staticmethod
    def from_dict(data: Any) -> Optional[TransitionRecord]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValueError("transition must be an object or null")
        action_node = _require(data, "actionNode", str, "transition")
        option_index = _require(data, "optionIndex", int, "transition")
        if option_index < -1:
            raise ValueError("transition: optionIndex must be >= -1")
        return TransitionRecord(action_node=action_node, option_index=option_index)


@dataclass(frozen=True)
class StageRecord:
    """Content record: plays an image and/or audio and waits for input."""
    uuid: str
    type: str
    name: str
    position: Optional[Position]
    image: Optional[str]
    audio: Optional[str]
    ok_transition: Optional[TransitionRecord]
    home_transition: Optional[TransitionRecord]
    control_settings: ControlSettings
    square_one: bool = False
    group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"uuid": self.uuid, "type": self.type}
        if self.group_id is not None:
            data["groupId"] = self.group_id
        data.update({
            "name": self.name,
            "position": self.position.to_dict() if self.position else None,
            "image": self.image,
            "audio": self.audio,
            "okTransition": self.ok_transition.to_dict() if self.ok_transition else None,
            "homeTransition": self.home_transition.to_dict() if self.home_transition else None,
            "controlSettings": self.control_settings.to_dict(),
        })
        if self.square_one:
            data["squareOne"] = True
        return data

    @staticmethod
    def from_dict(data: Any) -> StageRecord:
        if not isinstance(data, dict):
            raise ValueError("stage record must be an object")
        return StageRecord(
            uuid=_require(data, "uuid", str, "stage record"),
            type=data.get("type") or "stage",
            name=data.get("name") or "",
            position=Position.from_dict(data.get("position")),
            image=_optional_str(data, "image", "stage record"),
            audio=_optional_str(data, "audio", "stage record"),
            ok_transition=TransitionRecord.from_dict(data.get("okTransition")),
            home_transition=TransitionRecord.from_dict(data.get("homeTransition")),
            control_settings=ControlSettings.from_dict(data.get("controlSettings", {})),
            square_one=bool(data.get("squareOne", False)),
            group_id=_optional_str(data, "groupId", "stage record"),
        )


@dataclass(frozen=True)
class ActionRecord:
    """Branch record: ordered options, each a stage uuid or None."""
    id: str
    name: str
    position: Optional[Position]
    options: Tuple[Optional[str], ...]
    type: Optional[str] = None
    group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        if self.type is not None:
            data["type"] = self.type
        if self.group_id is not None:
            data["groupId"] = self.group_id
        data.update({
            "name": self.name,
            "position": self.position.to_dict() if self.position else None,
            "options": list(self.options),
        })
        return data

    @staticmethod
    def from_dict(data: Any) -> ActionRecord:
        if not isinstance(data, dict):
            raise ValueError("action record must be an object")
        options = _require(data, "options", list, "action record")
        for option in options:
            if option is not None and not isinstance(option, str):
                raise ValueError("action record: options must be stage uuids or null")
        return ActionRecord(
            id=_require(data, "id", str, "action record"),
            name=data.get("name") or "",
            position=Position.from_dict(data.get("position")),
            options=tuple(options),
            type=_optional_str(data, "type", "action record"),
            group_id=_optional_str(data, "groupId", "action record"),
        )


@dataclass(frozen=True)
class StoryManifest:
    """
    The story.json document.
    stage_records[0] is always the entry ("square one") record.
    """
    title: str
    version: int
    description: str
    night_mode_available: bool
    stage_records: Tuple[StageRecord, ...] = field(default_factory=tuple)
    action_records: Tuple[ActionRecord, ...] = field(default_factory=tuple)
    format: str = ARCHIVE_FORMAT

    @property
    def entry_record(self) -> Optional[StageRecord]:
        return self.stage_records[0] if self.stage_records else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "title": self.title,
            "version": self.version,
            "description": self.description,
            "nightModeAvailable": self.night_mode_available,
            "stageNodes": [r.to_dict() for r in self.stage_records],
            "actionNodes": [r.to_dict() for r in self.action_records],
        }

    @staticmethod
    def from_dict(data: Any) -> StoryManifest:
        if not isinstance(data, dict):
            raise ValueError("story.json must contain an object")
        stage_nodes = _require(data, "stageNodes", list, "story.json")
        action_nodes = data.get("actionNodes") or []
        if not isinstance(action_nodes, list):
            raise ValueError("story.json: field 'actionNodes' must be list")
        version = data.get("version", 1)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("story.json: field 'version' must be int")
        return StoryManifest(
            title=data.get("title") or "",
            version=version,
            description=data.get("description") or "",
            night_mode_available=bool(data.get("nightModeAvailable", False)),
            stage_records=tuple(StageRecord.from_dict(r) for r in stage_nodes),
            action_records=tuple(ActionRecord.from_dict(r) for r in action_nodes),
            format=data.get("format") or ARCHIVE_FORMAT,
        )
