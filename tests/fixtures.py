"""
Test Fixtures

Deterministic builders for pack graphs.

RULES:
======
1. Ids and uuids come from counters, never from uuid4
2. Media payloads are small literal byte strings
3. Every builder returns the graph plus the ids a test needs
"""

from __future__ import annotations
from typing import Callable, Dict, Tuple
import io
import itertools
import struct
import zipfile

from packstudio.contracts.base import Result
from packstudio.contracts.archive import ControlSettings
from packstudio.graph import PackGraph, PortRef
from packstudio.storage import MediaAsset


def counter(prefix: str) -> Callable[[], str]:
    numbers = itertools.count(1)
    return lambda: f"{prefix}{next(numbers)}"


def uuid_counter() -> Callable[[], str]:
    numbers = itertools.count(1)
    return lambda: f"00000000-0000-4000-8000-{next(numbers):012d}"


def new_graph(**options) -> PackGraph:
    options.setdefault("title", "Test Pack")
    return PackGraph(id_factory=counter("n"), uuid_factory=uuid_counter(), **options)


def ok(result: Result):
    """Unwrap a successful Result."""
    assert result.is_success, result.error
    return result.value


def png(payload: bytes = b"\x89PNG fake image") -> MediaAsset:
    return MediaAsset(mime_type="image/png", data=payload)


def mp3(payload: bytes = b"ID3 fake audio") -> MediaAsset:
    return MediaAsset(mime_type="audio/mpeg", data=payload)


STAGE_CONTROLS = ControlSettings(wheel=True, ok=True, home=True)


def cover_action_stages(option_count: int = 2) -> Tuple[PackGraph, Dict[str, str]]:
    """
    Cover --ok--> Action(option_count) --option i--> Stage i

    Each stage has its own image and audio.
    """
    graph = new_graph()
    ids = {}
    ids["cover"] = ok(graph.add_cover(name="Cover", image=png(b"cover"), audio=mp3(b"cover"))).id
    ids["action"] = ok(graph.add_action(name="Choice", option_count=option_count)).id
    ok(graph.connect(PortRef.ok(ids["cover"]), PortRef.option_in(ids["action"], 0)))
    for i in range(option_count):
        stage = ok(graph.add_stage(
            name=f"Stage {i}", image=png(f"image {i}".encode()), audio=mp3(f"audio {i}".encode()),
            controls=STAGE_CONTROLS,
        ))
        ids[f"stage{i}"] = stage.id
        ok(graph.connect(PortRef.option_out(ids["action"], i), PortRef.from_port(stage.id)))
    return graph, ids


def cover_menu(option_count: int = 3, default_option: int = 1) -> Tuple[PackGraph, Dict[str, str]]:
    """
    Cover --ok--> Menu(option_count) --option i--> Action i --> Stage i
    """
    graph = new_graph()
    ids = {}
    ids["cover"] = ok(graph.add_cover(name="Cover", audio=mp3(b"cover"))).id
    menu = ok(graph.add_menu(
        name="Pick one",
        question_audio=mp3(b"question"),
        options=[f"Choice {i}" for i in range(option_count)],
        default_option=default_option,
    ))
    ids["menu"] = menu.id
    ok(graph.connect(PortRef.ok(ids["cover"]), PortRef.from_port(menu.id)))
    for i in range(option_count):
        ok(graph.update_menu_option(menu.id, i, audio=mp3(f"option {i}".encode())))
        action = ok(graph.add_action(name=f"Go {i}"))
        stage = ok(graph.add_stage(name=f"End {i}", audio=mp3(f"end {i}".encode()),
                                   controls=STAGE_CONTROLS))
        ids[f"action{i}"] = action.id
        ids[f"stage{i}"] = stage.id
        ok(graph.connect(PortRef.option_out(menu.id, i), PortRef.option_in(action.id, 0)))
        ok(graph.connect(PortRef.option_out(action.id, 0), PortRef.from_port(stage.id)))
    return graph, ids


def cover_story(**story_flags) -> Tuple[PackGraph, Dict[str, str]]:
    """
    Cover --ok--> Action --option 0--> Stage --ok--> Story
    """
    graph = new_graph()
    ids = {}
    ids["cover"] = ok(graph.add_cover(name="Cover", audio=mp3(b"cover"))).id
    ids["action"] = ok(graph.add_action(name="Start")).id
    ids["stage"] = ok(graph.add_stage(name="Intro", audio=mp3(b"intro"), controls=STAGE_CONTROLS)).id
    ids["story"] = ok(graph.add_story(name="Tale", audio=mp3(b"tale"), **story_flags)).id
    ok(graph.connect(PortRef.ok(ids["cover"]), PortRef.option_in(ids["action"], 0)))
    ok(graph.connect(PortRef.option_out(ids["action"], 0), PortRef.from_port(ids["stage"])))
    ok(graph.connect(PortRef.ok(ids["stage"]), PortRef.from_port(ids["story"])))
    return graph, ids


def corrupt_member(data: bytes, name: str) -> bytes:
    """Flip every stored byte of one zip member, leaving the directory intact."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        info = archive.getinfo(name)
    name_length, extra_length = struct.unpack_from("<HH", data, info.header_offset + 26)
    start = info.header_offset + 30 + name_length + extra_length
    damaged = bytes(b ^ 0xFF for b in data[start:start + info.compress_size])
    return data[:start] + damaged + data[start + info.compress_size:]
