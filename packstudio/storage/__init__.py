"""
Asset Store Layer

RESPONSIBILITY: Content-addressable storage of binary media (images, audio)
ALLOWED INPUTS: MediaAsset values, raw bytes with a declared MIME type
OUTPUTS: Asset file names of the form <hash><ext>, stored bytes

WHAT THIS LAYER MUST NOT DO:
============================
- Know about graphs, records or archives
- Store the same payload twice
- Rename an asset after it was stored

BOUNDARY ENFORCEMENT:
=====================
- The file name of an asset is a pure function of its bytes and MIME type
- Reads and hashes run off the event loop; registration happens on it
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import asyncio
import base64
import hashlib


# =============================================================================
# MIME <-> EXTENSION TABLES
# =============================================================================

DEFAULT_MIME_TYPE = "application/octet-stream"

_EXTENSION_BY_MIME: Dict[str, str] = {
    "image/bmp": ".bmp",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mp3": ".mp3",
    "audio/mpeg": ".mp3",
    "audio/ogg": ".ogg",
    "video/ogg": ".ogg",
    DEFAULT_MIME_TYPE: ".bin",
}

_MIME_BY_EXTENSION: Dict[str, str] = {
    ".bmp": "image/bmp",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".wav": "audio/x-wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
}


def extension_for_mime(mime_type: str) -> str:
    """Archive file extension for a MIME type (".bin" when unknown)."""
    return _EXTENSION_BY_MIME.get(mime_type.lower(), ".bin")


def mime_for_filename(filename: str) -> str:
    """MIME type implied by an archive file name."""
    suffix = Path(filename).suffix.lower()
    return _MIME_BY_EXTENSION.get(suffix, DEFAULT_MIME_TYPE)


# =============================================================================
# MEDIA ASSET
# =============================================================================

@dataclass(frozen=True)
class MediaAsset:
    """
    A media payload attached to a node.

    Either carries its bytes inline or points at a file that is read
    lazily at compile time. Equality is by declared content, so two
    assets built from identical bytes compare equal.
    """
    mime_type: str
    data: Optional[bytes] = None
    source: Optional[Path] = None

    def __post_init__(self):
        if (self.data is None) == (self.source is None):
            raise ValueError("MediaAsset needs exactly one of data or source")

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        return Path(self.source).read_bytes()

    @staticmethod
    def from_path(path, mime_type: Optional[str] = None) -> MediaAsset:
        path = Path(path)
        return MediaAsset(
            mime_type=mime_type or mime_for_filename(path.name),
            source=path,
        )

    @staticmethod
    def from_data_url(url: str) -> MediaAsset:
        """Parse a base64 data URL ("data:<mime>;base64,<payload>")."""
        if not url.startswith("data:") or "," not in url:
            raise ValueError("not a data URL")
        header, payload = url[5:].split(",", 1)
        parts = header.split(";")
        if "base64" not in parts[1:]:
            raise ValueError("only base64 data URLs are supported")
        mime_type = parts[0] or DEFAULT_MIME_TYPE
        try:
            data = base64.b64decode(payload, validate=True)
        except ValueError as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc
        return MediaAsset(mime_type=mime_type, data=data)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.read()).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


# =============================================================================
# CONTENT-ADDRESSABLE STORE
# =============================================================================

class AssetStore:
    """
    Deduplicating asset store keyed by content hash.

    put() is idempotent: storing byte-identical payloads twice yields the
    same file name and a single stored copy.
    """

    def __init__(self, hash_algorithm: str = "sha1"):
        # Fail fast on unknown algorithms
        hashlib.new(hash_algorithm)
        self._hash_algorithm = hash_algorithm
        self._files: Dict[str, bytes] = {}
        self._puts: int = 0

    @property
    def hash_algorithm(self) -> str:
        return self._hash_algorithm

    def digest(self, data: bytes) -> str:
        return hashlib.new(self._hash_algorithm, data).hexdigest()

    def filename_for(self, digest: str, mime_type: str) -> str:
        return digest + extension_for_mime(mime_type)

    def put(self, data: bytes, mime_type: str) -> str:
        """Store bytes, returning their file name."""
        return self._register(data, self.digest(data), mime_type)

    def _register(self, data: bytes, digest: str, mime_type: str) -> str:
        filename = self.filename_for(digest, mime_type)
        self._puts += 1
        if filename not in self._files:
            self._files[filename] = data
        return filename

    def _read_and_hash(self, asset: MediaAsset) -> Tuple[bytes, str]:
        data = asset.read()
        return data, self.digest(data)

    async def put_asset(self, asset: MediaAsset) -> str:
        """Read and hash an asset off the event loop, then store it."""
        data, digest = await asyncio.to_thread(self._read_and_hash, asset)
        return self._register(data, digest, asset.mime_type)

    async def put_all(self, assets: List[MediaAsset]) -> List[str]:
        """
        Store every asset, joining on all reads before returning.

        Any failing read propagates after the barrier and nothing is
        registered, so a failed batch leaves the store untouched.
        """
        hashed = await asyncio.gather(
            *(asyncio.to_thread(self._read_and_hash, asset) for asset in assets)
        )
        return [
            self._register(data, digest, asset.mime_type)
            for asset, (data, digest) in zip(assets, hashed)
        ]

    def get(self, filename: str) -> Optional[bytes]:
        return self._files.get(filename)

    def filenames(self) -> List[str]:
        """Stored file names in sorted order."""
        return sorted(self._files)

    def items(self) -> Iterator[Tuple[str, bytes]]:
        for name in self.filenames():
            yield name, self._files[name]

    @property
    def deduplicated_count(self) -> int:
        """How many puts were satisfied by an already stored file."""
        return self._puts - len(self._files)

    def __contains__(self, filename: str) -> bool:
        return filename in self._files

    def __len__(self) -> int:
        return len(self._files)
