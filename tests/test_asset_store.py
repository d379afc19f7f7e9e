"""
Asset Store Tests
=================

Content addressing and deduplication of media payloads.
"""

import asyncio
import hashlib

import pytest

from packstudio.storage import (
    AssetStore, MediaAsset, extension_for_mime, mime_for_filename,
)


class TestMimeTables:

    @pytest.mark.parametrize("mime, ext", [
        ("image/png", ".png"),
        ("image/jpeg", ".jpg"),
        ("image/bmp", ".bmp"),
        ("audio/mpeg", ".mp3"),
        ("audio/x-wav", ".wav"),
        ("audio/ogg", ".ogg"),
        ("text/plain", ".bin"),
    ])
    def test_extension_for_mime(self, mime, ext):
        assert extension_for_mime(mime) == ext

    def test_mime_for_filename(self):
        assert mime_for_filename("abc.JPG") == "image/jpeg"
        assert mime_for_filename("abc.mp3") == "audio/mpeg"
        assert mime_for_filename("abc.xyz") == "application/octet-stream"


class TestMediaAsset:

    def test_needs_exactly_one_source(self):
        with pytest.raises(ValueError):
            MediaAsset(mime_type="image/png")
        with pytest.raises(ValueError):
            MediaAsset(mime_type="image/png", data=b"x", source="x.png")

    def test_data_url(self):
        asset = MediaAsset(mime_type="image/png", data=b"\x00\x01pixels")
        restored = MediaAsset.from_data_url(asset.to_data_url())
        assert restored == asset

    def test_rejects_non_base64_data_url(self):
        with pytest.raises(ValueError):
            MediaAsset.from_data_url("data:text/plain,hello")
        with pytest.raises(ValueError):
            MediaAsset.from_data_url("http://example.com/a.png")

    def test_from_path_reads_lazily(self, tmp_path):
        path = tmp_path / "sound.ogg"
        path.write_bytes(b"OggS")
        asset = MediaAsset.from_path(path)
        assert asset.mime_type == "audio/ogg"
        assert asset.read() == b"OggS"


class TestAssetStore:

    def test_name_is_hash_plus_extension(self):
        store = AssetStore()
        name = store.put(b"payload", "image/png")
        assert name == hashlib.sha1(b"payload").hexdigest() + ".png"
        assert store.get(name) == b"payload"

    def test_identical_payloads_stored_once(self):
        store = AssetStore()
        first = store.put(b"same", "audio/mpeg")
        second = store.put(b"same", "audio/mpeg")
        assert first == second
        assert len(store) == 1
        assert store.deduplicated_count == 1

    def test_configurable_hash(self):
        store = AssetStore("sha256")
        name = store.put(b"payload", "image/png")
        assert name.startswith(hashlib.sha256(b"payload").hexdigest())

    def test_unknown_hash_rejected(self):
        with pytest.raises(ValueError):
            AssetStore("not-a-hash")

    def test_put_all_preserves_order(self):
        store = AssetStore()
        assets = [
            MediaAsset(mime_type="image/png", data=b"a"),
            MediaAsset(mime_type="image/png", data=b"b"),
            MediaAsset(mime_type="image/png", data=b"a"),
        ]
        names = asyncio.run(store.put_all(assets))
        assert names[0] == names[2] != names[1]
        assert store.filenames() == sorted({names[0], names[1]})

    def test_put_all_failure_leaves_store_empty(self, tmp_path):
        store = AssetStore()
        assets = [
            MediaAsset(mime_type="image/png", data=b"a"),
            MediaAsset.from_path(tmp_path / "missing.png"),
        ]
        with pytest.raises(OSError):
            asyncio.run(store.put_all(assets))
        assert len(store) == 0
