"""
API Tests
=========

HTTP surface: graph documents in, archives out, errors as payloads.
"""

import asyncio
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from packstudio.api.server import app
from packstudio.archive import PackWriter, archive_filename
from packstudio.graph import serialize_graph

from tests.fixtures import corrupt_member, cover_action_stages, new_graph, ok, mp3, png


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "online", "format": "v1"}

    def test_compile(self, client):
        graph, _ = cover_action_stages()
        response = client.post("/api/v1/packs/compile", json=serialize_graph(graph))
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert archive_filename(graph) in response.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert "story.json" in archive.namelist()

    def test_compile_without_entry(self, client):
        graph = new_graph()
        ok(graph.add_stage(audio=mp3()))
        response = client.post("/api/v1/packs/compile", json=serialize_graph(graph))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "ENTRY_MISSING"

    def test_compile_invalid_document(self, client):
        response = client.post("/api/v1/packs/compile", json={"nodes": [{"type": "portal"}]})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_DOCUMENT"

    def test_decompile(self, client):
        graph, ids = cover_action_stages()
        data = asyncio.run(PackWriter().compile_to_bytes(graph))
        response = client.post(
            "/api/v1/packs/decompile", content=data,
            headers={"content-type": "application/zip"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["layoutApplied"] is True
        node_ids = {n["id"] for n in body["graph"]["nodes"]}
        assert ids["action"] in node_ids

    def test_decompile_garbage(self, client):
        response = client.post("/api/v1/packs/decompile", content=b"garbage")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MALFORMED_ARCHIVE"

    def test_decompile_corrupt_asset(self, client):
        graph = new_graph()
        ok(graph.add_stage(entry=True, image=png(bytes(range(256)) * 20)))
        data = asyncio.run(PackWriter().compile_to_bytes(graph))
        asset = next(n for n in zipfile.ZipFile(io.BytesIO(data)).namelist() if n.startswith("assets/"))
        response = client.post("/api/v1/packs/decompile", content=corrupt_member(data, asset))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MALFORMED_ARCHIVE"

    def test_validate(self, client):
        graph, ids = cover_action_stages()
        response = client.post("/api/v1/packs/validate", json=serialize_graph(graph))
        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert "okPort" in body["errors"][ids["stage0"]]

    def test_audit(self, client):
        graph, _ = cover_action_stages()
        client.post("/api/v1/packs/compile", json=serialize_graph(graph))
        response = client.get("/api/v1/audit")
        assert response.status_code == 200
        body = response.json()
        assert body["report"]["by_layer"]["compiler"] >= 1
        assert any(e["action"] == "compile" for e in body["entries"])


class TestConfigFromEnv:

    def test_env_overrides(self, monkeypatch):
        from packstudio.api.server import config_from_env
        monkeypatch.setenv("PACKSTUDIO_HASH_ALGORITHM", "sha256")
        monkeypatch.setenv("PACKSTUDIO_RANDOM_SEED", "42")
        config = config_from_env()
        assert config.compiler.hash_algorithm == "sha256"
        assert config.playback.random_seed == 42
