"""
Pack Studio: API Server
=======================

HTTP surface over the studio backend. Graphs travel as session documents,
archives as raw zip bytes.

Endpoints:
- GET  /health                  -> Liveness
- POST /api/v1/packs/compile    -> Graph document -> archive zip
- POST /api/v1/packs/decompile  -> Archive zip -> graph document
- POST /api/v1/packs/validate   -> Graph document -> validation report
- GET  /api/v1/audit            -> Audit report and recent entries

Usage:
    uvicorn packstudio.api.server:app --reload
"""
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..engine import StudioBackend, StudioConfig
from ..archive import CompilerConfig, archive_filename
from ..playback import PlaybackConfig
from ..contracts.base import ArchiveError, CompilationError, GraphDocumentError
from ..graph import deserialize_graph, serialize_graph
from .mapper import HealthResponse, map_audit_entries, map_error_to_payload

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

# Global Backend Instance
backend_instance: Optional[StudioBackend] = None


def config_from_env() -> StudioConfig:
    """Build the studio configuration, honoring environment overrides."""
    compiler = CompilerConfig(
        hash_algorithm=os.environ.get("PACKSTUDIO_HASH_ALGORITHM", "sha1"),
    )
    seed = os.environ.get("PACKSTUDIO_RANDOM_SEED")
    playback = PlaybackConfig(random_seed=int(seed) if seed else None)
    return StudioConfig(compiler=compiler, playback=playback)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the backend on startup."""
    global backend_instance

    config = config_from_env()
    print(f"[*] Initializing Pack Studio backend (hash: {config.compiler.hash_algorithm})")
    backend_instance = StudioBackend(config)
    print("[*] Backend initialized successfully.")

    yield

    print("[*] Shutting down backend.")
    backend_instance = None

app = FastAPI(
    title="Pack Studio API",
    version="0.1.0",
    description="Compile, decompile and validate story packs",
    lifespan=lifespan
)

# CORS (Allow editor frontends)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _backend() -> StudioBackend:
    if not backend_instance:
        raise HTTPException(status_code=503, detail="Backend not initialized")
    return backend_instance


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """System status."""
    backend = _backend()
    return HealthResponse(status="online", format=backend.config.compiler.format_tag)


@app.post("/api/v1/packs/compile")
async def compile_pack(document: Dict[str, Any] = Body(...)):
    """
    Compile a graph document into an archive.
    Fails as a whole: no partial zip is ever returned.
    """
    backend = _backend()
    try:
        graph = deserialize_graph(document)
        data = await backend.compile_to_bytes(graph)
    except GraphDocumentError as e:
        return JSONResponse(status_code=400, content=map_error_to_payload(e.error))
    except CompilationError as e:
        return JSONResponse(status_code=422, content=map_error_to_payload(e.error))

    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive_filename(graph)}"'},
    )


@app.post("/api/v1/packs/decompile")
async def decompile_pack(request: Request):
    """Decompile raw archive bytes into a graph document."""
    backend = _backend()
    data = await request.body()
    try:
        decompiled = await backend.decompile_pack(data)
    except ArchiveError as e:
        return JSONResponse(status_code=400, content=map_error_to_payload(e.error))

    return {
        "graph": serialize_graph(decompiled.graph),
        "layoutApplied": decompiled.layout_applied,
    }


@app.post("/api/v1/packs/validate")
async def validate_pack(document: Dict[str, Any] = Body(...)):
    """Validate a graph document. Composition issues are data, not errors."""
    backend = _backend()
    try:
        graph = deserialize_graph(document)
    except GraphDocumentError as e:
        return JSONResponse(status_code=400, content=map_error_to_payload(e.error))
    return backend.validate(graph).to_dict()


@app.get("/api/v1/audit")
async def get_audit(limit: int = 100):
    """Audit report plus the most recent entries."""
    backend = _backend()
    entries = backend.get_audit_log()
    return {
        "report": backend.get_audit_report(),
        "entries": map_audit_entries(entries[-limit:] if limit > 0 else []),
    }
