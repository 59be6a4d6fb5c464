"""
Script Block Reconstruction: Forensic Report API
================================================

Read-only API over one artifact output directory (manifest + artifacts).
Nothing here writes to the directory.

Endpoints:
- GET /health                          -> Service status
- GET /api/v1/artifacts                -> Manifest entries
- GET /api/v1/artifacts/{identifier}   -> One entry plus artifact text

Usage:
    SCRIPTRECON_OUTPUT_DIR=./data/artifacts uvicorn scriptrecon.api.server:app
"""
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..contracts.reports import ArtifactRecord
from ..emission import read_manifest, sanitize_identifier
from ..forensic import default_output_dir


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class ArtifactEntryModel(BaseModel):
    source: str
    correlation_id: str
    display_name: str
    state: str
    identifier: Optional[str] = None
    completeness: Optional[str] = None
    total_fragments: int = 0
    fragment_count: int = 0
    missing_indices: List[int] = []
    out_of_range_indices: List[int] = []
    content_hash: Optional[str] = None
    skip_reason: Optional[str] = None
    write_error: Optional[str] = None

    @classmethod
    def from_record(cls, record: ArtifactRecord) -> "ArtifactEntryModel":
        return cls(**record.to_dict())


class ArtifactListModel(BaseModel):
    total: int
    entries: List[ArtifactEntryModel]


class ArtifactDetailModel(BaseModel):
    entry: ArtifactEntryModel
    text: str


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(output_dir: Optional[str] = None) -> FastAPI:
    """Build the API. Output dir defaults to $SCRIPTRECON_OUTPUT_DIR."""

    def resolve_dir() -> str:
        return output_dir or default_output_dir()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print(f"[*] Serving artifacts from: {resolve_dir()}")
        yield

    app = FastAPI(
        title="Script Block Reconstruction API",
        version="0.1.0",
        description="Read-only view of reconstructed artifacts",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],  # read-only
        allow_headers=["*"],
    )

    def load_entries() -> List[ArtifactRecord]:
        try:
            return read_manifest(resolve_dir())
        except (OSError, ValueError, KeyError) as e:
            raise HTTPException(status_code=500, detail=f"Unreadable manifest: {e}")

    @app.get("/health")
    async def health_check():
        """System status."""
        directory = resolve_dir()
        if not os.path.isdir(directory):
            raise HTTPException(status_code=503, detail="Output directory not found")
        return {"status": "online", "mode": "forensic", "output_dir": directory}

    @app.get("/api/v1/artifacts", response_model=ArtifactListModel)
    async def list_artifacts(
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        completeness: Optional[str] = None,
    ):
        """Manifest entries in write order."""
        entries = load_entries()
        if completeness:
            entries = [
                e for e in entries
                if e.completeness is not None and e.completeness.value == completeness
            ]
        page = entries[offset:offset + limit]
        return ArtifactListModel(
            total=len(entries),
            entries=[ArtifactEntryModel.from_record(e) for e in page]
        )

    @app.get("/api/v1/artifacts/{identifier}", response_model=ArtifactDetailModel)
    async def get_artifact(identifier: str):
        """One emitted artifact with its text."""
        # Identifiers never contain path separators; reject anything that does
        if sanitize_identifier(identifier) != identifier:
            raise HTTPException(status_code=400, detail="Invalid identifier")

        matches = [e for e in load_entries() if e.identifier == identifier]
        if not matches:
            raise HTTPException(status_code=404, detail="Artifact not found")

        path = os.path.join(resolve_dir(), identifier)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError:
            raise HTTPException(status_code=410, detail="Artifact listed but missing on disk")

        return ArtifactDetailModel(entry=ArtifactEntryModel.from_record(matches[-1]), text=text)

    return app


app = create_app()
