"""REST API for exporting and deleting sessions."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from knotcap.export.pipeline import ExportKind

router = APIRouter(tags=["export"])


class ExportRequest(BaseModel):
    kind: ExportKind
    ids: list[str]


@router.post("/export")
async def export_sessions(body: ExportRequest, request: Request):
    artifact = await request.app.state.pipeline.run(body.ids, body.kind)
    if artifact is None:
        return JSONResponse(
            status_code=500,
            content={"detail": "Export failed"},
        )
    return {"kind": body.kind.value, "path": artifact or None}
