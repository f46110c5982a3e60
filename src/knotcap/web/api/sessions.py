"""REST API for captured sessions."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from knotcap.export.codec import Recovered, decode_text, recover_body
from knotcap.storage.repos import SessionRepo

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
async def list_sessions(
    request: Request,
    keyword: str | None = None,
    host: list[str] = Query(default=[]),
    limit: int = 50,
    offset: int = 0,
):
    repo = SessionRepo(request.app.state.db)
    filters = {"host": host} if host else None
    records = await repo.search(
        keyword=keyword, filters=filters, limit=limit, offset=offset
    )
    return [asdict(r) for r in records]


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request):
    repo = SessionRepo(request.app.state.db)
    record = await repo.get(session_id)
    if not record:
        return JSONResponse(
            status_code=404,
            content={"detail": "Session not found"},
        )

    files = request.app.state.files
    limit = request.app.state.config.small_body_limit
    result = asdict(record)
    result["url"] = record.full_url()
    result["request_headers"] = files.head(record, request=True) or []
    result["response_headers"] = files.head(record, request=False) or []

    raw = files.read_body(record, request=False)
    if raw is not None:
        body = recover_body(raw, record.rsp_encoding, limit)
        result["response_body"] = decode_text(body.data)
        result["response_codec"] = (
            body.codec.value if isinstance(body, Recovered) else None
        )
    return result
