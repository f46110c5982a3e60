"""Session data models — one captured request/response exchange."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from typing import Any

from knotcap.policy.evaluator import RequestContext


@dataclass
class SessionRecord:
    """A captured exchange as stored by the capture engine.

    Header blobs and bodies live in sidecar files next to ``req_path`` and
    ``rsp_path`` (see ``SessionFiles``); timing marks are epoch seconds.
    """

    host: str = ""
    scheme: str = "http"
    method: str = "GET"
    uri: str = ""
    version: str = "HTTP/1.1"
    task_id: str = ""
    client_identifier: str = ""
    suffix: str = ""
    req_content_type: str = ""
    req_encoding: str = ""
    rsp_status: str = ""
    rsp_message: str = ""
    rsp_content_type: str = ""
    rsp_encoding: str = ""
    server_ip: str = ""
    server_port: int = 0
    req_path: str = ""
    rsp_path: str = ""
    dns_start: float = 0.0
    connect_start: float = 0.0
    send_start: float = 0.0
    send_end: float = 0.0
    receive_start: float = 0.0
    receive_end: float = 0.0
    in_bytes: int = 0
    out_bytes: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def column_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SessionRecord:
        names = set(cls.column_names())
        return cls(**{k: v for k, v in row.items() if k in names})

    def full_url(self) -> str:
        """Absolute URL of the request, or "" when the host is unknown."""
        if not self.host:
            return ""
        scheme = self.scheme.lower()
        if self.uri.startswith("/"):
            return f"{scheme}://{self.host}{self.uri}"
        if "://" in self.uri:
            return self.uri
        return f"{scheme}://{self.host}"

    def short_url(self) -> str:
        if self.uri.startswith(("/", ":")):
            return self.uri
        if "://" in self.uri and self.host:
            return self.uri.split(self.host, 1)[-1] or "/"
        return self.uri

    def request_context(self) -> RequestContext:
        return RequestContext(
            host=self.host,
            uri=self.uri,
            client_identifier=self.client_identifier,
        )
