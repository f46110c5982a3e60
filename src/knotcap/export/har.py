"""Archive builder — maps one SessionRecord to one HAR 1.2 entry."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from knotcap.config import SMALL_BODY_LIMIT
from knotcap.export.codec import Recovered, decode_text, recover_body
from knotcap.session.files import Headers, SessionFiles, header_value
from knotcap.session.models import SessionRecord

logger = logging.getLogger(__name__)

# Multipart request bodies are not split into named parts
SUPPORTS_MULTIPART = False


def iso8601(epoch: float) -> str:
    moment = datetime.fromtimestamp(epoch, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def headers_size(headers: Headers | None) -> int:
    """Approximate header bytes; -1 when there are no headers."""
    size = -1
    for name, value in headers or ():
        size += len(name) + len(value) + 2
    return size


def split_cookies(headers: Headers) -> tuple[Headers, list[dict[str, Any]]]:
    """Pull ``Cookie`` headers out into cookie objects."""
    remaining: Headers = []
    cookies: list[dict[str, Any]] = []
    for name, value in headers:
        if name.lower() != "cookie":
            remaining.append((name, value))
            continue
        for pair in value.split(";"):
            key, _, val = pair.strip().partition("=")
            if key:
                cookies.append({"name": key, "value": val})
    return remaining, cookies


def parse_set_cookie(value: str) -> dict[str, Any] | None:
    parts = [p.strip() for p in value.split(";")]
    name, sep, val = parts[0].partition("=")
    if not sep or not name.strip():
        return None
    cookie: dict[str, Any] = {"name": name.strip(), "value": val.strip()}
    for attr in parts[1:]:
        key, _, attr_value = attr.partition("=")
        key = key.strip().lower()
        if key == "path":
            cookie["path"] = attr_value
        elif key == "domain":
            cookie["domain"] = attr_value
        elif key == "expires":
            cookie["expires"] = attr_value
        elif key == "httponly":
            cookie["httpOnly"] = True
        elif key == "secure":
            cookie["secure"] = True
    return cookie


def _delta(start: float, end: float) -> int:
    """Milliseconds between two timing marks, or -1 when not meaningful."""
    if start <= 0 or end <= 0:
        return -1
    millis = int((end - start) * 1000)
    return millis if millis > 0 else -1


def _content_length(headers: Headers | None) -> int | None:
    raw = header_value(headers or [], "Content-Length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _name_value(pairs: Headers) -> list[dict[str, str]]:
    return [{"name": name, "value": value} for name, value in pairs]


def _default_response() -> dict[str, Any]:
    return {
        "status": 0,
        "statusText": "",
        "httpVersion": "",
        "cookies": [],
        "headers": [],
        "content": {"size": 0, "mimeType": ""},
        "redirectURL": "",
        "headersSize": -1,
        "bodySize": -1,
    }


class ArchiveBuilder:
    """Builds HAR entry dicts from records and their sidecar files."""

    def __init__(
        self, files: SessionFiles, small_body_limit: int = SMALL_BODY_LIMIT
    ) -> None:
        self.files = files
        self.small_body_limit = small_body_limit

    def entry(self, record: SessionRecord) -> dict[str, Any]:
        elapsed = int((record.receive_end - record.dns_start) * 1000)
        started = record.dns_start if record.dns_start > 0 else 0.0
        return {
            "startedDateTime": iso8601(started),
            "time": max(elapsed, 0),
            "request": self._request(record),
            "response": self._response(record),
            "cache": {},
            "timings": {
                "blocked": -1,
                "dns": _delta(record.dns_start, record.connect_start),
                "connect": _delta(record.connect_start, record.send_start),
                "ssl": -1,
                "send": _delta(record.send_start, record.send_end),
                "wait": _delta(record.send_end, record.receive_start),
                "receive": _delta(record.receive_start, record.receive_end),
            },
            "serverIPAddress": record.server_ip,
        }

    def _request(self, record: SessionRecord) -> dict[str, Any]:
        url = record.full_url()
        raw_headers = self.files.head(record, request=True)
        headers, cookies = split_cookies(raw_headers or [])
        body_size = _content_length(raw_headers)
        request: dict[str, Any] = {
            "method": record.method,
            "url": url,
            "httpVersion": record.version,
            "cookies": cookies,
            "headers": _name_value(headers),
            "queryString": [
                {"name": k, "value": v}
                for k, v in parse_qsl(urlsplit(url).query, keep_blank_values=True)
            ],
            "headersSize": headers_size(raw_headers),
            "bodySize": body_size if body_size is not None else -1,
        }

        body = self.files.read_body(record, request=True)
        if body is not None:
            mime_type = record.req_content_type
            post: dict[str, Any] = {"mimeType": mime_type}
            if "boundary=" in mime_type and not SUPPORTS_MULTIPART:
                post["params"] = []
            else:
                recovered = recover_body(body, record.req_encoding, self.small_body_limit)
                text = decode_text(recovered.data)
                if text is not None:
                    post["text"] = text
            request["postData"] = post
        return request

    def _response(self, record: SessionRecord) -> dict[str, Any]:
        try:
            status = int(record.rsp_status)
        except ValueError:
            return _default_response()

        raw_headers = self.files.head(record, request=False) or []
        cookies = []
        for name, value in raw_headers:
            if name.lower() == "set-cookie":
                cookie = parse_set_cookie(value)
                if cookie is not None:
                    cookies.append(cookie)
        headers, _ = split_cookies(raw_headers)

        body_size = _content_length(raw_headers)
        if body_size is None:
            body_size = self.files.body_size(record, request=False)

        return {
            "status": status,
            "statusText": record.rsp_message,
            "httpVersion": record.version,
            "cookies": cookies,
            "headers": _name_value(headers),
            "content": self._content(record),
            "redirectURL": header_value(raw_headers, "Location") or "",
            "headersSize": headers_size(raw_headers),
            "bodySize": body_size,
        }

    def _content(self, record: SessionRecord) -> dict[str, Any]:
        raw = self.files.read_body(record, request=False)
        if raw is None:
            return {"size": 0, "mimeType": record.rsp_content_type}

        result = recover_body(raw, record.rsp_encoding, self.small_body_limit)
        content: dict[str, Any] = {
            "size": len(result.data),
            "mimeType": record.rsp_content_type,
        }
        if isinstance(result, Recovered):
            saved = len(result.data) - len(raw)
            if saved > 0:
                content["compression"] = saved

        text = decode_text(result.data)
        if text is not None:
            content["text"] = text
        else:
            content["text"] = base64.b64encode(raw).decode("ascii")
            content["encoding"] = "base64"
        return content
