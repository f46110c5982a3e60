"""Sidecar files written by the capture engine for each session direction.

Each direction has a raw capture file ``<path>`` plus ``<path>.line`` (start
line), ``<path>.head`` (CRLF separated ``Name: value`` lines) and
``<path>.body`` (payload as received).
"""

from __future__ import annotations

import logging
from pathlib import Path

from knotcap.session.models import SessionRecord

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES = (".line", ".head", ".body")

Headers = list[tuple[str, str]]


def parse_head(text: str) -> Headers:
    """Parse a header blob into ordered ``(name, value)`` pairs."""
    headers: Headers = []
    for raw in text.splitlines():
        name, sep, value = raw.partition(":")
        name = name.strip()
        if not sep or not name:
            continue
        headers.append((name, value.strip()))
    return headers


def header_value(headers: Headers, name: str) -> str | None:
    """Last value of a header, case-insensitively."""
    wanted = name.lower()
    found = None
    for key, value in headers:
        if key.lower() == wanted:
            found = value
    return found


class SessionFiles:
    """Read, write and remove the sidecar files of captured sessions."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def base_path(self, record: SessionRecord, request: bool = True) -> Path | None:
        relative = record.req_path if request else record.rsp_path
        if not relative:
            return None
        return self.root / relative

    def _sidecar(self, record: SessionRecord, request: bool, suffix: str) -> Path | None:
        base = self.base_path(record, request)
        if base is None:
            return None
        return base.with_name(base.name + suffix)

    def head(self, record: SessionRecord, request: bool = True) -> Headers | None:
        path = self._sidecar(record, request, ".head")
        if path is None or not path.is_file():
            return None
        return parse_head(path.read_text(encoding="utf-8", errors="replace"))

    def line(self, record: SessionRecord, request: bool = True) -> str | None:
        path = self._sidecar(record, request, ".line")
        if path is None or not path.is_file():
            return None
        return path.read_text(encoding="utf-8", errors="replace").rstrip("\r\n")

    def body_path(self, record: SessionRecord, request: bool = True) -> Path | None:
        """Path of a non-empty body file, else None."""
        path = self._sidecar(record, request, ".body")
        if path is None:
            return None
        try:
            if path.stat().st_size > 0:
                return path
        except OSError:
            return None
        return None

    def read_body(self, record: SessionRecord, request: bool = True) -> bytes | None:
        path = self.body_path(record, request)
        if path is None:
            return None
        return path.read_bytes()

    def body_size(self, record: SessionRecord, request: bool = True) -> int:
        path = self.body_path(record, request)
        if path is None:
            return 0
        return path.stat().st_size

    def write(
        self,
        record: SessionRecord,
        request: bool,
        line: str,
        headers: Headers,
        body: bytes = b"",
    ) -> None:
        """Store one direction of an exchange in the sidecar layout."""
        base = self.base_path(record, request)
        if base is None:
            raise ValueError("Record has no path for this direction")
        base.parent.mkdir(parents=True, exist_ok=True)
        head = "".join(f"{name}: {value}\r\n" for name, value in headers)
        base.with_name(base.name + ".line").write_text(line + "\r\n", encoding="utf-8")
        base.with_name(base.name + ".head").write_text(head, encoding="utf-8")
        base.with_name(base.name + ".body").write_bytes(body)
        base.write_bytes(f"{line}\r\n{head}\r\n".encode() + body)

    def remove(self, record: SessionRecord) -> int:
        """Best-effort removal of both directions; returns files removed."""
        removed = 0
        for request in (True, False):
            base = self.base_path(record, request)
            if base is None:
                continue
            targets = [base.with_name(base.name + s) for s in SIDECAR_SUFFIXES]
            targets.append(base)
            for target in targets:
                try:
                    target.unlink()
                    removed += 1
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    logger.warning("Could not remove %s: %s", target, exc)
        return removed
