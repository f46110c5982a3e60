"""curl transcript — rebuild a captured request as a curl command line."""

from __future__ import annotations

import shlex

from knotcap.export.codec import decode_text
from knotcap.session.files import SessionFiles
from knotcap.session.models import SessionRecord


def shell_quote(text: str) -> str:
    """Single-quote ``text`` for a POSIX shell when it needs quoting."""
    return shlex.quote(text)


def curl_command(record: SessionRecord, files: SessionFiles) -> str:
    """The curl command for a record, or "" when it has no host.

    Text bodies are inlined with ``-d``; anything else is referenced by the
    path of its stored body file with ``--data-binary @path``.
    """
    if not record.host:
        return ""

    parts = ["curl"]
    if record.scheme.lower() == "https":
        parts.append("-k")
    parts.append(f"-X {record.method.upper()}")

    for name, value in files.head(record, request=True) or ():
        parts.append(f"-H {shell_quote(f'{name}: {value}')}")

    body_path = files.body_path(record, request=True)
    if body_path is not None:
        text = decode_text(body_path.read_bytes())
        if text is not None:
            parts.append(f"-d {shell_quote(text)}")
        else:
            parts.append(f"--data-binary {shell_quote('@' + str(body_path))}")

    parts.append(shell_quote(record.full_url()))
    return " ".join(parts)
