"""Export pipeline — stream session records into URL, curl and HAR artifacts.

Files are appended one record at a time through a single open handle, so peak
memory stays bounded by the largest single entry however large the batch is.
Blocking work runs in a worker thread when driven through ``ExportPipeline``.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import secrets
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

import aiosqlite

from knotcap.export.curl import curl_command
from knotcap.export.har import ArchiveBuilder
from knotcap.session.files import SessionFiles
from knotcap.session.models import SessionRecord
from knotcap.storage.repos import SessionRepo

logger = logging.getLogger(__name__)

HAR_CLOSER = "]}}"

Artifact = str | None


class ExportKind(enum.Enum):
    URL = "url"
    CURL = "curl"
    HAR = "har"
    DELETE = "delete"


_SUFFIXES = {
    ExportKind.URL: "url.txt",
    ExportKind.CURL: "curl.txt",
    ExportKind.HAR: "har",
}


def har_opener(product: str) -> str:
    return (
        '{"log": { "version": "1.2", "creator":{ "name": "'
        + product
        + '", "version": "1.0" },"entries": ['
    )


class Exporter:
    """Synchronous artifact writer for one output directory."""

    def __init__(
        self,
        files: SessionFiles,
        output_dir: str | Path,
        product_name: str = "Knot",
        builder: ArchiveBuilder | None = None,
    ) -> None:
        self.files = files
        self.output_dir = Path(output_dir)
        self.product_name = product_name
        self.builder = builder or ArchiveBuilder(files)

    def output_path(self, kind: ExportKind) -> Path:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        name = f"{self.product_name}-{stamp}-{secrets.token_hex(3)}.{_SUFFIXES[kind]}"
        return self.output_dir / name

    def export(self, records: Sequence[SessionRecord], kind: ExportKind) -> Artifact:
        """Write one artifact; returns its path, or None if it can't be created."""
        if kind is ExportKind.DELETE:
            raise ValueError("Deletion goes through ExportPipeline")
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_path(kind)
            handle = path.open("x", encoding="utf-8")
        except OSError as exc:
            logger.error("Cannot create export file in %s: %s", self.output_dir, exc)
            return None

        with handle:
            if kind is ExportKind.HAR:
                written = self._write_har(handle, records)
            else:
                written = self._write_lines(handle, records, kind)

        logger.info("Exported %d record(s) to %s", written, path)
        return str(path)

    def _write_lines(self, handle, records, kind: ExportKind) -> int:
        written = 0
        for record in records:
            if kind is ExportKind.URL:
                line = record.full_url()
            else:
                try:
                    line = curl_command(record, self.files)
                except OSError as exc:
                    logger.warning("Skipping curl for %s: %s", record.id, exc)
                    continue
            if not line:
                continue
            handle.write(line + "\n\n")
            written += 1
        return written

    def _write_har(self, handle, records) -> int:
        handle.write(har_opener(self.product_name))
        written = 0
        for record in records:
            if not record.host:
                continue
            try:
                encoded = json.dumps(self.builder.entry(record), ensure_ascii=False)
            except (OSError, ValueError, TypeError) as exc:
                logger.warning("Skipping HAR entry for %s: %s", record.id, exc)
                continue
            if written:
                handle.write(",")
            handle.write(encoded)
            written += 1
        handle.write(HAR_CLOSER)
        return written

    def remove_files(self, record: SessionRecord) -> int:
        return self.files.remove(record)


class ExportPipeline:
    """Runs exports off the event loop against records looked up by id."""

    def __init__(self, repo: SessionRepo, exporter: Exporter) -> None:
        self.repo = repo
        self.exporter = exporter

    async def run(self, ids: Sequence[str], kind: ExportKind) -> Artifact:
        records = await self.repo.find_all(ids)
        return await self.run_records(records, kind)

    async def run_records(
        self, records: Sequence[SessionRecord], kind: ExportKind
    ) -> Artifact:
        """Export an explicit record set.

        Returns the artifact path, "" after a deletion, or None on failure.
        """
        if kind is ExportKind.DELETE:
            return await self._delete(records)
        return await asyncio.to_thread(self.exporter.export, list(records), kind)

    async def _delete(self, records: Sequence[SessionRecord]) -> Artifact:
        for record in records:
            await asyncio.to_thread(self.exporter.remove_files, record)
            try:
                await self.repo.delete(record.id)
            except aiosqlite.Error as exc:
                logger.warning("Could not delete session %s: %s", record.id, exc)
        logger.info("Deleted %d session(s)", len(records))
        return ""

    def submit(
        self,
        ids: Sequence[str],
        kind: ExportKind,
        on_complete: Callable[[Artifact], None],
    ) -> asyncio.Task:
        """Schedule ``run`` and hand its result to ``on_complete``."""

        async def _job() -> Artifact:
            try:
                artifact = await self.run(ids, kind)
            except (OSError, aiosqlite.Error) as exc:
                logger.error("Export %s failed: %s", kind.value, exc)
                artifact = None
            on_complete(artifact)
            return artifact

        return asyncio.get_running_loop().create_task(_job())
