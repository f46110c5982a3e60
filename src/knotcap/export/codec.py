"""Codec cascade — recover body bytes whose compression is not known in advance.

Declared ``Content-Encoding`` values on captured traffic are unreliable, so
bodies are run through a fixed sequence of decompressors and the first one
that succeeds wins. The order matters: some inputs decode under more than one
algorithm.
"""

from __future__ import annotations

import enum
import gzip
import logging
import lzma
import zlib
from dataclasses import dataclass

import brotli
import lz4.frame
import zstandard

from knotcap.config import SMALL_BODY_LIMIT

logger = logging.getLogger(__name__)


class Codec(enum.Enum):
    GZIP = "gzip"  # gzip-framed deflate
    ZIP = "zip"  # zlib-framed deflate
    INFLATE = "inflate"  # raw deflate
    BROTLI = "br"
    ZSTD = "zstd"  # fast, balanced ratio
    LZ4 = "lz4"  # very fast, low ratio
    LZMA = "lzma"  # high ratio, slow


CASCADE: tuple[Codec, ...] = (
    Codec.GZIP,
    Codec.ZIP,
    Codec.INFLATE,
    Codec.BROTLI,
    Codec.ZSTD,
    Codec.LZ4,
    Codec.LZMA,
)

# Declared encodings that send a body through the cascade unconditionally
COMPRESSED_ENCODINGS = ("gzip", "deflate", "br", "compress", "zstd")
IDENTITY_ENCODINGS = ("identity",)


class CodecError(Exception):
    """A codec could not decode the given bytes."""


@dataclass(frozen=True)
class Recovered:
    data: bytes
    codec: Codec


@dataclass(frozen=True)
class Unchanged:
    data: bytes


def _gunzip(data: bytes, verify_checksum: bool) -> bytes:
    return gzip.decompress(data)


def _inflate(data: bytes, verify_checksum: bool = False) -> bytes:
    d = zlib.decompressobj(-zlib.MAX_WBITS)
    out = d.decompress(data) + d.flush()
    if not d.eof:
        raise CodecError("truncated deflate stream")
    return out


def _unzip(data: bytes, verify_checksum: bool) -> bytes:
    if len(data) < 2:
        raise CodecError("too short for a zlib header")
    cmf, flg = data[0], data[1]
    if cmf & 0x0F != 8 or (cmf << 8 | flg) % 31 or flg & 0x20:
        raise CodecError("not a zlib stream")
    if verify_checksum:
        return zlib.decompress(data)
    return _inflate(data[2:])


def _unbrotli(data: bytes, verify_checksum: bool) -> bytes:
    return brotli.decompress(data)


def _unzstd(data: bytes, verify_checksum: bool) -> bytes:
    return zstandard.ZstdDecompressor().decompressobj().decompress(data)


def _unlz4(data: bytes, verify_checksum: bool) -> bytes:
    return lz4.frame.decompress(data)


def _unlzma(data: bytes, verify_checksum: bool) -> bytes:
    return lzma.decompress(data)


_DECODERS = {
    Codec.GZIP: _gunzip,
    Codec.ZIP: _unzip,
    Codec.INFLATE: _inflate,
    Codec.BROTLI: _unbrotli,
    Codec.ZSTD: _unzstd,
    Codec.LZ4: _unlz4,
    Codec.LZMA: _unlzma,
}

_DECODE_ERRORS = (
    OSError,  # gzip.BadGzipFile
    EOFError,
    ValueError,
    RuntimeError,  # lz4
    zlib.error,
    brotli.error,
    zstandard.ZstdError,
    lzma.LZMAError,
)


def decompress(data: bytes, codec: Codec, verify_checksum: bool = False) -> bytes:
    """Decode with a single codec. Raises ``CodecError`` on any failure."""
    try:
        out = _DECODERS[codec](data, verify_checksum)
    except CodecError:
        raise
    except _DECODE_ERRORS as exc:
        raise CodecError(f"{codec.value}: {exc}") from exc
    if not out:
        raise CodecError(f"{codec.value}: no output")
    return out


def recover(data: bytes) -> Recovered | Unchanged:
    """Try every codec in ``CASCADE`` order; never raises."""
    if not data:
        return Unchanged(data)
    for codec in CASCADE:
        try:
            out = decompress(data, codec)
        except CodecError:
            continue
        logger.debug("Recovered %d bytes with %s", len(out), codec.value)
        return Recovered(out, codec)
    return Unchanged(data)


def decode_text(data: bytes) -> str | None:
    """The body as text when it is valid UTF-8."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def names_compression(encoding: str) -> bool:
    lowered = encoding.lower()
    return any(name in lowered for name in COMPRESSED_ENCODINGS)


def recover_body(
    data: bytes,
    encoding: str = "",
    small_body_limit: int = SMALL_BODY_LIMIT,
) -> Recovered | Unchanged:
    """Recover a stored body given its declared ``Content-Encoding``.

    Bodies declaring a compression scheme always go through the cascade.
    Bodies with an unknown encoding do too when they are small and not
    already readable text.
    """
    if names_compression(encoding):
        return recover(data)
    if encoding.strip().lower() in IDENTITY_ENCODINGS:
        return Unchanged(data)
    if len(data) < small_body_limit and decode_text(data) is None:
        return recover(data)
    return Unchanged(data)
