"""Decompression of raw LZ4 blocks and Zstandard frames."""

from __future__ import annotations

import io

import zstandard

__all__ = ["lz4_decompress", "zstd_decompress"]

_LZ4_EXPANSION = 4
_MIN_MATCH = 4


def _read_length(data: bytes, pos: int, base: int) -> tuple:
    length = base
    if base == 15:
        while True:
            if pos >= len(data):
                raise ValueError("lz4: truncated length")
            extra = data[pos]
            pos += 1
            length += extra
            if extra != 255:
                break
    return length, pos


def lz4_decompress(data: bytes) -> bytes:
    """Decompress a raw LZ4 block whose output is at most four times its input."""
    src = bytes(data)
    if not src:
        return b""
    limit = len(src) * _LZ4_EXPANSION
    out = bytearray()
    pos = 0
    while pos < len(src):
        token = src[pos]
        pos += 1

        literal_len, pos = _read_length(src, pos, token >> 4)
        if pos + literal_len > len(src):
            raise ValueError("lz4: literals run past end of input")
        if len(out) + literal_len > limit:
            raise ValueError("lz4: output buffer too small")
        out += src[pos:pos + literal_len]
        pos += literal_len
        if pos == len(src):
            break

        if pos + 2 > len(src):
            raise ValueError("lz4: truncated match offset")
        offset = src[pos] | (src[pos + 1] << 8)
        pos += 2
        if offset == 0 or offset > len(out):
            raise ValueError("lz4: invalid match offset")

        match_len, pos = _read_length(src, pos, token & 0x0F)
        match_len += _MIN_MATCH
        if len(out) + match_len > limit:
            raise ValueError("lz4: output buffer too small")
        start = len(out) - offset
        if match_len <= offset:
            out += out[start:start + match_len]
        else:
            for index in range(match_len):
                out.append(out[start + index])
    return bytes(out)


def zstd_decompress(data: bytes) -> bytes:
    """Decompress every Zstandard frame in ``data`` and join the results."""
    if not data:
        return b""
    decompressor = zstandard.ZstdDecompressor()
    try:
        with decompressor.stream_reader(io.BytesIO(bytes(data)), read_across_frames=True) as reader:
            return reader.read()
    except zstandard.ZstdError as exc:
        raise ValueError(f"zstd: {exc}") from exc