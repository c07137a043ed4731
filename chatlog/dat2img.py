"""Decoding of obfuscated ``.dat`` image files back into ordinary images."""

from __future__ import annotations

import os
import stat
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Tuple

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

__all__ = [
    "ImageFormat",
    "JPG",
    "PNG",
    "GIF",
    "TIFF",
    "BMP",
    "FORMATS",
    "V4_FORMAT1",
    "V4_FORMAT2",
    "V4_FORMATS",
    "DEFAULT_V4_XOR_KEY",
    "JPG_TAIL",
    "DatDecoder",
    "calculate_xor_key_v4",
    "dat_to_image",
]


@dataclass(frozen=True)
class ImageFormat:
    """A file signature, with the extension or AES key that goes with it."""

    header: bytes
    ext: str = ""
    aes_key: bytes = b""


JPG = ImageFormat(header=b"\xff\xd8\xff", ext="jpg")
PNG = ImageFormat(header=b"\x89PNG", ext="png")
GIF = ImageFormat(header=b"GIF8", ext="gif")
TIFF = ImageFormat(header=b"II*\x00", ext="tiff")
BMP = ImageFormat(header=b"BM", ext="bmp")
FORMATS = (JPG, PNG, GIF, TIFF, BMP)

V4_FORMAT1 = ImageFormat(header=b"\x07\x08V1", aes_key=b"cfcd208495d565ef")
V4_FORMAT2 = ImageFormat(header=b"\x07\x08V2", aes_key=b"0000000000000000")
V4_FORMATS = (V4_FORMAT1, V4_FORMAT2)

DEFAULT_V4_XOR_KEY = 0x37
JPG_TAIL = b"\xff\xd9"

_BLOCK = 16
_V4_HEADER_LEN = 15


def _xor(data: bytes, key: int) -> bytes:
    return data.translate(bytes(value ^ key for value in range(256)))


def _decrypt_aes_ecb(data: bytes, key: bytes) -> bytes:
    if not data:
        return b""
    try:
        cipher = Cipher(algorithms.AES(key), modes.ECB())
    except ValueError as exc:
        raise ValueError(f"AES decrypt error: {exc}") from exc
    if len(data) % _BLOCK:
        raise ValueError("AES decrypt error: data length is not a multiple of block size")
    decryptor = cipher.decryptor()
    plain = decryptor.update(data) + decryptor.finalize()
    padding = plain[-1]
    if 0 < padding <= _BLOCK and plain[-padding:] == bytes([padding]) * padding:
        return plain[:-padding]
    return plain


def _identify(data: bytes) -> str:
    for fmt in FORMATS:
        if data.startswith(fmt.header):
            return fmt.ext
    raise ValueError("unknown image type after decryption")


def _walk_files(root: str) -> Iterator[str]:
    info = os.lstat(root)
    if not stat.S_ISDIR(info.st_mode):
        yield root
        return
    for name in sorted(os.listdir(root)):
        yield from _walk_files(os.path.join(root, name))


def calculate_xor_key_v4(data: bytes) -> int:
    """Derive the XOR key from a tail that should end with the JPEG end marker."""
    if len(data) < 2:
        raise ValueError("data too short to calculate XOR key")
    first, second = (byte ^ tail for byte, tail in zip(data[-2:], JPG_TAIL))
    if first != second:
        raise ValueError(f"inconsistent XOR key, first byte gives 0x{first:x}")
    return first


class DatDecoder:
    """Decoder for ``.dat`` images, holding the XOR key used by the newer format."""

    def __init__(self, xor_key: int = DEFAULT_V4_XOR_KEY) -> None:
        self.xor_key = xor_key

    def decode(self, data: bytes) -> Tuple[bytes, str]:
        """Return the image bytes and their file extension."""
        data = bytes(data)
        if len(data) < 4:
            raise ValueError(f"data length is too short: {len(data)}")

        if len(data) >= 6:
            for fmt in V4_FORMATS:
                if data[:4] == fmt.header:
                    return self.decode_v4(data, fmt.aes_key)

        for fmt in FORMATS:
            key = data[0] ^ fmt.header[0]
            if all(byte ^ head == key for byte, head in zip(data, fmt.header)):
                return _xor(data, key), fmt.ext

        raise ValueError(f"unknown image type: {data[0]:x} {data[1]:x}")

    def decode_v4(self, data: bytes, aes_key: bytes) -> Tuple[bytes, str]:
        """Decode the newer format: an AES-ECB head, a plain middle and an XOR tail."""
        data = bytes(data)
        if len(data) < _V4_HEADER_LEN:
            raise ValueError(f"data length is too short for WeChat v4 format: {len(data)}")

        aes_len, xor_len = struct.unpack_from("<II", data, 6)
        body = data[_V4_HEADER_LEN:]

        aes_block_len = min((aes_len // _BLOCK * _BLOCK + _BLOCK) & 0xFFFFFFFF, len(body))
        head = _decrypt_aes_ecb(body[:aes_block_len], aes_key)
        result = bytearray(head[:aes_len] if len(head) > aes_len else head)

        if xor_len > len(body):
            raise ValueError("XOR length exceeds data length")
        middle_end = len(body) - xor_len
        if aes_block_len < middle_end:
            result += body[aes_block_len:middle_end]

        if xor_len > 0 and middle_end < len(body):
            result += _xor(body[middle_end:], self.xor_key)

        image = bytes(result)
        return image, _identify(image)

    def scan_xor_key(self, dir_path: str) -> int:
        """Find the XOR key from a thumbnail under ``dir_path``, store and return it."""
        try:
            for path in _walk_files(dir_path):
                if not os.path.basename(path).endswith("_t.dat"):
                    continue
                try:
                    data = Path(path).read_bytes()
                except OSError:
                    continue
                if len(data) < _V4_HEADER_LEN:
                    continue
                if data[:4] not in (V4_FORMAT1.header, V4_FORMAT2.header):
                    continue
                (xor_len,) = struct.unpack_from("<I", data, 10)
                body = data[_V4_HEADER_LEN:]
                if not 0 < xor_len <= len(body):
                    continue
                try:
                    key = calculate_xor_key_v4(body[len(body) - xor_len:])
                except ValueError:
                    continue
                self.xor_key = key
                break
        except OSError as exc:
            raise OSError(f"error scanning directory: {exc}") from exc
        return self.xor_key


_default_decoder = DatDecoder()


def dat_to_image(data: bytes) -> Tuple[bytes, str]:
    """Decode ``.dat`` data with the default decoder."""
    return _default_decoder.decode(data)