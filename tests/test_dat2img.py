import struct

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from chatlog.dat2img import (
    DEFAULT_V4_XOR_KEY,
    JPG,
    PNG,
    V4_FORMAT1,
    DatDecoder,
    calculate_xor_key_v4,
    dat_to_image,
)

JPEG_BODY = JPG.header + bytes(range(200)) + b"\xff\xd9"


def _encrypt(data, key):
    padder = padding.PKCS7(128).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _make_v4(plain, aes_key, xor_key, aes_len=20, xor_len=10, header=V4_FORMAT1.header):
    encrypted = _encrypt(plain[:aes_len], aes_key)
    middle = plain[aes_len:len(plain) - xor_len]
    tail = bytes(b ^ xor_key for b in plain[len(plain) - xor_len:])
    prefix = header + b"\x08\x07" + struct.pack("<II", aes_len, xor_len) + b"\x01"
    return prefix + encrypted + middle + tail


def test_legacy_xor_png():
    plain = PNG.header + b"\x0d\x0a\x1a\x0a" + b"payload"
    encoded = bytes(b ^ 0x5A for b in plain)
    assert dat_to_image(encoded) == (plain, "png")


def test_legacy_unencrypted_jpg():
    assert dat_to_image(JPEG_BODY) == (JPEG_BODY, "jpg")


def test_too_short():
    with pytest.raises(ValueError):
        dat_to_image(b"\x01\x02")


def test_unknown_type():
    with pytest.raises(ValueError):
        dat_to_image(b"\x00\x11\x22\x33\x44")


def test_v4_round_trip_default_key():
    data = _make_v4(JPEG_BODY, V4_FORMAT1.aes_key, DEFAULT_V4_XOR_KEY)
    assert dat_to_image(data) == (JPEG_BODY, "jpg")


@pytest.mark.parametrize("aes_len", [16, 20, 31, 32])
def test_v4_round_trip_custom_xor(aes_len):
    decoder = DatDecoder(0x21)
    data = _make_v4(JPEG_BODY, V4_FORMAT1.aes_key, 0x21, aes_len=aes_len)
    assert decoder.decode(data) == (JPEG_BODY, "jpg")


def test_v4_decode_direct_with_other_key():
    key = b"0123456789abcdef"
    decoder = DatDecoder(0x11)
    data = _make_v4(JPEG_BODY, key, 0x11)
    image, ext = decoder.decode_v4(data, key)
    assert image == JPEG_BODY
    assert ext == JPG.ext


def test_v4_too_short():
    with pytest.raises(ValueError):
        dat_to_image(V4_FORMAT1.header + b"\x00\x00\x00\x00")


def test_v4_bad_aes_key_length():
    data = _make_v4(JPEG_BODY, V4_FORMAT1.aes_key, DEFAULT_V4_XOR_KEY)
    with pytest.raises(ValueError):
        DatDecoder().decode_v4(data, b"short")


def test_v4_xor_length_too_large():
    data = V4_FORMAT1.header + b"\x00\x00" + struct.pack("<II", 0, 1000) + b"\x01" + b"\x00" * 4
    with pytest.raises(ValueError):
        DatDecoder().decode(data)


def test_calculate_xor_key_v4():
    key = 0x42
    assert calculate_xor_key_v4(bytes([0xFF ^ key, 0xD9 ^ key])) == key


def test_calculate_xor_key_v4_inconsistent():
    with pytest.raises(ValueError):
        calculate_xor_key_v4(b"\x00\x01")


def test_calculate_xor_key_v4_short():
    with pytest.raises(ValueError):
        calculate_xor_key_v4(b"\x00")


def _thumbnail(key):
    tail = bytes([0xFF ^ key, 0xD9 ^ key])
    return V4_FORMAT1.header + b"\x08\x07" + struct.pack("<II", 0, 2) + b"\x01" + b"\x00" * 4 + tail


def test_scan_xor_key_finds_thumbnail(tmp_path):
    nested = tmp_path / "img" / "2024"
    nested.mkdir(parents=True)
    (nested / "abc_t.dat").write_bytes(_thumbnail(0x21))
    decoder = DatDecoder()
    assert decoder.scan_xor_key(str(tmp_path)) == 0x21
    assert decoder.xor_key == 0x21


def test_scan_xor_key_ignores_other_files(tmp_path):
    (tmp_path / "abc.dat").write_bytes(_thumbnail(0x21))
    (tmp_path / "other_t.dat").write_bytes(b"not an image")
    decoder = DatDecoder()
    assert decoder.scan_xor_key(str(tmp_path)) == DEFAULT_V4_XOR_KEY


def test_scan_xor_key_missing_directory(tmp_path):
    with pytest.raises(OSError):
        DatDecoder().scan_xor_key(str(tmp_path / "missing"))