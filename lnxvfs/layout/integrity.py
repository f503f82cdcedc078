"""Integrity check bytes for buffers: HMAC-SHA256 or CRC32.

HMAC digests are used when encryption at rest is enabled, CRC32 checksums
when it is disabled.
"""

from __future__ import annotations

import hashlib
import hmac
import struct
import zlib

from .file_metadata import Encryption

INTEGRITY_PREFIX_SIZE = 32
_CRC_SIZE = 4


def verify(mode: Encryption, hmac_key: bytes | None, buffer, context) -> bool:
    """Verify the integrity of ``buffer`` against the check bytes in ``context``.

    Raises :class:`ValueError` if HMAC verification is required but no key is given.
    """
    if mode is Encryption.DISABLED:
        return verify_crc32_buffer(buffer, context)
    if hmac_key is None:
        raise ValueError("HMAC key should be provided when HMAC verification is enabled")
    return verify_hmac_buffer(buffer, context, hmac_key)


def write_check_bytes(hmac_key: bytes | None, input_buffer, context) -> None:
    """Write an HMAC-SHA256 digest (with a key) or a CRC32 checksum into ``context``."""
    if hmac_key is not None:
        digest = hmac.new(bytes(hmac_key), bytes(input_buffer), hashlib.sha256).digest()
        context[:INTEGRITY_PREFIX_SIZE] = digest
    else:
        checksum = zlib.crc32(bytes(input_buffer))
        context[:_CRC_SIZE] = struct.pack("<I", checksum)


def verify_hmac_buffer(buffer, context, hmac_key: bytes) -> bool:
    """Check the HMAC held in ``context`` matches the HMAC of ``buffer`` under ``hmac_key``."""
    if len(context) < INTEGRITY_PREFIX_SIZE:
        return False
    expected = bytes(context[:INTEGRITY_PREFIX_SIZE])
    actual = hmac.new(bytes(hmac_key), bytes(buffer), hashlib.sha256).digest()
    return hmac.compare_digest(expected, actual)


def verify_crc32_buffer(buffer, context) -> bool:
    """Check the CRC32 checksum held in ``context`` matches that of ``buffer``."""
    if len(context) < INTEGRITY_PREFIX_SIZE:
        return False
    (expected,) = struct.unpack_from("<I", bytes(context[:_CRC_SIZE]), 0)
    return zlib.crc32(bytes(buffer)) == expected