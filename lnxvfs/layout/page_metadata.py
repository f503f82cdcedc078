"""Page metadata records and compressed, optionally encrypted, batches of them."""

from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass, field

import lz4.frame

from . import encrypt
from .ids import U64_MAX, PageGroupId, PageId

ENTRIES_PER_BLOCK = 63
PAGE_BLOCK_SIZE = 4096
METADATA_SIZE = 64

_RECORD = struct.Struct("<QIIII40s")
_CONTEXT_SIZE = 40
_CHECKSUM_END = 44
_ENCODE_HEADER_SIZE = 44
_DECODE_MIN_SIZE = 48


@dataclass(frozen=True)
class PageMetadata:
    """Metadata about a page and the data stored within it."""

    group: PageGroupId
    reserved: int
    next_page_id: PageId
    id: PageId
    data_len: int
    context: bytes = field(default=bytes(_CONTEXT_SIZE))

    def __post_init__(self) -> None:
        if len(self.context) != _CONTEXT_SIZE:
            raise ValueError(f"context must be {_CONTEXT_SIZE} bytes")
        object.__setattr__(self, "context", bytes(self.context))

    @classmethod
    def empty(cls) -> PageMetadata:
        """Create an entry representing an empty page."""
        return cls(
            group=PageGroupId(U64_MAX),
            reserved=0,
            next_page_id=PageId.TERMINATOR,
            id=PageId.TERMINATOR,
            data_len=0,
        )

    def is_empty(self) -> bool:
        """Whether this entry represents an empty page."""
        return self.id.is_terminator() and self.group == PageGroupId(U64_MAX)

    def to_bytes(self) -> bytes:
        """Serialize the entry into its fixed 64-byte form."""
        return _RECORD.pack(
            self.group.value,
            self.reserved,
            self.next_page_id.value,
            self.id.value,
            self.data_len,
            self.context,
        )

    @classmethod
    def from_bytes(cls, data) -> PageMetadata:
        """Deserialize an entry from its fixed 64-byte form."""
        if len(data) != METADATA_SIZE:
            raise ValueError(f"page metadata must be {METADATA_SIZE} bytes")
        group, reserved, next_page_id, page_id, data_len, context = _RECORD.unpack(
            bytes(data)
        )
        return cls(
            group=PageGroupId(group),
            reserved=reserved,
            next_page_id=PageId(next_page_id),
            id=PageId(page_id),
            data_len=data_len,
            context=context,
        )


class PageMetadataUpdates(list):
    """A partial or complete set of page metadata entries for the table."""


class EncodeError(Exception):
    """A set of page metadata updates could not be encoded."""


class DecodeError(Exception):
    """A block of page metadata updates could not be decoded."""


def encode_page_metadata_updates(
    cipher: encrypt.Cipher | None, associated_data, entries
) -> bytearray:
    """Encode a set of page metadata updates, LZ4-compressed and optionally encrypted.

    The result is laid out as ``[context (40), crc32 (4), data]``.
    """
    raw = b"".join(entry.to_bytes() for entry in entries)
    try:
        compressed = lz4.frame.compress(raw)
    except RuntimeError as exc:
        raise EncodeError(f"failed to compress data: {exc}") from exc

    data = bytearray(compressed)
    context = bytearray(_CONTEXT_SIZE)
    checksum = struct.pack("<I", zlib.crc32(data))

    if cipher is not None:
        try:
            encrypt.encrypt_in_place(cipher, associated_data, data, context)
        except encrypt.EncryptError as exc:
            raise EncodeError("failed to encrypt data") from exc

    buffer = bytearray(_ENCODE_HEADER_SIZE + len(data))
    buffer[:_CONTEXT_SIZE] = context
    buffer[_CONTEXT_SIZE:_CHECKSUM_END] = checksum
    buffer[_CHECKSUM_END:] = data
    return buffer


def decode_page_metadata_updates(
    cipher: encrypt.Cipher | None, associated_data, buffer
) -> PageMetadataUpdates:
    """Decode a set of page metadata updates encoded at the start of ``buffer``."""
    if len(buffer) < _DECODE_MIN_SIZE:
        raise DecodeError("provided buffer length is incorrect")

    raw = bytes(buffer)
    context = bytearray(raw[:_CONTEXT_SIZE])
    (expected_checksum,) = struct.unpack_from("<I", raw, _CONTEXT_SIZE)
    data = bytearray(raw[_CHECKSUM_END:])

    if cipher is not None:
        try:
            encrypt.decrypt_in_place(cipher, associated_data, data, context)
        except encrypt.DecryptError as exc:
            raise DecodeError("failed to decrypt data") from exc

    if zlib.crc32(data) != expected_checksum:
        raise DecodeError("metadata corrupted")

    try:
        decompressed = lz4.frame.decompress(bytes(data))
    except RuntimeError as exc:
        raise DecodeError(f"failed to decompress data: {exc}") from exc

    if len(decompressed) % METADATA_SIZE:
        raise DecodeError(
            f"payload length {len(decompressed)} is not a multiple of {METADATA_SIZE}"
        )

    try:
        return PageMetadataUpdates(
            PageMetadata.from_bytes(decompressed[start:start + METADATA_SIZE])
            for start in range(0, len(decompressed), METADATA_SIZE)
        )
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc