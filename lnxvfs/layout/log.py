"""A WAL-like page operation log made of fixed 512-byte blocks.

Each block holds a handful of log entries, optionally paired with page
metadata, and is either encrypted or protected by a CRC32 checksum. Blocks
rely on the disk's atomic sector writes being some multiple of 512 bytes.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterable

from . import encrypt, integrity
from .file_metadata import Encryption
from .ids import PageFileId, PageId
from .page_metadata import METADATA_SIZE, PageMetadata

LOG_BLOCK_SIZE = 512
MAX_BLOCK_NO_METADATA_ENTRIES = 11
MAX_BLOCK_ALL_METADATA_ENTRIES = 4

_ENTRY = struct.Struct("<QIIIII4x")
_PAIR_TAIL = struct.Struct("<B7x")
_BLOCK_LEN = struct.Struct("<Q")

LOG_ENTRY_SIZE = _ENTRY.size
ENTRY_PAIR_SIZE = _ENTRY.size + _PAIR_TAIL.size

_CONTEXT_LEN = encrypt.CONTEXT_LEN
_BLOCK_DATA_CAPACITY = LOG_BLOCK_SIZE - _CONTEXT_LEN - _BLOCK_LEN.size


class LogOp(enum.IntEnum):
    """The operation a log entry records."""

    WRITE = 0x01
    """A new write performed on the page."""
    FREE = 0x02
    """The page has been freed and can be reused."""
    FLUSH = 0x03
    """The entry updates the flushed sequence ID."""
    UPDATE_TABLE_METADATA = 0x04
    """Update the page's table metadata without touching the page itself."""


@dataclass(frozen=True)
class LogEntry:
    """A single entry in the page operation log."""

    transaction_id: int
    transaction_n_entries: int
    sequence_id: int
    page_file_id: PageFileId
    page_id: PageId
    op: LogOp


@dataclass(frozen=True)
class EntryPair:
    """A log entry together with the page metadata tied to it, if any."""

    log: LogEntry
    metadata: PageMetadata | None = None


class BlockFullError(Exception):
    """The log block has no room left for the entry."""

    def __init__(self, entry: LogEntry, metadata: PageMetadata | None) -> None:
        super().__init__("log block is full")
        self.entry = entry
        self.metadata = metadata


class DecodeLogBlockError(Exception):
    """A log block could not be decoded."""


class EncodeLogBlockError(Exception):
    """A log block could not be encoded into the buffer."""


def _pair_size(has_metadata: bool) -> int:
    return ENTRY_PAIR_SIZE + (METADATA_SIZE if has_metadata else 0)


class LogBlock:
    """A bounded set of log entries and page metadata, up to 448 bytes in size."""

    MAX_BYTES_SIZE = 448

    def __init__(self, pairs: Iterable[EntryPair] = ()) -> None:
        self._pairs: list[EntryPair] = []
        for pair in pairs:
            self.push_entry(pair.log, pair.metadata)

    def push_entry(self, entry: LogEntry, metadata: PageMetadata | None = None) -> None:
        """Append an entry; raises :class:`BlockFullError` if there is no space left."""
        if self.remaining_capacity() < _pair_size(metadata is not None):
            raise BlockFullError(entry, metadata)
        self._pairs.append(EntryPair(entry, metadata))

    def reset(self) -> None:
        """Empty the block."""
        self._pairs.clear()

    def remaining_capacity(self) -> int:
        """The number of bytes the block can still hold."""
        used = sum(_pair_size(pair.metadata is not None) for pair in self._pairs)
        return self.MAX_BYTES_SIZE - used

    def last_page_id(self) -> PageId | None:
        """The page ID of the most recent entry, if any."""
        return self._pairs[-1].log.page_id if self._pairs else None

    def num_entries(self) -> int:
        """The number of entries held in the block."""
        return len(self._pairs)

    def entries(self) -> tuple[EntryPair, ...]:
        """The entry pairs in insertion order."""
        return tuple(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogBlock):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"LogBlock(pairs={self._pairs!r})"

    def _serialize(self) -> bytes:
        parts = []
        for pair in self._pairs:
            log = pair.log
            parts.append(
                _ENTRY.pack(
                    log.transaction_id,
                    log.transaction_n_entries,
                    log.sequence_id,
                    log.page_file_id.value,
                    log.page_id.value,
                    int(log.op),
                )
            )
            parts.append(_PAIR_TAIL.pack(1 if pair.metadata is not None else 0))
            if pair.metadata is not None:
                parts.append(pair.metadata.to_bytes())
        return b"".join(parts)

    @classmethod
    def _deserialize(cls, data: bytes) -> LogBlock:
        block = cls()
        offset = 0
        while offset < len(data):
            if offset + ENTRY_PAIR_SIZE > len(data):
                raise ValueError("truncated log entry")
            fields = _ENTRY.unpack_from(data, offset)
            (flag,) = _PAIR_TAIL.unpack_from(data, offset + _ENTRY.size)
            offset += ENTRY_PAIR_SIZE

            transaction_id, n_entries, sequence_id, file_id, page_id, op = fields
            entry = LogEntry(
                transaction_id=transaction_id,
                transaction_n_entries=n_entries,
                sequence_id=sequence_id,
                page_file_id=PageFileId(file_id),
                page_id=PageId(page_id),
                op=LogOp(op),
            )

            if flag not in (0, 1):
                raise ValueError(f"invalid metadata flag {flag}")
            metadata = None
            if flag:
                if offset + METADATA_SIZE > len(data):
                    raise ValueError("truncated page metadata")
                metadata = PageMetadata.from_bytes(data[offset:offset + METADATA_SIZE])
                offset += METADATA_SIZE

            try:
                block.push_entry(entry, metadata)
            except BlockFullError as exc:
                raise ValueError("log block exceeds maximum size") from exc
        return block


def decode_log_block(cipher: encrypt.Cipher | None, associated_data, buffer) -> LogBlock:
    """Decode a :class:`LogBlock` from a 512-byte buffer.

    The buffer is decrypted in place when a cipher is given (and the buffer is
    writable); otherwise its CRC32 checksum is verified.
    """
    if len(buffer) != LOG_BLOCK_SIZE:
        raise DecodeLogBlockError("buffer wrong size")

    view = memoryview(buffer)
    if view.readonly:
        view = memoryview(bytearray(view))
    context = view[:_CONTEXT_LEN]
    blk = view[_CONTEXT_LEN:]

    if cipher is not None:
        try:
            encrypt.decrypt_in_place(cipher, associated_data, blk, context)
        except encrypt.DecryptError as exc:
            raise DecodeLogBlockError("buffer decryption failed") from exc
    elif not integrity.verify(Encryption.DISABLED, None, blk, context):
        raise DecodeLogBlockError("buffer verification failed")

    (blk_len,) = _BLOCK_LEN.unpack_from(blk, 0)
    if blk_len > _BLOCK_DATA_CAPACITY:
        raise DecodeLogBlockError(
            f"deserialize error: block length {blk_len} exceeds buffer"
        )
    start = _BLOCK_LEN.size
    data = bytes(blk[start:start + blk_len])

    try:
        return LogBlock._deserialize(data)
    except ValueError as exc:
        raise DecodeLogBlockError(f"deserialize error: {exc}") from exc


def encode_log_block(
    cipher: encrypt.Cipher | None, associated_data, entry: LogBlock, buffer
) -> None:
    """Serialize ``entry`` into a writable 512-byte buffer.

    The layout is ``[context (40), length (8), data]``; the length and data are
    encrypted when a cipher is given, otherwise a CRC32 checksum is stored.
    """
    if len(buffer) != LOG_BLOCK_SIZE:
        raise EncodeLogBlockError("buffer wrong size")

    payload = entry._serialize()
    if len(payload) > _BLOCK_DATA_CAPACITY:
        raise EncodeLogBlockError("serialized block does not fit in buffer")

    view = memoryview(buffer)
    context = view[:_CONTEXT_LEN]
    blk = view[_CONTEXT_LEN:]

    start = _BLOCK_LEN.size
    _BLOCK_LEN.pack_into(blk, 0, len(payload))
    blk[start:start + len(payload)] = payload
    blk[start + len(payload):] = bytes(len(blk) - start - len(payload))

    if cipher is not None:
        try:
            encrypt.encrypt_in_place(cipher, associated_data, blk, context)
        except encrypt.EncryptError as exc:
            raise EncodeLogBlockError(f"failed to encrypt data: {exc}") from exc
    else:
        integrity.write_check_bytes(None, blk, context)