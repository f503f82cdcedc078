"""Encoding of the fixed-size metadata header at the start of page files."""

from __future__ import annotations

import enum
import json
import struct
from typing import Any

from . import encrypt

MAGIC_BYTES = b"__LNX_DATAFILE__"
HEADER_SIZE = 4 << 10

_HINT_SIZE = 4
_LEN_SIZE = 4


class Encryption(enum.IntEnum):
    """The encoding mode used for housing pages."""

    DISABLED = 0x01
    ENABLED = 0x02


class DecodeError(Exception):
    """The page file metadata header could not be decoded."""


class MissingMagicBytesError(DecodeError):
    def __init__(self) -> None:
        super().__init__("buffer missing magic bytes prefix")


class MissingEncryptionHintError(DecodeError):
    def __init__(self) -> None:
        super().__init__("buffer missing encryption mode hint")


class MissingContextBytesError(DecodeError):
    def __init__(self) -> None:
        super().__init__("buffer missing context bytes")


class DecryptionFailedError(DecodeError):
    def __init__(self) -> None:
        super().__init__("decrypt metadata fail")


class MissingDecryptionCipherError(DecodeError):
    def __init__(self) -> None:
        super().__init__("metadata is encrypted but not decryption cipher provided")


class DeserializeError(DecodeError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"deserialize error: {reason}")


class EncodeError(Exception):
    """The page file metadata could not be encoded."""


class IncorrectBufferSizeError(EncodeError):
    def __init__(self) -> None:
        super().__init__("buffer too small")


class EncryptionFailedError(EncodeError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"failed to encrypt buffer: {reason}")


class SerializeError(EncodeError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"serialize error: {reason}")


def _encryption_hint(view: memoryview) -> Encryption | None:
    if len(view) < _HINT_SIZE:
        return None
    (value,) = struct.unpack_from("<I", view, 0)
    try:
        return Encryption(value)
    except ValueError:
        return None


def decode_metadata(cipher: encrypt.Cipher | None, associated_data, buffer) -> Any:
    """Decode the JSON metadata stored in a header buffer.

    Encrypted headers are decrypted in place when the buffer is writable.
    """
    view = memoryview(buffer)
    if view.readonly:
        view = memoryview(bytearray(view))

    if bytes(view[: len(MAGIC_BYTES)]) != MAGIC_BYTES:
        raise MissingMagicBytesError()
    view = view[len(MAGIC_BYTES):]

    hint = _encryption_hint(view)
    if hint is None:
        raise MissingEncryptionHintError()
    view = view[_HINT_SIZE:]

    if len(view) < encrypt.CONTEXT_LEN:
        raise MissingContextBytesError()

    context = view[: encrypt.CONTEXT_LEN]
    body = view[encrypt.CONTEXT_LEN:]

    if hint is Encryption.ENABLED:
        if cipher is None:
            raise MissingDecryptionCipherError()
        try:
            encrypt.decrypt_in_place(cipher, associated_data, body, context)
        except encrypt.DecryptError as exc:
            raise DecryptionFailedError() from exc

    if len(body) < _LEN_SIZE:
        raise DeserializeError("buffer too short for length prefix")
    (data_len,) = struct.unpack_from("<I", body, 0)
    end = _LEN_SIZE + data_len
    if end > len(body):
        raise DeserializeError("length prefix exceeds buffer")

    try:
        return json.loads(bytes(body[_LEN_SIZE:end]))
    except (ValueError, UnicodeDecodeError) as exc:
        raise DeserializeError(str(exc)) from exc


def encode_metadata(cipher: encrypt.Cipher | None, associated_data, metadata: Any, buffer) -> None:
    """Encode ``metadata`` as JSON into a writable ``HEADER_SIZE`` buffer.

    The payload is encrypted when a cipher is provided.
    """
    view = memoryview(buffer)
    if len(view) != HEADER_SIZE:
        raise IncorrectBufferSizeError()

    view[: len(MAGIC_BYTES)] = MAGIC_BYTES
    view = view[len(MAGIC_BYTES):]

    encryption = Encryption.ENABLED if cipher is not None else Encryption.DISABLED
    struct.pack_into("<I", view, 0, int(encryption))
    view = view[_HINT_SIZE:]

    context = view[: encrypt.CONTEXT_LEN]
    body = view[encrypt.CONTEXT_LEN:]

    try:
        data = json.dumps(metadata, separators=(",", ":")).encode()
    except (TypeError, ValueError) as exc:
        raise SerializeError(str(exc)) from exc
    if _LEN_SIZE + len(data) > len(body):
        raise SerializeError("metadata does not fit in header")

    struct.pack_into("<I", body, 0, len(data))
    body[_LEN_SIZE:_LEN_SIZE + len(data)] = data

    if cipher is not None:
        try:
            encrypt.encrypt_in_place(cipher, associated_data, body, context)
        except encrypt.EncryptError as exc:
            raise EncryptionFailedError(str(exc)) from exc