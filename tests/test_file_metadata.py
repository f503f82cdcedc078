import pytest

from lnxvfs.layout.encrypt import Cipher
from lnxvfs.layout.file_metadata import (
    HEADER_SIZE,
    MAGIC_BYTES,
    DecryptionFailedError,
    DeserializeError,
    Encryption,
    IncorrectBufferSizeError,
    MissingContextBytesError,
    MissingDecryptionCipherError,
    MissingEncryptionHintError,
    MissingMagicBytesError,
    SerializeError,
    decode_metadata,
    encode_metadata,
)


def create_sample_buffer(encryption):
    metadata = {"id": 4}
    buffer = bytearray(HEADER_SIZE)
    cipher = Cipher.generate() if encryption is Encryption.ENABLED else None
    encode_metadata(cipher, b"", metadata, buffer)
    return buffer, cipher


@pytest.mark.parametrize("use_encryption", [False, True])
def test_encode(use_encryption):
    buffer = bytearray(HEADER_SIZE)
    cipher = Cipher.generate() if use_encryption else None
    encode_metadata(cipher, b"", {"id": 1}, buffer)
    assert bytes(buffer[:16]) == MAGIC_BYTES
    expected_hint = b"\x02\x00\x00\x00" if use_encryption else b"\x01\x00\x00\x00"
    assert bytes(buffer[16:20]) == expected_hint


@pytest.mark.parametrize("buffer_size", [2 << 10, 12 << 10])
def test_encode_error(buffer_size):
    buffer = bytearray(buffer_size)
    with pytest.raises(IncorrectBufferSizeError) as info:
        encode_metadata(None, b"", {"id": 1}, buffer)
    assert str(info.value) == "buffer too small"


def test_encode_unserializable():
    buffer = bytearray(HEADER_SIZE)
    with pytest.raises(SerializeError) as info:
        encode_metadata(None, b"", {"id": object()}, buffer)
    assert str(info.value).startswith("serialize error: ")


@pytest.mark.parametrize("use_encryption", [False, True])
def test_encode_decode(use_encryption):
    metadata = {"id": 1}
    buffer = bytearray(HEADER_SIZE)
    cipher = Cipher.generate() if use_encryption else None

    encode_metadata(cipher, b"", metadata, buffer)
    loaded = decode_metadata(cipher, b"", buffer)
    assert loaded == metadata


@pytest.mark.parametrize("encryption", [Encryption.ENABLED, Encryption.DISABLED])
def test_decode_err_missing_magic_bytes(encryption):
    buffer, cipher = create_sample_buffer(encryption)
    buffer[:16] = bytes(16)
    with pytest.raises(MissingMagicBytesError) as info:
        decode_metadata(cipher, b"", buffer)
    assert str(info.value) == "buffer missing magic bytes prefix"


def test_decode_err_missing_magic_bytes_empty_buf():
    with pytest.raises(MissingMagicBytesError) as info:
        decode_metadata(None, b"", bytearray())
    assert str(info.value) == "buffer missing magic bytes prefix"


@pytest.mark.parametrize(
    ("encryption", "slice_at"),
    [
        (Encryption.ENABLED, 16),
        (Encryption.DISABLED, 16),
        (Encryption.ENABLED, HEADER_SIZE),
        (Encryption.DISABLED, HEADER_SIZE),
    ],
)
def test_decode_err_missing_encryption_hint(encryption, slice_at):
    buffer, cipher = create_sample_buffer(encryption)
    buffer[16:20] = bytes(4)
    with pytest.raises(MissingEncryptionHintError) as info:
        decode_metadata(cipher, b"", memoryview(buffer)[:slice_at])
    assert str(info.value) == "buffer missing encryption mode hint"


def test_decode_err_missing_context():
    buffer, cipher = create_sample_buffer(Encryption.DISABLED)
    with pytest.raises(MissingContextBytesError) as info:
        decode_metadata(cipher, b"", memoryview(buffer)[:20])
    assert str(info.value) == "buffer missing context bytes"


def test_decode_err_missing_decryption_cipher():
    buffer, _ = create_sample_buffer(Encryption.ENABLED)
    buffer[20:60] = bytes(40)
    with pytest.raises(MissingDecryptionCipherError) as info:
        decode_metadata(None, b"", buffer)
    assert str(info.value) == "metadata is encrypted but not decryption cipher provided"


def test_decode_err_encryption_fail_context_wrong():
    buffer, cipher = create_sample_buffer(Encryption.ENABLED)
    buffer[20:60] = bytes(40)
    with pytest.raises(DecryptionFailedError) as info:
        decode_metadata(cipher, b"", buffer)
    assert str(info.value) == "decrypt metadata fail"


def test_decode_err_encryption_fail_key_wrong():
    buffer, _ = create_sample_buffer(Encryption.ENABLED)
    other = Cipher.generate()
    with pytest.raises(DecryptionFailedError) as info:
        decode_metadata(other, b"", buffer)
    assert str(info.value) == "decrypt metadata fail"


def test_decode_err_malformed_json():
    buffer, _ = create_sample_buffer(Encryption.DISABLED)
    buffer[60:] = bytes(len(buffer) - 60)
    with pytest.raises(DeserializeError) as info:
        decode_metadata(None, b"", buffer)
    assert str(info.value).startswith("deserialize error: ")


def test_decode_readonly_buffer():
    buffer, _ = create_sample_buffer(Encryption.DISABLED)
    assert decode_metadata(None, b"", bytes(buffer)) == {"id": 4}


def test_associated_data_mismatch_fails():
    buffer = bytearray(HEADER_SIZE)
    cipher = Cipher.generate()
    encode_metadata(cipher, b"file-1", {"id": 9}, buffer)
    with pytest.raises(DecryptionFailedError):
        decode_metadata(cipher, b"file-2", bytearray(buffer))
    assert decode_metadata(cipher, b"file-1", buffer) == {"id": 9}