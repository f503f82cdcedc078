import pytest

from lnxvfs.layout.encrypt import (
    CONTEXT_LEN,
    Cipher,
    DecryptError,
    EncryptError,
    decrypt_in_place,
    encrypt_in_place,
)


@pytest.mark.parametrize(
    ("data_len", "reserved_len"),
    [(10, 40), (0, CONTEXT_LEN), (7 << 10, CONTEXT_LEN), (51, CONTEXT_LEN), (51, 128)],
)
def test_buffer_encrypt_decrypt(data_len, reserved_len):
    cipher = Cipher.generate()

    input_bytes = bytearray([1] * data_len)
    reserved_bytes = bytearray([1] * reserved_len)

    encrypt_in_place(cipher, b"", input_bytes, reserved_bytes)
    assert len(input_bytes) == data_len
    assert data_len == 0 or input_bytes != bytearray([1] * data_len)
    assert reserved_bytes != bytearray([0] * reserved_len)

    decrypt_in_place(cipher, b"", input_bytes, reserved_bytes)
    assert input_bytes == bytearray([1] * data_len)


def test_encrypt_with_exact_context_succeeds():
    cipher = Cipher.generate()
    input_bytes = bytearray([1] * 51)
    reserved_bytes = bytearray([1] * 40)
    encrypt_in_place(cipher, b"", input_bytes, reserved_bytes)
    decrypt_in_place(cipher, b"", input_bytes, reserved_bytes)
    assert input_bytes == bytearray([1] * 51)


@pytest.mark.parametrize(("data_len", "reserved_len"), [(51, 20), (12, 0)])
def test_buffer_encrypt_error(data_len, reserved_len):
    cipher = Cipher.generate()
    input_bytes = bytearray([1] * data_len)
    reserved_bytes = bytearray([1] * reserved_len)

    with pytest.raises(EncryptError) as info:
        encrypt_in_place(cipher, b"", input_bytes, reserved_bytes)
    assert str(info.value) == "provided context buffer is too small"


def test_decrypt_context_too_small():
    cipher = Cipher.generate()
    with pytest.raises(DecryptError) as info:
        decrypt_in_place(cipher, b"", bytearray(), bytearray())
    assert str(info.value) == "failed to decrypt data"


def test_decrypt_key_miss_match():
    cipher = Cipher.generate()
    input_bytes = bytearray([1] * 128)
    reserved_bytes = bytearray([1] * 40)
    encrypt_in_place(cipher, b"", input_bytes, reserved_bytes)

    other = Cipher.generate()
    with pytest.raises(DecryptError) as info:
        decrypt_in_place(other, b"", input_bytes, reserved_bytes)
    assert str(info.value) == str(DecryptError())


def test_associated_data_must_match():
    cipher = Cipher.generate()
    data = bytearray(b"payload")
    context = bytearray(40)
    encrypt_in_place(cipher, b"one", data, context)
    with pytest.raises(DecryptError):
        decrypt_in_place(cipher, b"two", data, context)
    decrypt_in_place(cipher, b"one", data, context)
    assert data == bytearray(b"payload")


def test_encrypt_in_memoryview_slice():
    cipher = Cipher.generate()
    buffer = bytearray(b"\x00" * 40 + b"hello world")
    view = memoryview(buffer)
    context = view[:40]
    payload = view[40:]

    encrypt_in_place(cipher, b"", payload, context)
    ciphertext = bytes(payload)
    assert len(ciphertext) == len(b"hello world")
    assert ciphertext != b"hello world"
    assert bytes(context) != bytes(40)

    # A copy of the encrypted region must decrypt back to the plain text.
    copied_payload = bytearray(ciphertext)
    copied_context = bytearray(context)
    decrypt_in_place(cipher, b"", copied_payload, copied_context)
    assert copied_payload == bytearray(b"hello world")

    decrypt_in_place(cipher, b"", payload, context)
    assert bytes(payload) == b"hello world"
    assert bytes(buffer[40:]) == b"hello world"


def test_cipher_rejects_wrong_key_length():
    with pytest.raises(ValueError):
        Cipher(b"short")