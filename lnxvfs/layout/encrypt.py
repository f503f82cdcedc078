"""In-place XChaCha20-Poly1305 encryption with a detached 40-byte context."""

from __future__ import annotations

from dataclasses import dataclass, field

from Crypto.Cipher import ChaCha20_Poly1305
from Crypto.Random import get_random_bytes

CONTEXT_LEN = 40
KEY_LEN = 32
TAG_LEN = 16
NONCE_LEN = 24


class DecryptError(Exception):
    """The given buffer could not be decrypted."""

    def __init__(self) -> None:
        super().__init__("failed to decrypt data")


class EncryptError(Exception):
    """The given buffer could not be encrypted."""


@dataclass(frozen=True)
class Cipher:
    """An XChaCha20-Poly1305 cipher bound to a 32-byte key."""

    key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.key) != KEY_LEN:
            raise ValueError(f"cipher key must be {KEY_LEN} bytes")
        object.__setattr__(self, "key", bytes(self.key))

    @classmethod
    def generate(cls) -> Cipher:
        """Create a cipher with a freshly generated random key."""
        return cls(get_random_bytes(KEY_LEN))

    def _new(self, nonce: bytes):
        return ChaCha20_Poly1305.new(key=self.key, nonce=nonce)


def decrypt_in_place(cipher: Cipher, associated_data, encoded_bytes, context) -> None:
    """Decrypt ``encoded_bytes`` in place using the tag and nonce held in ``context``.

    Raises :class:`DecryptError` if the context is too small or authentication fails.
    """
    if len(context) < CONTEXT_LEN:
        raise DecryptError()

    tag = bytes(context[:TAG_LEN])
    nonce = bytes(context[TAG_LEN:CONTEXT_LEN])

    engine = cipher._new(nonce)
    engine.update(bytes(associated_data))
    try:
        plaintext = engine.decrypt_and_verify(bytes(encoded_bytes), tag)
    except ValueError as exc:
        raise DecryptError() from exc

    encoded_bytes[:] = plaintext


def encrypt_in_place(cipher: Cipher, associated_data, raw_bytes, context) -> None:
    """Encrypt ``raw_bytes`` in place, writing the tag and nonce into ``context``.

    ``context`` must be writable and at least 40 bytes long.
    """
    if len(context) < CONTEXT_LEN:
        raise EncryptError("provided context buffer is too small")

    nonce = get_random_bytes(NONCE_LEN)
    engine = cipher._new(nonce)
    engine.update(bytes(associated_data))
    try:
        ciphertext, tag = engine.encrypt_and_digest(bytes(raw_bytes))
    except (ValueError, TypeError) as exc:
        raise EncryptError(str(exc)) from exc

    raw_bytes[:] = ciphertext
    context[:TAG_LEN] = tag
    context[TAG_LEN:CONTEXT_LEN] = nonce