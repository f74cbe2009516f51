from dataclasses import dataclass
import os

from argon2.low_level import hash_secret_raw, Type
from argon2.exceptions import HashingError
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_encrypt,
    crypto_aead_chacha20poly1305_ietf_decrypt,
    crypto_aead_chacha20poly1305_ietf_KEYBYTES,
    crypto_aead_chacha20poly1305_ietf_NPUBBYTES,
    crypto_aead_chacha20poly1305_ietf_ABYTES,
)
from nacl.exceptions import CryptoError as NaclCryptoError

from .errors import AuthenticationError, CryptoError, KeyDerivationError

NONCE_SIZE = crypto_aead_chacha20poly1305_ietf_NPUBBYTES  # 12 bytes / 96 bits
KEY_SIZE = crypto_aead_chacha20poly1305_ietf_KEYBYTES
TAG_SIZE = crypto_aead_chacha20poly1305_ietf_ABYTES
SALT_SIZE = 16

ARGON2_PARAMS = dict(
    time_cost=3,
    memory_cost=64 * 1024,
    parallelism=4,
    hash_len=KEY_SIZE,
    type=Type.ID,
)


@dataclass(frozen=True)
class EncryptionEnvelope:
    """Salt, nonce and AEAD ciphertext (tag included) from one `encrypt` call."""
    salt: bytes
    nonce: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        """Pack as `salt || nonce || ciphertext`."""
        return self.salt + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, raw: bytes) -> "EncryptionEnvelope":
        """Split a packed envelope; anything too short to hold a tag cannot authenticate."""
        if len(raw) < SALT_SIZE + NONCE_SIZE + TAG_SIZE:
            raise AuthenticationError(
                f"sealed payload is too short ({len(raw)} < {SALT_SIZE + NONCE_SIZE + TAG_SIZE})"
            )
        return cls(
            salt=raw[:SALT_SIZE],
            nonce=raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE],
            ciphertext=raw[SALT_SIZE + NONCE_SIZE:],
        )


def _random(size: int) -> bytes:
    try:
        return os.urandom(size)
    except (OSError, NotImplementedError) as exc:
        raise CryptoError("system entropy source unavailable") from exc


def gen_salt() -> bytes:
    """Return a fresh random salt for Argon2id."""
    return _random(SALT_SIZE)


def gen_nonce() -> bytes:
    """Return a cryptographically-random 12-byte nonce for ChaCha20-Poly1305."""
    return _random(NONCE_SIZE)


def kdf_argon2id(password_bytes: bytes, salt: bytes) -> bytes:
    """Derive a 32-byte key from the user-supplied password using Argon2id."""
    try:
        return hash_secret_raw(bytes(password_bytes), salt, **ARGON2_PARAMS)
    except HashingError as exc:
        raise KeyDerivationError(f"argon2id key derivation failed: {exc}") from exc
    finally:
        zero_bytes(password_bytes)


def _password_bytes(password: str) -> bytearray:
    if not password:
        raise ValueError("password must not be empty")
    return bytearray(password.encode("utf-8"))


def encrypt(data: bytes, password: str) -> EncryptionEnvelope:
    """Encrypt `data` under a key derived from `password` with a fresh salt and nonce."""
    pw = _password_bytes(password)
    salt = gen_salt()
    nonce = gen_nonce()
    key = bytearray(kdf_argon2id(pw, salt))
    try:
        ct = crypto_aead_chacha20poly1305_ietf_encrypt(bytes(data), None, nonce, bytes(key))
    finally:
        zero_bytes(key)
    return EncryptionEnvelope(salt=salt, nonce=nonce, ciphertext=ct)


def decrypt(salt: bytes, nonce: bytes, ciphertext: bytes, password: str) -> bytes:
    """Decrypt a ciphertext produced by `encrypt`, raising AuthenticationError on failure."""
    pw = _password_bytes(password)
    if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
        zero_bytes(pw)
        raise AuthenticationError("salt or nonce has the wrong length")
    key = bytearray(kdf_argon2id(pw, salt))
    try:
        return crypto_aead_chacha20poly1305_ietf_decrypt(bytes(ciphertext), None, nonce, bytes(key))
    except NaclCryptoError as exc:
        raise AuthenticationError("decryption failed: wrong password or corrupted data") from exc
    finally:
        zero_bytes(key)


def seal(data: bytes, password: str) -> bytes:
    """Encrypt `data` and pack the envelope into a single storable blob."""
    return encrypt(data, password).to_bytes()


def open_sealed(blob: bytes, password: str) -> bytes:
    """Unpack a blob from `seal` and decrypt it, raising AuthenticationError on failure."""
    env = EncryptionEnvelope.from_bytes(blob)
    return decrypt(env.salt, env.nonce, env.ciphertext, password)


def zero_bytes(b):
    """Best-effort zeroization for mutable buffers that held sensitive information."""
    if isinstance(b, bytearray):
        for i in range(len(b)):
            b[i] = 0
    elif isinstance(b, memoryview) and not b.readonly:
        b[:] = b"\x00" * len(b)
