import base64
import binascii
import os

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config import SecurityConfig

NONCE_SIZE = 12


class PasswordHasher:
    """
    One-way password hashing with Argon2id.

    The digest is the PHC string argon2 produces ($argon2id$v=19$m=..,t=..,p=..$salt$hash),
    so verification never needs the hashing configuration.
    """

    def __init__(self, config: SecurityConfig):
        self._ph = Argon2Hasher(
            time_cost=config.ARGON2_TIME_COST,
            memory_cost=config.ARGON2_MEMORY_COST,
            parallelism=config.ARGON2_PARALLELISM,
            hash_len=config.ARGON2_HASH_LENGTH,
            salt_len=config.ARGON2_SALT_LENGTH
        )

    def hash(self, password: str) -> str:
        return self._ph.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """A mismatch or an unparseable digest is a plain False."""
        if not password or not password_hash:
            return False
        try:
            return self._ph.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False


class TokenCipher:
    """
    Seals refresh tokens before they are written to the database.

    AES-256-GCM with a fresh nonce per token; the stored form is
    ``nonce_hex:sealed_hex`` where the sealed part carries the GCM tag.
    """

    def __init__(self, key: str):
        try:
            raw = base64.urlsafe_b64decode(key)
        except (binascii.Error, TypeError, ValueError) as e:
            raise ValueError(f"DATA_ENCRYPTION_KEY is not valid base64: {e}")
        if len(raw) != 32:
            raise ValueError("DATA_ENCRYPTION_KEY must decode to 32 bytes")
        self._aead = AESGCM(raw)

    def encrypt(self, token: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, token.encode(), None)
        return f"{nonce.hex()}:{sealed.hex()}"

    def decrypt(self, stored: str) -> str:
        """Raises ValueError when the stored value was altered or sealed under another key."""
        try:
            nonce_hex, sealed_hex = stored.split(':')
            return self._aead.decrypt(bytes.fromhex(nonce_hex), bytes.fromhex(sealed_hex), None).decode()
        except (ValueError, InvalidTag):
            raise ValueError("Stored token could not be decrypted")
