"""
Password hashing and passphrase-based text encryption.

PasswordHasher wraps bcrypt through passlib. TextCipher produces text-safe,
authenticated ciphertext (Fernet) under a key derived from a passphrase with
PBKDF2-HMAC-SHA256 and a random salt carried inside the payload.
"""

import base64
import hashlib
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from passlib.context import CryptContext

from core.domain.errors import DataIntegrityError

SALT_BYTES = 16
MIN_KDF_ITERATIONS = 1_000
MAX_KDF_ITERATIONS = 1_000_000
_SEPARATOR = "$"


class PasswordHasher:
    """Slow, salted, adaptive one-way password hashing."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    @staticmethod
    def _prehash(password: str) -> str:
        # bcrypt only reads 72 bytes; SHA-256 first so long passwords stay distinct
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    def hash(self, password: str) -> str:
        return self._context.hash(self._prehash(password))

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(self._prehash(password), hashed)
        except (ValueError, TypeError):
            # Malformed stored hash
            return False


class TextCipher:
    """
    Symmetric authenticated encryption of text under a passphrase.

    Payload format: ``<iterations>$<urlsafe-b64 salt>$<fernet token>``.
    Derived keys are cached per salt, so a store that reuses one salt pays
    for key derivation once.
    """

    def __init__(self, passphrase: str, iterations: int = 390_000) -> None:
        if not passphrase:
            raise ValueError("passphrase must not be empty")
        self._passphrase = passphrase.encode("utf-8")
        self.iterations = iterations
        self._fernets: dict[tuple[bytes, int], Fernet] = {}

    def _fernet(self, salt: bytes, iterations: int) -> Fernet:
        cache_key = (salt, iterations)
        fernet = self._fernets.get(cache_key)
        if fernet is None:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt,
                iterations=iterations,
            )
            fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(self._passphrase)))
            self._fernets[cache_key] = fernet
        return fernet

    @staticmethod
    def new_salt() -> bytes:
        return os.urandom(SALT_BYTES)

    def encrypt(self, plaintext: str, salt: bytes | None = None) -> str:
        salt = salt or self.new_salt()
        token = self._fernet(salt, self.iterations).encrypt(plaintext.encode("utf-8"))
        encoded_salt = base64.urlsafe_b64encode(salt).decode("ascii")
        return _SEPARATOR.join((str(self.iterations), encoded_salt, token.decode("ascii")))

    def decrypt(self, payload: str) -> str:
        try:
            iterations_text, encoded_salt, token = payload.strip().split(_SEPARATOR)
            iterations = self._checked_iterations(int(iterations_text))
            salt = base64.urlsafe_b64decode(encoded_salt.encode("ascii"))
            fernet = self._fernet(salt, iterations)
            return fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError, UnicodeError) as e:
            raise DataIntegrityError("Failed to decrypt data") from e

    def _checked_iterations(self, iterations: int) -> int:
        # The count comes from the payload; bound it before any key derivation
        if not MIN_KDF_ITERATIONS <= iterations <= max(self.iterations, MAX_KDF_ITERATIONS):
            raise ValueError(f"iteration count out of range: {iterations}")
        return iterations

    @staticmethod
    def salt_of(payload: str) -> bytes | None:
        """Return the salt embedded in a payload, or None if it is malformed."""
        try:
            _, encoded_salt, _ = payload.strip().split(_SEPARATOR)
            return base64.urlsafe_b64decode(encoded_salt.encode("ascii"))
        except (ValueError, UnicodeError):
            return None
