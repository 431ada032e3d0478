# envpocket: Encryption Service
#
# Password → key (PBKDF2-HMAC-SHA256)
# Authenticated encryption (AES-256-GCM)
# Shared by the export codec and the SQLite backend's at-rest sealing.

import base64
import os
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DecryptionError


class EncryptionService:
    """
    Key derivation and AES-256-GCM sealing.

    Export containers fix every parameter below, so changing one breaks
    compatibility with containers produced elsewhere.
    """

    PBKDF2_ITERATIONS = 100_000
    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 32  # 256-bit salt
    NONCE_LENGTH = 12  # 96-bit nonce for GCM
    TAG_LENGTH = 16  # 128-bit GCM tag

    @staticmethod
    def derive_key(
        password: str,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
        length: int = KEY_LENGTH,
    ) -> bytes:
        """
        Derive a symmetric key from a password using PBKDF2.

        Deterministic for a given (password, salt, iterations, length).

        Args:
            password: User-supplied password
            salt: Random salt (stored alongside the ciphertext)
            iterations: PBKDF2 round count
            length: Key length in bytes

        Returns:
            Derived key bytes
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            iterations=iterations,
            backend=default_backend()
        )

        return kdf.derive(password.encode('utf-8'))

    @staticmethod
    def generate_salt() -> bytes:
        """Generate cryptographically random salt."""
        return os.urandom(EncryptionService.SALT_LENGTH)

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a random GCM nonce (must be unique per encryption)."""
        return os.urandom(EncryptionService.NONCE_LENGTH)

    @staticmethod
    def seal(
        plaintext: bytes,
        key: bytes,
        nonce: Optional[bytes] = None,
        associated_data: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt with AES-256-GCM.

        Returns:
            Tuple of (nonce, ciphertext, tag)
        """
        if nonce is None:
            nonce = EncryptionService.generate_nonce()

        sealed = AESGCM(key).encrypt(nonce, plaintext, associated_data)
        tag_start = len(sealed) - EncryptionService.TAG_LENGTH

        return nonce, sealed[:tag_start], sealed[tag_start:]

    @staticmethod
    def unseal(
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        key: bytes,
        associated_data: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt and authenticate AES-256-GCM output.

        Raises:
            DecryptionError: On any authentication failure. Wrong keys and
                             tampered bytes are indistinguishable.
        """
        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, associated_data)
        except InvalidTag:
            raise DecryptionError() from None

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data as base64 text."""
        return base64.b64encode(data).decode('ascii')

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64 text. Raises binascii.Error on invalid input."""
        return base64.b64decode(data.encode('ascii'), validate=True)
