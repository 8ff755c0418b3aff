from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.application.ports.token_cipher_port import TokenCipherPort
from app.domain.exceptions import InternalError


_NONCE_SIZE = 12


class AesGcmTokenCipher(TokenCipherPort):
    """AES-256-GCM for provider tokens at rest. Output is ``nonce || ciphertext``."""

    def __init__(self, *, key_hex: str):
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise ValueError("ENCRYPTION_KEY must be hex encoded.") from exc
        if len(key) != 32:
            raise ValueError("ENCRYPTION_KEY must be 64 hex characters.")
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> bytes:
        nonce = os.urandom(_NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)

    def decrypt(self, ciphertext: bytes) -> str:
        if len(ciphertext) <= _NONCE_SIZE:
            raise InternalError("Encrypted token is truncated.")
        nonce, body = ciphertext[:_NONCE_SIZE], ciphertext[_NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, body, None).decode("utf-8")
        except InvalidTag as exc:
            raise InternalError("Encrypted token failed authentication.") from exc
