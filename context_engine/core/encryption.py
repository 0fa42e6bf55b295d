"""Encryption of the caller's address before it is forwarded to the API.

The ``mcp-client-ip`` header carries ``<iv hex>:<ciphertext hex>``, produced with
AES-256-CBC and PKCS7 padding under a 32-byte key given as 64 hex characters.
"""

import logging
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

_log = logging.getLogger("context_engine.encryption")

IV_SIZE = 16

_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


def is_valid_encryption_key(key: str | None) -> bool:
    return bool(key) and _KEY_PATTERN.fullmatch(key) is not None


def encrypt_client_ip(client_ip: str, key: str | None) -> str:
    """Encrypt ``client_ip``; a missing or malformed key leaves it in plain text."""
    if not is_valid_encryption_key(key):
        if key:
            _log.warning("Invalid client IP encryption key; forwarding address unencrypted")
        return client_ip

    iv = os.urandom(IV_SIZE)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(client_ip.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(bytes.fromhex(key)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"
