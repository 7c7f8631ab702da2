"""
Cryptographic core of the hybrid envelope package.

This package contains the key material sources (raw RSA numbers,
encoded public key files and password protected keystores), the
encryptor that seals a payload under a per-instance AES session key
wrapped with RSA, and the recipient side that opens such envelopes.
"""

from .decryptor import EnvelopeDecryptor, decrypt
from .encryptor import SESSION_KEY_BITS, EnvelopeEncryptor, derive_iv
from .envelope import BLOCK_SIZE, EnvelopeResult
from .keys import (
    EncodedFileKeyMaterial,
    KeyMaterial,
    PairValueKeyMaterial,
    PrivateKeySource,
    ProtectedStoreKeyMaterial,
)

__all__ = [
    "BLOCK_SIZE",
    "SESSION_KEY_BITS",
    "EncodedFileKeyMaterial",
    "EnvelopeDecryptor",
    "EnvelopeEncryptor",
    "EnvelopeResult",
    "KeyMaterial",
    "PairValueKeyMaterial",
    "PrivateKeySource",
    "ProtectedStoreKeyMaterial",
    "decrypt",
    "derive_iv",
]
