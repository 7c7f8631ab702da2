"""
Hybrid (envelope) encryption with RSA wrapped AES session keys.

The ``crypto`` subpackage holds the core; ``config`` and ``main`` make up
a small FastAPI demo service built on top of it, installed as a package
so that ``uvicorn hybrid_envelope.main:app`` resolves correctly.
"""

from .crypto import (
    EncodedFileKeyMaterial,
    EnvelopeDecryptor,
    EnvelopeEncryptor,
    EnvelopeResult,
    KeyMaterial,
    PairValueKeyMaterial,
    ProtectedStoreKeyMaterial,
    decrypt,
)
from .errors import (
    DecryptionError,
    EmptyPlaintextError,
    EncryptionError,
    EnvelopeError,
    InvalidInputError,
    KeyResolutionError,
)

__version__ = "1.0.0"

__all__ = [
    "DecryptionError",
    "EmptyPlaintextError",
    "EncodedFileKeyMaterial",
    "EncryptionError",
    "EnvelopeDecryptor",
    "EnvelopeEncryptor",
    "EnvelopeError",
    "EnvelopeResult",
    "InvalidInputError",
    "KeyMaterial",
    "KeyResolutionError",
    "PairValueKeyMaterial",
    "ProtectedStoreKeyMaterial",
    "decrypt",
]
