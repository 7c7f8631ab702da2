"""
High level envelope encryption primitives.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from typing import Optional, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import EmptyPlaintextError, EncryptionError, InvalidInputError
from .envelope import BLOCK_SIZE, EnvelopeResult
from .keys import KeyMaterial

logger = logging.getLogger(__name__)

SESSION_KEY_BITS = 128
SESSION_KEY_BYTES = SESSION_KEY_BITS // 8

BytesLike = Union[bytes, bytearray, memoryview]

_CRYPTO_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def wrap_padding() -> padding.AsymmetricPadding:
    """Padding used to wrap and unwrap the session key."""
    return padding.PKCS1v15()


def derive_iv(data: bytes) -> bytes:
    """Derive an IV from the payload: the first 16 bytes of its SHA-256 digest.

    The result depends only on ``data``, so identical payloads encrypted
    under the same session key produce identical cipher text.  Callers
    that need distinct cipher texts for repeated messages must pass an
    explicit random IV instead.
    """
    return hashlib.sha256(data).digest()[:BLOCK_SIZE]


def coerce_plaintext(plaintext: Optional[Union[str, BytesLike]]) -> bytes:
    """Return ``plaintext`` as bytes, encoding text as UTF-8."""
    if plaintext is None:
        raise EmptyPlaintextError("plaintext must not be None")
    if isinstance(plaintext, str):
        data = plaintext.encode("utf-8")
    elif isinstance(plaintext, (bytes, bytearray, memoryview)):
        data = bytes(plaintext)
    else:
        raise InvalidInputError(f"plaintext must be str or bytes, not {type(plaintext).__name__}")
    if not data:
        raise EmptyPlaintextError("plaintext must have one or more bytes")
    return data


def coerce_iv(iv: BytesLike) -> bytes:
    if not isinstance(iv, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"initialization vector must be bytes, not {type(iv).__name__}")
    iv = bytes(iv)
    if len(iv) != BLOCK_SIZE:
        raise InvalidInputError(f"initialization vector must be {BLOCK_SIZE} bytes. Got: {len(iv)}")
    return iv


class EnvelopeEncryptor:
    """Stateful helper for envelope encryption towards one recipient.

    The AES session key is generated on the first call to :meth:`encrypt`
    and reused by every later call on the same instance, together with its
    RSA wrapped form.  A new instance (or :meth:`destroy`) starts over with
    a fresh session key.
    """

    def __init__(self, key_material: KeyMaterial):
        if key_material is None:
            raise InvalidInputError("key_material must not be None")
        self._key_material = key_material
        self._lock = threading.Lock()
        self._session_key: Optional[bytearray] = None
        self._wrapped_key: Optional[bytes] = None

    @property
    def key_material(self) -> KeyMaterial:
        return self._key_material

    @property
    def has_session_key(self) -> bool:
        return self._session_key is not None

    def _session(self) -> Tuple[bytes, bytes]:
        """Return the session key and its wrapped form, creating them once."""
        with self._lock:
            if self._session_key is None:
                try:
                    self._session_key = bytearray(os.urandom(SESSION_KEY_BYTES))
                except OSError as exc:
                    raise EncryptionError("session key generation failed") from exc
                logger.debug("Generated a new %d-bit session key", SESSION_KEY_BITS)
            session_key = bytes(self._session_key)
            # PKCS#1 v1.5 padding is randomised, so the wrapped key is computed
            # once and reused for as long as the session key lives.
            if self._wrapped_key is None:
                public_key = self._key_material.public_key()
                try:
                    self._wrapped_key = public_key.encrypt(session_key, wrap_padding())
                except _CRYPTO_ERRORS as exc:
                    raise EncryptionError("session key wrap failed") from exc
            return session_key, self._wrapped_key

    def encrypt(
        self,
        plaintext: Union[str, BytesLike],
        iv: Optional[BytesLike] = None,
    ) -> EnvelopeResult:
        """
        Encrypt ``plaintext`` and return the envelope.

        ``iv`` is used verbatim when given and must be 16 bytes.  Without
        it the IV is derived from the plaintext digest (see
        :func:`derive_iv`).  Text is encoded as UTF-8.
        """
        data = coerce_plaintext(plaintext)
        explicit_iv = coerce_iv(iv) if iv is not None else None

        if explicit_iv is None:
            try:
                used_iv = derive_iv(data)
            except _CRYPTO_ERRORS as exc:
                raise EncryptionError("iv derivation failed") from exc
            logger.warning("No IV supplied; using the deterministic plaintext-digest IV")
        else:
            used_iv = explicit_iv

        session_key, wrapped_key = self._session()

        try:
            padder = sym_padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(data) + padder.finalize()
            encryptor = Cipher(algorithms.AES(session_key), modes.CBC(used_iv)).encryptor()
            ct = encryptor.update(padded) + encryptor.finalize()
        except _CRYPTO_ERRORS as exc:
            raise EncryptionError("payload encryption failed") from exc

        return EnvelopeResult(
            cipher_text=ct,
            initialization_vector=used_iv,
            encrypted_session_key=wrapped_key,
        )

    def destroy(self) -> None:
        """Zero and forget the session key.  The next encrypt starts a new one."""
        with self._lock:
            if self._session_key is not None:
                for i in range(len(self._session_key)):
                    self._session_key[i] = 0
            self._session_key = None
            self._wrapped_key = None

    def __enter__(self) -> "EnvelopeEncryptor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.destroy()
