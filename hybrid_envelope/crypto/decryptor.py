"""
Recipient side of envelope encryption.

The decrypting party holds the private half of the key pair the sender
encrypted for.  It unwraps the session key with its RSA private key and
then decrypts the payload with the IV carried in the envelope.
"""

from __future__ import annotations

import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import DecryptionError, InvalidInputError, KeyResolutionError
from .encryptor import SESSION_KEY_BYTES, wrap_padding
from .envelope import EnvelopeResult
from .keys import Password, PrivateKeySource

logger = logging.getLogger(__name__)

_CRYPTO_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def decrypt(
    key_material: PrivateKeySource,
    envelope: EnvelopeResult,
    key_password: Password = None,
) -> bytes:
    """Recover the plaintext of ``envelope``.

    ``key_material`` must be able to produce the RSA private key matching
    the public key the envelope was encrypted for.  Any failure, including
    a private key that does not match, raises ``DecryptionError``; a
    partially decrypted buffer is never returned.
    """
    if not isinstance(key_material, PrivateKeySource):
        raise InvalidInputError(f"{type(key_material).__name__} cannot provide a private key")
    if not isinstance(envelope, EnvelopeResult):
        raise InvalidInputError("envelope must be an EnvelopeResult")

    try:
        private_key = key_material.private_key(key_password)
    except KeyResolutionError as exc:
        raise DecryptionError(f"private key resolution failed: {exc}") from exc

    try:
        session_key = bytearray(
            private_key.decrypt(envelope.encrypted_session_key, wrap_padding())
        )
    except _CRYPTO_ERRORS as exc:
        raise DecryptionError("session key unwrap failed") from exc

    try:
        if len(session_key) != SESSION_KEY_BYTES:
            raise DecryptionError("session key unwrap failed: unexpected key length")
        try:
            decryptor = Cipher(
                algorithms.AES(bytes(session_key)),
                modes.CBC(envelope.initialization_vector),
            ).decryptor()
            padded = decryptor.update(envelope.cipher_text) + decryptor.finalize()
            unpadder = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except _CRYPTO_ERRORS as exc:
            raise DecryptionError("payload decryption failed") from exc
    finally:
        for i in range(len(session_key)):
            session_key[i] = 0

    logger.debug("Decrypted envelope %s", envelope.summary())
    return plaintext


class EnvelopeDecryptor:
    """Private key holder that opens envelopes addressed to it."""

    def __init__(self, key_material: PrivateKeySource, key_password: Password = None):
        if not isinstance(key_material, PrivateKeySource):
            raise InvalidInputError(f"{type(key_material).__name__} cannot provide a private key")
        self._key_material = key_material
        self._key_password = key_password

    @property
    def key_material(self) -> PrivateKeySource:
        return self._key_material

    def decrypt(self, envelope: EnvelopeResult) -> bytes:
        return decrypt(self._key_material, envelope, self._key_password)

    def decrypt_text(self, envelope: EnvelopeResult, encoding: str = "utf-8") -> str:
        """Decrypt and decode the plaintext as text."""
        plaintext = self.decrypt(envelope)
        try:
            return plaintext.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            raise DecryptionError(f"plaintext is not valid {encoding} text") from exc
