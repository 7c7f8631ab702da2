"""
Exception hierarchy for the hybrid envelope package.

Every failure raised by the core is one of the four kinds below.  Errors
coming from the ``cryptography`` backend, the filesystem or the keystore
parser are always chained onto one of these so that callers only ever
have to catch :class:`EnvelopeError`.  Messages name the stage that
failed; they never contain key bytes or passwords.
"""


class EnvelopeError(Exception):
    """Base class for all errors raised by this package."""


class InvalidInputError(EnvelopeError, ValueError):
    """A caller supplied argument is unusable (empty plaintext, bad hex, wrong IV size)."""


class KeyResolutionError(EnvelopeError):
    """A public or private key could not be obtained from its source."""


class EncryptionError(EnvelopeError):
    """Session key generation, IV derivation, key wrap or payload encryption failed."""


class DecryptionError(EnvelopeError):
    """Session key unwrap or payload decryption failed."""


class EmptyPlaintextError(InvalidInputError, EncryptionError):
    """Raised by ``encrypt`` when the plaintext is ``None`` or empty."""
