"""
Helpers for opening password protected keystores.

This module centralises all interactions with keystore files.  It knows
how to read a store from disk, unlock it with the store password and
pick the certificate or private key registered under an alias.  It
knows nothing about envelopes or session keys; it operates solely on
files and returns ``cryptography`` key objects.  Higher level logic
lives in ``crypto/keys.py``.

Important notes:

  * The only supported store format is PKCS#12 (``PKCS12``, ``P12`` or
    ``PFX``).  The format identifier is matched case-insensitively.
  * Aliases are matched case-insensitively against the friendly name
    attribute of each certificate bag, the same way keystore aliases
    behave in other tooling.
  * The store is never kept open.  Every call reads the file again and
    the caller decides what to cache.
  * Any I/O or parsing failure is raised as ``KeyResolutionError`` with
    the original exception chained.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from ..errors import KeyResolutionError

logger = logging.getLogger(__name__)

SUPPORTED_STORE_TYPES = {
    "PKCS12": "PKCS12",
    "P12": "PKCS12",
    "PFX": "PKCS12",
}


def normalize_store_type(store_type: str) -> str:
    """Return the canonical store format name for ``store_type``.

    Raises ``KeyResolutionError`` for formats this package cannot open.
    """
    canonical = SUPPORTED_STORE_TYPES.get((store_type or "").strip().upper())
    if canonical is None:
        raise KeyResolutionError(
            f"unsupported keystore type {store_type!r}; "
            f"expected one of {', '.join(sorted(SUPPORTED_STORE_TYPES))}"
        )
    return canonical


def _password_bytes(password: Optional[Union[str, bytes]]) -> Optional[bytes]:
    if password is None:
        return None
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


def _same_alias(friendly_name: Optional[bytes], alias: str) -> bool:
    if friendly_name is None:
        return False
    return friendly_name.decode("utf-8", errors="replace").lower() == alias.lower()


def read_store(store_path: Union[str, Path]) -> bytes:
    """Read the raw keystore bytes from disk."""
    path = Path(store_path)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise KeyResolutionError(f"cannot read keystore file {path}") from exc


def open_store(
    data: bytes,
    store_type: str,
    store_password: Optional[Union[str, bytes]],
) -> pkcs12.PKCS12KeyAndCertificates:
    """Unlock a keystore with its store password and return its contents."""
    normalize_store_type(store_type)
    try:
        return pkcs12.load_pkcs12(data, _password_bytes(store_password))
    except (ValueError, TypeError) as exc:
        raise KeyResolutionError(
            "cannot open keystore: wrong store password or corrupted store"
        ) from exc


def _entries(
    bundle: pkcs12.PKCS12KeyAndCertificates,
) -> Iterator[Tuple[pkcs12.PKCS12Certificate, bool]]:
    # The certificate paired with the store's private key comes first;
    # the remaining certificates are trusted-certificate entries.
    if bundle.cert is not None:
        yield bundle.cert, bundle.key is not None
    for extra in bundle.additional_certs:
        yield extra, False


def find_certificate(
    bundle: pkcs12.PKCS12KeyAndCertificates, alias: str
) -> x509.Certificate:
    """Return the certificate registered under ``alias``."""
    for entry, _ in _entries(bundle):
        if _same_alias(entry.friendly_name, alias):
            return entry.certificate
    raise KeyResolutionError(f"no certificate entry for alias {alias!r} in keystore")


def find_private_key(
    data: bytes,
    store_type: str,
    alias: str,
    key_password: Optional[Union[str, bytes]],
) -> rsa.RSAPrivateKey:
    """Recover the RSA private key stored under ``alias``.

    The whole store is parsed again with ``key_password``, so the key
    password must be the password the key bag was written with *and* must
    open the store's integrity check.  Stores written with two different
    passwords (``openssl pkcs12 -twopass``) cannot be unlocked this way.

    A wrong password, an alias that only names a trusted certificate and a
    non-RSA key are all reported as ``KeyResolutionError`` with their own
    message.
    """
    normalize_store_type(store_type)
    try:
        bundle = pkcs12.load_pkcs12(data, _password_bytes(key_password))
    except (ValueError, TypeError) as exc:
        raise KeyResolutionError(
            f"cannot recover the private key for alias {alias!r}: wrong key password "
            "(stores protected with a separate key password are not supported)"
        ) from exc

    for entry, has_key in _entries(bundle):
        if not _same_alias(entry.friendly_name, alias):
            continue
        if not has_key:
            raise KeyResolutionError(
                f"keystore entry {alias!r} is not a private key entry"
            )
        if not isinstance(bundle.key, rsa.RSAPrivateKey):
            raise KeyResolutionError(
                f"keystore entry {alias!r} does not hold an RSA private key"
            )
        logger.debug("Recovered private key entry %r", alias)
        return bundle.key
    raise KeyResolutionError(f"no private key entry for alias {alias!r} in keystore")
