"""
Sources of RSA key material for envelope encryption.

A sender only ever needs the recipient's public key while the recipient
needs the matching private key.  Both sides describe where their key
comes from with a :class:`KeyMaterial` instance:

    * :class:`PairValueKeyMaterial` - a raw modulus and public exponent.
    * :class:`EncodedFileKeyMaterial` - a SubjectPublicKeyInfo structure
      (DER or PEM) read from a file or handed over as bytes.
    * :class:`ProtectedStoreKeyMaterial` - a certificate and private key
      entry in a password protected keystore.

Keys are resolved lazily on first access and cached for the lifetime of
the instance.  Resolution is guarded by a lock so that an instance shared
between threads resolves each key exactly once.
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..errors import InvalidInputError, KeyResolutionError
from . import keystore

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_PEM_ARMOUR = b"-----BEGIN"

Password = Optional[Union[str, bytes]]

# Smallest modulus accepted from a raw pair.
MIN_MODULUS_BITS = 512


@runtime_checkable
class PrivateKeySource(Protocol):
    """Anything that can hand out an RSA private key given its password."""

    def private_key(self, password: Password = None) -> rsa.RSAPrivateKey: ...


class KeyMaterial(ABC):
    """Base class for all public key sources."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._public_key: Optional[rsa.RSAPublicKey] = None

    @abstractmethod
    def _resolve_public_key(self) -> rsa.RSAPublicKey:
        """Load the public key from its source.  Called at most once."""

    @abstractmethod
    def describe(self) -> str:
        """Short description of the key source, safe to log."""

    def public_key(self) -> rsa.RSAPublicKey:
        """Return the RSA public key, resolving it on first use."""
        key = self._public_key
        if key is None:
            with self._lock:
                if self._public_key is None:
                    self._public_key = self._resolve_public_key()
                    logger.debug("Resolved public key from %s", self.describe())
                key = self._public_key
        return key

    def clear(self) -> None:
        """Drop every cached key handle held by this instance."""
        with self._lock:
            self._public_key = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


def _parse_hex(value: str, name: str) -> int:
    if not isinstance(value, str):
        raise InvalidInputError(f"{name} must be a hex string")
    text = value.strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if not _HEX_RE.fullmatch(text):
        raise InvalidInputError(f"{name} is not a valid hex string")
    return int(text, 16)


class PairValueKeyMaterial(KeyMaterial):
    """RSA public key given as a (modulus, public exponent) pair."""

    def __init__(self, modulus: int, exponent: int) -> None:
        super().__init__()
        for name, value in (("modulus", modulus), ("exponent", exponent)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInputError(f"{name} must be an integer")
            if value <= 0:
                raise InvalidInputError(f"{name} must be a positive integer")
        self._modulus = modulus
        self._exponent = exponent

    @classmethod
    def from_hex(cls, hex_modulus: str, hex_exponent: str) -> "PairValueKeyMaterial":
        """Build from two hex strings (an optional ``0x`` prefix is allowed)."""
        return cls(_parse_hex(hex_modulus, "modulus"), _parse_hex(hex_exponent, "exponent"))

    @classmethod
    def from_hex_pair(cls, line: str) -> "PairValueKeyMaterial":
        """Build from a ``"<modulus>&<exponent>"`` line of text."""
        if not isinstance(line, str):
            raise InvalidInputError("hex pair must be a string")
        parts = line.strip().split("&")
        if len(parts) != 2:
            raise InvalidInputError("hex pair must look like '<modulus>&<exponent>'")
        return cls.from_hex(parts[0], parts[1])

    @classmethod
    def from_bytes(cls, modulus: bytes, exponent: bytes) -> "PairValueKeyMaterial":
        """Build from unsigned big-endian byte strings.

        The buffers are magnitudes: a set high bit never makes the value
        negative.
        """
        for name, value in (("modulus", modulus), ("exponent", exponent)):
            if not isinstance(value, (bytes, bytearray, memoryview)) or len(value) == 0:
                raise InvalidInputError(f"{name} must be a non-empty byte string")
        return cls(
            int.from_bytes(bytes(modulus), "big", signed=False),
            int.from_bytes(bytes(exponent), "big", signed=False),
        )

    @property
    def modulus(self) -> int:
        return self._modulus

    @property
    def exponent(self) -> int:
        return self._exponent

    def _resolve_public_key(self) -> rsa.RSAPublicKey:
        bits = self._modulus.bit_length()
        if self._modulus % 2 == 0:
            raise KeyResolutionError("modulus is even and cannot be an RSA modulus")
        if bits < MIN_MODULUS_BITS:
            raise KeyResolutionError(
                f"modulus is {bits} bits; at least {MIN_MODULUS_BITS} are required"
            )
        try:
            return rsa.RSAPublicNumbers(self._exponent, self._modulus).public_key()
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise KeyResolutionError(
                "modulus and exponent do not form a usable RSA public key"
            ) from exc

    def describe(self) -> str:
        return f"pair value ({self._modulus.bit_length()}-bit modulus, exponent {self._exponent:#x})"


class EncodedFileKeyMaterial(KeyMaterial):
    """RSA public key stored as a SubjectPublicKeyInfo structure."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        data: Optional[bytes] = None,
    ) -> None:
        super().__init__()
        if (path is None) == (data is None):
            raise InvalidInputError("exactly one of path or data must be given")
        self._path = Path(path) if path is not None else None
        self._data = bytes(data) if data is not None else None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _read(self) -> bytes:
        if self._data is not None:
            return self._data
        try:
            return self._path.read_bytes()
        except OSError as exc:
            raise KeyResolutionError(f"cannot read the key file {self._path}") from exc

    def _resolve_public_key(self) -> rsa.RSAPublicKey:
        raw = self._read()
        try:
            if raw.lstrip().startswith(_PEM_ARMOUR):
                key = serialization.load_pem_public_key(raw)
            else:
                key = serialization.load_der_public_key(raw)
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise KeyResolutionError("malformed public key structure") from exc
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyResolutionError("encoded key is not an RSA public key")
        return key

    def describe(self) -> str:
        if self._path is not None:
            return f"file({self._path})"
        return "byte array input"


class ProtectedStoreKeyMaterial(KeyMaterial):
    """Certificate and private key entry held in a password protected keystore.

    The store password is needed for every lookup.  The private key entry
    additionally needs its own key password, which is passed to
    :meth:`private_key` and never stored on the instance.

    Only PKCS#12 stores are read, and the key password has to open the
    whole file.  In practice that means it equals the store password;
    stores written with a separate key password are rejected.
    """

    def __init__(
        self,
        alias: str,
        store_type: str,
        store_path: Union[str, Path],
        store_password: Password,
    ) -> None:
        super().__init__()
        if not alias:
            raise InvalidInputError("keystore alias must not be empty")
        self._alias = alias
        self._store_type = store_type
        self._store_path = Path(store_path)
        self._store_password = store_password
        self._private_key: Optional[rsa.RSAPrivateKey] = None

    @property
    def alias(self) -> str:
        return self._alias

    @property
    def store_type(self) -> str:
        return self._store_type

    @property
    def store_path(self) -> Path:
        return self._store_path

    def _resolve_public_key(self) -> rsa.RSAPublicKey:
        data = keystore.read_store(self._store_path)
        bundle = keystore.open_store(data, self._store_type, self._store_password)
        key = keystore.find_certificate(bundle, self._alias).public_key()
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyResolutionError(
                f"certificate for alias {self._alias!r} does not carry an RSA public key"
            )
        return key

    def private_key(self, password: Password = None) -> rsa.RSAPrivateKey:
        """Return the RSA private key of the entry, unlocking it with ``password``."""
        key = self._private_key
        if key is None:
            with self._lock:
                if self._private_key is None:
                    data = keystore.read_store(self._store_path)
                    keystore.open_store(data, self._store_type, self._store_password)
                    self._private_key = keystore.find_private_key(
                        data, self._store_type, self._alias, password
                    )
                    logger.debug("Resolved private key from %s", self.describe())
                key = self._private_key
        return key

    def clear(self) -> None:
        with self._lock:
            self._public_key = None
            self._private_key = None

    def describe(self) -> str:
        return f"keystore(alias={self._alias}, type={self._store_type}, file={self._store_path})"
