"""
Configuration for the demo service.

The service reads a *keyring* JSON file that names two key sources: the
``recipient`` whose public key envelopes are encrypted for, and the
``holder`` whose keystore holds the matching private key.  Example::

    {
      "recipient": {"kind": "pair_value", "hex_pair_file": "pubkey_hexstr.txt"},
      "holder": {
        "kind": "protected_store",
        "alias": "alice",
        "store_type": "PKCS12",
        "store_path": "alice.p12",
        "store_password": "alicepass",
        "key_password": "alicepass"
      }
    }

Relative paths are resolved against the directory of the keyring file.
The location of the keyring file itself and the log level come from the
environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr, ValidationError, model_validator

from .crypto.keys import (
    EncodedFileKeyMaterial,
    KeyMaterial,
    PairValueKeyMaterial,
    ProtectedStoreKeyMaterial,
)
from .errors import InvalidInputError, KeyResolutionError

KEYRING_ENV = "HYBRID_ENVELOPE_KEYRING"
LOG_LEVEL_ENV = "HYBRID_ENVELOPE_LOG_LEVEL"


def keyring_path_from_env() -> Optional[Path]:
    value = os.environ.get(KEYRING_ENV)
    return Path(value) if value else None


def log_level_from_env() -> str:
    return os.environ.get(LOG_LEVEL_ENV, "INFO").upper()


class PairValueSpec(BaseModel):
    """Modulus/exponent pair, inline or from a ``modulus&exponent`` text file."""

    kind: Literal["pair_value"]
    hex_pair_file: Optional[str] = None
    modulus: Optional[str] = None
    exponent: Optional[str] = None

    @model_validator(mode="after")
    def check_source(self) -> "PairValueSpec":
        inline = self.modulus is not None or self.exponent is not None
        if self.hex_pair_file is not None and inline:
            raise ValueError("give either hex_pair_file or modulus/exponent, not both")
        if self.hex_pair_file is None and (self.modulus is None or self.exponent is None):
            raise ValueError("modulus and exponent are both required without hex_pair_file")
        return self


class EncodedFileSpec(BaseModel):
    """SubjectPublicKeyInfo public key file (DER or PEM)."""

    kind: Literal["encoded_file"]
    path: str


class ProtectedStoreSpec(BaseModel):
    """Entry in a password protected keystore."""

    kind: Literal["protected_store"] = "protected_store"
    alias: str = Field(..., min_length=1)
    store_type: str = "PKCS12"
    store_path: str
    store_password: SecretStr


class HolderSpec(ProtectedStoreSpec):
    """Keystore entry together with the password of its private key."""

    key_password: SecretStr


KeySourceSpec = Annotated[
    Union[PairValueSpec, EncodedFileSpec, ProtectedStoreSpec],
    Field(discriminator="kind"),
]


class Keyring(BaseModel):
    recipient: KeySourceSpec
    holder: Optional[HolderSpec] = None


def _resolve(path: str, base_dir: Optional[Path]) -> Path:
    candidate = Path(path)
    if base_dir is not None and not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate


def build_key_material(spec: KeySourceSpec, base_dir: Optional[Path] = None) -> KeyMaterial:
    """Turn a validated key source spec into a KeyMaterial instance."""
    if isinstance(spec, PairValueSpec):
        if spec.hex_pair_file is None:
            return PairValueKeyMaterial.from_hex(spec.modulus, spec.exponent)
        pair_path = _resolve(spec.hex_pair_file, base_dir)
        try:
            line = pair_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise KeyResolutionError(f"cannot read the hex pair file {pair_path}") from exc
        return PairValueKeyMaterial.from_hex_pair(line)
    if isinstance(spec, EncodedFileSpec):
        return EncodedFileKeyMaterial(path=_resolve(spec.path, base_dir))
    if isinstance(spec, ProtectedStoreSpec):
        return ProtectedStoreKeyMaterial(
            alias=spec.alias,
            store_type=spec.store_type,
            store_path=_resolve(spec.store_path, base_dir),
            store_password=spec.store_password.get_secret_value(),
        )
    raise InvalidInputError(f"unknown key source spec {type(spec).__name__}")


def load_keyring(path: Union[str, Path]) -> Keyring:
    """Read and validate a keyring file."""
    keyring_path = Path(path)
    try:
        raw = keyring_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidInputError(f"cannot read keyring file {keyring_path}") from exc
    try:
        return Keyring.model_validate_json(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidInputError(f"invalid keyring file {keyring_path}: {problems}") from exc
