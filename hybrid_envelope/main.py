"""
Main entry point for the hybrid envelope encryption demo.

This module defines a very small REST API using FastAPI.  It plays both
parties of the envelope exchange: the sender, who only knows the
recipient's public key, and the recipient, who holds the matching private
key in a keystore.  The API exposes three endpoints:

    * ``GET /health`` – describes the configured key sources.

    * ``POST /encrypt`` – accepts JSON containing a UTF‑8 string and an
      optional base64 IV.  It returns a JSON document with the
      base64‑encoded cipher text, IV and RSA wrapped session key.  The
      client must retain this package in order to decrypt it later.

    * ``POST /decrypt`` – accepts the package returned from ``/encrypt``
      and recovers the plaintext with the holder's private key.

All cryptographic operations are delegated to ``crypto/encryptor.py`` and
``crypto/decryptor.py``.  The key sources are read from the keyring file
named by the ``HYBRID_ENVELOPE_KEYRING`` environment variable (see
``config.py``) unless :func:`configure` is called first.
"""

from __future__ import annotations

import base64
import binascii
import logging
import sys
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ValidationError

from .config import (
    KEYRING_ENV,
    Keyring,
    build_key_material,
    keyring_path_from_env,
    load_keyring,
    log_level_from_env,
)
from .crypto.decryptor import EnvelopeDecryptor
from .crypto.encryptor import EnvelopeEncryptor
from .crypto.envelope import EnvelopeResult
from .errors import EnvelopeError, InvalidInputError


def setup_logging() -> logging.Logger:
    """Configure logging for the service.  Called once at application startup."""
    logging.basicConfig(
        level=log_level_from_env(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    return logging.getLogger(__name__)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Hybrid envelope demo starting")
    yield
    configure(None)


app = FastAPI(title="Hybrid Envelope Encryption Demo", lifespan=lifespan)


def _b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def _b64d(data: str, field: str) -> bytes:
    try:
        return base64.b64decode(data.encode("utf-8"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInputError(f"{field} is not valid base64") from exc


class _Engine:
    """The sender's encryptor and the recipient's decryptor."""

    def __init__(self, keyring: Keyring, base_dir=None):
        self.encryptor = EnvelopeEncryptor(build_key_material(keyring.recipient, base_dir))
        self.decryptor: Optional[EnvelopeDecryptor] = None
        if keyring.holder is not None:
            holder = keyring.holder
            store = build_key_material(holder, base_dir)
            self.decryptor = EnvelopeDecryptor(store, holder.key_password.get_secret_value())


_engine: Optional[_Engine] = None
_engine_lock = threading.Lock()


def configure(keyring: Optional[Keyring], base_dir=None) -> None:
    """Install the key sources used by the endpoints.

    Passing ``None`` drops the current configuration so that the next
    request reloads it from the environment.
    """
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.encryptor.destroy()
        _engine = _Engine(keyring, base_dir) if keyring is not None else None


def _get_engine() -> _Engine:
    global _engine
    with _engine_lock:
        if _engine is None:
            path = keyring_path_from_env()
            if path is None:
                raise HTTPException(status_code=503, detail=f"{KEYRING_ENV} is not set")
            _engine = _Engine(load_keyring(path), path.resolve().parent)
            logger.info("Loaded keyring from %s", path)
        return _engine


def _http_error(exc: EnvelopeError) -> HTTPException:
    status = 400 if isinstance(exc, InvalidInputError) else 500
    return HTTPException(status_code=status, detail=str(exc))


class EncryptRequest(BaseModel):
    """Input model for the /encrypt endpoint."""

    data: str
    iv: Optional[str] = None


class EnvelopePackage(BaseModel):
    """Base64 transport form of an envelope."""

    cipher_text: str
    initialization_vector: str
    encrypted_session_key: str


class DecryptRequest(BaseModel):
    """Input model for the /decrypt endpoint."""

    envelope: EnvelopePackage


@app.get("/health")
async def health():
    """Describe the configured key sources."""
    try:
        engine = _get_engine()
    except EnvelopeError as exc:
        raise _http_error(exc)
    return {
        "recipient": engine.encryptor.key_material.describe(),
        "holder": engine.decryptor.key_material.describe() if engine.decryptor else None,
    }


@app.post("/encrypt")
async def encrypt(req: EncryptRequest):
    """
    Encrypt a UTF‑8 message for the configured recipient.

    Without an ``iv`` the IV is derived from the message digest, so the
    same message always yields the same package from this service.
    """
    try:
        engine = _get_engine()
        iv = _b64d(req.iv, "iv") if req.iv is not None else None
        result = engine.encryptor.encrypt(req.data, iv)
    except EnvelopeError as exc:
        logger.warning("Encryption rejected: %s", exc)
        raise _http_error(exc)
    logger.info("Encrypted message %s", result.summary())
    return {
        "cipher_text": _b64e(result.cipher_text),
        "initialization_vector": _b64e(result.initialization_vector),
        "encrypted_session_key": _b64e(result.encrypted_session_key),
        "derived_iv": req.iv is None,
    }


@app.post("/decrypt")
async def decrypt(req: DecryptRequest):
    """
    Recover a plaintext from a previously generated package.

    The request body must contain an ``envelope`` field matching the
    structure returned by ``/encrypt``.
    """
    try:
        engine = _get_engine()
        if engine.decryptor is None:
            raise HTTPException(status_code=503, detail="no holder keystore configured")
        pkg = req.envelope
        try:
            envelope = EnvelopeResult(
                cipher_text=_b64d(pkg.cipher_text, "cipher_text"),
                initialization_vector=_b64d(pkg.initialization_vector, "initialization_vector"),
                encrypted_session_key=_b64d(pkg.encrypted_session_key, "encrypted_session_key"),
            )
        except ValidationError as exc:
            raise InvalidInputError(f"malformed envelope: {exc.error_count()} invalid field(s)") from exc
        plaintext = engine.decryptor.decrypt_text(envelope)
    except EnvelopeError as exc:
        logger.warning("Decryption rejected: %s", exc)
        raise _http_error(exc)
    return {"plaintext": plaintext}
