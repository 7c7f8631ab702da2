"""
Result container produced by envelope encryption.
"""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

BLOCK_SIZE = 16


class EnvelopeResult(BaseModel):
    """The three artifacts of one encryption.

    Instances are frozen: the cipher text, the IV that was actually used
    and the wrapped session key are fixed at construction and handed to
    the decrypting party unchanged.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    cipher_text: bytes = Field(..., description="AES-CBC encrypted payload")
    initialization_vector: bytes = Field(..., description="IV used for the payload")
    encrypted_session_key: bytes = Field(..., description="RSA wrapped session key")

    @field_validator("initialization_vector")
    @classmethod
    def validate_iv(cls, v: bytes) -> bytes:
        if len(v) != BLOCK_SIZE:
            raise ValueError(f"initialization_vector must be {BLOCK_SIZE} bytes. Got: {len(v)}")
        return v

    @field_validator("cipher_text", "encrypted_session_key")
    @classmethod
    def validate_not_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("must not be empty")
        return v

    def summary(self) -> Dict[str, object]:
        """Loggable view of the envelope; carries no key material."""
        return {
            "cipher_text_length": len(self.cipher_text),
            "initialization_vector": self.initialization_vector.hex(),
            "encrypted_session_key_length": len(self.encrypted_session_key),
        }
