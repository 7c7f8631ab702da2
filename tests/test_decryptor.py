from __future__ import annotations

import pytest

from hybrid_envelope.crypto.decryptor import EnvelopeDecryptor, decrypt
from hybrid_envelope.crypto.encryptor import EnvelopeEncryptor
from hybrid_envelope.crypto.envelope import EnvelopeResult
from hybrid_envelope.crypto.keys import PairValueKeyMaterial, ProtectedStoreKeyMaterial
from hybrid_envelope.errors import DecryptionError, InvalidInputError, KeyResolutionError

from conftest import ALICE_STORE_PASSWORD


def _alice_store(path) -> ProtectedStoreKeyMaterial:
    return ProtectedStoreKeyMaterial("alice", "PKCS12", path, ALICE_STORE_PASSWORD)


def _encrypt_for(key, plaintext: bytes) -> EnvelopeResult:
    numbers = key.public_key().public_numbers()
    return EnvelopeEncryptor(PairValueKeyMaterial(numbers.n, numbers.e)).encrypt(plaintext)


def test_decrypt_function_round_trip(alice_store, alice_key):
    envelope = _encrypt_for(alice_key, b"123456789012")
    assert decrypt(_alice_store(alice_store), envelope, ALICE_STORE_PASSWORD) == b"123456789012"


def test_wrong_private_key_is_decryption_error(alice_store, bob_key):
    envelope = _encrypt_for(bob_key, b"meant for bob")
    with pytest.raises(DecryptionError):
        decrypt(_alice_store(alice_store), envelope, ALICE_STORE_PASSWORD)


def test_truncated_cipher_text_is_decryption_error(alice_store, alice_key):
    envelope = _encrypt_for(alice_key, b"a message long enough for two blocks")
    broken = envelope.model_copy(update={"cipher_text": envelope.cipher_text[:-1]})
    with pytest.raises(DecryptionError, match="payload decryption failed"):
        decrypt(_alice_store(alice_store), broken, ALICE_STORE_PASSWORD)


def test_truncated_session_key_is_decryption_error(alice_store, alice_key):
    envelope = _encrypt_for(alice_key, b"payload")
    broken = envelope.model_copy(
        update={"encrypted_session_key": envelope.encrypted_session_key[:-1]}
    )
    with pytest.raises(DecryptionError, match="session key unwrap failed"):
        decrypt(_alice_store(alice_store), broken, ALICE_STORE_PASSWORD)


def test_private_key_failure_is_wrapped(alice_store, alice_key):
    envelope = _encrypt_for(alice_key, b"payload")
    with pytest.raises(DecryptionError) as err:
        decrypt(_alice_store(alice_store), envelope, "not-the-key-password")
    assert isinstance(err.value.__cause__, KeyResolutionError)


def test_public_only_key_material_rejected(alice_key):
    numbers = alice_key.public_key().public_numbers()
    public_only = PairValueKeyMaterial(numbers.n, numbers.e)
    envelope = _encrypt_for(alice_key, b"payload")
    with pytest.raises(InvalidInputError):
        decrypt(public_only, envelope)
    with pytest.raises(InvalidInputError):
        EnvelopeDecryptor(public_only)


def test_decryptor_reuses_store_and_decodes_text(alice_store, alice_key):
    decryptor = EnvelopeDecryptor(_alice_store(alice_store), ALICE_STORE_PASSWORD)
    for text in ["This is a test.", "これはテストです。"]:
        envelope = _encrypt_for(alice_key, text.encode("utf-8"))
        assert decryptor.decrypt_text(envelope) == text


def test_decrypt_text_rejects_undecodable_plaintext(alice_store, alice_key):
    decryptor = EnvelopeDecryptor(_alice_store(alice_store), ALICE_STORE_PASSWORD)
    envelope = _encrypt_for(alice_key, b"\xff\xfe\xfd")
    assert decryptor.decrypt(envelope) == b"\xff\xfe\xfd"
    with pytest.raises(DecryptionError):
        decryptor.decrypt_text(envelope)


def test_decrypt_rejects_non_envelope(alice_store):
    with pytest.raises(InvalidInputError):
        decrypt(_alice_store(alice_store), {"cipher_text": b"x"}, ALICE_STORE_PASSWORD)
