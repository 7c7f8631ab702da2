from __future__ import annotations

import json

import pytest

from hybrid_envelope.config import (
    KEYRING_ENV,
    LOG_LEVEL_ENV,
    EncodedFileSpec,
    Keyring,
    PairValueSpec,
    build_key_material,
    keyring_path_from_env,
    load_keyring,
    log_level_from_env,
)
from hybrid_envelope.crypto.keys import (
    EncodedFileKeyMaterial,
    PairValueKeyMaterial,
    ProtectedStoreKeyMaterial,
)
from hybrid_envelope.errors import InvalidInputError, KeyResolutionError

from conftest import ALICE_STORE_PASSWORD


def _write(path, payload) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_load_keyring_resolves_relative_paths(tmp_path, alice_hex_pair, alice_key):
    (tmp_path / "pubkey_hexstr.txt").write_text(alice_hex_pair, encoding="utf-8")
    _write(
        tmp_path / "keyring.json",
        {
            "recipient": {"kind": "pair_value", "hex_pair_file": "pubkey_hexstr.txt"},
            "holder": {
                "alias": "alice",
                "store_path": "alice.p12",
                "store_password": ALICE_STORE_PASSWORD,
                "key_password": ALICE_STORE_PASSWORD,
            },
        },
    )
    keyring = load_keyring(tmp_path / "keyring.json")
    recipient = build_key_material(keyring.recipient, tmp_path)
    assert isinstance(recipient, PairValueKeyMaterial)
    assert recipient.public_key().public_numbers() == alice_key.public_key().public_numbers()

    holder = build_key_material(keyring.holder, tmp_path)
    assert isinstance(holder, ProtectedStoreKeyMaterial)
    assert holder.store_path == tmp_path / "alice.p12"
    assert holder.store_type == "PKCS12"


def test_secrets_are_not_repr_visible():
    keyring = Keyring.model_validate(
        {
            "recipient": {
                "kind": "protected_store",
                "alias": "bob",
                "store_path": "bob.p12",
                "store_password": "bobpass",
            }
        }
    )
    assert "bobpass" not in repr(keyring)
    assert keyring.holder is None


def test_inline_pair_and_encoded_file_specs(tmp_path, alice_public_der):
    pair = build_key_material(PairValueSpec(kind="pair_value", modulus="c5", exponent="11"))
    assert isinstance(pair, PairValueKeyMaterial)
    assert pair.modulus == 0xC5

    (tmp_path / "alice.der").write_bytes(alice_public_der)
    encoded = build_key_material(EncodedFileSpec(kind="encoded_file", path="alice.der"), tmp_path)
    assert isinstance(encoded, EncodedFileKeyMaterial)
    assert encoded.path == tmp_path / "alice.der"


@pytest.mark.parametrize(
    "recipient",
    [
        {"kind": "pair_value"},
        {"kind": "pair_value", "modulus": "c5"},
        {"kind": "pair_value", "hex_pair_file": "x.txt", "modulus": "c5", "exponent": "11"},
        {"kind": "encoded_file"},
        {"kind": "smart_card", "slot": 1},
        {"kind": "protected_store", "alias": "", "store_path": "a.p12", "store_password": "x"},
    ],
)
def test_invalid_keyring_rejected(tmp_path, recipient):
    _write(tmp_path / "keyring.json", {"recipient": recipient})
    with pytest.raises(InvalidInputError):
        load_keyring(tmp_path / "keyring.json")


def test_invalid_keyring_message_omits_secrets(tmp_path):
    _write(
        tmp_path / "keyring.json",
        {"recipient": {"kind": "protected_store", "alias": "", "store_path": "a.p12", "store_password": "hunter2"}},
    )
    with pytest.raises(InvalidInputError) as err:
        load_keyring(tmp_path / "keyring.json")
    assert "hunter2" not in str(err.value)


def test_unreadable_keyring_files(tmp_path):
    with pytest.raises(InvalidInputError):
        load_keyring(tmp_path / "missing.json")
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(InvalidInputError):
        load_keyring(tmp_path / "broken.json")


def test_missing_hex_pair_file(tmp_path):
    spec = PairValueSpec(kind="pair_value", hex_pair_file="absent.txt")
    with pytest.raises(KeyResolutionError):
        build_key_material(spec, tmp_path)


def test_environment_settings(monkeypatch, tmp_path):
    monkeypatch.delenv(KEYRING_ENV, raising=False)
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    assert keyring_path_from_env() is None
    assert log_level_from_env() == "INFO"

    monkeypatch.setenv(KEYRING_ENV, str(tmp_path / "keyring.json"))
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert keyring_path_from_env() == tmp_path / "keyring.json"
    assert log_level_from_env() == "DEBUG"
