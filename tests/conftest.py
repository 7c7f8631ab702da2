from __future__ import annotations

import datetime
from pathlib import Path
from typing import Iterable, Tuple

import pytest

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

ALICE_STORE_PASSWORD = "alicepass"
EC_STORE_PASSWORD = "ecpass"


def _self_signed(key, common_name: str) -> x509.Certificate:
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )


def write_store(
    path: Path,
    alias: str,
    key,
    password: str,
    trusted: Iterable[Tuple[str, x509.Certificate]] = (),
) -> Path:
    """Write a PKCS#12 store holding one key entry plus trusted certificates."""
    cas = [pkcs12.PKCS12Certificate(cert, name.encode()) for name, cert in trusted]
    data = pkcs12.serialize_key_and_certificates(
        alias.encode(),
        key,
        _self_signed(key, alias),
        cas or None,
        serialization.BestAvailableEncryption(password.encode()),
    )
    path.write_bytes(data)
    return path


@pytest.fixture(scope="session")
def alice_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def bob_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def store_dir(tmp_path_factory) -> Path:
    return tmp_path_factory.mktemp("stores")


@pytest.fixture(scope="session")
def alice_store(store_dir, alice_key, bob_key) -> Path:
    """Alice's store: her own key entry and Bob's certificate as a trusted entry."""
    return write_store(
        store_dir / "alice.p12",
        "alice",
        alice_key,
        ALICE_STORE_PASSWORD,
        trusted=[("bob", _self_signed(bob_key, "bob"))],
    )


@pytest.fixture(scope="session")
def ec_store(store_dir) -> Path:
    key = ec.generate_private_key(ec.SECP256R1())
    return write_store(store_dir / "ec.p12", "carol", key, EC_STORE_PASSWORD)


@pytest.fixture(scope="session")
def alice_public_der(alice_key) -> bytes:
    return alice_key.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def alice_hex_pair(alice_key) -> str:
    numbers = alice_key.public_key().public_numbers()
    return f"{numbers.n:x}&{numbers.e:x}"
