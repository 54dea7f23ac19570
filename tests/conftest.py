"""Pytest configuration and shared fixtures for CoRIM tests."""

import datetime
import uuid
from typing import Generator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import (
    EllipticCurvePrivateKey,
    EllipticCurvePublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from cryptography.x509.oid import NameOID

from corim.comid import Comid, Role
from corim.digests import SHA256
from corim.environment import Class, ClassID, Environment
from corim.measurement import Measurement
from corim.triples import ValueTriple

TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")
TEST_UUID2 = uuid.UUID("e0a1b2c3-d4e5-4f60-8172-8394a5b6c7d8")
TEST_UUID3 = uuid.UUID("f1e2d3c4-b5a6-4798-8a9b-0c1d2e3f4a5b")
TEST_CORIM_ID = "5c57e8f4-46cd-421b-91c9-08cf93e13cfc"
TEST_IMPL_ID = bytes(range(32))
TEST_DIGEST = bytes.fromhex("87428fc522803d31065e7bce3cf03fe475096631e5e07bbd7a0fde60c4cf25c7")


@pytest.fixture(scope="session")
def ec_keypair() -> tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]:
    """Generate an EC P-256 keypair for testing."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key


@pytest.fixture(scope="session")
def private_key_pem(ec_keypair: tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]) -> bytes:
    """PKCS#8 PEM encoding of the session private key."""
    return ec_keypair[0].private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())


@pytest.fixture(scope="session")
def public_key_pem(ec_keypair: tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]) -> str:
    """SubjectPublicKeyInfo PEM encoding of the session public key."""
    return ec_keypair[1].public_bytes(Encoding.PEM, PublicFormat.SubjectPublicKeyInfo).decode()


@pytest.fixture(scope="session")
def certificate(ec_keypair: tuple[EllipticCurvePrivateKey, EllipticCurvePublicKey]) -> x509.Certificate:
    """Self-signed certificate over the session key."""
    private_key, public_key = ec_keypair
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "CoRIM Test Signer")])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def certificate_pem(certificate: x509.Certificate) -> str:
    """PEM encoding of the self-signed certificate."""
    return certificate.public_bytes(Encoding.PEM).decode()


@pytest.fixture
def psa_environment() -> Environment:
    """Environment identifying a PSA RoT by implementation ID."""
    return Environment(
        klass=Class(
            class_id=ClassID.new(TEST_IMPL_ID, "psa.impl-id"),
            vendor="ACME",
            model="RoadRunner",
        )
    )


@pytest.fixture
def reference_comid(psa_environment: Environment) -> Comid:
    """A small but complete CoMID carrying one reference value."""
    measurement = (
        Measurement()
        .set_key_uuid(TEST_UUID)
        .set_version("1.3.4", None)
        .set_svn(2)
        .add_digest(SHA256, TEST_DIGEST)
    )
    triple = ValueTriple(environment=psa_environment)
    triple.add_measurement(measurement)

    return (
        Comid()
        .set_language("en-GB")
        .set_tag_identity("43BBE37F-2E61-4B33-AED3-53CFF1428B16", 0)
        .add_entity("ACME Ltd.", "https://acme.example", Role.TAG_CREATOR, Role.CREATOR)
        .add_reference_value(triple)
    )


@pytest.fixture
def profile_cleanup() -> Generator[list[str], None, None]:
    """Collect profile IDs registered by a test and unregister them afterwards."""
    from corim.profiles import unregister_profile

    registered: list[str] = []
    yield registered
    for profile_id in registered:
        unregister_profile(profile_id)


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "requires_crypto: mark test as requiring cryptographic operations"
    )
