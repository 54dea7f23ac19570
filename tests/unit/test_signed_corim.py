"""Unit tests for COSE-signed CoRIMs."""

import datetime

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from corim import cbor_utils
from corim.comid import Comid
from corim.corim import CONTENT_TYPE, CorimSigner, Meta, SignedCorim, UnsignedCorim
from corim.cose_sign1 import cose_sign1_sign, signer_from_private_key

TEST_CORIM_ID = "5c57e8f4-46cd-421b-91c9-08cf93e13cfc"


@pytest.fixture
def signed_corim(reference_comid: Comid) -> SignedCorim:
    """A signed CoRIM ready to be signed."""
    rim = UnsignedCorim().set_id(TEST_CORIM_ID).add_comid(reference_comid)
    signed = SignedCorim(rim)
    signed.meta.set_signer("ACME Ltd. signing key", "https://acme.example/signing-key.pub")
    return signed


class TestMeta:
    """Test the corim-meta protected header."""

    @pytest.mark.unit
    def test_signer(self):
        """Test the signer name and URI."""
        meta = Meta().set_signer("ACME Ltd.", "https://acme.example")
        assert meta.to_cbor_value() == {
            0: {0: "ACME Ltd.", 1: cbor2.CBORTag(32, "https://acme.example")}
        }

    @pytest.mark.unit
    def test_signer_errors(self):
        """Test the signer checks."""
        with pytest.raises(ValueError, match="empty name"):
            Meta().set_signer("")
        with pytest.raises(ValueError, match="invalid meta: empty name"):
            Meta().valid()
        with pytest.raises(ValueError, match="invalid URI"):
            CorimSigner(name="x", uri="relative").valid()

    @pytest.mark.unit
    def test_validity(self):
        """Test the signature validity period."""
        not_after = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        meta = Meta().set_signer("ACME Ltd.").set_validity(not_after)
        decoded = Meta().from_cbor(meta.to_cbor())
        assert decoded.validity.not_after == not_after
        assert decoded.signer.name == "ACME Ltd."


class TestSignedCorim:
    """Test signing, decoding and verifying CoRIMs."""

    @pytest.mark.unit
    @pytest.mark.requires_crypto
    def test_sign_and_verify(self, signed_corim: SignedCorim, ec_keypair):
        """Test the full signing round trip."""
        private_key, public_key = ec_keypair
        data = signed_corim.sign(signer_from_private_key(private_key))
        assert data[0] == 0xD2

        decoded = SignedCorim().from_cose(data)
        decoded.verify(public_key)
        assert decoded.unsigned_corim.get_id() == TEST_CORIM_ID
        assert decoded.meta.signer.name == "ACME Ltd. signing key"
        assert decoded.meta.signer.uri == "https://acme.example/signing-key.pub"
        assert len(decoded.unsigned_corim.comids()) == 1

    @pytest.mark.unit
    @pytest.mark.requires_crypto
    def test_protected_header(self, signed_corim: SignedCorim, ec_keypair):
        """Test the alg, content type and meta header parameters."""
        data = signed_corim.sign(signer_from_private_key(ec_keypair[0]))
        protected_bytes, unprotected, payload, _ = cbor2.loads(data).value
        protected = cbor2.loads(protected_bytes)
        assert protected[1] == -7
        assert protected[3] == CONTENT_TYPE
        assert protected[8] == signed_corim.meta.to_cbor()
        assert unprotected == {}
        assert payload[:3] == bytes.fromhex("d901f5")

    @pytest.mark.unit
    @pytest.mark.requires_crypto
    def test_verify_with_certificate(self, signed_corim: SignedCorim, ec_keypair, certificate):
        """Test that a certificate can stand in for the public key."""
        data = signed_corim.sign(signer_from_private_key(ec_keypair[0]))
        SignedCorim().from_cose(data).verify(certificate)

    @pytest.mark.unit
    @pytest.mark.requires_crypto
    def test_verify_with_wrong_key(self, signed_corim: SignedCorim, ec_keypair):
        """Test that another key of the same type does not verify."""
        data = signed_corim.sign(signer_from_private_key(ec_keypair[0]))
        other = ec.generate_private_key(ec.SECP256R1()).public_key()
        with pytest.raises(ValueError, match="verification error"):
            SignedCorim().from_cose(data).verify(other)

    @pytest.mark.unit
    @pytest.mark.requires_crypto
    def test_verify_with_other_algorithm(self, signed_corim: SignedCorim, ec_keypair):
        """Test that the key must match the message algorithm."""
        data = signed_corim.sign(signer_from_private_key(ec_keypair[0]))
        other = ed25519.Ed25519PrivateKey.generate().public_key()
        with pytest.raises(ValueError, match="key is for alg -8, message uses -7"):
            SignedCorim().from_cose(data).verify(other)

    @pytest.mark.unit
    def test_verify_before_decode(self, ec_keypair):
        """Test that there must be a message to verify."""
        with pytest.raises(ValueError, match="no Sign1 message found"):
            SignedCorim().verify(ec_keypair[1])

    @pytest.mark.unit
    def test_sign_invalid_corim(self, ec_keypair):
        """Test that the CoRIM is validated before signing."""
        signed = SignedCorim(UnsignedCorim())
        signed.meta.set_signer("ACME Ltd.")
        with pytest.raises(ValueError, match="failed validation of unsigned CoRIM: empty id"):
            signed.sign(signer_from_private_key(ec_keypair[0]))
        with pytest.raises(ValueError, match="nil signer"):
            signed.sign(None)

    @pytest.mark.unit
    def test_sign_without_signer_name(self, reference_comid: Comid, ec_keypair):
        """Test that the meta must be complete."""
        signed = SignedCorim(UnsignedCorim().set_id("x").add_comid(reference_comid))
        with pytest.raises(ValueError, match="failed CBOR encoding of CoRIM Meta"):
            signed.sign(signer_from_private_key(ec_keypair[0]))


class TestSignedCorimDecoding:
    """Test the header checks applied when decoding."""

    def _sign(self, private_key, payload: bytes, protected: dict) -> bytes:
        return cose_sign1_sign(payload, signer_from_private_key(private_key), protected)

    @pytest.mark.unit
    def test_not_cose(self):
        """Test input that is not a COSE_Sign1."""
        with pytest.raises(ValueError, match="failed CBOR decoding for COSE-Sign1 signed CoRIM"):
            SignedCorim().from_cose(cbor_utils.encode([1, 2, 3]))

    @pytest.mark.unit
    def test_missing_content_type(self, ec_keypair):
        """Test that the content type is mandatory."""
        data = self._sign(ec_keypair[0], b"\xa0", {})
        with pytest.raises(ValueError, match="processing COSE headers: missing mandatory content type"):
            SignedCorim().from_cose(data)

    @pytest.mark.unit
    def test_wrong_content_type(self, ec_keypair):
        """Test that the content type must be the CoRIM one."""
        data = self._sign(ec_keypair[0], b"\xa0", {3: "application/cbor"})
        with pytest.raises(
            ValueError, match='expecting content type "application/rim\\+cbor", got "application/cbor"'
        ):
            SignedCorim().from_cose(data)

    @pytest.mark.unit
    def test_missing_meta(self, ec_keypair):
        """Test that the meta header is mandatory."""
        data = self._sign(ec_keypair[0], b"\xa0", {3: CONTENT_TYPE})
        with pytest.raises(ValueError, match="missing mandatory corim.meta"):
            SignedCorim().from_cose(data)

    @pytest.mark.unit
    def test_meta_not_bytes(self, ec_keypair):
        """Test that the meta header carries encoded CBOR."""
        data = self._sign(ec_keypair[0], b"\xa0", {3: CONTENT_TYPE, 8: {0: {0: "x"}}})
        with pytest.raises(ValueError, match="expecting CBOR-encoded CoRIM Meta, got dict instead"):
            SignedCorim().from_cose(data)

    @pytest.mark.unit
    def test_invalid_payload(self, ec_keypair):
        """Test that the payload must be a valid CoRIM."""
        meta = Meta().set_signer("ACME Ltd.").to_cbor()
        data = self._sign(ec_keypair[0], b"\xa0", {3: CONTENT_TYPE, 8: meta})
        with pytest.raises(ValueError, match="failed validation of unsigned CoRIM: empty id"):
            SignedCorim().from_cose(data)

        data = self._sign(ec_keypair[0], b"\x01", {3: CONTENT_TYPE, 8: meta})
        with pytest.raises(ValueError, match="failed CBOR decoding of unsigned CoRIM"):
            SignedCorim().from_cose(data)
