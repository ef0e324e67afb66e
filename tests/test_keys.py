"""
Unit tests for key generation and algorithm selection.
"""

import json

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from jwcrypto import jwk

from vcledger.exceptions import KeyUnavailable, ValidationFailed
from vcledger.keys import (
    KEY_TYPES,
    algorithm_for,
    dump_keypair,
    generate_keypair,
    load_private_key,
    load_public_key,
    public_jwk_only,
    require_algorithm,
)


class TestGenerateKeypair:
    """Tests for generate_keypair()."""

    def test_default_curve_is_secp256k1(self):
        """Managed issuer keys default to secp256k1 / ES256K."""
        pair = generate_keypair()

        assert pair.alg == "ES256K"
        assert pair.public_jwk["kty"] == "EC"
        assert pair.public_jwk["crv"] == "secp256k1"

    def test_public_jwk_has_no_private_material(self):
        """The public JWK never carries 'd'."""
        pair = generate_keypair()

        assert "d" not in pair.public_jwk
        assert "d" in pair.private_jwk

    def test_jwks_carry_alg_use_and_kid(self):
        """Both halves are tagged with alg, use and kid."""
        pair = generate_keypair("P-256")

        for key in (pair.public_jwk, pair.private_jwk):
            assert key["alg"] == "ES256"
            assert key["use"] == "sig"
            assert key["kid"] == pair.kid

    def test_kid_defaults_to_thumbprint(self):
        """kid is the RFC 7638 thumbprint unless given."""
        pair = generate_keypair()
        assert pair.kid == jwk.JWK(**pair.public_jwk).thumbprint()

        named = generate_keypair(kid="issuer-key-1")
        assert named.kid == "issuer-key-1"

    @pytest.mark.parametrize("curve", sorted(KEY_TYPES))
    def test_every_supported_curve(self, curve):
        """Each supported curve produces a key with its bound algorithm."""
        pair = generate_keypair(curve)
        assert pair.alg == KEY_TYPES[curve].alg
        assert algorithm_for(pair.public_jwk) == pair.alg

    def test_unsupported_curve(self):
        """Unknown curves are rejected."""
        with pytest.raises(ValidationFailed):
            generate_keypair("P-521")

    def test_private_and_public_halves_match(self):
        """Data signed with the private key verifies with the public key."""
        pair = generate_keypair()
        private_key = jwk.JWK(**pair.private_jwk).get_op_key("sign")
        public_key = jwk.JWK(**pair.public_jwk).get_op_key("verify")

        signature = private_key.sign(b"issuer key check", ec.ECDSA(hashes.SHA256()))
        public_key.verify(signature, b"issuer key check", ec.ECDSA(hashes.SHA256()))

        other = jwk.JWK(**generate_keypair().public_jwk).get_op_key("verify")
        with pytest.raises(InvalidSignature):
            other.verify(signature, b"issuer key check", ec.ECDSA(hashes.SHA256()))

    def test_dump_keypair(self, tmp_path):
        """dump_keypair() writes {publicJwk, privateJwk}."""
        pair = generate_keypair()
        path = tmp_path / "issuer-key.json"
        dump_keypair(pair, str(path))

        data = json.loads(path.read_text())
        assert data["publicJwk"] == pair.public_jwk
        assert data["privateJwk"] == pair.private_jwk


class TestAlgorithmBinding:
    """Tests for algorithm selection and mismatch detection."""

    def test_require_matching_algorithm(self):
        """The bound algorithm is accepted."""
        pair = generate_keypair("Ed25519")
        assert require_algorithm(pair.public_jwk, "EdDSA") == "EdDSA"

    def test_mismatched_algorithm_fails_fast(self):
        """A secp256k1 key cannot be used with ES256."""
        pair = generate_keypair()
        with pytest.raises(KeyUnavailable):
            require_algorithm(pair.private_jwk, "ES256")

    def test_conflicting_declared_alg(self):
        """A JWK whose alg member contradicts its curve is rejected."""
        pair = generate_keypair()
        bad = {**pair.public_jwk, "alg": "ES256"}
        with pytest.raises(ValidationFailed):
            algorithm_for(bad)

    def test_unsupported_key_type(self):
        """RSA keys are not accepted."""
        with pytest.raises(ValidationFailed):
            algorithm_for({"kty": "RSA", "n": "AQAB", "e": "AQAB"})


class TestKeyImport:
    """Tests for importing public and private JWKs."""

    def test_public_jwk_only_rejects_private_material(self):
        """External issuers may not hand over a private key."""
        pair = generate_keypair()
        with pytest.raises(ValidationFailed):
            public_jwk_only(pair.private_jwk)

    def test_public_jwk_only_accepts_public_key(self):
        pair = generate_keypair()
        assert public_jwk_only(pair.public_jwk) == pair.public_jwk

    def test_load_public_key_strips_private_part(self):
        """load_public_key() never yields a key able to sign."""
        pair = generate_keypair()
        key = load_public_key(pair.private_jwk)
        assert key.has_private is False

    def test_load_private_key_requires_d(self):
        """A public JWK cannot be loaded as a signing key."""
        pair = generate_keypair()
        with pytest.raises(KeyUnavailable):
            load_private_key(pair.public_jwk)
        with pytest.raises(KeyUnavailable):
            load_private_key(None)

        assert load_private_key(pair.private_jwk).has_private is True
