"""
Unit tests for the issuer directory.
"""

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from vcledger.directory import DEFAULT_ISSUERS, IssuerDirectory, jwk_fingerprint
from vcledger.exceptions import DuplicateIssuer, IssuerNotFound, NotManaged, ValidationFailed
from vcledger.keys import generate_keypair

ACME_ADDRESS = "0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131"
CHAIN_ID = 31337


class TestCreateManagedIssuer:
    """Tests for create_managed_issuer()."""

    def test_acme_issuer(self, directory):
        """A managed issuer gets a did:ethr DID and an ES256K key pair."""
        issuer = directory.create_managed_issuer("acme", address=ACME_ADDRESS, chain_id=CHAIN_ID)

        assert issuer.did == f"did:ethr:eip155:31337:{ACME_ADDRESS}"
        assert issuer.address == ACME_ADDRESS
        assert issuer.managed is True
        assert issuer.public_jwk["crv"] == "secp256k1"
        assert "d" not in issuer.public_jwk
        assert "d" in issuer.private_jwk

    def test_random_address_when_omitted(self, directory):
        issuer = directory.create_managed_issuer("acme")
        assert issuer.address.startswith("0x")
        assert len(issuer.address) == 42
        assert issuer.did.endswith(issuer.address)

    def test_default_chain_id(self, directory):
        issuer = directory.create_managed_issuer("acme", address=ACME_ADDRESS)
        assert issuer.did.startswith(f"did:ethr:eip155:{directory.chain_id}:")

    def test_invalid_address(self, directory):
        with pytest.raises(ValidationFailed):
            directory.create_managed_issuer("acme", address="0x1234")

    def test_empty_issuer_id(self, directory):
        with pytest.raises(ValidationFailed):
            directory.create_managed_issuer("", address=ACME_ADDRESS)

    def test_other_curve(self, directory):
        issuer = directory.create_managed_issuer("acme", curve="Ed25519")
        assert issuer.public_jwk["kty"] == "OKP"
        assert issuer.public_jwk["alg"] == "EdDSA"

    def test_recreate_replaces_by_default(self, directory):
        """Re-creating an issuer replaces it; one record per issuerId."""
        first = directory.create_managed_issuer("acme", address=ACME_ADDRESS)
        second = directory.create_managed_issuer("acme", address=ACME_ADDRESS)

        assert len(directory.list_issuers()) == 1
        assert directory.get_public_jwk("acme") == second.public_jwk
        assert second.public_jwk != first.public_jwk

    def test_recreate_rejected_when_replace_disabled(self):
        directory = IssuerDirectory(allow_replace=False)
        directory.create_managed_issuer("acme", address=ACME_ADDRESS)

        with pytest.raises(DuplicateIssuer):
            directory.create_managed_issuer("acme", address=ACME_ADDRESS)


class TestExternalIssuer:
    """Tests for register_external_issuer()."""

    def test_register_external(self, directory):
        """External issuers keep only a public key."""
        pair = generate_keypair()
        issuer = directory.register_external_issuer(
            "partner", did="did:web:partner.example", address=ACME_ADDRESS,
            public_jwk=pair.public_jwk,
        )

        assert issuer.managed is False
        assert issuer.private_jwk is None
        assert "privateJwk" not in directory.get_issuer("partner").to_dict()

    def test_external_issuer_cannot_sign(self, directory):
        pair = generate_keypair()
        directory.register_external_issuer(
            "partner", did="did:web:partner.example", address=ACME_ADDRESS,
            public_jwk=pair.public_jwk,
        )

        with pytest.raises(NotManaged):
            directory.get_private_key("partner")
        with pytest.raises(NotManaged):
            with directory.signing_key("partner"):
                pass

    def test_private_material_rejected(self, directory):
        pair = generate_keypair()
        with pytest.raises(ValidationFailed):
            directory.register_external_issuer(
                "partner", did="did:web:partner.example", address=ACME_ADDRESS,
                public_jwk=pair.private_jwk,
            )
        assert directory.find_issuer("partner") is None


class TestLookups:
    """Tests for issuer lookups."""

    def test_get_missing_issuer(self, directory):
        with pytest.raises(IssuerNotFound):
            directory.get_issuer("nobody")
        assert directory.find_issuer("nobody") is None

    def test_find_by_did(self, directory, acme):
        assert directory.find_by_did(acme.did).issuer_id == "acme"
        assert directory.find_by_did("did:ethr:eip155:1:0x0") is None

    def test_public_view_omits_private_key(self, acme):
        view = acme.public_view()
        assert "privateJwk" not in view
        assert view["publicJwk"] == acme.public_jwk

    def test_private_and_public_keys_form_a_pair(self, directory, acme):
        """Data signed with get_private_key() verifies under get_public_key()."""
        private_key = directory.get_private_key("acme").get_op_key("sign")
        public_key = directory.get_public_key("acme").get_op_key("verify")

        signature = private_key.sign(b"test payload", ec.ECDSA(hashes.SHA256()))
        public_key.verify(signature, b"test payload", ec.ECDSA(hashes.SHA256()))

    def test_signing_key_is_private(self, directory, acme):
        with directory.signing_key("acme") as (issuer, key):
            assert issuer.issuer_id == "acme"
            assert key.has_private is True


class TestPublicKeyCache:
    """Public keys are cached and invalidated on rotation."""

    def test_public_key_is_cached(self, directory, acme):
        first = directory.get_public_key("acme")
        second = directory.get_public_key("acme")

        assert first is second
        assert first.has_private is False
        assert directory.key_cache.stats["hits"] == 1

    def test_rotation_invalidates_cache(self, directory, acme):
        """After an issuer is re-created the new key is served."""
        old_key = directory.get_public_key("acme")
        rotated = directory.create_managed_issuer("acme", address=ACME_ADDRESS)
        new_key = directory.get_public_key("acme")

        assert new_key is not old_key
        assert new_key.export_public(as_dict=True)["x"] == rotated.public_jwk["x"]

    def test_fingerprint_is_order_independent(self):
        assert jwk_fingerprint({"a": 1, "b": 2}) == jwk_fingerprint({"b": 2, "a": 1})


class TestDefaultIssuers:
    """Tests for ensure_default_issuers()."""

    def test_seeds_company_b(self, directory):
        created = directory.ensure_default_issuers()

        assert [i.issuer_id for i in created] == ["companyB"]
        issuer = directory.get_issuer("companyB")
        assert issuer.did == f"did:ethr:eip155:31337:{DEFAULT_ISSUERS[0]['address']}"

    def test_idempotent(self, directory):
        """A second call creates nothing and keeps the original key."""
        directory.ensure_default_issuers()
        key = directory.get_public_jwk("companyB")

        assert directory.ensure_default_issuers() == []
        assert len(directory.list_issuers()) == 1
        assert directory.get_public_jwk("companyB") == key
