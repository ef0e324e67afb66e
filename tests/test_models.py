"""
Unit tests for records, DIDs and configuration.
"""

import dataclasses

import pytest

from vcledger.config import Settings
from vcledger.did import ethr_did, is_hex_address, pkh_did, random_address
from vcledger.exceptions import ValidationFailed
from vcledger.keys import generate_keypair
from vcledger.models import IssueRequest, IssuerRecord, PublishedVC, RequestStatus


class TestDid:
    """DID and address helpers."""

    def test_did_formats(self):
        address = "0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131"
        assert ethr_did(31337, address) == f"did:ethr:eip155:31337:{address}"
        assert pkh_did(1, address) == f"did:pkh:eip155:1:{address}"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131", True),
            ("0x2a36fa11ed761c6febe12f84cc35c5b0cf0a5131", True),
            ("2A36FA11ed761C6febe12f84cC35c5B0cf0A5131", False),
            ("0x2A36FA11ed761C6febe12f84cC35c5B0cf0A513", False),
            ("0xZZ36FA11ed761C6febe12f84cC35c5B0cf0A5131", False),
            (None, False),
        ],
    )
    def test_is_hex_address(self, value, expected):
        assert is_hex_address(value) is expected

    def test_random_address(self):
        assert is_hex_address(random_address())
        assert random_address() != random_address()


class TestIssuerRecord:
    """IssuerRecord invariants."""

    def test_external_issuer_cannot_hold_private_key(self):
        pair = generate_keypair()
        with pytest.raises(ValidationFailed):
            IssuerRecord(
                issuer_id="partner", did="did:web:partner.example", address="0x0",
                public_jwk=pair.public_jwk, managed=False, private_jwk=pair.private_jwk,
            )

    def test_managed_issuer_needs_private_key(self):
        with pytest.raises(ValidationFailed):
            IssuerRecord(
                issuer_id="acme", did="did:ethr:x", address="0x0",
                public_jwk=generate_keypair().public_jwk, managed=True,
            )

    def test_round_trip_keeps_private_key(self):
        pair = generate_keypair()
        record = IssuerRecord(
            issuer_id="acme", did="did:ethr:x", address="0x0",
            public_jwk=pair.public_jwk, private_jwk=pair.private_jwk, managed=True,
        )
        assert IssuerRecord.from_dict(record.to_dict()) == record
        assert "privateJwk" not in record.public_view()


class TestIssueRequest:
    """IssueRequest invariants."""

    def test_result_only_when_issued(self):
        with pytest.raises(ValidationFailed):
            IssueRequest(
                id="r1", holder_address="0x0", holder_did="did:pkh:x", issuer_id="acme",
                result_vc_jwt="a.b.c",
            )

    def test_error_only_when_failed(self):
        with pytest.raises(ValidationFailed):
            IssueRequest(
                id="r1", holder_address="0x0", holder_did="did:pkh:x", issuer_id="acme",
                status="issued", last_error="boom",
            )

    def test_status_coerced(self):
        request = IssueRequest(
            id="r1", holder_address="0x0", holder_did="did:pkh:x", issuer_id="acme", status="failed",
            last_error="boom",
        )
        assert request.status is RequestStatus.FAILED
        assert request.status.is_terminal

    def test_optional_fields_omitted(self):
        data = IssueRequest(
            id="r1", holder_address="0x0", holder_did="did:pkh:x", issuer_id="acme"
        ).to_dict()
        assert "resultVcJwt" not in data
        assert "lastError" not in data
        assert data["status"] == "requested"


class TestPublishedVC:
    def test_immutable(self):
        vc = PublishedVC(
            id="v1", issuer_id="acme", holder_address="0x0", holder_did="did:pkh:x", vc_jwt="a.b.c"
        )
        with pytest.raises(dataclasses.FrozenInstanceError):
            vc.vc_jwt = "x.y.z"


class TestSettings:
    """Settings from environment."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("VCLEDGER_CHAIN_ID", "1")
        monkeypatch.setenv("VCLEDGER_ALLOW_ISSUER_REPLACE", "false")
        monkeypatch.setenv("VCLEDGER_STORAGE", "memory")

        settings = Settings.from_env()
        assert settings.chain_id == 1
        assert settings.allow_issuer_replace is False
        assert settings.storage_backend == "memory"

    def test_unknown_backend(self):
        from vcledger.service import build_services

        with pytest.raises(ValidationFailed):
            build_services(Settings(storage_backend="sqlite"))
