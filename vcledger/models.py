"""
Persisted records of the credential lifecycle.

Records are plain dataclasses with snake_case attributes; ``to_dict`` and
``from_dict`` convert to and from the camelCase JSON shape used on the wire
and in the backing store.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from vcledger.exceptions import ValidationFailed


def utc_now() -> str:
    """Current time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# Types
# =============================================================================


class RequestStatus(str, Enum):
    """States of an issue request. ISSUED and FAILED are terminal."""

    REQUESTED = "requested"
    ISSUED = "issued"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.REQUESTED


# =============================================================================
# Issuers
# =============================================================================


@dataclass
class IssuerRecord:
    """
    A credential issuer known to the directory.

    Attributes:
        issuer_id: Stable primary key, immutable once created.
        did: did:ethr:eip155:<chainId>:<address> for managed issuers,
             caller-supplied for external ones.
        address: 0x-prefixed account address bound to the issuer.
        public_jwk: Public verification key (always present).
        managed: True when this service custodies the private key.
        private_jwk: Private signing key, only for managed issuers.
        created_at: ISO 8601 creation time.
    """

    issuer_id: str
    did: str
    address: str
    public_jwk: Dict[str, Any]
    managed: bool = False
    private_jwk: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.issuer_id:
            raise ValidationFailed("issuerId required")
        if not self.public_jwk:
            raise ValidationFailed(f"issuer {self.issuer_id} has no public key")
        if not self.managed and self.private_jwk is not None:
            raise ValidationFailed(f"external issuer {self.issuer_id} must not carry a private key")
        if self.managed and self.private_jwk is None:
            raise ValidationFailed(f"managed issuer {self.issuer_id} is missing its private key")

    def to_dict(self, include_private: bool = True) -> Dict[str, Any]:
        data = {
            "issuerId": self.issuer_id,
            "did": self.did,
            "address": self.address,
            "publicJwk": dict(self.public_jwk),
            "managed": self.managed,
            "createdAt": self.created_at,
        }
        if include_private and self.private_jwk is not None:
            data["privateJwk"] = dict(self.private_jwk)
        return data

    def public_view(self) -> Dict[str, Any]:
        """Fields safe to hand to holders and verifiers."""
        return self.to_dict(include_private=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssuerRecord":
        return cls(
            issuer_id=data["issuerId"],
            did=data["did"],
            address=data["address"],
            public_jwk=data["publicJwk"],
            managed=bool(data.get("managed", False)),
            private_jwk=data.get("privateJwk"),
            created_at=data.get("createdAt") or utc_now(),
        )


# =============================================================================
# Issue Requests
# =============================================================================


@dataclass
class IssueRequest:
    """A holder's request for a credential, tracked through its state machine."""

    id: str
    holder_address: str
    holder_did: str
    issuer_id: str
    claims: Dict[str, Any] = field(default_factory=dict)
    status: RequestStatus = RequestStatus.REQUESTED
    credential_type: Optional[str] = None
    result_vc_jwt: Optional[str] = None
    last_error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: Optional[str] = None

    def __post_init__(self):
        self.status = RequestStatus(self.status)
        if self.result_vc_jwt is not None and self.status is not RequestStatus.ISSUED:
            raise ValidationFailed(f"request {self.id}: resultVcJwt set while {self.status.value}")
        if self.last_error is not None and self.status is not RequestStatus.FAILED:
            raise ValidationFailed(f"request {self.id}: lastError set while {self.status.value}")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "createdAt": self.created_at,
            "holderAddress": self.holder_address,
            "holderDid": self.holder_did,
            "issuerId": self.issuer_id,
            "claims": copy.deepcopy(self.claims),
            "status": self.status.value,
        }
        if self.credential_type is not None:
            data["credentialType"] = self.credential_type
        if self.result_vc_jwt is not None:
            data["resultVcJwt"] = self.result_vc_jwt
        if self.last_error is not None:
            data["lastError"] = self.last_error
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueRequest":
        return cls(
            id=data["id"],
            holder_address=data["holderAddress"],
            holder_did=data["holderDid"],
            issuer_id=data["issuerId"],
            claims=copy.deepcopy(data.get("claims") or {}),
            status=RequestStatus(data.get("status", RequestStatus.REQUESTED.value)),
            credential_type=data.get("credentialType"),
            result_vc_jwt=data.get("resultVcJwt"),
            last_error=data.get("lastError"),
            created_at=data.get("createdAt") or utc_now(),
            updated_at=data.get("updatedAt"),
        )


# =============================================================================
# Published Credentials
# =============================================================================


@dataclass(frozen=True)
class PublishedVC:
    """An issued credential. Written once, never mutated."""

    id: str
    issuer_id: str
    holder_address: str
    holder_did: str
    vc_jwt: str
    issued_at: str = field(default_factory=utc_now)
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "issuedAt": self.issued_at,
            "issuerId": self.issuer_id,
            "holderAddress": self.holder_address,
            "holderDid": self.holder_did,
            "vcJwt": self.vc_jwt,
        }
        if self.request_id is not None:
            data["requestId"] = self.request_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublishedVC":
        return cls(
            id=data["id"],
            issuer_id=data["issuerId"],
            holder_address=data["holderAddress"],
            holder_did=data["holderDid"],
            vc_jwt=data["vcJwt"],
            issued_at=data.get("issuedAt") or utc_now(),
            request_id=data.get("requestId"),
        )
