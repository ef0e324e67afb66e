"""
DID and account-address helpers.

Issuers are identified by did:ethr and holders by did:pkh, both scoped to an
EIP-155 chain id:

    did:ethr:eip155:31337:0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131
    did:pkh:eip155:31337:0x70997970C51812dc3A010C7d01b50e0d17dc79C8
"""

import re
import secrets

from vcledger.exceptions import ValidationFailed

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_hex_address(value) -> bool:
    """True for a 0x-prefixed, 40 hex digit account address."""
    return isinstance(value, str) and ADDRESS_PATTERN.match(value) is not None


def require_address(value, field_name: str = "address") -> str:
    """Return value unchanged, or raise ValidationFailed if it is not an address."""
    if not is_hex_address(value):
        raise ValidationFailed(f"{field_name} must be 0x followed by 40 hex characters")
    return value


def random_address() -> str:
    """Generate a random account address for issuers created without one."""
    return "0x" + secrets.token_hex(20)


def ethr_did(chain_id: int, address: str) -> str:
    return f"did:ethr:eip155:{chain_id}:{address}"


def pkh_did(chain_id: int, address: str) -> str:
    return f"did:pkh:eip155:{chain_id}:{address}"
