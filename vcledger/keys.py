"""
Issuer key material: generation, import and algorithm selection.

Every supported key type maps to exactly one JWS algorithm. Signing or
verifying with any other algorithm identifier is rejected up front instead
of producing a token nobody can verify.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from jwcrypto import jwk
from jwcrypto.common import JWException

from vcledger.exceptions import KeyUnavailable, ValidationFailed

logger = logging.getLogger(__name__)

JWKLike = Union[Dict[str, Any], jwk.JWK]


@dataclass(frozen=True)
class KeyType:
    """A (kty, crv) pair and the JWS algorithm bound to it."""

    kty: str
    crv: str
    alg: str


KEY_TYPES: Dict[str, KeyType] = {
    "secp256k1": KeyType(kty="EC", crv="secp256k1", alg="ES256K"),
    "P-256": KeyType(kty="EC", crv="P-256", alg="ES256"),
    "Ed25519": KeyType(kty="OKP", crv="Ed25519", alg="EdDSA"),
}

# The chain-compatible curve used for managed issuers
DEFAULT_CURVE = "secp256k1"


@dataclass
class KeyPair:
    """A freshly generated key pair exported as JWK dictionaries."""

    public_jwk: Dict[str, Any]
    private_jwk: Dict[str, Any]
    alg: str
    kid: str

    def to_dict(self) -> Dict[str, Any]:
        return {"publicJwk": self.public_jwk, "privateJwk": self.private_jwk}


def _as_dict(key: JWKLike) -> Dict[str, Any]:
    if isinstance(key, jwk.JWK):
        return key.export_public(as_dict=True)
    if not isinstance(key, dict):
        raise ValidationFailed("JWK must be a JSON object")
    return key


def generate_keypair(curve: str = DEFAULT_CURVE, kid: Optional[str] = None) -> KeyPair:
    """
    Generate a new key pair on the given curve.

    Both exported JWKs carry ``alg``, ``use: "sig"`` and ``kid`` (the RFC 7638
    thumbprint unless a kid is given) so they can be re-imported without
    out-of-band knowledge of the algorithm.

    Raises:
        ValidationFailed: If the curve is not supported.
    """
    key_type = KEY_TYPES.get(curve)
    if key_type is None:
        raise ValidationFailed(
            f"unsupported curve {curve!r}; expected one of {', '.join(sorted(KEY_TYPES))}"
        )

    key = jwk.JWK.generate(kty=key_type.kty, crv=key_type.crv)
    kid = kid or key.thumbprint()

    extra = {"alg": key_type.alg, "use": "sig", "kid": kid}
    public_jwk = {**key.export_public(as_dict=True), **extra}
    private_jwk = {**key.export_private(as_dict=True), **extra}

    return KeyPair(public_jwk=public_jwk, private_jwk=private_jwk, alg=key_type.alg, kid=kid)


def key_type_for(key: JWKLike) -> KeyType:
    """
    Resolve the key type of a JWK from its kty and crv members.

    Raises:
        ValidationFailed: If the key type is unsupported, or the JWK declares an
            ``alg`` that conflicts with its curve.
    """
    data = _as_dict(key)
    for key_type in KEY_TYPES.values():
        if data.get("kty") == key_type.kty and data.get("crv") == key_type.crv:
            declared = data.get("alg")
            if declared is not None and declared != key_type.alg:
                raise ValidationFailed(
                    f"JWK declares alg {declared} but {key_type.crv} keys sign with {key_type.alg}"
                )
            return key_type
    raise ValidationFailed(f"unsupported key type kty={data.get('kty')} crv={data.get('crv')}")


def algorithm_for(key: JWKLike) -> str:
    """JWS algorithm implied by a key."""
    return key_type_for(key).alg


def require_algorithm(key: JWKLike, alg: str) -> str:
    """
    Check that alg is the algorithm bound to key's type.

    Raises:
        KeyUnavailable: If the key cannot be used with alg.
    """
    try:
        expected = algorithm_for(key)
    except ValidationFailed as e:
        raise KeyUnavailable(str(e))
    if alg != expected:
        raise KeyUnavailable(f"algorithm {alg} cannot be used with a {key_type_for(key).crv} key")
    return expected


def public_jwk_only(key: JWKLike) -> Dict[str, Any]:
    """
    Validate a public JWK supplied by an external party.

    Raises:
        ValidationFailed: If the JWK carries private material, is malformed or
            has an unsupported key type.
    """
    data = _as_dict(key)
    if "d" in data:
        raise ValidationFailed("publicJwk must not contain private key material")
    key_type_for(data)
    try:
        jwk.JWK(**data)
    except (JWException, ValueError, TypeError) as e:
        raise ValidationFailed(f"invalid publicJwk: {e}")
    return dict(data)


def load_public_key(key: JWKLike) -> jwk.JWK:
    """Import the public half of a JWK."""
    if isinstance(key, jwk.JWK):
        return jwk.JWK(**key.export_public(as_dict=True))
    data = {k: v for k, v in _as_dict(key).items() if k != "d"}
    try:
        return jwk.JWK(**data)
    except (JWException, ValueError, TypeError) as e:
        raise ValidationFailed(f"invalid public JWK: {e}")


def load_private_key(key: Optional[Dict[str, Any]]) -> jwk.JWK:
    """
    Import a private JWK.

    Raises:
        KeyUnavailable: If there is no private key or it cannot be imported.
    """
    if not key or "d" not in key:
        raise KeyUnavailable("no private key material")
    try:
        imported = jwk.JWK(**key)
    except (JWException, ValueError, TypeError) as e:
        raise KeyUnavailable(f"private key could not be imported: {e}")
    if not imported.has_private:
        raise KeyUnavailable("no private key material")
    return imported


def dump_keypair(pair: KeyPair, path: str) -> None:
    """Write a key pair to a JSON key file ({publicJwk, privateJwk})."""
    with open(path, "w") as f:
        json.dump(pair.to_dict(), f, indent=2)
    logger.info(f"Wrote {pair.alg} key pair {pair.kid} to {path}")
