"""
Credential Verifier - checks VC-JWTs against registered issuers.

Verification steps:
    1. The token must be a three-segment compact JWS.
    2. The payload must base64url-decode to a JSON object.
    3. The issuer DID is taken from ``iss``, falling back to ``vc.issuer``.
    4. The DID must belong to an issuer registered in the directory.
    5. The signature must verify under that issuer's public key, using exactly
       the algorithm bound to the key type; nbf/exp are enforced when present.

Failures are reported as a VerificationResult with ``ok=False`` and a
display-safe reason. Nothing partially verified is ever returned.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from jwcrypto import jws
from jwcrypto.common import JWException, base64url_decode, base64url_encode

from vcledger.config import CLOCK_SKEW_SECONDS
from vcledger.directory import IssuerDirectory
from vcledger.exceptions import (
    CredentialExpired,
    IssuerDidMissing,
    IssuerNotRegistered,
    MalformedToken,
    SignatureInvalid,
    VCLedgerError,
    ValidationFailed,
)
from vcledger.keys import algorithm_for
from vcledger.metrics import LedgerMetrics

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Outcome of verifying one credential."""

    ok: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    issuer_id: Optional[str] = None
    issuer_did: Optional[str] = None
    onchain_issuer: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    protected_header: Optional[Dict[str, Any]] = None

    @classmethod
    def failure(cls, error: VCLedgerError) -> "VerificationResult":
        return cls(ok=False, reason=str(error), code=error.code)

    def to_dict(self) -> Dict[str, Any]:
        if not self.ok:
            return {"ok": False, "reason": self.reason, "code": self.code}
        return {
            "ok": True,
            "issuerId": self.issuer_id,
            "issuerDid": self.issuer_did,
            "onchainIssuer": self.onchain_issuer,
            "payload": self.payload,
            "protectedHeader": self.protected_header,
        }


def _decode_bytes(segment: str, what: str) -> bytes:
    try:
        raw = base64url_decode(segment)
    except ValueError as e:
        raise MalformedToken(f"{what} is not base64url-encoded: {e}")
    # Only the canonical spelling of the signed bytes is accepted
    if base64url_encode(raw) != segment:
        raise SignatureInvalid(f"{what} is not canonically base64url-encoded")
    return raw


def _decode_segment(segment: str, what: str) -> Dict[str, Any]:
    raw = _decode_bytes(segment, what)
    try:
        value = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedToken(f"{what} is not base64url-encoded JSON: {e}")
    if not isinstance(value, dict):
        raise MalformedToken(f"{what} is not a JSON object")
    return value


def decode_token(vc_jwt: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Decode a compact JWS without verifying it.

    Returns:
        (protected_header, payload)

    Raises:
        MalformedToken: If the token is not three segments of base64url JSON.
        SignatureInvalid: If a segment is not the canonical base64url encoding
            of its bytes.
    """
    if not isinstance(vc_jwt, str) or not vc_jwt:
        raise MalformedToken("token must be a non-empty string")
    parts = vc_jwt.strip().split(".")
    if len(parts) != 3:
        raise MalformedToken("invalid jwt format: expected three dot-separated segments")
    header = _decode_segment(parts[0], "header")
    payload = _decode_segment(parts[1], "payload")
    _decode_bytes(parts[2], "signature")
    return header, payload


def extract_issuer_did(payload: Dict[str, Any]) -> str:
    """
    Raises:
        IssuerDidMissing: If neither iss nor vc.issuer is present.
    """
    issuer_did = payload.get("iss")
    if not issuer_did:
        vc = payload.get("vc")
        if isinstance(vc, dict):
            issuer_did = vc.get("issuer")
            if isinstance(issuer_did, dict):
                issuer_did = issuer_did.get("id")
    if not issuer_did or not isinstance(issuer_did, str):
        raise IssuerDidMissing("issuer DID not found in token")
    return issuer_did


class CredentialVerifier:
    """
    Verifies VC-JWTs issued by issuers registered in a directory.

    Example:
        >>> verifier = CredentialVerifier(directory)
        >>> result = verifier.verify(vc_jwt)
        >>> if result.ok:
        ...     print(result.issuer_id, result.payload["vc"]["credentialSubject"])
    """

    def __init__(
        self,
        directory: IssuerDirectory,
        clock_skew_seconds: int = CLOCK_SKEW_SECONDS,
        metrics: Optional[LedgerMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._directory = directory
        self._clock_skew = clock_skew_seconds
        self._metrics = metrics
        self._clock = clock

    def verify(self, vc_jwt: str) -> VerificationResult:
        """
        Verify a credential.

        Never raises for a bad token; the reason is carried in the result.
        """
        if self._metrics:
            with self._metrics.verification_timer():
                result = self._verify_safely(vc_jwt)
            self._metrics.record_verification(result.ok, result.code or "ok")
        else:
            result = self._verify_safely(vc_jwt)
        return result

    def _verify_safely(self, vc_jwt: str) -> VerificationResult:
        try:
            return self._verify(vc_jwt)
        except VCLedgerError as e:
            logger.info(f"Credential rejected: {e}")
            return VerificationResult.failure(e)

    def _verify(self, vc_jwt: str) -> VerificationResult:
        header, payload = decode_token(vc_jwt)
        issuer_did = extract_issuer_did(payload)

        issuer = self._directory.find_by_did(issuer_did)
        if issuer is None:
            raise IssuerNotRegistered(f"issuer not registered on platform: {issuer_did}")

        try:
            expected_alg = algorithm_for(issuer.public_jwk)
        except ValidationFailed as e:
            raise SignatureInvalid(f"issuer key cannot verify credentials: {e}")

        declared_alg = header.get("alg")
        if not declared_alg:
            raise SignatureInvalid("protected header declares no algorithm")
        if declared_alg != expected_alg:
            raise SignatureInvalid(
                f"algorithm mismatch: token declares {declared_alg}, issuer key requires {expected_alg}"
            )

        public_key = self._directory.public_key_for(issuer)
        token = jws.JWS()
        token.allowed_algs = [expected_alg]
        try:
            token.deserialize(vc_jwt.strip())
            token.verify(public_key, alg=expected_alg)
        except JWException as e:
            raise SignatureInvalid(f"signature verification failed: {e}")

        verified_payload = json.loads(token.payload.decode("utf-8"))
        self._check_validity_window(verified_payload)
        self._check_consistency(verified_payload, issuer_did)

        return VerificationResult(
            ok=True,
            issuer_id=issuer.issuer_id,
            issuer_did=issuer_did,
            onchain_issuer=issuer.address,
            payload=verified_payload,
            protected_header=header,
        )

    def _check_validity_window(self, payload: Dict[str, Any]) -> None:
        now = self._clock()
        exp = payload.get("exp")
        nbf = payload.get("nbf")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                raise MalformedToken("exp must be a number")
            if now > exp + self._clock_skew:
                raise CredentialExpired("credential has expired")
        if nbf is not None:
            if not isinstance(nbf, (int, float)):
                raise MalformedToken("nbf must be a number")
            if now + self._clock_skew < nbf:
                raise CredentialExpired("credential is not yet valid")

    @staticmethod
    def _check_consistency(payload: Dict[str, Any], issuer_did: str) -> None:
        vc = payload.get("vc")
        if vc is None:
            return
        if not isinstance(vc, dict):
            raise MalformedToken("vc claim must be an object")
        vc_issuer = vc.get("issuer")
        if isinstance(vc_issuer, dict):
            vc_issuer = vc_issuer.get("id")
        if vc_issuer is not None and vc_issuer != issuer_did:
            raise MalformedToken("vc.issuer does not match iss")


def check_subject(result: VerificationResult, subject_did: str) -> bool:
    """
    Presentation check layered on top of verify(): does the credential belong to subject_did?

    Both the JWT ``sub`` and ``vc.credentialSubject.id`` (when present) must match.
    """
    if not result.ok or not result.payload or not subject_did:
        return False
    payload = result.payload
    if payload.get("sub") != subject_did:
        return False
    vc = payload.get("vc")
    if isinstance(vc, dict):
        subject = vc.get("credentialSubject")
        if isinstance(subject, dict) and subject.get("id") not in (None, subject_did):
            return False
    return True
