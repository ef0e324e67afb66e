"""
Credential Signer - turns issue requests into signed VC-JWTs.

The signer borrows an issuer's private key from the directory for exactly
one signing operation, builds the W3C credential and JWT envelope, signs it
with the algorithm bound to the issuer's key type, publishes the result and
moves the request to ``issued``. Any failure moves the request to ``failed``
and is re-raised to the caller.
"""

import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from jwcrypto import jwk, jws
from jwcrypto.common import JWException, json_encode

from vcledger.config import ADHOC_CREDENTIAL_TTL, CREDENTIAL_TTL
from vcledger.directory import IssuerDirectory
from vcledger.exceptions import KeyUnavailable, VCLedgerError, ValidationFailed
from vcledger.keys import algorithm_for, require_algorithm
from vcledger.ledger import RequestLedger
from vcledger.metrics import LedgerMetrics
from vcledger.models import IssueRequest, IssuerRecord, PublishedVC
from vcledger.published import PublishedVCStore

logger = logging.getLogger(__name__)

VC_CONTEXT = "https://www.w3.org/ns/credentials/v2"
BASE_TYPE = "VerifiableCredential"


def sign_jwt(
    claims: Dict[str, Any],
    private_key: jwk.JWK,
    alg: Optional[str] = None,
    kid: Optional[str] = None,
) -> str:
    """
    Sign a claim set as a compact JWS.

    Args:
        claims: JWT claims, serialized as canonical JSON.
        private_key: Private JWK to sign with.
        alg: Algorithm identifier. Derived from the key type when omitted; when
            given it must be the algorithm bound to the key type.
        kid: Key id for the protected header. Defaults to the key's own kid.

    Returns:
        ``base64url(header).base64url(payload).base64url(signature)``

    Raises:
        KeyUnavailable: If alg does not match the key type or signing fails.
    """
    alg = require_algorithm(private_key, alg) if alg else algorithm_for(private_key)

    protected_header = {"alg": alg, "typ": "JWT"}
    kid = kid or private_key.get("kid")
    if kid:
        protected_header["kid"] = kid

    payload = json.dumps(claims, sort_keys=True, separators=(",", ":"))
    token = jws.JWS(payload.encode("utf-8"))
    token.allowed_algs = [alg]
    try:
        token.add_signature(private_key, alg, json_encode(protected_header))
    except (JWException, ValueError, TypeError) as e:
        raise KeyUnavailable(f"signing with {alg} failed: {e}")
    return token.serialize(compact=True)


class CredentialSigner:
    """
    Issues Verifiable Credentials as signed JWTs.

    Example:
        >>> signer = CredentialSigner(directory, ledger, published)
        >>> published_vc, vc_jwt = signer.issue(request)
    """

    def __init__(
        self,
        directory: IssuerDirectory,
        ledger: RequestLedger,
        published: PublishedVCStore,
        credential_ttl: int = CREDENTIAL_TTL,
        adhoc_credential_ttl: int = ADHOC_CREDENTIAL_TTL,
        metrics: Optional[LedgerMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the signer.

        Args:
            directory: Source of issuer records and private keys.
            ledger: Request ledger whose requests this signer completes.
            published: Store the issued credentials are appended to.
            credential_ttl: Lifetime in seconds of request-driven credentials.
            adhoc_credential_ttl: Lifetime in seconds of sign_claims credentials.
            metrics: Optional metrics collector.
            clock: Source of the current Unix time.
        """
        self._directory = directory
        self._ledger = ledger
        self._published = published
        self.credential_ttl = credential_ttl
        self.adhoc_credential_ttl = adhoc_credential_ttl
        self._metrics = metrics
        self._clock = clock

    # -------------------------------------------------------------------------
    # Claim assembly
    # -------------------------------------------------------------------------

    @staticmethod
    def build_credential(
        issuer_did: str,
        subject: Dict[str, Any],
        types: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Build the ``vc`` claim. VerifiableCredential is always the first type."""
        vc_types = [BASE_TYPE]
        for extra in types or []:
            if extra and extra not in vc_types:
                vc_types.append(extra)
        return {
            "@context": [VC_CONTEXT],
            "type": vc_types,
            "issuer": issuer_did,
            "credentialSubject": subject,
        }

    def build_payload(
        self,
        issuer: IssuerRecord,
        subject_did: str,
        credential: Dict[str, Any],
        lifetime: int,
    ) -> Dict[str, Any]:
        now = int(self._clock())
        return {
            "iss": issuer.did,
            "sub": subject_did,
            "iat": now,
            "nbf": now,
            "exp": now + lifetime,
            "jti": f"urn:uuid:{uuid.uuid4()}",
            "vc": credential,
        }

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    def issue(self, request: Union[IssueRequest, str]) -> Tuple[PublishedVC, str]:
        """
        Sign the credential for a ``requested`` request.

        The request is held under its ledger lock from the state check until
        it is terminal, so concurrent calls for the same id cannot both sign.

        Args:
            request: The request, or its id.

        Returns:
            The PublishedVC record and the signed JWT.

        Raises:
            RequestNotFound: If the request does not exist.
            InvalidState: If the request is already issued or failed.
            IssuerNotFound / NotManaged / KeyUnavailable: Signing was impossible;
                the request has been moved to ``failed``.
        """
        request_id = request.id if isinstance(request, IssueRequest) else request

        with self._ledger.claim(request_id) as current:
            try:
                with self._directory.signing_key(current.issuer_id) as (issuer, key):
                    subject = {
                        "id": current.holder_did,
                        "address": current.holder_address,
                        **current.claims,
                    }
                    types = [current.credential_type] if current.credential_type else None
                    credential = self.build_credential(issuer.did, subject, types)
                    payload = self.build_payload(
                        issuer, current.holder_did, credential, self.credential_ttl
                    )
                    vc_jwt = sign_jwt(payload, key)

                self._ledger.transition_to_issued(current.id, vc_jwt)
            except Exception as e:
                self._record_failure(current.id, e)
                raise

            # The request already carries resultVcJwt if publishing fails here
            published = self._published.publish(current, vc_jwt)

        if self._metrics:
            self._metrics.record_issuance(success=True)
        logger.info(f"Issued credential {published.id} for request {request_id}")
        return published, vc_jwt

    def _record_failure(self, request_id: str, error: Exception) -> None:
        message = str(error) or error.__class__.__name__
        logger.warning(f"Issuing request {request_id} failed: {message}")
        if self._metrics:
            self._metrics.record_issuance(success=False)
        try:
            self._ledger.transition_to_failed(request_id, message)
        except VCLedgerError as record_error:
            logger.error(f"Could not mark request {request_id} as failed: {record_error}")

    def sign_claims(
        self,
        issuer_id: str,
        subject_did: str,
        claims: Optional[Dict[str, Any]] = None,
        types: Optional[List[str]] = None,
        lifetime: Optional[int] = None,
    ) -> str:
        """
        Sign a credential directly, outside the request flow.

        Nothing is recorded in the ledger or the published store.

        Raises:
            ValidationFailed: If subject_did is empty or claims sets ``id``.
            IssuerNotFound / NotManaged: If the issuer cannot sign.
        """
        if not subject_did:
            raise ValidationFailed("subject DID required")
        if "id" in (claims or {}):
            raise ValidationFailed("claims may not set id")
        subject = {"id": subject_did, **(claims or {})}

        with self._directory.signing_key(issuer_id) as (issuer, key):
            credential = self.build_credential(issuer.did, subject, types)
            payload = self.build_payload(
                issuer,
                subject_did,
                credential,
                lifetime if lifetime is not None else self.adhoc_credential_ttl,
            )
            return sign_jwt(payload, key)
