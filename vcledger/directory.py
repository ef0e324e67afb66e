"""
Issuer directory.

Holds every IssuerRecord and is the only owner of managed issuers' private
keys. Private keys are imported fresh for each signing operation and never
cached; public keys are cached per issuer and invalidated whenever the
issuer record is replaced.
"""

import hashlib
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from jwcrypto import jwk

from vcledger.cache import KeyCache
from vcledger.config import ALLOW_ISSUER_REPLACE, DEFAULT_CHAIN_ID, KEY_CACHE_TTL
from vcledger.did import ethr_did, random_address, require_address
from vcledger.exceptions import DuplicateIssuer, IssuerNotFound, NotManaged, ValidationFailed
from vcledger.keys import (
    DEFAULT_CURVE,
    generate_keypair,
    load_private_key,
    load_public_key,
    public_jwk_only,
)
from vcledger.models import IssuerRecord, utc_now
from vcledger.storage import CollectionStore, MemoryStore

logger = logging.getLogger(__name__)

# Demo issuers created by ensure_default_issuers()
DEFAULT_ISSUERS: Tuple[Dict[str, Any], ...] = (
    {
        "issuer_id": "companyB",
        "address": "0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131",
        "chain_id": 31337,
    },
)


def jwk_fingerprint(public_jwk: Dict[str, Any]) -> str:
    """Stable digest of a JWK, used to tag cache entries."""
    canonical = json.dumps(public_jwk, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

class IssuerDirectory:
    """
    Registry of managed and external issuers.

    Example:
        >>> directory = IssuerDirectory()
        >>> issuer = directory.create_managed_issuer(
        ...     "acme", address="0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131", chain_id=31337
        ... )
        >>> issuer.did
        'did:ethr:eip155:31337:0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131'
    """

    def __init__(
        self,
        store: Optional[CollectionStore] = None,
        chain_id: int = DEFAULT_CHAIN_ID,
        allow_replace: bool = ALLOW_ISSUER_REPLACE,
        key_cache: Optional[KeyCache] = None,
    ):
        """
        Initialize the directory.

        Args:
            store: Collection keyed by issuerId. In-memory if not provided.
            chain_id: Chain id used when a caller does not pass one.
            allow_replace: If True, creating an issuer with an existing issuerId
                replaces it (last write wins); otherwise DuplicateIssuer is raised.
            key_cache: Cache for imported public keys.
        """
        self._store = store or MemoryStore(key_field="issuerId")
        self.chain_id = chain_id
        self.allow_replace = allow_replace
        self._public_keys = key_cache or KeyCache(default_ttl=KEY_CACHE_TTL)

    @property
    def key_cache(self) -> KeyCache:
        return self._public_keys

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_issuer(self, record: IssuerRecord, replace: Optional[bool] = None) -> IssuerRecord:
        """
        Store record, replacing any existing record with the same issuerId.

        Raises:
            DuplicateIssuer: If the issuerId exists and replacement is disabled.
        """
        replace = self.allow_replace if replace is None else replace
        data = record.to_dict()

        if replace:
            self._store.upsert(data)
        elif not self._store.insert(data):
            raise DuplicateIssuer(f"issuer already exists: {record.issuer_id}")

        # The record may carry a new key; never serve the old one again
        self._public_keys.invalidate(record.issuer_id)
        return record

    def create_managed_issuer(
        self,
        issuer_id: str,
        address: Optional[str] = None,
        chain_id: Optional[int] = None,
        curve: str = DEFAULT_CURVE,
        replace: Optional[bool] = None,
    ) -> IssuerRecord:
        """
        Create an issuer whose private key is held by this service.

        Args:
            issuer_id: Primary key of the new issuer.
            address: Account address bound to the issuer. A random address is
                generated when omitted.
            chain_id: Chain id for the did:ethr DID.
            curve: Key curve; secp256k1 (ES256K) unless overridden.
            replace: Override the directory's replacement policy.

        Returns:
            The stored IssuerRecord.
        """
        if not issuer_id or not isinstance(issuer_id, str):
            raise ValidationFailed("issuerId required")
        address = require_address(address) if address is not None else random_address()
        chain_id = chain_id if chain_id is not None else self.chain_id

        pair = generate_keypair(curve)
        record = IssuerRecord(
            issuer_id=issuer_id,
            did=ethr_did(chain_id, address),
            address=address,
            public_jwk=pair.public_jwk,
            private_jwk=pair.private_jwk,
            managed=True,
            created_at=utc_now(),
        )
        self.upsert_issuer(record, replace=replace)
        logger.info(f"Created managed issuer {issuer_id} ({record.did}, {pair.alg})")
        return record

    def register_external_issuer(
        self,
        issuer_id: str,
        did: str,
        address: str,
        public_jwk: Dict[str, Any],
        replace: Optional[bool] = None,
    ) -> IssuerRecord:
        """
        Register an issuer that signs elsewhere; only its public key is stored.

        Raises:
            ValidationFailed: If the JWK carries private material or is unusable.
        """
        if not issuer_id or not isinstance(issuer_id, str):
            raise ValidationFailed("issuerId required")
        if not did or not isinstance(did, str):
            raise ValidationFailed("did required")
        require_address(address)

        record = IssuerRecord(
            issuer_id=issuer_id,
            did=did,
            address=address,
            public_jwk=public_jwk_only(public_jwk),
            managed=False,
            created_at=utc_now(),
        )
        self.upsert_issuer(record, replace=replace)
        logger.info(f"Registered external issuer {issuer_id} ({did})")
        return record

    def ensure_default_issuers(self, seeds=DEFAULT_ISSUERS) -> List[IssuerRecord]:
        """
        Create the seeded demo issuers that do not exist yet.

        Returns:
            The issuers created by this call (empty when all already exist).
        """
        created = []
        for seed in seeds:
            if self.find_issuer(seed["issuer_id"]) is not None:
                continue
            try:
                created.append(
                    self.create_managed_issuer(
                        seed["issuer_id"],
                        address=seed.get("address"),
                        chain_id=seed.get("chain_id"),
                        replace=False,
                    )
                )
            except DuplicateIssuer:
                logger.debug(f"Default issuer {seed['issuer_id']} created concurrently")
        return created

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_issuer(self, issuer_id: str) -> Optional[IssuerRecord]:
        data = self._store.find(issuer_id)
        return IssuerRecord.from_dict(data) if data else None

    def get_issuer(self, issuer_id: str) -> IssuerRecord:
        """
        Raises:
            IssuerNotFound: If no issuer has that issuerId.
        """
        issuer = self.find_issuer(issuer_id)
        if issuer is None:
            raise IssuerNotFound(f"issuer not found: {issuer_id}")
        return issuer

    def list_issuers(self) -> List[IssuerRecord]:
        return [IssuerRecord.from_dict(data) for data in self._store.list()]

    def find_by_did(self, did: str) -> Optional[IssuerRecord]:
        """First issuer whose DID equals did, or None."""
        for issuer in self.list_issuers():
            if issuer.did == did:
                return issuer
        return None

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def get_private_key(self, issuer_id: str) -> jwk.JWK:
        """
        Import the private signing key of a managed issuer.

        Raises:
            IssuerNotFound: If the issuer does not exist.
            NotManaged: If the issuer is external.
        """
        issuer = self.get_issuer(issuer_id)
        if not issuer.managed or issuer.private_jwk is None:
            raise NotManaged(f"issuer is not managed or missing private key: {issuer_id}")
        return load_private_key(issuer.private_jwk)

    @contextmanager
    def signing_key(self, issuer_id: str) -> Iterator[Tuple[IssuerRecord, jwk.JWK]]:
        """
        Borrow an issuer's private key for the duration of one signing operation.

        Example:
            >>> with directory.signing_key("acme") as (issuer, key):
            ...     token = sign_jwt(payload, key)
        """
        issuer = self.get_issuer(issuer_id)
        if not issuer.managed or issuer.private_jwk is None:
            raise NotManaged(f"issuer is not managed or missing private key: {issuer_id}")
        key = load_private_key(issuer.private_jwk)
        try:
            yield issuer, key
        finally:
            del key

    def get_public_key(self, issuer_id: str) -> jwk.JWK:
        """
        Public verification key of any issuer, managed or external.

        Raises:
            IssuerNotFound: If the issuer does not exist.
        """
        return self.public_key_for(self.get_issuer(issuer_id))

    def public_key_for(self, issuer: IssuerRecord) -> jwk.JWK:
        """Public key of an already-resolved issuer record, served from cache when current."""
        current = jwk_fingerprint(issuer.public_jwk)
        key = self._public_keys.get(issuer.issuer_id, current)
        if key is None:
            key = load_public_key(issuer.public_jwk)
            self._public_keys.set(issuer.issuer_id, current, key)
        return key

    def get_public_jwk(self, issuer_id: str) -> Dict[str, Any]:
        return dict(self.get_issuer(issuer_id).public_jwk)
