"""Wiring of stores and components from a Settings snapshot."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from vcledger.cache import KeyCache
from vcledger.config import Settings
from vcledger.directory import IssuerDirectory
from vcledger.exceptions import ValidationFailed
from vcledger.ledger import RequestLedger
from vcledger.metrics import LedgerMetrics
from vcledger.published import PublishedVCStore
from vcledger.signer import CredentialSigner
from vcledger.storage import CollectionStore, JsonFileStore, MemoryStore
from vcledger.verifier import CredentialVerifier

logger = logging.getLogger(__name__)

# collection name -> (file name, key field)
COLLECTIONS = {
    "issuers": ("issuers.json", "issuerId"),
    "requests": ("requests.json", "id"),
    "vcs": ("vcs.json", "id"),
}


@dataclass
class Services:
    """Every component of one running ledger, sharing the same stores."""

    settings: Settings
    directory: IssuerDirectory
    ledger: RequestLedger
    published: PublishedVCStore
    signer: CredentialSigner
    verifier: CredentialVerifier
    metrics: LedgerMetrics


def open_store(settings: Settings, collection: str) -> CollectionStore:
    """Open the backing store of one logical collection."""
    filename, key_field = COLLECTIONS[collection]
    if settings.storage_backend == "memory":
        return MemoryStore(key_field=key_field)
    if settings.storage_backend == "file":
        return JsonFileStore(os.path.join(settings.data_dir, filename), key_field=key_field)
    raise ValidationFailed(f"unknown storage backend: {settings.storage_backend}")


def build_services(settings: Optional[Settings] = None) -> Services:
    """Create a fully wired set of components."""
    settings = settings or Settings.from_env()
    metrics = LedgerMetrics()

    directory = IssuerDirectory(
        store=open_store(settings, "issuers"),
        chain_id=settings.chain_id,
        allow_replace=settings.allow_issuer_replace,
        key_cache=KeyCache(default_ttl=settings.key_cache_ttl),
    )
    ledger = RequestLedger(
        directory=directory,
        store=open_store(settings, "requests"),
        chain_id=settings.chain_id,
    )
    published = PublishedVCStore(store=open_store(settings, "vcs"))
    signer = CredentialSigner(
        directory,
        ledger,
        published,
        credential_ttl=settings.credential_ttl,
        adhoc_credential_ttl=settings.adhoc_credential_ttl,
        metrics=metrics,
    )
    verifier = CredentialVerifier(
        directory, clock_skew_seconds=settings.clock_skew_seconds, metrics=metrics
    )

    logger.debug(f"Services built with {settings.storage_backend} storage at {settings.data_dir}")
    return Services(
        settings=settings,
        directory=directory,
        ledger=ledger,
        published=published,
        signer=signer,
        verifier=verifier,
        metrics=metrics,
    )
