"""Append-only record of every credential actually issued."""

import logging
import uuid
from typing import List, Optional

from vcledger.exceptions import NotFound, StorageError
from vcledger.models import IssueRequest, PublishedVC, utc_now
from vcledger.storage import CollectionStore, MemoryStore

logger = logging.getLogger(__name__)


class PublishedVCStore:
    """
    Published credentials, queryable by issuer or holder.

    Records are only ever inserted: there is no update or delete.
    """

    def __init__(self, store: Optional[CollectionStore] = None):
        self._store = store or MemoryStore(key_field="id")

    def publish(self, request: IssueRequest, vc_jwt: str) -> PublishedVC:
        """Append a credential issued for request under a fresh id."""
        return self.add(
            PublishedVC(
                id=str(uuid.uuid4()),
                issued_at=utc_now(),
                issuer_id=request.issuer_id,
                holder_address=request.holder_address,
                holder_did=request.holder_did,
                vc_jwt=vc_jwt,
                request_id=request.id,
            )
        )

    def add(self, vc: PublishedVC) -> PublishedVC:
        """
        Raises:
            StorageError: If a record with the same id was already published.
        """
        if not self._store.insert(vc.to_dict()):
            raise StorageError(f"published credential {vc.id} already exists")
        logger.info(f"Published credential {vc.id} from {vc.issuer_id} to {vc.holder_address}")
        return vc

    def get(self, vc_id: str) -> PublishedVC:
        data = self._store.find(vc_id)
        if data is None:
            raise NotFound(f"credential not found: {vc_id}")
        return PublishedVC.from_dict(data)

    def list(
        self, issuer_id: Optional[str] = None, holder_address: Optional[str] = None
    ) -> List[PublishedVC]:
        """Matching credentials, newest first. Holder addresses compare case-insensitively."""
        holder = holder_address.lower() if holder_address else None
        results = []
        for data in reversed(self._store.list()):
            if issuer_id and data.get("issuerId") != issuer_id:
                continue
            if holder and str(data.get("holderAddress", "")).lower() != holder:
                continue
            results.append(PublishedVC.from_dict(data))
        return results
