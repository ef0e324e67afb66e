"""
Issue request ledger.

Each request moves through a small state machine:

    requested --+--> issued   (terminal)
                +--> failed   (terminal)

Transitions for one request id are serialized by a per-request lock and
applied with the store's atomic update, so two concurrent issuance attempts
against the same request can never both succeed. A lock only lives while
some caller holds or waits for it.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from vcledger.config import DEFAULT_CHAIN_ID
from vcledger.did import pkh_did, require_address
from vcledger.directory import IssuerDirectory
from vcledger.exceptions import InvalidState, RequestNotFound, ValidationFailed
from vcledger.models import IssueRequest, RequestStatus, utc_now
from vcledger.storage import CollectionStore, MemoryStore

logger = logging.getLogger(__name__)

# credentialSubject fields filled in from the request itself
SUBJECT_FIELDS = ("id", "address")


class _RequestLock:
    """An RLock plus the number of callers currently using it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class RequestLedger:
    """
    Persists issue requests and enforces their state machine.

    Example:
        >>> ledger = RequestLedger(directory=directory)
        >>> req = ledger.create("0x70997970C51812dc3A010C7d01b50e0d17dc79C8", "acme", {"role": "Engineer"})
        >>> req.status
        <RequestStatus.REQUESTED: 'requested'>
    """

    def __init__(
        self,
        directory: IssuerDirectory,
        store: Optional[CollectionStore] = None,
        chain_id: int = DEFAULT_CHAIN_ID,
    ):
        self._directory = directory
        self._store = store or MemoryStore(key_field="id")
        self.chain_id = chain_id
        self._locks: Dict[str, _RequestLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, request_id: str) -> Iterator[None]:
        """Hold the lock of one request id; the entry is dropped by its last user."""
        with self._locks_guard:
            entry = self._locks.get(request_id)
            if entry is None:
                entry = self._locks[request_id] = _RequestLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[request_id]

    # -------------------------------------------------------------------------
    # Creation and queries
    # -------------------------------------------------------------------------

    def create(
        self,
        holder_address: str,
        issuer_id: str,
        claims: Optional[Dict[str, Any]] = None,
        credential_type: Optional[str] = None,
    ) -> IssueRequest:
        """
        Record a new request in the ``requested`` state.

        Raises:
            ValidationFailed: If holder_address is not an account address,
                claims is not a mapping, or claims sets a field taken from
                the request (id, address).
            IssuerNotFound: If issuer_id does not refer to an existing issuer.
        """
        require_address(holder_address, "holderAddress")
        if not issuer_id or not isinstance(issuer_id, str):
            raise ValidationFailed("issuerId required")
        if claims is not None and not isinstance(claims, dict):
            raise ValidationFailed("claims must be an object")
        reserved = sorted(set(claims or {}) & set(SUBJECT_FIELDS))
        if reserved:
            raise ValidationFailed(f"claims may not set {', '.join(reserved)}")
        self._directory.get_issuer(issuer_id)

        request = IssueRequest(
            id=str(uuid.uuid4()),
            holder_address=holder_address,
            holder_did=pkh_did(self.chain_id, holder_address),
            issuer_id=issuer_id,
            claims=dict(claims or {}),
            credential_type=credential_type,
            status=RequestStatus.REQUESTED,
            created_at=utc_now(),
        )
        self._store.insert(request.to_dict())
        logger.info(f"Request {request.id} created: {holder_address} -> {issuer_id}")
        return request

    def get(self, request_id: str) -> IssueRequest:
        """
        Raises:
            RequestNotFound: If no request has that id.
        """
        data = self._store.find(request_id)
        if data is None:
            raise RequestNotFound(f"request not found: {request_id}")
        return IssueRequest.from_dict(data)

    def list(
        self,
        status: Optional[str] = None,
        issuer_id: Optional[str] = None,
        holder_address: Optional[str] = None,
    ) -> List[IssueRequest]:
        """Requests matching every filter given, in creation order."""
        try:
            wanted = RequestStatus(status) if status else None
        except ValueError:
            raise ValidationFailed(f"unknown status: {status}")
        results = []
        for data in self._store.list():
            request = IssueRequest.from_dict(data)
            if wanted is not None and request.status is not wanted:
                continue
            if issuer_id and request.issuer_id != issuer_id:
                continue
            if holder_address and request.holder_address.lower() != holder_address.lower():
                continue
            results.append(request)
        return results

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @contextmanager
    def claim(self, request_id: str) -> Iterator[IssueRequest]:
        """
        Hold the request's lock while it is being processed.

        The request is checked to still be ``requested`` after the lock is
        acquired; a concurrent caller blocks until the first one finishes and
        then fails with InvalidState.

        Raises:
            RequestNotFound: If no request has that id.
            InvalidState: If the request is already terminal.
        """
        self.get(request_id)
        with self._locked(request_id):
            request = self.get(request_id)
            if request.status is not RequestStatus.REQUESTED:
                raise InvalidState(
                    f"request {request_id} is {request.status.value}, not {RequestStatus.REQUESTED.value}"
                )
            yield request

    def _transition(self, request_id: str, status: RequestStatus, **fields) -> IssueRequest:
        def apply(data: Dict[str, Any]) -> Dict[str, Any]:
            current = IssueRequest.from_dict(data)
            if current.status is not RequestStatus.REQUESTED:
                raise InvalidState(
                    f"request {request_id} is {current.status.value}, cannot move to {status.value}"
                )
            current.status = status
            current.updated_at = utc_now()
            for name, value in fields.items():
                setattr(current, name, value)
            return current.to_dict()

        with self._locked(request_id):
            data = self._store.update(request_id, apply)
        if data is None:
            raise RequestNotFound(f"request not found: {request_id}")
        logger.info(f"Request {request_id} -> {status.value}")
        return IssueRequest.from_dict(data)

    def transition_to_issued(self, request_id: str, vc_jwt: str) -> IssueRequest:
        """
        Mark a requested request as issued.

        Raises:
            RequestNotFound: If no request has that id.
            InvalidState: If the request is not ``requested``.
        """
        if not vc_jwt:
            raise ValidationFailed("vcJwt required")
        return self._transition(request_id, RequestStatus.ISSUED, result_vc_jwt=vc_jwt)

    def transition_to_failed(self, request_id: str, error_message: str) -> IssueRequest:
        """
        Mark a requested request as failed, recording the error for follow-up.

        Raises:
            RequestNotFound: If no request has that id.
            InvalidState: If the request is not ``requested``.
        """
        return self._transition(
            request_id, RequestStatus.FAILED, last_error=error_message or "unknown error"
        )
