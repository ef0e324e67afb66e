"""Error hierarchy for issuance, storage and verification."""


class VCLedgerError(Exception):
    """Base exception for all credential ledger errors."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)

    @property
    def message(self) -> str:
        return str(self)


class NotFound(VCLedgerError):
    """Requested record does not exist."""

    code = "not_found"


class IssuerNotFound(NotFound):
    """No issuer is registered under that issuerId."""

    code = "issuer_not_found"


class RequestNotFound(NotFound):
    """No issue request exists under that id."""

    code = "request_not_found"


class DuplicateIssuer(VCLedgerError):
    """An issuer with that issuerId already exists and replacement is disabled."""

    code = "duplicate_issuer"


class InvalidState(VCLedgerError):
    """Issue request is not in a state that allows the transition."""

    code = "invalid_state"


class KeyUnavailable(VCLedgerError):
    """Signing key is missing or cannot be used with the requested algorithm."""

    code = "key_unavailable"


class NotManaged(KeyUnavailable):
    """Issuer is external; its private key is not held by this service."""

    code = "not_managed"


class ValidationFailed(VCLedgerError):
    """Input failed shape validation."""

    code = "validation_failed"


class StorageError(VCLedgerError):
    """Backing store could not be read or written."""

    code = "storage_error"


class MalformedToken(VCLedgerError):
    """Token is not a well-formed compact JWS with a JSON payload."""

    code = "malformed_token"


class IssuerDidMissing(VCLedgerError):
    """Token carries neither iss nor vc.issuer."""

    code = "issuer_did_missing"


class IssuerNotRegistered(VCLedgerError):
    """Token issuer DID does not match any registered issuer."""

    code = "issuer_not_registered"


class SignatureInvalid(VCLedgerError):
    """Signature or algorithm declaration does not verify against the issuer key."""

    code = "signature_invalid"


class CredentialExpired(VCLedgerError):
    """Credential is outside its nbf/exp validity window."""

    code = "credential_expired"
