"""
vcledger - issue and verify W3C Verifiable Credentials as signed JWTs.

Organizations register as issuers, holders request credentials, issuers sign
them with their managed keys and anyone can verify the result against the
issuer directory.
"""

__version__ = "0.4.0"

# Core issuance/verification
from .directory import IssuerDirectory
from .ledger import RequestLedger
from .published import PublishedVCStore
from .signer import CredentialSigner, sign_jwt
from .verifier import CredentialVerifier, VerificationResult, check_subject

# Records and keys
from .models import IssuerRecord, IssueRequest, PublishedVC, RequestStatus
from .keys import KeyPair, generate_keypair

# Wiring
from .config import Settings
from .service import Services, build_services
from .exceptions import VCLedgerError
from .metrics import LedgerMetrics


# HTTP server (lazy import so the core does not pull in FastAPI)
def __getattr__(name):
    """Lazy loading of the API server."""
    if name in ("create_app", "app"):
        from . import server

        return getattr(server, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "IssuerDirectory",
    "RequestLedger",
    "PublishedVCStore",
    "CredentialSigner",
    "sign_jwt",
    "CredentialVerifier",
    "VerificationResult",
    "check_subject",
    "IssuerRecord",
    "IssueRequest",
    "PublishedVC",
    "RequestStatus",
    "KeyPair",
    "generate_keypair",
    "Settings",
    "Services",
    "build_services",
    "VCLedgerError",
    "LedgerMetrics",
]
