#!/usr/bin/env python3
"""
vcledger API server.

Exposes the credential lifecycle over HTTP for the wallet UI and verifiers.

Usage:
    # Start the server
    vcledger serve

    # Or with uvicorn directly
    uvicorn vcledger.server:app --host 127.0.0.1 --port 3000

Endpoints:
    GET  /health                    - Health check
    GET  /issuers                   - List issuers (public fields)
    GET  /issuer/{issuerId}         - Issuer public information
    POST /register-issuer           - Create a managed issuer
    POST /register-external-issuer  - Register an external issuer's public key
    POST /request-issue             - Holder requests a credential
    GET  /requests                  - List requests (?status=&issuerId=&holderAddress=)
    GET  /requests/{id}             - One request
    POST /requests/{id}/issue       - Issuer signs a requested credential
    GET  /vcs                       - Published credentials (?issuerId=&holderAddress=)
    GET  /vcs/{id}                  - One published credential
    POST /verify                    - Verify a VC-JWT
    GET  /metrics                   - Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field, field_validator

from vcledger import __version__
from vcledger.config import CORS_ORIGINS, Settings
from vcledger.did import is_hex_address
from vcledger.exceptions import (
    DuplicateIssuer,
    InvalidState,
    NotFound,
    StorageError,
    VCLedgerError,
    ValidationFailed,
)
from vcledger.keys import DEFAULT_CURVE
from vcledger.service import Services, build_services

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
ERROR_STATUS = (
    (NotFound, 404),
    (InvalidState, 409),
    (DuplicateIssuer, 409),
    (ValidationFailed, 422),
    (StorageError, 500),
)


def status_for(error: VCLedgerError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    return 400


# =============================================================================
# Pydantic Models
# =============================================================================


def _check_address(value: str) -> str:
    if not is_hex_address(value):
        raise ValueError("must be 0x followed by 40 hex characters")
    return value


class RegisterIssuerBody(BaseModel):
    """Create a managed issuer."""

    issuerId: str = Field(..., min_length=1)
    address: str
    chainId: Optional[int] = None
    curve: str = DEFAULT_CURVE

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _check_address(value)


class RegisterExternalIssuerBody(BaseModel):
    """Register an issuer that keeps its own private key."""

    issuerId: str = Field(..., min_length=1)
    did: str = Field(..., min_length=1)
    address: str
    publicJwk: Dict[str, Any]

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _check_address(value)


class RequestIssueBody(BaseModel):
    """Holder's credential request."""

    holderAddress: str
    issuerId: str = Field(..., min_length=1)
    claims: Dict[str, Any] = Field(default_factory=dict)
    credentialType: Optional[str] = None

    @field_validator("holderAddress")
    @classmethod
    def check_holder_address(cls, value: str) -> str:
        return _check_address(value)


class VerifyBody(BaseModel):
    """Token to verify. Kept loose so bad input yields {ok: false, reason}."""

    vcJwt: Optional[Any] = None


# =============================================================================
# Application
# =============================================================================


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI application around a set of services.

    Args:
        services: Wired components. Built from the environment if not provided.
    """
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services.settings.seed_default_issuers:
            created = services.directory.ensure_default_issuers()
            for issuer in created:
                logger.info(f"Seeded default issuer {issuer.issuer_id}")
        yield

    app = FastAPI(title="vcledger", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VCLedgerError)
    async def handle_ledger_error(request: Request, exc: VCLedgerError):
        return JSONResponse(
            status_code=status_for(exc), content={"error": str(exc), "code": exc.code}
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=422, content={"error": problems, "code": ValidationFailed.code}
        )

    @app.get("/health")
    def health():
        return {"ok": True, "version": __version__}

    # -------------------------------------------------------------------------
    # Issuers
    # -------------------------------------------------------------------------

    @app.get("/issuers")
    def list_issuers():
        return {"issuers": [i.public_view() for i in services.directory.list_issuers()]}

    @app.get("/issuer/{issuer_id}")
    def get_issuer(issuer_id: str):
        return services.directory.get_issuer(issuer_id).public_view()

    @app.post("/register-issuer")
    def register_issuer(body: RegisterIssuerBody):
        issuer = services.directory.create_managed_issuer(
            body.issuerId, address=body.address, chain_id=body.chainId, curve=body.curve
        )
        return issuer.public_view()

    @app.post("/register-external-issuer")
    def register_external_issuer(body: RegisterExternalIssuerBody):
        issuer = services.directory.register_external_issuer(
            body.issuerId, did=body.did, address=body.address, public_jwk=body.publicJwk
        )
        return {"ok": True, "issuer": issuer.public_view()}

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    @app.post("/request-issue")
    def request_issue(body: RequestIssueBody):
        request = services.ledger.create(
            body.holderAddress, body.issuerId, body.claims, credential_type=body.credentialType
        )
        return {"ok": True, "request": request.to_dict()}

    @app.get("/requests")
    def list_requests(
        status: Optional[str] = None,
        issuerId: Optional[str] = None,
        holderAddress: Optional[str] = None,
    ):
        requests = services.ledger.list(
            status=status, issuer_id=issuerId, holder_address=holderAddress
        )
        return {"requests": [r.to_dict() for r in requests]}

    @app.get("/requests/{request_id}")
    def get_request(request_id: str):
        return {"request": services.ledger.get(request_id).to_dict()}

    @app.post("/requests/{request_id}/issue")
    def issue_request(request_id: str):
        published, vc_jwt = services.signer.issue(request_id)
        return {"ok": True, "vcJwt": vc_jwt, "published": published.to_dict()}

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    @app.get("/vcs")
    def list_vcs(issuerId: Optional[str] = None, holderAddress: Optional[str] = None):
        vcs = services.published.list(issuer_id=issuerId, holder_address=holderAddress)
        return {"vcs": [v.to_dict() for v in vcs]}

    @app.get("/vcs/{vc_id}")
    def get_vc(vc_id: str):
        return {"vc": services.published.get(vc_id).to_dict()}

    @app.post("/verify")
    def verify(body: VerifyBody):
        if not isinstance(body.vcJwt, str) or not body.vcJwt:
            return JSONResponse(
                status_code=400,
                content={"ok": False, "reason": "vcJwt required", "code": ValidationFailed.code},
            )
        result = services.verifier.verify(body.vcJwt)
        return JSONResponse(status_code=200 if result.ok else 400, content=result.to_dict())

    @app.get("/metrics")
    def metrics():
        return Response(
            content=services.metrics.get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST
        )

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================


def main(
    host: Optional[str] = None,
    port: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Run the API server, over services built from settings when given."""
    import uvicorn

    application = create_app(build_services(settings)) if settings else app
    settings = application.state.services.settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )
    uvicorn.run(
        application,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
