"""
Shared pytest fixtures for vcledger tests.
"""

import pytest

from vcledger.config import Settings
from vcledger.directory import IssuerDirectory
from vcledger.ledger import RequestLedger
from vcledger.models import IssuerRecord
from vcledger.published import PublishedVCStore
from vcledger.service import Services, build_services

ACME_ADDRESS = "0x2A36FA11ed761C6febe12f84cC35c5B0cf0A5131"
HOLDER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
CHAIN_ID = 31337


@pytest.fixture
def settings(tmp_path) -> Settings:
    """In-memory settings; nothing touches disk."""
    return Settings(
        data_dir=str(tmp_path),
        storage_backend="memory",
        chain_id=CHAIN_ID,
        allow_issuer_replace=True,
        seed_default_issuers=False,
    )


@pytest.fixture
def services(settings: Settings) -> Services:
    """Fully wired, memory-backed services."""
    return build_services(settings)


@pytest.fixture
def directory(services: Services) -> IssuerDirectory:
    return services.directory


@pytest.fixture
def ledger(services: Services) -> RequestLedger:
    return services.ledger


@pytest.fixture
def published(services: Services) -> PublishedVCStore:
    return services.published


@pytest.fixture
def acme(directory: IssuerDirectory) -> IssuerRecord:
    """Managed issuer 'acme' on chain 31337."""
    return directory.create_managed_issuer("acme", address=ACME_ADDRESS, chain_id=CHAIN_ID)


@pytest.fixture
def holder_address() -> str:
    return HOLDER_ADDRESS


@pytest.fixture
def sample_claims() -> dict:
    """Claims a holder asks to have certified."""
    return {"role": "Engineer", "level": 3}
