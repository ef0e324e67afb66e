# vcledger/config.py
"""
Centralized configuration for the credential ledger.

All configurable values are read from environment variables with sensible
defaults, so that different environments (dev, staging, production) can use
different settings without code changes.

Usage:
    from vcledger.config import CREDENTIAL_TTL, DEFAULT_CHAIN_ID

    settings = Settings.from_env()
    services = build_services(settings)

Environment Variables:
    VCLEDGER_DATA_DIR: Directory for the JSON-file backend (default: ./data)
    VCLEDGER_STORAGE: Storage backend, "file" or "memory" (default: file)
    VCLEDGER_CHAIN_ID: Chain id used in did:ethr / did:pkh (default: 31337)
    VCLEDGER_CREDENTIAL_TTL: Lifetime of request-driven credentials in seconds
    VCLEDGER_ADHOC_CREDENTIAL_TTL: Lifetime of ad-hoc credentials in seconds
    VCLEDGER_ALLOW_ISSUER_REPLACE: Last-write-wins issuer upsert (default: true)
"""

import os
from dataclasses import dataclass, asdict
from typing import Final

# =============================================================================
# Helpers
# =============================================================================


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Storage Configuration
# =============================================================================

# Directory holding issuers.json, requests.json and vcs.json
DATA_DIR: Final[str] = os.getenv("VCLEDGER_DATA_DIR", os.path.join(os.getcwd(), "data"))

# "file" persists to DATA_DIR, "memory" keeps everything in-process
STORAGE_BACKEND: Final[str] = os.getenv("VCLEDGER_STORAGE", "file")

# =============================================================================
# Identity Configuration
# =============================================================================

# Hardhat's local chain id
DEFAULT_CHAIN_ID: Final[int] = int(os.getenv("VCLEDGER_CHAIN_ID", "31337"))

# Re-creating an issuer with an existing issuerId replaces the record (and its keys)
ALLOW_ISSUER_REPLACE: Final[bool] = _env_bool("VCLEDGER_ALLOW_ISSUER_REPLACE", True)

# Seed the demo issuers when the server starts
SEED_DEFAULT_ISSUERS: Final[bool] = _env_bool("VCLEDGER_SEED_DEFAULT_ISSUERS", True)

# =============================================================================
# Credential Policy
# =============================================================================

# Credentials issued from an IssueRequest: 365 days
CREDENTIAL_TTL: Final[int] = int(os.getenv("VCLEDGER_CREDENTIAL_TTL", str(60 * 60 * 24 * 365)))

# Credentials signed directly via CredentialSigner.sign_claims: 24 hours
ADHOC_CREDENTIAL_TTL: Final[int] = int(
    os.getenv("VCLEDGER_ADHOC_CREDENTIAL_TTL", str(60 * 60 * 24))
)

# Seconds of clock drift tolerated for nbf/exp
CLOCK_SKEW_SECONDS: Final[int] = int(os.getenv("VCLEDGER_CLOCK_SKEW", "30"))

# Seconds a cached public key stays valid
KEY_CACHE_TTL: Final[int] = int(os.getenv("VCLEDGER_KEY_CACHE_TTL", "300"))

# =============================================================================
# Server Configuration
# =============================================================================

HOST: Final[str] = os.getenv("VCLEDGER_HOST", "127.0.0.1")
PORT: Final[int] = int(os.getenv("VCLEDGER_PORT", os.getenv("PORT", "3000")))
LOG_LEVEL: Final[str] = os.getenv("VCLEDGER_LOG_LEVEL", "INFO")

# Comma-separated list of origins allowed to call the API from a browser
CORS_ORIGINS: Final[list] = [
    origin.strip() for origin in os.getenv("VCLEDGER_CORS_ORIGINS", "*").split(",") if origin.strip()
]


@dataclass(frozen=True)
class Settings:
    """
    Snapshot of the configuration used to wire a set of services.

    The module-level constants are read once at import time; a Settings
    instance lets callers (tests, the CLI) override individual values.
    """

    data_dir: str = DATA_DIR
    storage_backend: str = STORAGE_BACKEND
    chain_id: int = DEFAULT_CHAIN_ID
    allow_issuer_replace: bool = ALLOW_ISSUER_REPLACE
    seed_default_issuers: bool = SEED_DEFAULT_ISSUERS
    credential_ttl: int = CREDENTIAL_TTL
    adhoc_credential_ttl: int = ADHOC_CREDENTIAL_TTL
    clock_skew_seconds: int = CLOCK_SKEW_SECONDS
    key_cache_ttl: int = KEY_CACHE_TTL
    host: str = HOST
    port: int = PORT
    log_level: str = LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        """Re-read every value from the current environment."""
        return cls(
            data_dir=os.getenv("VCLEDGER_DATA_DIR", os.path.join(os.getcwd(), "data")),
            storage_backend=os.getenv("VCLEDGER_STORAGE", "file"),
            chain_id=int(os.getenv("VCLEDGER_CHAIN_ID", "31337")),
            allow_issuer_replace=_env_bool("VCLEDGER_ALLOW_ISSUER_REPLACE", True),
            seed_default_issuers=_env_bool("VCLEDGER_SEED_DEFAULT_ISSUERS", True),
            credential_ttl=int(os.getenv("VCLEDGER_CREDENTIAL_TTL", str(60 * 60 * 24 * 365))),
            adhoc_credential_ttl=int(os.getenv("VCLEDGER_ADHOC_CREDENTIAL_TTL", str(60 * 60 * 24))),
            clock_skew_seconds=int(os.getenv("VCLEDGER_CLOCK_SKEW", "30")),
            key_cache_ttl=int(os.getenv("VCLEDGER_KEY_CACHE_TTL", "300")),
            host=os.getenv("VCLEDGER_HOST", "127.0.0.1"),
            port=int(os.getenv("VCLEDGER_PORT", os.getenv("PORT", "3000"))),
            log_level=os.getenv("VCLEDGER_LOG_LEVEL", "INFO"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================


def print_config(settings: Settings = None) -> None:
    """Print current configuration (useful for debugging)."""
    settings = settings or Settings.from_env()
    print("vcledger configuration:")
    for name, value in settings.to_dict().items():
        print(f"  {name.upper():<22} {value}")


if __name__ == "__main__":
    print_config()
