"""Runtime settings, read from the environment (and .env when present)."""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "ZeroGate Compliance Workflow"
    environment: str = "dev"
    log_level: str = "INFO"
    request_id_header: str = "X-Request-Id"

    # Include tracebacks in 5xx bodies (the admin desk shows them verbatim)
    expose_error_details: bool = True

    # ─────────── DATABASE ───────────
    database_url: str = "sqlite:///./zerogate.db"

    # ─────────── SESSIONS ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    session_token_minutes: int = 60
    wallet_email_domain: str = "wallet.zerogate.local"
    admin_wallets: List[str] = []
    allow_unsigned_connect: bool = True

    # ─────────── XRPL ───────────
    xrpl_rpc_url: str = "https://s.altnet.rippletest.net:51234"
    xrpl_issuer_seed: Optional[str] = None
    anchor_credentials_on_ledger: bool = False

    # ─────────── WORKFLOW ───────────
    # "purge" deletes credential + account on revoke, "soft" flips status
    revocation_mode: str = "purge"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
