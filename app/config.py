"""Application configuration from environment."""
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

# Load .env from project root (parent of app/) so env vars are available everywhere
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)


class Settings(BaseSettings):
    app_name: str = "OpenProposal Signing"
    app_env: str = "development"
    debug: bool = True

    database_url: str = "sqlite:///./openproposal.db"

    # Base for signing links sent to recipients: {app_base_url}/sign/{token}
    app_base_url: str = "http://localhost:3000"

    jwt_secret_key: str = "jwt-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    @field_validator("jwt_secret_key")
    @classmethod
    def strip_jwt_secret(cls, v: str) -> str:
        return (v or "").strip()

    mailgun_api_key: str = ""
    mailgun_domain: str = ""
    mailgun_base_url: str = "https://api.mailgun.net"
    mailgun_from_email: str = "noreply@openproposal.demo"
    mailgun_from_name: str = "OpenProposal"

    @field_validator("mailgun_api_key", "mailgun_domain", "mailgun_base_url", "mailgun_from_email", mode="before")
    @classmethod
    def strip_mailgun(cls, v: str) -> str:
        return (v or "").strip()

    # Document anchoring ledger (Base mainnet by default)
    blockchain_rpc_url: str = "https://mainnet.base.org"
    blockchain_private_key: str = ""
    blockchain_chain_id: int = 8453
    blockchain_chain_name: str = "Base"
    blockchain_explorer_url: str = "https://basescan.org"

    @field_validator("blockchain_rpc_url", "blockchain_private_key", mode="before")
    @classmethod
    def strip_blockchain(cls, v: str) -> str:
        return (v or "").strip()

    # Per-network RPC overrides for ethscriptions (empty = public default)
    ethscription_rpc_ethereum: str = ""
    ethscription_rpc_base: str = ""
    ethscription_rpc_arbitrum: str = ""
    ethscription_rpc_optimism: str = ""
    ethscription_rpc_polygon: str = ""

    anchor_confirmation_timeout_seconds: int = 120
    anchor_worker_threads: int = 4

    reconciler_enabled: bool = True
    reconciler_interval_minutes: int = 15

    class Config:
        env_file = str(_env_path)
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
