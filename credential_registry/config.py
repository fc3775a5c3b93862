"""
config.py - Central configuration for the credential registry
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistrySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CREDREG_",
        env_file=".env",  # Can also be loaded from a .env file
        extra="ignore",
    )

    # Ledger
    OWNER_ADDRESS: Optional[str] = None

    # Content store
    STORE_BACKEND: str = "memory"  # memory | ipfs
    IPFS_API_URL: str = "http://127.0.0.1:5001"
    IPFS_TIMEOUT: float = 10.0
    IPFS_PIN: bool = True

    # Retry of StoreUnavailable at the orchestrator boundary
    PUBLISH_MAX_ATTEMPTS: int = 3
    RETRY_BACKOFF_SECONDS: float = 0.5
    RETRY_MAX_BACKOFF_SECONDS: float = 5.0

    LOG_LEVEL: str = "INFO"


settings = RegistrySettings()
