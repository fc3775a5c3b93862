"""
Credential Registry Service
===========================

Wires the registry, the encryption gateway, the content store and the
issuance orchestrator together from configuration:
- Backend API
- Holder tooling
"""

import logging
from typing import Any, Dict, Optional

from .config import RegistrySettings, settings as default_settings
from .content_store import ContentStore, create_content_store
from .encryption import EncryptedRecord, EncryptionGateway
from .issuance import IssuanceOrchestrator, IssuanceResult, RetryPolicy
from .models import Address, Credential, CredentialType
from .registry import CredentialRegistry

logger = logging.getLogger(__name__)


class CredentialService:
    """
    Main service class for credential operations

    Provides a unified interface for:
    - Issuer and credential type management
    - Confidential credential issuance
    - Credential lookup and retrieval
    """

    def __init__(
        self,
        owner: Optional[Address] = None,
        settings: Optional[RegistrySettings] = None,
        store: Optional[ContentStore] = None,
        gateway: Optional[EncryptionGateway] = None
    ):
        """
        Initialize the service

        Args:
            owner: Registry owner address (defaults to OWNER_ADDRESS)
            settings: Configuration (defaults to the module settings)
            store: Content store (defaults to the configured backend)
            gateway: Encryption gateway
        """
        self.settings = settings or default_settings

        owner = owner or self.settings.OWNER_ADDRESS
        if not owner:
            raise ValueError("Registry owner not configured (set CREDREG_OWNER_ADDRESS)")

        self.registry = CredentialRegistry(owner)
        self.gateway = gateway if gateway is not None else EncryptionGateway()
        self.store = store if store is not None else create_content_store(self.settings)
        self.orchestrator = IssuanceOrchestrator(
            registry=self.registry,
            gateway=self.gateway,
            store=self.store,
            retry_policy=RetryPolicy(
                max_attempts=self.settings.PUBLISH_MAX_ATTEMPTS,
                backoff_seconds=self.settings.RETRY_BACKOFF_SECONDS,
                max_backoff_seconds=self.settings.RETRY_MAX_BACKOFF_SECONDS
            )
        )
        logger.info(
            "Credential service started (owner=%s, store=%s)",
            owner, type(self.store).__name__
        )

    @property
    def owner(self) -> Address:
        return self.registry.owner

    # ==================== ROLES & TYPES ====================

    def add_issuer(self, caller: Address, address: Address) -> bool:
        return self.registry.add_issuer(caller, address)

    def is_issuer(self, address: Address) -> bool:
        return self.registry.is_issuer(address)

    def add_credential_type(self, caller: Address, name: str) -> int:
        return self.registry.add_credential_type(caller, name)

    def get_credential_type(self, credential_type_id: int) -> CredentialType:
        return self.registry.get_credential_type(credential_type_id)

    # ==================== CREDENTIALS ====================

    def issue(
        self,
        issuer: Address,
        credential_type_id: int,
        holder: Address,
        holder_public_key: str,
        document: bytes
    ) -> IssuanceResult:
        """Encrypt, publish and record a credential document"""
        return self.orchestrator.issue_with_hash(
            issuer, credential_type_id, holder, holder_public_key, document
        )

    def retrieve(self, credential_id: int, holder_private_key: str) -> bytes:
        return self.orchestrator.retrieve(credential_id, holder_private_key)

    def fetch_record(self, credential_id: int) -> EncryptedRecord:
        """Encrypted record of a credential, for holders decrypting locally"""
        return self.orchestrator.fetch_record(self.registry.get_credential(credential_id))

    def get_credential(self, credential_id: int) -> Credential:
        return self.registry.get_credential(credential_id)

    def get_credentials_by_holder_count(self, holder: Address) -> int:
        return self.registry.get_credentials_by_holder_count(holder)

    def get_credential_by_holder(self, holder: Address, index: int) -> Credential:
        return self.registry.get_credential_by_holder(holder, index)

    # ==================== LIFECYCLE ====================

    def get_statistics(self) -> Dict[str, Any]:
        """Get overall service statistics"""
        return {
            "ledger": self.registry.get_statistics(),
            "events": len(self.registry.events),
            "store": type(self.store).__name__
        }

    def close(self) -> None:
        self.store.close()
        logger.info("Credential service stopped")
