"""
Issuance Orchestrator
=====================

Composes the encryption gateway, the content store and the registry.

Issue:    encrypt -> publish -> record on the ledger
Retrieve: resolve on the ledger -> fetch -> decrypt

The ledger is only written after a confirmed publish, and no lock is
held while talking to the store. Only StoreUnavailable is retried.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .content_store import ContentStore
from .encryption import EncryptedRecord, EncryptionGateway
from .errors import CredentialRegistryError, StoreUnavailable
from .models import Address, Credential
from .registry import CredentialRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Pipeline stages reported on errors
STAGE_ENCRYPT = "encrypt"
STAGE_PUBLISH = "publish"
STAGE_RECORD = "record"
STAGE_RESOLVE = "resolve"
STAGE_FETCH = "fetch"
STAGE_DECRYPT = "decrypt"


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for retryable store failures"""
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int) -> float:
        """Delay before the retry following ``attempt`` (1-based)"""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)


@dataclass(frozen=True)
class IssuanceResult:
    """Outcome of a successful issuance"""
    credential_id: int
    content_hash: str


class IssuanceOrchestrator:
    """
    Issues and retrieves confidential credentials

    Features:
    - Encrypt a document for the holder and publish it
    - Record the content hash on the ledger
    - Fetch and decrypt a holder's credential document
    """

    def __init__(
        self,
        registry: CredentialRegistry,
        gateway: EncryptionGateway,
        store: ContentStore,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.registry = registry
        self.gateway = gateway
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    # ==================== ISSUANCE ====================

    def issue(
        self,
        issuer: Address,
        credential_type_id: int,
        holder: Address,
        holder_public_key: str,
        document: bytes
    ) -> int:
        """
        Encrypt, publish and record a credential

        Args:
            issuer: Calling issuer, must own the credential type
            credential_type_id: Credential type to issue under
            holder: Holder address
            holder_public_key: Holder's secp256k1 public key (hex)
            document: Credential document bytes

        Returns:
            Id of the new credential
        """
        return self.issue_with_hash(
            issuer, credential_type_id, holder, holder_public_key, document
        ).credential_id

    def issue_with_hash(
        self,
        issuer: Address,
        credential_type_id: int,
        holder: Address,
        holder_public_key: str,
        document: bytes
    ) -> IssuanceResult:
        """Same as ``issue`` but also returns the published content hash"""
        content_hash = self.publish_document(holder_public_key, document)

        try:
            credential_id = self.registry.issue_credential(
                issuer, credential_type_id, holder, content_hash
            )
        except CredentialRegistryError as e:
            e.stage = STAGE_RECORD
            logger.warning(
                "Ledger rejected credential for %s, blob %s left unreferenced: %s",
                holder, content_hash, e.message
            )
            raise

        return IssuanceResult(credential_id=credential_id, content_hash=content_hash)

    def encrypt_document(self, public_key: str, document: bytes) -> bytes:
        """Encrypt a document and return the serialized EncryptedRecord"""
        try:
            return self.gateway.encrypt(public_key, document).serialize()
        except CredentialRegistryError as e:
            e.stage = STAGE_ENCRYPT
            raise

    def publish_document(self, public_key: str, document: bytes) -> str:
        """
        Encrypt a document and publish it to the store

        Returns:
            Content hash of the published EncryptedRecord
        """
        blob = self.encrypt_document(public_key, document)
        return self._with_retries(STAGE_PUBLISH, self.store.publish, blob)

    # ==================== RETRIEVAL ====================

    def retrieve(self, credential_id: int, holder_private_key: str) -> bytes:
        """
        Fetch and decrypt the document of a credential

        Fails with NotFound, StoreUnavailable or DecryptionFailed,
        whichever occurs first.
        """
        try:
            credential = self.registry.get_credential(credential_id)
        except CredentialRegistryError as e:
            e.stage = STAGE_RESOLVE
            raise
        return self.fetch_and_decrypt(credential.content_hash, holder_private_key)

    def retrieve_by_holder(self, holder: Address, index: int, holder_private_key: str) -> bytes:
        """Fetch and decrypt the holder's credential at ``index``"""
        try:
            credential = self.registry.get_credential_by_holder(holder, index)
        except CredentialRegistryError as e:
            e.stage = STAGE_RESOLVE
            raise
        return self.fetch_and_decrypt(credential.content_hash, holder_private_key)

    def fetch_record(self, credential: Credential) -> EncryptedRecord:
        """Fetch the encrypted record a credential references"""
        blob = self._with_retries(STAGE_FETCH, self.store.fetch, credential.content_hash)
        try:
            return EncryptedRecord.deserialize(blob)
        except CredentialRegistryError as e:
            e.stage = STAGE_DECRYPT
            raise

    def fetch_and_decrypt(self, content_hash: str, private_key: str) -> bytes:
        """Fetch a blob by hash and decrypt it"""
        blob = self._with_retries(STAGE_FETCH, self.store.fetch, content_hash)
        try:
            return self.gateway.decrypt_blob(private_key, blob)
        except CredentialRegistryError as e:
            e.stage = STAGE_DECRYPT
            raise

    # ==================== RETRIES ====================

    def _with_retries(self, stage: str, operation: Callable[..., T], *args) -> T:
        policy = self.retry_policy
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return operation(*args)
            except StoreUnavailable as e:
                e.stage = stage
                if attempt >= policy.max_attempts:
                    logger.error(
                        "Store %s failed after %d attempts: %s",
                        stage, attempt, e.message
                    )
                    raise
                delay = policy.delay(attempt)
                logger.warning(
                    "Store %s unavailable (attempt %d/%d), retrying in %.2fs: %s",
                    stage, attempt, policy.max_attempts, delay, e.message
                )
                self._sleep(delay)
            except CredentialRegistryError as e:
                e.stage = stage
                raise
