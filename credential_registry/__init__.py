"""
Confidential Credential Registry
================================

Permissioned ledger of issuers, credential types and credentials, with
credential documents encrypted for their holder and kept off-ledger in
a content-addressable store.

Components:
- CredentialRegistry: Issuer roles, credential types, credentials
- EncryptionGateway: ECIES (secp256k1) encryption of documents
- ContentStore: Content-addressable blob storage (memory, IPFS)
- IssuanceOrchestrator: Encrypt -> publish -> record, and back
- KeyManager: secp256k1 key pairs
- CredentialService: Wiring from configuration
"""

from .errors import (
    CredentialRegistryError,
    PermissionDenied,
    NotFound,
    IndexOutOfRange,
    CryptoError,
    InvalidKey,
    DecryptionFailed,
    StoreError,
    StoreUnavailable,
    ContentIntegrityError,
)
from .models import Address, Credential, CredentialType
from .roles import Capability, RoleTable
from .events import EventLog, LedgerEvent, LedgerEventType
from .registry import CredentialRegistry
from .key_manager import KeyManager, KeyPair
from .encryption import EncryptionGateway, EncryptedRecord
from .content_store import (
    ContentStore,
    InMemoryContentStore,
    IPFSContentStore,
    content_hash,
    create_content_store,
)
from .issuance import IssuanceOrchestrator, IssuanceResult, RetryPolicy
from .service import CredentialService

__version__ = "1.0.0"
__all__ = [
    # Ledger
    "Address",
    "Capability",
    "RoleTable",
    "CredentialRegistry",
    "Credential",
    "CredentialType",
    "EventLog",
    "LedgerEvent",
    "LedgerEventType",

    # Keys & encryption
    "KeyManager",
    "KeyPair",
    "EncryptionGateway",
    "EncryptedRecord",

    # Storage
    "ContentStore",
    "InMemoryContentStore",
    "IPFSContentStore",
    "content_hash",
    "create_content_store",

    # Issuance
    "IssuanceOrchestrator",
    "IssuanceResult",
    "RetryPolicy",
    "CredentialService",

    # Errors
    "CredentialRegistryError",
    "PermissionDenied",
    "NotFound",
    "IndexOutOfRange",
    "CryptoError",
    "InvalidKey",
    "DecryptionFailed",
    "StoreError",
    "StoreUnavailable",
    "ContentIntegrityError",
]
