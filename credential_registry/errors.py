"""
Credential Registry Errors
==========================

Error kinds raised by the ledger, the encryption gateway and the
content store clients. Every error can carry the pipeline ``stage``
it was raised from so callers can tell which step failed.
"""

from typing import Optional


class CredentialRegistryError(Exception):
    """
    Base class for all registry errors

    Attributes:
        message: Human-readable error message
        stage: Pipeline stage that failed (encrypt, publish, record,
            resolve, fetch, decrypt), set by the orchestrator
    """

    retryable = False

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


# ==================== LEDGER ====================

class PermissionDenied(CredentialRegistryError):
    """Caller lacks the role required by the operation"""


class NotFound(CredentialRegistryError):
    """Unknown credential id, credential type id or content hash"""


class IndexOutOfRange(CredentialRegistryError):
    """Holder-index lookup beyond the holder's credential count"""


# ==================== CRYPTOGRAPHY ====================

class CryptoError(CredentialRegistryError):
    """Base class for encryption gateway failures"""


class InvalidKey(CryptoError):
    """Public or private key is malformed"""


class DecryptionFailed(CryptoError):
    """Record was not produced for this key, or failed its integrity check"""


# ==================== CONTENT STORE ====================

class StoreError(CredentialRegistryError):
    """Base class for content store failures"""


class StoreUnavailable(StoreError):
    """Transport or network failure talking to the store"""

    retryable = True


class ContentIntegrityError(StoreError):
    """Store returned bytes (or a hash) that do not match the content hash"""


__all__ = [
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
