"""
Ledger Records
==============

Fixed-shape records tracked by the credential registry. All records are
immutable once created.
"""

from dataclasses import dataclass
from typing import Any, Dict

# Opaque participant identifier (owner, issuer or holder)
Address = str


@dataclass(frozen=True)
class CredentialType:
    """A named category of credential, owned by the issuer that created it"""
    id: int
    issuer: Address
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "issuer": self.issuer,
            "name": self.name
        }


@dataclass(frozen=True)
class Credential:
    """
    An issued credential

    Links a holder and a credential type to the content hash of the
    encrypted credential document kept off-ledger.
    """
    id: int
    credential_type_id: int
    holder: Address
    content_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "credentialTypeId": self.credential_type_id,
            "holder": self.holder,
            "contentHash": self.content_hash
        }
