"""
Credential Registry
===================

Permissioned, append-only ledger of issuer roles, credential types and
issued credentials.

The registry is a single serialized state machine: every mutation runs
inside one critical section, so ids are allocated in a total order and
a credential record and its holder-index entry are always committed
together. Reads take the same lock and observe a committed snapshot.

The acting address is always passed explicitly as ``caller``.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from .errors import IndexOutOfRange, NotFound, PermissionDenied
from .events import EventLog, LedgerEvent, LedgerEventType
from .models import Address, Credential, CredentialType
from .roles import Capability, RoleTable

logger = logging.getLogger(__name__)


class CredentialRegistry:
    """
    Ledger of issuers, credential types and credentials

    Features:
    - Owner-managed issuer roles
    - Issuer-authored credential types
    - Credentials indexed by id and by holder
    - Event log for external observers
    """

    def __init__(self, owner: Address, event_log: Optional[EventLog] = None):
        if not owner:
            raise ValueError("Registry owner address is required")

        self._roles = RoleTable(owner)
        self._credential_types: List[CredentialType] = []
        self._credentials: List[Credential] = []
        self._holder_index: Dict[Address, List[int]] = {}
        self._lock = threading.Lock()
        self.events = event_log if event_log is not None else EventLog()

    @property
    def owner(self) -> Address:
        return self._roles.owner

    # ==================== ROLES ====================

    def has_capability(self, address: Address, capability: Capability) -> bool:
        with self._lock:
            return self._roles.has_capability(address, capability)

    def add_issuer(self, caller: Address, address: Address) -> bool:
        """
        Grant the issuer capability to an address

        Args:
            caller: Address performing the call, must be the owner
            address: Address to mark as issuer

        Returns:
            True if newly added, False if it already was an issuer

        Raises:
            PermissionDenied: caller is not the owner
        """
        with self._lock:
            if not self._roles.has_capability(caller, Capability.OWNER):
                raise PermissionDenied(f"Only the owner can add issuers: {caller}")

            added = self._roles.grant(address, Capability.ISSUER)
            event = None
            if added:
                event = self.events.record(
                    LedgerEventType.ISSUER_ADDED, issuer=address
                )

        if event is not None:
            logger.info("Issuer added: %s", address)
            self.events.notify(event)
        return added

    def is_issuer(self, address: Address) -> bool:
        return self.has_capability(address, Capability.ISSUER)

    def list_issuers(self) -> List[Address]:
        with self._lock:
            return self._roles.members(Capability.ISSUER)

    # ==================== CREDENTIAL TYPES ====================

    def add_credential_type(self, caller: Address, name: str) -> int:
        """
        Define a new credential type owned by the calling issuer

        Args:
            caller: Address performing the call, must be an issuer
            name: Credential type name

        Returns:
            Id of the new credential type

        Raises:
            PermissionDenied: caller is not an issuer
        """
        with self._lock:
            if not self._roles.has_capability(caller, Capability.ISSUER):
                raise PermissionDenied(f"Only issuers can add credential types: {caller}")

            type_id = len(self._credential_types)
            credential_type = CredentialType(id=type_id, issuer=caller, name=name)
            self._credential_types.append(credential_type)

            event = self.events.record(
                LedgerEventType.CREDENTIAL_TYPE_ADDED,
                id=type_id,
                issuer=caller,
                name=name
            )

        logger.info("Credential type %d (%s) added by %s", type_id, name, caller)
        self.events.notify(event)
        return type_id

    def get_credential_type(self, credential_type_id: int) -> CredentialType:
        with self._lock:
            return self._resolve_type(credential_type_id)

    def get_credential_type_count(self) -> int:
        with self._lock:
            return len(self._credential_types)

    # ==================== CREDENTIALS ====================

    def issue_credential(
        self,
        caller: Address,
        credential_type_id: int,
        holder: Address,
        content_hash: str
    ) -> int:
        """
        Record an issued credential

        The credential record and the holder-index entry are written in
        the same critical section, after all checks have passed.

        Args:
            caller: Address performing the call, must own the credential type
            credential_type_id: Credential type to issue under
            holder: Address the credential is issued to
            content_hash: Content hash of the encrypted credential document

        Returns:
            Id of the new credential

        Raises:
            NotFound: credential type does not exist
            PermissionDenied: caller is not the type's issuer
        """
        with self._lock:
            credential_type = self._resolve_type(credential_type_id)
            if credential_type.issuer != caller:
                raise PermissionDenied(
                    f"{caller} is not the issuer of credential type {credential_type_id}"
                )

            credential_id = len(self._credentials)
            credential = Credential(
                id=credential_id,
                credential_type_id=credential_type.id,
                holder=holder,
                content_hash=content_hash
            )
            self._credentials.append(credential)
            self._holder_index.setdefault(holder, []).append(credential_id)

            event = self.events.record(
                LedgerEventType.CREDENTIAL_ISSUED,
                id=credential_id,
                credentialTypeId=credential_type.id,
                holder=holder,
                contentHash=content_hash
            )

        logger.info(
            "Credential %d issued under type %d to %s (%s)",
            credential_id, credential_type.id, holder, content_hash
        )
        self.events.notify(event)
        return credential_id

    def get_credential(self, credential_id: int) -> Credential:
        with self._lock:
            return self._resolve_credential(credential_id)

    def get_credential_count(self) -> int:
        with self._lock:
            return len(self._credentials)

    def get_credentials_by_holder_count(self, holder: Address) -> int:
        """Number of credentials issued to a holder, 0 if unknown"""
        with self._lock:
            return len(self._holder_index.get(holder, ()))

    def get_credential_by_holder(self, holder: Address, index: int) -> Credential:
        """
        Get the holder's credential at a position in issuance order

        Raises:
            IndexOutOfRange: index is negative or >= the holder's count
        """
        with self._lock:
            ids = self._holder_index.get(holder, [])
            if index < 0 or index >= len(ids):
                raise IndexOutOfRange(
                    f"Holder {holder} has {len(ids)} credentials, no index {index}"
                )
            return self._credentials[ids[index]]

    def get_credentials_by_holder(self, holder: Address) -> List[Credential]:
        """All credentials of a holder in issuance order"""
        with self._lock:
            return [self._credentials[i] for i in self._holder_index.get(holder, ())]

    # ==================== UTILITIES ====================

    def get_events(self, event_type: Optional[LedgerEventType] = None) -> List[LedgerEvent]:
        return self.events.events(event_type)

    def get_statistics(self) -> Dict[str, Any]:
        """Get ledger statistics"""
        with self._lock:
            return {
                "owner": self.owner,
                "issuers": len(self._roles.members(Capability.ISSUER)),
                "credential_types": len(self._credential_types),
                "credentials": len(self._credentials),
                "holders": len(self._holder_index)
            }

    def _resolve_type(self, credential_type_id: int) -> CredentialType:
        """Look up a credential type (caller holds the lock)"""
        if not _valid_id(credential_type_id, len(self._credential_types)):
            raise NotFound(f"Credential type not found: {credential_type_id}")
        return self._credential_types[credential_type_id]

    def _resolve_credential(self, credential_id: int) -> Credential:
        if not _valid_id(credential_id, len(self._credentials)):
            raise NotFound(f"Credential not found: {credential_id}")
        return self._credentials[credential_id]


def _valid_id(value: Any, count: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < count
