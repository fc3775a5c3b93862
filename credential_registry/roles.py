"""
Identity & Role Table
=====================

Tracks which addresses hold the owner and issuer capabilities.
Roles are plain set memberships, looked up through ``has_capability``.
"""

from enum import Enum
from typing import Dict, List, Set

from .models import Address


class Capability(Enum):
    """Capabilities an address can hold"""
    OWNER = "owner"
    ISSUER = "issuer"


class RoleTable:
    """
    Capability sets keyed by capability

    Not thread-safe on its own; the registry serializes access.
    """

    def __init__(self, owner: Address):
        self._members: Dict[Capability, Set[Address]] = {
            capability: set() for capability in Capability
        }
        self._members[Capability.OWNER].add(owner)
        self.owner = owner

    def has_capability(self, address: Address, capability: Capability) -> bool:
        return address in self._members[capability]

    def grant(self, address: Address, capability: Capability) -> bool:
        """
        Grant a capability

        Returns:
            True if newly granted, False if the address already held it
        """
        members = self._members[capability]
        if address in members:
            return False
        members.add(address)
        return True

    def members(self, capability: Capability) -> List[Address]:
        return sorted(self._members[capability])
