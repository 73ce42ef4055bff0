"""
Caller identity as seen by the matching engine.

Authentication happens elsewhere; the engine trusts whatever the
IdentityProvider resolves.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from core.errors import PermissionDenied


class Role(str, Enum):
    REQUESTER = "requester"
    PROVIDER_STAFF = "provider-staff"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: Role
    provider_id: Optional[Any] = None  # set for provider staff

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMINISTRATOR


class IdentityProvider(ABC):
    @abstractmethod
    def resolve(self, user_id: str) -> Caller:
        """Return the caller for ``user_id`` or raise PermissionDenied."""
        pass

    @abstractmethod
    def staff_for_provider(self, provider_id: Any) -> List[str]:
        """User ids of the staff who act for ``provider_id``."""
        pass


class StaticIdentityProvider(IdentityProvider):
    """In-memory identity registry."""

    def __init__(self, callers: Optional[List[Caller]] = None):
        self._callers: Dict[str, Caller] = {}
        for caller in callers or []:
            self.register(caller)

    def register(self, caller: Caller) -> None:
        self._callers[caller.user_id] = caller

    def resolve(self, user_id: str) -> Caller:
        caller = self._callers.get(user_id)
        if caller is None:
            raise PermissionDenied(f"Unknown user: {user_id}")
        return caller

    def staff_for_provider(self, provider_id: Any) -> List[str]:
        return [
            c.user_id for c in self._callers.values()
            if c.role == Role.PROVIDER_STAFF and c.provider_id == provider_id
        ]
