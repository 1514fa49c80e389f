"""
Protocol definitions for coursemark's external collaborators.

Defines the interface contracts the sync layer depends on:
- IdentityResolver: the login provider, consumed as an opaque {id, email}
- RemoteStateService: the sectioned state service (SyncClient, or a fake)
- RosterProvider: a live source of a cross-feature roster
- CacheProtocol: the local persisted cache (LocalCache)
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from .types import Identity


@dataclass
class RemoteState:
    """Successful response to a state read."""
    state: Optional[dict]
    planner_id: Optional[str] = None
    last_updated: Optional[str] = None


@dataclass
class SaveReceipt:
    """Successful response to a state write."""
    planner_id: Optional[str] = None
    updated_at: Optional[str] = None


@runtime_checkable
class IdentityResolver(Protocol):
    """Resolves the signed-in account, or None when nobody is signed in."""

    def resolve_identity(self) -> Optional[Identity]: ...


@runtime_checkable
class RemoteStateService(Protocol):
    """
    Request/response exchange with the remote state service.

    Implemented by:
    - SyncClient (HTTP)
    - in-memory fakes in tests
    """

    def get_state(self, identity: Identity) -> RemoteState: ...

    def set_state(self, identity: Identity, state: dict) -> SaveReceipt: ...


@runtime_checkable
class RosterProvider(Protocol):
    """Live, in-memory roster owned by another feature."""

    def roster(self) -> Any: ...


@runtime_checkable
class CacheProtocol(Protocol):
    """Structured key/value cache (see LocalCache)."""

    def get_json(self, key: str) -> Any: ...

    def set_json(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def is_empty(self, key: str) -> bool: ...


class StaticIdentityResolver:
    """Identity fixed at construction (from config or environment)."""

    def __init__(self, member_id: Optional[str], email: Optional[str] = None):
        self._member_id = (member_id or "").strip()
        self._email = (email or "").strip()

    def resolve_identity(self) -> Optional[Identity]:
        if not self._member_id:
            return None
        return Identity(id=self._member_id, email=self._email)
