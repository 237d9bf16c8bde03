# File: app/core/security/authorization.py

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Set


@dataclass(frozen=True)
class Permission:
    id: str
    name: str
    description: str


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Outcome of an authorization check. `reason` is only set on deny.
    """
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AuthorizationResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationResult":
        return cls(allowed=False, reason=reason)


class IAuthorizer(ABC):
    """
    Contract for the external permission layer.
    The storage feature only asks one question: may `actor` do `permission_id`?
    """
    @abstractmethod
    def authorize(self, actor: Any, permission_id: str) -> AuthorizationResult:
        pass


class AllowAllAuthorizer(IAuthorizer):
    """Used when no permission layer is wired in (local tools, tests)."""

    def authorize(self, actor: Any, permission_id: str) -> AuthorizationResult:
        return AuthorizationResult.allow()


class PermissionSetAuthorizer(IAuthorizer):
    """
    Static mapping of actor -> granted permission ids.
    """

    def __init__(self, grants: Optional[Dict[Any, Iterable[str]]] = None):
        self.grants: Dict[Any, Set[str]] = {
            actor: set(permission_ids) for actor, permission_ids in (grants or {}).items()
        }

    def grant(self, actor: Any, *permission_ids: str) -> None:
        self.grants.setdefault(actor, set()).update(permission_ids)

    def authorize(self, actor: Any, permission_id: str) -> AuthorizationResult:
        if actor is None:
            return AuthorizationResult.deny("Anonymous actors are not allowed")
        if permission_id in self.grants.get(actor, set()):
            return AuthorizationResult.allow()
        return AuthorizationResult.deny(f"Missing permission \"{permission_id}\"")
