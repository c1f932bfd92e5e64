"""
Scope Resolver

Turns the authenticated actor into the tenant boundary every segmentation
query is intersected with:

- ``OrganizationScope``: actor belongs to an organization, works on org data
- ``PersonalScope``: actor works on their own records only

Scopes are plain values passed explicitly through every call. They are
resolved once per request from a freshly loaded actor and never cached,
because organization membership can change between requests.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from app.services.segments.errors import Unauthenticated
from app.services.segments.predicates import Comparison, CompareOp


@dataclass(frozen=True)
class ActorIdentity:
    """What the scope provider knows about the caller."""

    user_id: int
    organization_id: Optional[int] = None
    org_role: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_user(cls, user: Any) -> "ActorIdentity":
        return cls(
            user_id=user.id,
            organization_id=user.organization_id,
            org_role=user.org_role,
            is_active=bool(user.is_active),
        )


@dataclass(frozen=True)
class PersonalScope:
    actor_id: int

    @property
    def tenant_id(self) -> None:
        return None

    def predicate(self) -> Comparison:
        return Comparison("owner_id", CompareOp.EQ, self.actor_id)


@dataclass(frozen=True)
class OrganizationScope:
    actor_id: int
    tenant_id: int

    def predicate(self) -> Comparison:
        return Comparison("organization_id", CompareOp.EQ, self.tenant_id)


Scope = Union[PersonalScope, OrganizationScope]


def resolve_scope(actor: Optional[ActorIdentity]) -> Scope:
    """Resolve the caller's scope, or raise ``Unauthenticated``."""
    if actor is None or actor.user_id is None:
        raise Unauthenticated()
    if not actor.is_active:
        raise Unauthenticated("User account is disabled")
    if actor.organization_id is not None:
        return OrganizationScope(actor_id=actor.user_id, tenant_id=actor.organization_id)
    return PersonalScope(actor_id=actor.user_id)


def ownership_values(scope: Scope) -> dict[str, Optional[int]]:
    """Scope columns to stamp on a newly created segment or offer."""
    return {"owner_id": scope.actor_id, "organization_id": scope.tenant_id}
