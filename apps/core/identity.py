"""
Identity Resolver

Turns an authenticated actor into two orthogonal facts:

  1. ``is_superadmin`` - a global grant (``authentication.UserRole``),
     never a role inside an organization.
  2. ``memberships`` - (organization, role) pairs from
     ``core.OrganizationMembership``.

SECURITY GUARANTEES:
- The superadmin lookup fails closed: any database error yields ``False``.
- A fail-closed result is never cached, so a transient error cannot pin an
  actor to the wrong tier.
- Cached identities are dropped when a grant, a membership or the session
  changes (see ``signals``).
"""

import logging
import uuid
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError

from .context import set_current_identity
from .exceptions import Unauthenticated

logger = logging.getLogger(__name__)


def as_organization_id(value) -> uuid.UUID:
    """Normalize an organization reference (UUID, str or Organization) to a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    pk = getattr(value, 'pk', None)
    if pk is not None:
        return as_organization_id(pk)
    return uuid.UUID(str(value))


@dataclass(frozen=True)
class Membership:
    organization_id: uuid.UUID
    role: str


@dataclass(frozen=True)
class ResolvedIdentity:
    actor_id: uuid.UUID
    is_superadmin: bool
    memberships: Tuple[Membership, ...] = ()

    @property
    def organization_ids(self) -> FrozenSet[uuid.UUID]:
        return frozenset(m.organization_id for m in self.memberships)

    @property
    def has_memberships(self) -> bool:
        return bool(self.memberships)

    def role_in(self, organization_id) -> Optional[str]:
        try:
            org_id = as_organization_id(organization_id)
        except (TypeError, ValueError):
            return None
        for membership in self.memberships:
            if membership.organization_id == org_id:
                return membership.role
        return None

    def is_member_of(self, organization_id) -> bool:
        return self.role_in(organization_id) is not None


# =============================================================================
# CACHE
# =============================================================================

class IdentityCache:
    """
    Shared cache of resolved identities, keyed by actor id.
    Backed by the default Django cache (Redis in production).
    """

    CACHE_PREFIX = 'identity:'

    @classmethod
    def _ttl(cls):
        return getattr(settings, 'IDENTITY_CACHE_TTL', 300)

    @classmethod
    def _make_key(cls, actor_id):
        return f"{cls.CACHE_PREFIX}{actor_id}"

    @classmethod
    def get(cls, actor_id) -> Optional[ResolvedIdentity]:
        return cache.get(cls._make_key(actor_id))

    @classmethod
    def set(cls, identity: ResolvedIdentity) -> None:
        cache.set(cls._make_key(identity.actor_id), identity, cls._ttl())

    @classmethod
    def invalidate(cls, actor_id) -> None:
        if actor_id is None:
            return
        cache.delete(cls._make_key(actor_id))
        logger.debug("Identity cache invalidated for actor %s", actor_id)


# =============================================================================
# LOOKUPS
# =============================================================================

def _lookup_superadmin(actor_id) -> Tuple[bool, bool]:
    """Returns ``(is_superadmin, lookup_succeeded)``."""
    from apps.authentication.models import UserRole

    try:
        granted = UserRole.objects.filter(
            user_id=actor_id,
            role=UserRole.RoleChoices.SUPERADMIN,
        ).exists()
    except DatabaseError:
        logger.exception(
            "Superadmin lookup failed for actor %s; treating as non-superadmin",
            actor_id,
        )
        return False, False
    return granted, True


def is_superadmin(actor_id) -> bool:
    """Global superadmin check. Never raises on lookup errors; returns False."""
    granted, _ = _lookup_superadmin(actor_id)
    return granted


def load_memberships(actor_id) -> Tuple[Membership, ...]:
    from .models import OrganizationMembership

    rows = (
        OrganizationMembership.objects
        .filter(user_id=actor_id)
        .order_by('organization_id')
        .values_list('organization_id', 'role')
    )
    return tuple(Membership(organization_id=org_id, role=role) for org_id, role in rows)


def resolve_identity(actor, use_cache=True) -> ResolvedIdentity:
    """
    Resolve ``actor`` (a user instance) into a ``ResolvedIdentity``.

    Raises ``Unauthenticated`` for a missing, anonymous or inactive actor.
    """
    if actor is None or not getattr(actor, 'is_authenticated', False):
        raise Unauthenticated()
    if not getattr(actor, 'is_active', False):
        raise Unauthenticated()

    actor_id = actor.pk
    if use_cache:
        cached = IdentityCache.get(actor_id)
        if cached is not None:
            return cached

    granted, lookup_ok = _lookup_superadmin(actor_id)
    identity = ResolvedIdentity(
        actor_id=actor_id,
        is_superadmin=granted,
        memberships=load_memberships(actor_id),
    )

    if use_cache and lookup_ok:
        IdentityCache.set(identity)
    return identity


def identity_for_request(request) -> ResolvedIdentity:
    """
    Per-request memo: resolves once per request and actor, then reuses the
    result for every later access during that request.
    """
    user = getattr(request, 'user', None)
    identity = getattr(request, '_resolved_identity', None)
    if identity is not None and identity.actor_id == getattr(user, 'pk', None):
        return identity

    identity = resolve_identity(user)
    request._resolved_identity = identity
    set_current_identity(identity)
    return identity
