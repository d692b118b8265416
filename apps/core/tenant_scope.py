"""
Tenant Scope Calculator

Pure function from a resolved identity to the read predicate every list and
detail query must carry. No database access happens here; the result is
rendered to a Django ``Q`` only at the query boundary.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from django.db import models
from django.db.models import Q

from .exceptions import Unauthenticated
from .identity import ResolvedIdentity, as_organization_id


class EntityType(models.TextChoices):
    ORGANIZATION = 'organization', 'Organization'
    MEMBERSHIP = 'membership', 'Organization membership'
    USER = 'user', 'User'
    CLIENT = 'client', 'Client'
    PROJECT = 'project', 'Project'
    TASK = 'task', 'Task'
    INVOICE = 'invoice', 'Invoice'
    INVOICE_LINE_ITEM = 'invoice_line_item', 'Invoice line item'
    ATTACHMENT = 'attachment', 'Attachment'


# Lookup path from each entity to the organization id it belongs to.
# Line items have no tenant column: their tenant is always read through the invoice.
ENTITY_TENANT_PATHS = {
    EntityType.ORGANIZATION: 'id',
    EntityType.MEMBERSHIP: 'organization_id',
    EntityType.USER: 'organization_memberships__organization_id',
    EntityType.CLIENT: 'organization_id',
    EntityType.PROJECT: 'organization_id',
    EntityType.TASK: 'organization_id',
    EntityType.INVOICE: 'organization_id',
    EntityType.INVOICE_LINE_ITEM: 'invoice__organization_id',
    EntityType.ATTACHMENT: 'organization_id',
}


def tenant_path_for(entity_type) -> str:
    return ENTITY_TENANT_PATHS[EntityType(entity_type)]


@dataclass(frozen=True)
class ScopeFilter:
    """
    ``kind`` is one of ``unrestricted``, ``organizations`` or ``empty``.
    ``organization_ids`` is sorted so equal inputs give equal filters.
    """

    kind: str
    organization_ids: Tuple[uuid.UUID, ...] = ()

    UNRESTRICTED = 'unrestricted'
    ORGANIZATIONS = 'organizations'
    EMPTY = 'empty'

    @classmethod
    def unrestricted(cls) -> 'ScopeFilter':
        return cls(cls.UNRESTRICTED)

    @classmethod
    def empty(cls) -> 'ScopeFilter':
        return cls(cls.EMPTY)

    @classmethod
    def organizations(cls, organization_ids: Iterable[uuid.UUID]) -> 'ScopeFilter':
        ids = tuple(sorted(set(organization_ids), key=str))
        if not ids:
            return cls.empty()
        return cls(cls.ORGANIZATIONS, ids)

    @property
    def is_unrestricted(self) -> bool:
        return self.kind == self.UNRESTRICTED

    @property
    def is_empty(self) -> bool:
        return self.kind == self.EMPTY

    def allows(self, organization_id) -> bool:
        if self.is_unrestricted:
            return True
        if self.is_empty or organization_id is None:
            return False
        try:
            return as_organization_id(organization_id) in self.organization_ids
        except (TypeError, ValueError):
            return False

    def as_q(self, tenant_path: str = 'organization_id') -> Q:
        if self.is_unrestricted:
            return Q()
        if self.is_empty:
            return Q(pk__in=[])
        return Q(**{f'{tenant_path}__in': list(self.organization_ids)})


def scope_filter(
    identity: ResolvedIdentity,
    entity_type,
    requested_organization_id=None,
) -> ScopeFilter:
    """
    Compute the read scope of ``identity`` for ``entity_type``.

    - superadmin: unrestricted, or exactly ``requested_organization_id``
      when one is given.
    - member: the union of their organizations, or only the requested one
      when it is among them; a requested organization outside the
      memberships yields an empty filter, not an error.
    - no memberships: empty.

    The same policy applies to every entity type; ``entity_type`` is
    validated here so an unknown entity cannot be queried unscoped.
    """
    if identity is None:
        raise Unauthenticated()
    EntityType(entity_type)

    requested: Optional[uuid.UUID] = None
    if requested_organization_id not in (None, ''):
        try:
            requested = as_organization_id(requested_organization_id)
        except (TypeError, ValueError):
            return ScopeFilter.empty()

    if identity.is_superadmin:
        if requested is not None:
            return ScopeFilter.organizations([requested])
        return ScopeFilter.unrestricted()

    member_of = identity.organization_ids
    if requested is not None:
        if requested in member_of:
            return ScopeFilter.organizations([requested])
        return ScopeFilter.empty()
    return ScopeFilter.organizations(member_of)


def scope_q(identity, entity_type, requested_organization_id=None) -> Q:
    """Shortcut: the scope rendered against the entity's tenant path."""
    return scope_filter(identity, entity_type, requested_organization_id).as_q(
        tenant_path_for(entity_type)
    )
