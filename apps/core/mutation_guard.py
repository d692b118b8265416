"""
Mutation Guard

Write authorization as an explicit table of rules keyed by
(entity type, operation). Reads never pass through here; they are governed
by ``tenant_scope``.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from django.db import models

from .context import get_client_ip
from .identity import ResolvedIdentity, as_organization_id
from .models import OrganizationMembership
from .tenant_scope import EntityType

security_logger = logging.getLogger("security.audit")


class Operation(models.TextChoices):
    READ_LIST = 'read_list', 'Read list'
    READ_ONE = 'read_one', 'Read one'
    CREATE = 'create', 'Create'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'


READ_OPERATIONS = frozenset({Operation.READ_LIST, Operation.READ_ONE})
WRITE_OPERATIONS = frozenset({Operation.CREATE, Operation.UPDATE, Operation.DELETE})


class Reason:
    MISSING_TENANT_CONTEXT = 'missing_tenant_context'
    FORBIDDEN_CROSS_TENANT_WRITE = 'forbidden_cross_tenant_write'
    INSUFFICIENT_ROLE = 'insufficient_role'
    SUPERADMIN_REQUIRED = 'superadmin_required'
    UNSUPPORTED_OPERATION = 'unsupported_operation'
    INVALID_ROLE = 'invalid_role'
    ALREADY_MEMBER = 'already_member'
    TENANT_MISMATCH = 'tenant_mismatch'


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> 'Decision':
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> 'Decision':
        return cls(False, reason)


@dataclass(frozen=True)
class Rule:
    kind: str
    roles: FrozenSet[str] = frozenset()

    SUPERADMIN_ONLY = 'superadmin_only'
    ANY_MEMBER = 'any_member'
    ROLES = 'roles'
    UNSUPPORTED = 'unsupported'


superadmin_only = Rule(Rule.SUPERADMIN_ONLY)
any_member = Rule(Rule.ANY_MEMBER)
unsupported = Rule(Rule.UNSUPPORTED)


def roles(*names) -> Rule:
    return Rule(Rule.ROLES, frozenset(names))


Role = OrganizationMembership.RoleChoices
MANAGER_ROLES = (Role.OWNER, Role.ADMIN)
ASSIGNABLE_ROLES = frozenset(Role.values)

_TENANT_ROW_KINDS = (
    EntityType.CLIENT,
    EntityType.PROJECT,
    EntityType.TASK,
    EntityType.INVOICE,
    EntityType.INVOICE_LINE_ITEM,
    EntityType.ATTACHMENT,
)

MUTATION_RULES = {
    (EntityType.ORGANIZATION, Operation.CREATE): superadmin_only,
    (EntityType.ORGANIZATION, Operation.UPDATE): roles(*MANAGER_ROLES),
    (EntityType.ORGANIZATION, Operation.DELETE): superadmin_only,

    (EntityType.MEMBERSHIP, Operation.CREATE): roles(*MANAGER_ROLES),
    (EntityType.MEMBERSHIP, Operation.UPDATE): unsupported,
    (EntityType.MEMBERSHIP, Operation.DELETE): roles(*MANAGER_ROLES),

    **{
        (kind, operation): any_member
        for kind in _TENANT_ROW_KINDS
        for operation in WRITE_OPERATIONS
    },
}

# Writes that act on no existing tenant: the organization is being created.
_TENANTLESS = frozenset({(EntityType.ORGANIZATION, Operation.CREATE)})


def authorize_mutation(
    identity: ResolvedIdentity,
    entity_type,
    operation,
    target_organization_id,
    target_role: Optional[str] = None,
    current_role: Optional[str] = None,
) -> Decision:
    """
    Decide whether ``identity`` may perform ``operation`` on ``entity_type`` in a tenant.

    For membership writes ``target_role`` is the role being granted and
    ``current_role`` the role the user already holds there, if any. Only an
    owner (or a superadmin) may grant the owner role or change an owner.
    """
    kind = EntityType(entity_type)
    operation = Operation(operation)

    rule = MUTATION_RULES.get((kind, operation))
    if rule is None or rule.kind == Rule.UNSUPPORTED:
        return _denied(identity, kind, operation, target_organization_id, Reason.UNSUPPORTED_OPERATION)

    if kind == EntityType.MEMBERSHIP and operation == Operation.CREATE:
        if target_role not in ASSIGNABLE_ROLES:
            return _denied(identity, kind, operation, target_organization_id, Reason.INVALID_ROLE)

    org_id = None
    if target_organization_id not in (None, ''):
        try:
            org_id = as_organization_id(target_organization_id)
        except (TypeError, ValueError):
            org_id = None

    if org_id is None and (kind, operation) not in _TENANTLESS:
        return _denied(identity, kind, operation, target_organization_id, Reason.MISSING_TENANT_CONTEXT)

    if identity.is_superadmin:
        return Decision.allow()

    if rule.kind == Rule.SUPERADMIN_ONLY:
        return _denied(identity, kind, operation, org_id, Reason.SUPERADMIN_REQUIRED)

    role = identity.role_in(org_id)
    if role is None:
        return _denied(identity, kind, operation, org_id, Reason.FORBIDDEN_CROSS_TENANT_WRITE)

    if rule.kind == Rule.ROLES and role not in rule.roles:
        return _denied(identity, kind, operation, org_id, Reason.INSUFFICIENT_ROLE)

    if kind == EntityType.MEMBERSHIP and Role.OWNER in (target_role, current_role) and role != Role.OWNER:
        return _denied(identity, kind, operation, org_id, Reason.INSUFFICIENT_ROLE)

    return Decision.allow()


def authorize_self_service_organization(identity: ResolvedIdentity) -> Decision:
    """
    First-time onboarding: an actor with no membership may create one
    organization and becomes its owner.
    """
    if identity.has_memberships:
        return _denied(
            identity, EntityType.ORGANIZATION, Operation.CREATE, None, Reason.ALREADY_MEMBER
        )
    return Decision.allow()


def _denied(identity, kind, operation, organization_id, reason) -> Decision:
    security_logger.info(
        "mutation_denied actor=%s entity=%s operation=%s organization=%s reason=%s ip=%s",
        identity.actor_id,
        kind.value,
        operation.value,
        organization_id,
        reason,
        get_client_ip(),
        extra={
            'event_type': 'mutation_denied',
            'user_id': str(identity.actor_id),
            'reason': reason,
        },
    )
    return Decision.deny(reason)
