"""
Cross-Cutting Query Composer

The single path every data access takes. It combines:

  1. the read scope (``tenant_scope``) as a mandatory outermost predicate,
  2. the tenant derivation of nested writes (``referential``),
  3. the write decision (``mutation_guard``),

and hands back either an ``ExecutableQuery`` or a ``Rejection``. Nothing the
caller passes in ``filters`` or ``payload`` can widen the scope: caller
filters are applied first and the scope last, and tenant fields in the
payload are only ever compared against the derived tenant.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from django.apps import apps
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from rest_framework.exceptions import NotFound, ValidationError

from .exceptions import (
    ForbiddenCrossTenantWrite,
    InsufficientRole,
    InvalidMutation,
    MissingTenantContext,
    TenantMismatch,
    TenantPolicyError,
)
from .identity import ResolvedIdentity, as_organization_id
from .mutation_guard import (
    Operation,
    READ_OPERATIONS,
    Reason,
    authorize_mutation,
    authorize_self_service_organization,
)
from .referential import DERIVED_TENANT_ENTITIES, CascadeDeleter, resolve_write_tenant
from .tenant_scope import EntityType, ScopeFilter, scope_filter, tenant_path_for

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    EntityType.ORGANIZATION: 'core.Organization',
    EntityType.MEMBERSHIP: 'core.OrganizationMembership',
    EntityType.USER: settings.AUTH_USER_MODEL,
    EntityType.CLIENT: 'clients.Client',
    EntityType.PROJECT: 'projects.Project',
    EntityType.TASK: 'tasks.Task',
    EntityType.INVOICE: 'invoices.Invoice',
    EntityType.INVOICE_LINE_ITEM: 'invoices.InvoiceLineItem',
    EntityType.ATTACHMENT: 'attachments.Attachment',
}


def model_for(entity_type):
    return apps.get_model(ENTITY_MODELS[EntityType(entity_type)])


def entity_type_for_model(model):
    """The ``EntityType`` stored in ``model``, or ``None`` for unscoped models."""
    for kind, label in ENTITY_MODELS.items():
        if apps.get_model(label) is model:
            return kind
    return None


def _same_organization(a, b):
    try:
        return as_organization_id(a) == as_organization_id(b)
    except (TypeError, ValueError):
        return False


# Set by the composer itself, never taken from a payload
COMPOSER_FIELDS = frozenset({'organization', 'created_by'})


def writable_fields(model):
    """Payload keys a write may carry: editable concrete fields other than the key."""
    names = set()
    for model_field in model._meta.concrete_fields:
        if model_field.primary_key or not model_field.editable or model_field.name in COMPOSER_FIELDS:
            continue
        names.update((model_field.name, model_field.attname))
    return names


# =============================================================================
# RESULTS
# =============================================================================

_REJECTION_EXCEPTIONS = {
    Reason.MISSING_TENANT_CONTEXT: MissingTenantContext,
    Reason.FORBIDDEN_CROSS_TENANT_WRITE: ForbiddenCrossTenantWrite,
    Reason.INSUFFICIENT_ROLE: InsufficientRole,
    Reason.SUPERADMIN_REQUIRED: InsufficientRole,
    Reason.UNSUPPORTED_OPERATION: InvalidMutation,
    Reason.INVALID_ROLE: InvalidMutation,
    Reason.ALREADY_MEMBER: InvalidMutation,
    Reason.TENANT_MISMATCH: TenantMismatch,
}


@dataclass(frozen=True)
class Rejection:
    code: str
    message: str = ''
    details: Any = None

    def to_exception(self):
        if self.code == 'not_found':
            return NotFound()
        if self.code == 'validation_error':
            return ValidationError(self.details or self.message)
        exc_class = _REJECTION_EXCEPTIONS.get(self.code, InvalidMutation)
        return exc_class(detail=self.message or None, reason=self.code)


@dataclass
class ExecutableQuery:
    entity_type: str
    operation: str
    model: Any
    scope: ScopeFilter
    queryset: Any = None
    instance: Any = None
    values: Dict[str, Any] = field(default_factory=dict)
    organization_id: Any = None

    def execute(self):
        if self.operation in READ_OPERATIONS:
            return self.queryset
        if self.operation == Operation.CREATE:
            return self._create()
        if self.operation == Operation.UPDATE:
            return self._update()
        return CascadeDeleter().delete(self.instance)

    def _create(self):
        if self.entity_type == EntityType.MEMBERSHIP:
            user = self.values['user']
            membership, created = self.model.objects.update_or_create(
                organization_id=self.organization_id,
                user_id=getattr(user, 'pk', user),
                defaults={'role': self.values['role']},
            )
            logger.info(
                "Membership %s: user=%s organization=%s role=%s",
                'created' if created else 'updated',
                membership.user_id, self.organization_id, membership.role,
            )
            return membership

        instance = self.model(**self.values)
        instance.full_clean()
        instance.save()
        return instance

    def _update(self):
        for attr, value in self.values.items():
            setattr(self.instance, attr, value)
        self.instance.full_clean()
        self.instance.save()
        return self.instance


# =============================================================================
# COMPOSER
# =============================================================================

class QueryComposer:
    """Builds every read and write for one resolved identity."""

    def __init__(self, identity: ResolvedIdentity):
        self.identity = identity

    # -- reads --------------------------------------------------------------

    def scope(self, entity_type, requested_organization_id=None) -> ScopeFilter:
        return scope_filter(self.identity, entity_type, requested_organization_id)

    def apply_scope(self, queryset, entity_type, requested_organization_id=None):
        """AND the scope onto ``queryset`` as its outermost filter."""
        scope = self.scope(entity_type, requested_organization_id)
        queryset = queryset.filter(scope.as_q(tenant_path_for(entity_type)))
        if EntityType(entity_type) == EntityType.USER:
            queryset = queryset.distinct()
        return queryset

    def _read(self, kind, operation, pk, requested_organization_id, filters, queryset):
        model = model_for(kind)
        qs = queryset if queryset is not None else model._default_manager.all()
        if filters:
            qs = qs.filter(filters) if isinstance(filters, Q) else qs.filter(**filters)
        if operation == Operation.READ_ONE:
            qs = qs.filter(pk=pk)
        scope = self.scope(kind, requested_organization_id)
        qs = qs.filter(scope.as_q(tenant_path_for(kind)))
        if kind == EntityType.USER:
            qs = qs.distinct()
        return ExecutableQuery(
            entity_type=kind,
            operation=operation,
            model=model,
            scope=scope,
            queryset=qs,
        )

    # -- writes -------------------------------------------------------------

    def locate(self, entity_type, pk):
        """
        Find the target of an update/delete inside the actor's scope.
        Missing and out-of-scope rows look the same to non-superadmins.
        """
        kind = EntityType(entity_type)
        model = model_for(kind)
        try:
            instance = self.apply_scope(model._default_manager.filter(pk=pk), kind).first()
        except (ValueError, TypeError, DjangoValidationError):
            instance = None
        if instance is not None:
            return instance
        if self.identity.is_superadmin:
            return Rejection('not_found', 'Not found.')
        return Rejection(Reason.FORBIDDEN_CROSS_TENANT_WRITE)

    def _write(self, kind, operation, pk, organization_id, payload, target_role):
        model = model_for(kind)
        payload = dict(payload or {})
        declared = organization_id
        for key in ('organization', 'organization_id'):
            if key in payload:
                value = payload.pop(key)
                if declared in (None, ''):
                    declared = value
                elif value not in (None, '') and not _same_organization(value, declared):
                    return Rejection(Reason.TENANT_MISMATCH, TenantMismatch.default_detail)

        unwritable = sorted(key for key in payload if key not in writable_fields(model))
        if unwritable:
            return Rejection('validation_error', 'Invalid input.',
                             {key: ['This field cannot be written.'] for key in unwritable})

        instance = None
        if operation in (Operation.UPDATE, Operation.DELETE):
            if pk is None:
                return Rejection(Reason.UNSUPPORTED_OPERATION, 'A target record is required.')
            located = self.locate(kind, pk)
            if isinstance(located, Rejection):
                return located
            instance = located

        try:
            tenant, references = self._resolve_tenant(kind, operation, payload, declared, instance)
        except TenantPolicyError as exc:
            return Rejection(exc.reason, str(exc.detail))
        except ValidationError as exc:
            return Rejection('validation_error', 'Invalid input.', exc.detail)

        current_role = None
        if kind == EntityType.MEMBERSHIP and operation == Operation.CREATE:
            target_role = target_role or payload.get('role')
            current_role = self._current_role(tenant, payload.get('user'))

        decision = authorize_mutation(self.identity, kind, operation, tenant, target_role, current_role)
        if not decision.allowed:
            return Rejection(decision.reason)

        if (
            operation == Operation.CREATE
            and kind != EntityType.ORGANIZATION
            and not self._organization_exists(tenant)
        ):
            return Rejection('validation_error', 'Organization does not exist.',
                             {'organization': ['Organization does not exist.']})

        values = {**payload, **references}
        if operation == Operation.CREATE:
            if kind not in DERIVED_TENANT_ENTITIES and kind != EntityType.ORGANIZATION:
                values['organization_id'] = tenant
            if any(f.name == 'created_by' for f in model._meta.get_fields()):
                values.setdefault('created_by_id', self.identity.actor_id)

        return ExecutableQuery(
            entity_type=kind,
            operation=operation,
            model=model,
            scope=self.scope(kind),
            instance=instance,
            values=values,
            organization_id=tenant,
        )

    def _resolve_tenant(self, kind, operation, payload, declared, instance):
        if kind == EntityType.ORGANIZATION:
            return (instance.pk if instance is not None else None), {}

        if kind == EntityType.MEMBERSHIP:
            tenant = instance.organization_id if instance is not None else None
            if declared not in (None, ''):
                try:
                    declared_id = as_organization_id(declared)
                except (TypeError, ValueError):
                    raise MissingTenantContext()
                if tenant is not None and declared_id != tenant:
                    raise TenantMismatch()
                tenant = tenant or declared_id
            return tenant, {}

        if operation == Operation.DELETE:
            return instance.organization_id, {}

        resolution = resolve_write_tenant(kind, payload, declared, instance)
        return resolution.organization_id, resolution.references

    @staticmethod
    def _current_role(organization_id, user):
        if organization_id is None or user is None:
            return None
        OrganizationMembership = apps.get_model('core', 'OrganizationMembership')
        try:
            return OrganizationMembership.objects.filter(
                organization_id=organization_id, user_id=getattr(user, 'pk', user),
            ).values_list('role', flat=True).first()
        except (ValueError, TypeError, DjangoValidationError):
            return None

    @staticmethod
    def _organization_exists(organization_id):
        Organization = apps.get_model('core', 'Organization')
        return organization_id is not None and Organization.objects.filter(pk=organization_id).exists()

    # -- entry point --------------------------------------------------------

    def compose(
        self,
        entity_type,
        operation,
        *,
        pk=None,
        organization_id=None,
        requested_organization_id=None,
        filters: Optional[Union[dict, Q]] = None,
        payload: Optional[dict] = None,
        target_role: Optional[str] = None,
        queryset=None,
    ) -> Union[ExecutableQuery, Rejection]:
        kind = EntityType(entity_type)
        operation = Operation(operation)

        if operation in READ_OPERATIONS:
            return self._read(kind, operation, pk, requested_organization_id, filters, queryset)
        return self._write(kind, operation, pk, organization_id, payload, target_role)

    def compose_self_service_organization(self, payload: dict) -> Union['SelfServiceOrganization', Rejection]:
        decision = authorize_self_service_organization(self.identity)
        if not decision.allowed:
            return Rejection(decision.reason, 'You already belong to an organization.')
        return SelfServiceOrganization(self.identity, dict(payload or {}))


def raise_rejection(result):
    """Raise a ``Rejection`` as its exception; pass anything else through."""
    if isinstance(result, Rejection):
        raise result.to_exception()
    return result


def run(query):
    """Execute a composed query or raise the exception its rejection maps to."""
    return raise_rejection(query).execute()


class SelfServiceOrganization:
    """Creates an organization and makes its creator the owner, atomically."""

    def __init__(self, identity: ResolvedIdentity, values: dict):
        self.identity = identity
        self.values = values

    def execute(self):
        Organization = apps.get_model('core', 'Organization')
        OrganizationMembership = apps.get_model('core', 'OrganizationMembership')

        with transaction.atomic():
            organization = Organization(**self.values)
            organization.full_clean()
            organization.save()
            OrganizationMembership.objects.create(
                organization=organization,
                user_id=self.identity.actor_id,
                role=OrganizationMembership.RoleChoices.OWNER,
            )
        logger.info(
            "Self-service organization %s created by %s", organization.pk, self.identity.actor_id
        )
        return organization
