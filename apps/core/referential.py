"""
Referential Consistency Enforcer

Keeps every child row inside its parent's tenant:

- a child's organization is derived from its parent, never trusted from
  the caller;
- a parent or assignee from another organization is a ``TenantMismatch``;
- an existing row never changes organization;
- stored files live under ``{organization}/{projects|tasks}/{entity}/``
  and leave together with their rows (``CascadeDeleter``).
"""

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.apps import apps
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.storage import storages
from django.db import transaction
from django.db.models import Q
from kombu.exceptions import OperationalError
from rest_framework.exceptions import ValidationError

from .exceptions import MissingTenantContext, PartialCascadeFailure, TenantMismatch
from .identity import as_organization_id
from .tenant_scope import EntityType

logger = logging.getLogger(__name__)

ATTACHMENTS_STORAGE_ALIAS = 'attachments'


@dataclass(frozen=True)
class ParentLink:
    field: str
    model: str
    required: bool = False


PARENT_LINKS = {
    EntityType.PROJECT: (ParentLink('client', 'clients.Client'),),
    EntityType.TASK: (ParentLink('project', 'projects.Project'),),
    EntityType.INVOICE: (ParentLink('client', 'clients.Client'),),
    EntityType.INVOICE_LINE_ITEM: (ParentLink('invoice', 'invoices.Invoice', required=True),),
    EntityType.ATTACHMENT: (
        ParentLink('project', 'projects.Project'),
        ParentLink('task', 'tasks.Task'),
    ),
}

# User references that must point at a member of the row's organization
MEMBER_LINKS = {
    EntityType.TASK: ('assignee',),
}

# Entities whose tenant lives only on the parent
DERIVED_TENANT_ENTITIES = frozenset({EntityType.INVOICE_LINE_ITEM})


# =============================================================================
# DERIVATION / VALIDATION
# =============================================================================

def derive_child_tenant(parent) -> uuid.UUID:
    """Organization id a child of ``parent`` must carry."""
    if parent is None:
        raise MissingTenantContext()
    if parent._meta.label == 'core.Organization':
        return parent.pk
    organization_id = getattr(parent, 'organization_id', None)
    if organization_id is None:
        raise MissingTenantContext()
    return as_organization_id(organization_id)


def validate_child_tenant(child_organization_id, parent_organization_id) -> None:
    """Raise ``TenantMismatch`` unless both ids name the same organization."""
    try:
        child = as_organization_id(child_organization_id)
        parent = as_organization_id(parent_organization_id)
    except (TypeError, ValueError):
        raise TenantMismatch()
    if child != parent:
        raise TenantMismatch()


def _resolve_reference(field_name, model, value):
    if value is None or value == '':
        return None
    if isinstance(value, model):
        return value
    try:
        return model._default_manager.get(pk=value)
    except (model.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise ValidationError({field_name: [f"{model._meta.verbose_name.capitalize()} does not exist."]})


def _pop_reference(payload, field_name):
    """Read ``field`` or ``field_id`` from the payload; report whether it was present."""
    for key in (field_name, f'{field_name}_id'):
        if key in payload:
            return True, payload.pop(key)
    return False, None


@dataclass
class TenantResolution:
    organization_id: Optional[uuid.UUID]
    references: Dict[str, object] = field(default_factory=dict)


def resolve_write_tenant(
    entity_type,
    payload: dict,
    declared_organization_id=None,
    instance=None,
) -> TenantResolution:
    """
    Work out the organization a create/update lands in.

    ``payload`` is consumed: parent and member references are removed from it
    and returned, resolved to model instances, in ``references``.

    Precedence: existing row > parent > declared organization. Every source
    that is present must agree, otherwise ``TenantMismatch``.
    """
    kind = EntityType(entity_type)
    tenant = None

    if instance is not None:
        tenant = derive_child_tenant(instance)

    references = {}
    for link in PARENT_LINKS.get(kind, ()):
        present, value = _pop_reference(payload, link.field)
        if not present:
            if link.required and instance is None:
                raise ValidationError({link.field: ["This field is required."]})
            continue
        parent = _resolve_reference(link.field, apps.get_model(link.model), value)
        references[link.field] = parent
        if parent is None:
            if link.required:
                raise ValidationError({link.field: ["This field is required."]})
            continue
        parent_tenant = derive_child_tenant(parent)
        if tenant is None:
            tenant = parent_tenant
        else:
            validate_child_tenant(parent_tenant, tenant)

    if declared_organization_id not in (None, ''):
        if tenant is None:
            try:
                tenant = as_organization_id(declared_organization_id)
            except (TypeError, ValueError):
                raise MissingTenantContext()
        else:
            validate_child_tenant(declared_organization_id, tenant)

    User = get_user_model()
    for field_name in MEMBER_LINKS.get(kind, ()):
        present, value = _pop_reference(payload, field_name)
        if not present:
            continue
        user = _resolve_reference(field_name, User, value)
        references[field_name] = user
        if user is not None:
            if tenant is None:
                raise MissingTenantContext()
            validate_member(tenant, user)

    return TenantResolution(organization_id=tenant, references=references)


def validate_member(organization_id, user) -> None:
    from .models import OrganizationMembership

    if not OrganizationMembership.objects.filter(
        organization_id=organization_id, user_id=user.pk
    ).exists():
        raise TenantMismatch("The assignee is not a member of this organization.")


# =============================================================================
# STORAGE PATHS
# =============================================================================

STORAGE_SEGMENTS = {
    EntityType.PROJECT: 'projects',
    EntityType.TASK: 'tasks',
}


def _check_filename(filename: str) -> str:
    name = (filename or '').strip()
    if not name or name in ('.', '..') or '/' in name or '\\' in name or '\x00' in name:
        raise ValidationError({'file': ["Invalid file name."]})
    return name


def unique_filename(filename: str, timestamp_ms: Optional[int] = None) -> str:
    """``report.pdf`` -> ``report-1700000000000.pdf``."""
    name = _check_filename(filename)
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    base, ext = os.path.splitext(name)
    return f"{base}-{timestamp_ms}{ext}"


def attachment_storage_path(organization_id, entity_kind, entity_id, filename) -> str:
    """
    ``{organization_id}/{projects|tasks}/{entity_id}/{filename}``.

    The organization prefix comes first so a tenant's listing can never
    reach another tenant's files.
    """
    segment = STORAGE_SEGMENTS.get(EntityType(entity_kind))
    if segment is None:
        raise ValidationError({'entity_type': ["Attachments belong to a project or a task."]})
    return "/".join((
        str(as_organization_id(organization_id)),
        segment,
        str(entity_id),
        _check_filename(filename),
    ))


# =============================================================================
# CASCADE
# =============================================================================

@dataclass
class CascadeResult:
    deleted: Dict[str, int]
    removed_files: List[str] = field(default_factory=list)
    pending_files: List[str] = field(default_factory=list)


class CascadeDeleter:
    """
    Deletes a row with everything below it, including stored files.

    Rows go first, atomically (database FKs cascade). Files go after the
    commit; a file that cannot be removed is written to
    ``PendingFileDeletion`` for the reconciliation task and reported to the
    caller as ``PartialCascadeFailure``.
    """

    def __init__(self, storage=None, storage_alias=ATTACHMENTS_STORAGE_ALIAS):
        self.storage_alias = storage_alias
        self.storage = storage or storages[storage_alias]

    def collect_paths(self, instance) -> List[str]:
        Attachment = apps.get_model('attachments', 'Attachment')
        label = instance._meta.label

        if label == 'attachments.Attachment':
            return [instance.storage_path] if instance.storage_path else []
        if label == 'core.Organization':
            attachments = Attachment.objects.filter(organization_id=instance.pk)
        elif label == 'projects.Project':
            attachments = Attachment.objects.filter(
                Q(project_id=instance.pk) | Q(task__project_id=instance.pk)
            )
        elif label == 'tasks.Task':
            attachments = Attachment.objects.filter(task_id=instance.pk)
        else:
            return []
        return list(attachments.values_list('storage_path', flat=True).distinct())

    def delete(self, instance) -> CascadeResult:
        organization_id = self._tenant_of(instance)
        paths = self.collect_paths(instance)

        with transaction.atomic():
            _, deleted = instance.delete()

        result = CascadeResult(deleted=deleted)
        for path in paths:
            try:
                self.storage.delete(path)
            except Exception as exc:
                logger.error(
                    "Could not remove stored file %s after deleting %s %s: %s",
                    path, instance._meta.label, instance.pk, exc,
                )
                self._record_pending(path, organization_id, exc)
                result.pending_files.append(path)
            else:
                result.removed_files.append(path)

        logger.info(
            "Cascade delete of %s %s: rows=%s files_removed=%s files_pending=%s",
            instance._meta.label, instance.pk, deleted,
            len(result.removed_files), len(result.pending_files),
        )

        if result.pending_files:
            logger.error(
                "Partial cascade failure for %s %s; pending files: %s",
                instance._meta.label, instance.pk, ", ".join(result.pending_files),
            )
            self._schedule_reconciliation()
            raise PartialCascadeFailure(result.pending_files, deleted=deleted)
        return result

    @staticmethod
    def _tenant_of(instance):
        if instance._meta.label == 'core.Organization':
            return instance.pk
        return getattr(instance, 'organization_id', None)

    def _record_pending(self, path, organization_id, exc):
        from .models import PendingFileDeletion

        PendingFileDeletion.objects.update_or_create(
            storage_alias=self.storage_alias,
            path=path,
            defaults={
                'organization_id': organization_id,
                'attempts': 1,
                'last_error': str(exc)[:2000],
            },
        )

    @staticmethod
    def _schedule_reconciliation():
        from .tasks import reconcile_pending_file_deletions

        try:
            reconcile_pending_file_deletions.delay()
        except OperationalError:
            logger.warning("Broker unavailable; pending file deletions wait for the periodic sweep")
