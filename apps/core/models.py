"""
Core Models - Tenants, memberships and the base class for tenant-scoped rows
Multi-Tenancy: Organization → OrganizationMembership → User
"""

import uuid
from django.db import models
from django.db.models.functions import Lower
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils.text import slugify
import logging

logger = logging.getLogger(__name__)


class TimeStampedModel(models.Model):
    """Abstract base model with timestamps"""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================================
# ORGANIZATION MODEL - Core Multi-Tenancy
# ============================================================================

class Organization(TimeStampedModel):
    """Core tenant entity representing a customer organization."""

    class PlanChoices(models.TextChoices):
        FREE = 'free', 'Free'
        PRO = 'pro', 'Pro'
        ENTERPRISE = 'enterprise', 'Enterprise'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="UUID - the ONLY key used for data isolation",
    )
    name = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    logo_url = models.URLField(blank=True)
    plan = models.CharField(max_length=20, choices=PlanChoices.choices, default=PlanChoices.FREE)

    # Company profile
    legal_name = models.CharField(max_length=255, blank=True)
    tax_id = models.CharField(max_length=64, blank=True)
    website = models.URLField(blank=True)
    industry = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = 'organizations'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(Lower('name'), name='unique_organization_name_ci'),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if not self.name or not self.name.strip():
            raise ValidationError({'name': "Organization name is required"})
        clash = Organization.objects.filter(name__iexact=self.name.strip()).exclude(pk=self.pk)
        if clash.exists():
            raise ValidationError({'name': "An organization with this name already exists"})

    def save(self, *args, **kwargs):
        self.name = (self.name or '').strip()
        if not self.slug:
            base_slug = slugify(self.name) or 'organization'
            slug = base_slug
            counter = 1
            while Organization.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base_slug}-{counter}"
                counter += 1
            self.slug = slug
        super().save(*args, **kwargs)


class OrganizationMembership(TimeStampedModel):
    """
    User-Organization Assignment Model

    A user may belong to many organizations, each with an independent role.
    """

    class RoleChoices(models.TextChoices):
        OWNER = 'owner', 'Owner'
        ADMIN = 'admin', 'Admin'
        MEMBER = 'member', 'Member'
        CLIENT = 'client', 'Client'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='organization_memberships',
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    role = models.CharField(
        max_length=20,
        choices=RoleChoices.choices,
        default=RoleChoices.MEMBER,
        db_index=True,
    )

    class Meta:
        db_table = 'organization_members'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'organization'], name='unique_org_member'),
        ]
        indexes = [
            models.Index(fields=['organization', 'role']),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.organization_id} ({self.get_role_display()})"


# ============================================================================
# ORGANIZATION ENTITY - Base class for all organization-scoped models
# ============================================================================

class OrganizationEntity(TimeStampedModel):
    """
    Tenant-scoped base with a UUID PK, timestamps, creator and the
    ``organization`` FK. ``organization`` is set once at creation; deleting
    the organization cascades to every subclass row.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        null=False,
        blank=False,
        db_index=True,
        related_name='%(app_label)s_%(class)s_set',
        help_text="Organization this record belongs to (primary isolation key)",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_created',
    )

    class Meta:
        abstract = True


# ============================================================================
# FILE CLEANUP LEDGER
# ============================================================================

class PendingFileDeletion(TimeStampedModel):
    """
    A stored file whose row is already gone but whose bytes could not be
    removed. Reconciled by ``core.reconcile_pending_file_deletions``.

    ``organization_id`` is a plain UUID: the organization itself may have
    been deleted in the same cascade.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    storage_alias = models.CharField(max_length=50, default='attachments')
    path = models.CharField(max_length=1024)
    organization_id = models.UUIDField(null=True, blank=True, db_index=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    class Meta:
        db_table = 'pending_file_deletions'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['storage_alias', 'path'], name='unique_pending_file_path'),
        ]

    def __str__(self):
        return f"{self.storage_alias}:{self.path}"
