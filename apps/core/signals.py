"""Identity cache invalidation on membership changes."""

import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .identity import IdentityCache
from .models import OrganizationMembership

logger = logging.getLogger(__name__)


@receiver(post_save, sender=OrganizationMembership)
def membership_saved(sender, instance: OrganizationMembership, **kwargs):
    IdentityCache.invalidate(instance.user_id)


@receiver(post_delete, sender=OrganizationMembership)
def membership_deleted(sender, instance: OrganizationMembership, **kwargs):
    IdentityCache.invalidate(instance.user_id)
