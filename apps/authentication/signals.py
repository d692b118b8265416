"""Authentication signals: keep cached identities in step with grants and sessions."""
from django.contrib.auth.signals import user_logged_out
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.core.identity import IdentityCache

from .models import UserRole, User


@receiver(post_save, sender=UserRole)
def global_role_saved(sender, instance: UserRole, **kwargs):
    IdentityCache.invalidate(instance.user_id)


@receiver(post_delete, sender=UserRole)
def global_role_deleted(sender, instance: UserRole, **kwargs):
    IdentityCache.invalidate(instance.user_id)


@receiver(post_save, sender=User)
def user_saved(sender, instance: User, created: bool, **kwargs):
    """Deactivating a user must not leave a usable cached identity behind."""
    if not created:
        IdentityCache.invalidate(instance.pk)


@receiver(user_logged_out)
def user_signed_out(sender, request, user, **kwargs):
    if user is not None:
        IdentityCache.invalidate(user.pk)
