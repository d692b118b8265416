"""
Authentication Models - Custom User Model and the global superadmin grant

A user is a global identity. Organization access is granted through
``core.OrganizationMembership``; platform-wide privilege through ``UserRole``.
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin, BaseUserManager
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    """Custom user manager"""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Django-admin superuser. Also receives the platform superadmin grant so
        the account can operate across organizations through the API.
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)

        user = self.create_user(email, password, **extra_fields)
        UserRole.objects.get_or_create(user=user, role=UserRole.RoleChoices.SUPERADMIN)
        return user


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model - global identity, email login.

    CRITICAL: ``is_superuser`` only governs Django admin access. API-level
    superadmin status comes exclusively from a ``UserRole`` grant.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    email = models.EmailField(unique=True, db_index=True)
    first_name = models.CharField(max_length=50, blank=True)
    last_name = models.CharField(max_length=50, blank=True)
    avatar_url = models.URLField(blank=True)

    # Status flags
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    # Timestamps
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'users'
        ordering = ['email']

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email


class UserRole(models.Model):
    """
    Global role grant, independent of any organization membership.

    Only ``superadmin`` exists today; the table is kept separate from
    memberships so a superadmin is never "a role within an organization".
    """

    class RoleChoices(models.TextChoices):
        SUPERADMIN = 'superadmin', 'Superadmin'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='global_roles',
    )
    role = models.CharField(max_length=20, choices=RoleChoices.choices, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'user_roles'
        constraints = [
            models.UniqueConstraint(fields=['user', 'role'], name='unique_user_global_role'),
        ]

    def __str__(self):
        return f"{self.user.email} ({self.role})"
