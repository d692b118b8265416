"""
Authentication Serializers
"""

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from apps.core.identity import is_superadmin

from .models import User


class LoginSerializer(TokenObtainPairSerializer):
    """
    Email + password login. Tokens carry identity claims only: organization
    access is resolved from memberships on every request, never from the token.
    """

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['full_name'] = user.full_name
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = {
            'id': str(self.user.pk),
            'email': self.user.email,
            'full_name': self.user.full_name,
            'is_superadmin': is_superadmin(self.user.pk),
        }
        return data


class LogoutSerializer(serializers.Serializer):
    refresh_token = serializers.CharField(required=False, allow_blank=True)


class ProfileSerializer(serializers.ModelSerializer):
    """The signed-in user with their resolved access."""

    is_superadmin = serializers.SerializerMethodField()
    memberships = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'avatar_url',
            'is_superadmin', 'memberships', 'date_joined',
        ]
        read_only_fields = ['id', 'email', 'full_name', 'is_superadmin', 'memberships', 'date_joined']

    def _identity(self):
        return self.context.get('identity')

    def get_is_superadmin(self, obj) -> bool:
        identity = self._identity()
        return identity.is_superadmin if identity is not None else is_superadmin(obj.pk)

    def get_memberships(self, obj):
        memberships = obj.organization_memberships.select_related('organization').order_by('created_at')
        return [
            {
                'organization': str(m.organization_id),
                'organization_name': m.organization.name,
                'role': m.role,
            }
            for m in memberships
        ]


class PasswordChangeSerializer(serializers.Serializer):
    current_password = serializers.CharField(required=True)
    new_password = serializers.CharField(required=True, validators=[validate_password])
    new_password_confirm = serializers.CharField(required=True)

    def validate_current_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError('Current password is incorrect.')
        return value

    def validate(self, attrs):
        if attrs['new_password'] != attrs['new_password_confirm']:
            raise serializers.ValidationError(
                {'new_password_confirm': 'Passwords do not match.'}
            )
        return attrs

    def save(self):
        user = self.context['request'].user
        user.set_password(self.validated_data['new_password'])
        user.save(update_fields=['password', 'updated_at'])
        return user
