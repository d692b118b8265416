"""
Core serializers: tenant-scoped base plus organizations, memberships and users.
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Organization, OrganizationMembership
from .query_composer import entity_type_for_model

User = get_user_model()


class ScopedRelatedFieldsMixin:
    """
    Narrows every writable related field to the rows the requesting actor
    can read, so an id from another organization fails exactly like an id
    that does not exist.
    """

    def get_fields(self):
        fields = super().get_fields()
        composer = getattr(self.context.get('view'), 'composer', None)
        if composer is None:
            return fields
        for serializer_field in fields.values():
            related = getattr(serializer_field, 'child_relation', serializer_field)
            queryset = getattr(related, 'queryset', None)
            if queryset is None:
                continue
            kind = entity_type_for_model(queryset.model)
            if kind is not None:
                related.queryset = composer.apply_scope(queryset, kind)
        return fields


class TenantScopedSerializer(ScopedRelatedFieldsMixin, serializers.ModelSerializer):
    """
    Base for rows that carry an organization.

    ``organization_id`` is accepted on input only as the *declared* tenant;
    the query composer checks it against the actor's memberships and the
    row's parents before anything is written.
    """

    organization = serializers.PrimaryKeyRelatedField(read_only=True)
    organization_id = serializers.UUIDField(write_only=True, required=False, allow_null=True)


class OrganizationSerializer(serializers.ModelSerializer):
    member_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Organization
        fields = [
            'id', 'name', 'slug', 'logo_url', 'plan',
            'legal_name', 'tax_id', 'website', 'industry',
            'member_count', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'member_count', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False, 'allow_blank': True}}

    def validate_name(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError("Organization name is required")
        clash = Organization.objects.filter(name__iexact=value)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError("An organization with this name already exists")
        return value


class MemberUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name']
        read_only_fields = fields


class MembershipSerializer(serializers.ModelSerializer):
    user = MemberUserSerializer(read_only=True)
    organization_name = serializers.CharField(source='organization.name', read_only=True)

    class Meta:
        model = OrganizationMembership
        fields = ['id', 'organization', 'organization_name', 'user', 'role', 'created_at']
        read_only_fields = fields


class InviteMemberSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.CharField()
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=50)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=50)


class UserDirectorySerializer(serializers.ModelSerializer):
    """A user plus the memberships the reader is allowed to see."""

    memberships = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name', 'date_joined', 'memberships']
        read_only_fields = fields

    def get_memberships(self, obj):
        scope = self.context.get('membership_scope')
        memberships = obj.organization_memberships.select_related('organization')
        if scope is not None:
            memberships = memberships.filter(scope.as_q('organization_id'))
        return [
            {
                'organization': str(m.organization_id),
                'organization_name': m.organization.name,
                'role': m.role,
            }
            for m in memberships
        ]


class OrganizationStatsSerializer(serializers.Serializer):
    organization_id = serializers.UUIDField(allow_null=True)
    clients_count = serializers.IntegerField()
    projects_count = serializers.IntegerField()
    tasks_count = serializers.IntegerField()
    invoices_count = serializers.IntegerField()
    paid_revenue = serializers.DecimalField(max_digits=16, decimal_places=2)


class MonthlyRevenueSerializer(serializers.Serializer):
    month = serializers.CharField()
    revenue = serializers.DecimalField(max_digits=16, decimal_places=2)
    invoice_count = serializers.IntegerField()
