"""
Core views: organizations and their members, the user directory and the
dashboard aggregates.
"""

import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from .dashboard import monthly_revenue, organization_stats
from .exceptions import ForbiddenCrossTenantWrite
from .models import Organization, OrganizationMembership
from .mutation_guard import Operation
from .query_composer import raise_rejection, run
from .serializers import (
    InviteMemberSerializer,
    MembershipSerializer,
    MonthlyRevenueSerializer,
    OrganizationSerializer,
    OrganizationStatsSerializer,
    UserDirectorySerializer,
)
from .tenant_scope import EntityType
from .viewsets import (
    IdentityMixin,
    StandardResponseMixin,
    TenantScopedModelViewSet,
    TenantScopedReadOnlyViewSet,
)

logger = logging.getLogger(__name__)

User = get_user_model()


# =============================================================================
# ORGANIZATIONS
# =============================================================================

class OrganizationViewSet(TenantScopedModelViewSet):
    """
    Organizations.

    - list / retrieve: superadmin sees all, members see their own
    - create / delete: superadmin only (delete cascades to every row and file)
    - update: superadmin or the organization's owner / admin
    - ``self-service``: an actor without any membership creates one
      organization and becomes its owner
    - ``members``: list, invite and remove members
    """

    entity_type = EntityType.ORGANIZATION
    queryset = Organization.objects.annotate(member_count=Count('memberships', distinct=True))
    serializer_class = OrganizationSerializer
    search_fields = ['name', 'slug', 'legal_name']
    ordering_fields = ['name', 'plan', 'created_at']

    def get_write_payload(self, serializer):
        payload = super().get_write_payload(serializer)
        if not payload.get('slug'):
            payload.pop('slug', None)
        return payload

    @extend_schema(request=OrganizationSerializer, responses={201: OrganizationSerializer})
    @action(detail=False, methods=['post'], url_path='self-service')
    def self_service(self, request):
        serializer = OrganizationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = self.get_write_payload(serializer)
        organization = run(self.composer.compose_self_service_organization(payload))
        return Response(
            OrganizationSerializer(organization).data,
            status=status.HTTP_201_CREATED,
        )

    # -- members ------------------------------------------------------------

    def _memberships(self, organization_pk):
        return self.composer.compose(
            EntityType.MEMBERSHIP,
            Operation.READ_LIST,
            filters={'organization_id': organization_pk},
        ).queryset.select_related('user', 'organization')

    @extend_schema(responses=MembershipSerializer(many=True))
    @action(detail=True, methods=['get'])
    def members(self, request, pk=None):
        organization = self.get_object()
        memberships = self._memberships(organization.pk).order_by('created_at')
        return Response(MembershipSerializer(memberships, many=True).data)

    @extend_schema(request=InviteMemberSerializer, responses={201: MembershipSerializer})
    @members.mapping.post
    def invite_member(self, request, pk=None):
        """
        Add a user by email (created without a usable password if unknown) or
        change their role. Only owners may grant or take away the owner role.
        """
        serializer = InviteMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        email = User.objects.normalize_email(data['email']).lower()
        existing = User.objects.filter(email__iexact=email).first()
        query = raise_rejection(self.composer.compose(
            EntityType.MEMBERSHIP,
            Operation.CREATE,
            organization_id=pk,
            payload={'role': data['role'], 'user': existing},
        ))
        with transaction.atomic():
            user = existing
            if user is None:
                user = User.objects.create_user(
                    email=email,
                    first_name=data.get('first_name', ''),
                    last_name=data.get('last_name', ''),
                )
                logger.info("Invited new user %s to organization %s", user.pk, query.organization_id)
            query.values['user'] = user
            membership = query.execute()
        return Response(MembershipSerializer(membership).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=None, responses={204: None})
    @action(detail=True, methods=['delete'], url_path=r'members/(?P<user_id>[^/.]+)')
    def remove_member(self, request, pk=None, user_id=None):
        try:
            membership = OrganizationMembership.objects.filter(
                organization_id=pk, user_id=user_id,
            ).first()
        except (ValueError, TypeError, DjangoValidationError):
            membership = None
        if membership is None:
            if self.identity.is_superadmin:
                raise NotFound()
            raise ForbiddenCrossTenantWrite()
        run(self.composer.compose(EntityType.MEMBERSHIP, Operation.DELETE, pk=membership.pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


class MembershipViewSet(TenantScopedReadOnlyViewSet):
    """Memberships visible to the actor: all for a superadmin, their organizations' otherwise."""

    entity_type = EntityType.MEMBERSHIP
    queryset = OrganizationMembership.objects.select_related('user', 'organization')
    serializer_class = MembershipSerializer
    filterset_fields = ['organization', 'role', 'user']
    search_fields = ['user__email', 'user__first_name', 'user__last_name']
    ordering_fields = ['created_at', 'role']


class UserDirectoryViewSet(TenantScopedReadOnlyViewSet):
    """
    Users who share an organization with the actor. A superadmin sees every
    user together with all of their memberships.
    """

    entity_type = EntityType.USER
    queryset = User.objects.all()
    serializer_class = UserDirectorySerializer
    search_fields = ['email', 'first_name', 'last_name']
    ordering_fields = ['email', 'date_joined']
    ordering = ['-date_joined']

    def get_serializer_context(self):
        context = super().get_serializer_context()
        if hasattr(self, 'composer'):
            context['membership_scope'] = self.composer.scope(
                EntityType.MEMBERSHIP, self.get_requested_organization_id(),
            )
        return context


# =============================================================================
# DASHBOARD
# =============================================================================

ORGANIZATION_PARAMETER = OpenApiParameter(
    'organization_id', str, required=False,
    description="Narrow the figures to one organization",
)


class DashboardViewSet(StandardResponseMixin, IdentityMixin, viewsets.ViewSet):
    """Organization stats and monthly revenue, computed through the read scope."""

    @extend_schema(parameters=[ORGANIZATION_PARAMETER], responses=OrganizationStatsSerializer)
    @action(detail=False, methods=['get'])
    def stats(self, request):
        data = organization_stats(self.composer, self.get_requested_organization_id())
        return Response(OrganizationStatsSerializer(data).data)

    @extend_schema(
        parameters=[
            ORGANIZATION_PARAMETER,
            OpenApiParameter('months', int, required=False, description="Window size, default 12"),
        ],
        responses=MonthlyRevenueSerializer(many=True),
    )
    @action(detail=False, methods=['get'])
    def revenue(self, request):
        try:
            months = max(1, min(int(request.query_params.get('months', 12)), 36))
        except (TypeError, ValueError):
            months = 12
        rows = monthly_revenue(self.composer, self.get_requested_organization_id(), months=months)
        return Response(MonthlyRevenueSerializer(rows, many=True).data)
