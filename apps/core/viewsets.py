"""
Shared base ViewSet classes for all bizdesk apps.

Every tenant-scoped ModelViewSet should inherit from ``TenantScopedModelViewSet``
so that identity resolution, the read scope, the write guard, referential
checks and the standard response envelope come for free. All data access
goes through ``QueryComposer``.
"""

from rest_framework import viewsets, status, filters
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.identity import identity_for_request
from apps.core.mutation_guard import Operation
from apps.core.query_composer import QueryComposer, raise_rejection, run

ORGANIZATION_HEADER = 'X-Organization-ID'


# ---------------------------------------------------------------------------
# Base ViewSet - wraps responses in the standard envelope
# ---------------------------------------------------------------------------

class StandardResponseMixin:
    """Wraps *non-paginated* responses in ``{success, data, message}``."""

    def finalize_response(self, request, response, *args, **kwargs):
        response = super().finalize_response(request, response, *args, **kwargs)
        # Only wrap when we have an actual dict/list and it hasn't been wrapped
        if (
            hasattr(response, 'data')
            and response.data is not None
            and not isinstance(response.data, bytes)
            and response.status_code < 400
        ):
            data = response.data
            # Already wrapped by paginator or exception handler
            if isinstance(data, dict) and 'success' in data:
                return response
            response.data = {
                'success': True,
                'data': data,
                'message': self._get_success_message(request, response),
            }
        return response

    def _get_success_message(self, request, response):
        method = request.method
        messages = {
            'POST': 'Created successfully.',
            'PUT': 'Updated successfully.',
            'PATCH': 'Updated successfully.',
            'DELETE': 'Deleted successfully.',
        }
        return messages.get(method, 'OK')


class IdentityMixin:
    """
    Resolves the actor once per request, after DRF authentication, and
    exposes ``self.identity`` / ``self.composer``.
    """

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.identity = identity_for_request(request)
        self.composer = QueryComposer(self.identity)

    def get_requested_organization_id(self):
        """Explicit organization choice: ``?organization_id=`` or ``X-Organization-ID``."""
        return (
            self.request.query_params.get('organization_id')
            or self.request.headers.get(ORGANIZATION_HEADER)
            or None
        )


class TenantScopeMixin(IdentityMixin):
    """Applies the read scope in ``get_queryset`` and again after caller filters."""

    entity_type = None

    def _scoped(self, queryset):
        return self.composer.compose(
            self.entity_type,
            Operation.READ_LIST,
            requested_organization_id=self.get_requested_organization_id(),
            queryset=queryset,
        ).queryset

    def get_queryset(self):
        qs = super().get_queryset()
        if getattr(self, 'swagger_fake_view', False):
            return qs.none()
        return self._scoped(qs)

    def filter_queryset(self, queryset):
        queryset = super().filter_queryset(queryset)
        if getattr(self, 'swagger_fake_view', False):
            return queryset
        # Scope is re-applied after caller filters so they can only narrow it
        return self._scoped(queryset)


# ---------------------------------------------------------------------------
# Tenant-Scoped ModelViewSet - the backbone for every domain app
# ---------------------------------------------------------------------------

class TenantScopedModelViewSet(
    StandardResponseMixin,
    TenantScopeMixin,
    viewsets.ModelViewSet,
):
    """
    ModelViewSet with built-in:

    • **Read scope** - ``get_queryset`` and ``filter_queryset`` both pass
      through the composer; caller filters run first, the scope last.
    • **Write guard** - create / update / delete are composed, authorized and
      executed by ``QueryComposer``; rejections become typed API errors.
    • **Write targets** - an update or delete of a row outside the actor's
      scope is a 403 ``forbidden_cross_tenant_write`` (reads answer 404).
    • **Standard response envelope** - ``{success, data, message}``.
    """

    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    ordering = ['-created_at']

    # -- Subclasses MUST set these ------------------------------------------
    # entity_type = EntityType.CLIENT
    # queryset = MyModel.objects.all()
    # serializer_class = MySerializer

    # -- Optional: separate list / detail serializers -----------------------
    list_serializer_class = None
    detail_serializer_class = None

    def get_serializer_class(self):
        if self.action == 'list' and self.list_serializer_class:
            return self.list_serializer_class
        if self.action == 'retrieve' and self.detail_serializer_class:
            return self.detail_serializer_class
        return super().get_serializer_class()

    # -- Writes -------------------------------------------------------------

    def get_target_organization_id(self, serializer=None):
        return self.get_requested_organization_id()

    def get_write_target(self):
        lookup_url_kwarg = self.lookup_url_kwarg or self.lookup_field
        instance = raise_rejection(
            self.composer.locate(self.entity_type, self.kwargs[lookup_url_kwarg])
        )
        self.check_object_permissions(self.request, instance)
        return instance

    def get_write_payload(self, serializer):
        return dict(serializer.validated_data)

    def perform_create(self, serializer):
        query = self.composer.compose(
            self.entity_type,
            Operation.CREATE,
            organization_id=self.get_target_organization_id(serializer),
            payload=self.get_write_payload(serializer),
        )
        serializer.instance = run(query)

    def perform_update(self, serializer):
        query = self.composer.compose(
            self.entity_type,
            Operation.UPDATE,
            pk=serializer.instance.pk,
            payload=self.get_write_payload(serializer),
        )
        serializer.instance = run(query)

    def perform_destroy(self, instance):
        query = self.composer.compose(self.entity_type, Operation.DELETE, pk=instance.pk)
        return run(query)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_write_target()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)
        return Response(serializer.data)

    def destroy(self, request, *args, **kwargs):
        instance = self.get_write_target()
        self.perform_destroy(instance)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TenantScopedReadOnlyViewSet(
    StandardResponseMixin,
    TenantScopeMixin,
    viewsets.ReadOnlyModelViewSet,
):
    """Read-only tenant-scoped ViewSet (list + retrieve only)."""

    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    ordering = ['-created_at']
