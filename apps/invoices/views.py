"""Invoice Views"""

from django.db.models import Prefetch
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from apps.core.exceptions import MissingTenantContext
from apps.core.identity import as_organization_id
from apps.core.tenant_scope import EntityType
from apps.core.viewsets import TenantScopedModelViewSet

from . import services
from .filters import InvoiceFilter, InvoiceLineItemFilter
from .models import Invoice, InvoiceLineItem
from .serializers import (
    InvoiceLineItemSerializer,
    InvoiceListSerializer,
    InvoiceSerializer,
    NextInvoiceNumberSerializer,
)


class InvoiceViewSet(TenantScopedModelViewSet):
    """
    Invoices with their line items. Create and update accept nested
    ``line_items``; invoice and lines are written in one transaction and
    ``total_amount`` is recomputed from the lines.
    """

    entity_type = EntityType.INVOICE
    queryset = Invoice.objects.select_related('organization', 'client').prefetch_related(
        Prefetch('line_items', queryset=InvoiceLineItem.objects.order_by('position', 'created_at'))
    )
    serializer_class = InvoiceSerializer
    list_serializer_class = InvoiceListSerializer
    filterset_class = InvoiceFilter
    search_fields = ['invoice_number', 'client__name', 'notes']
    ordering_fields = ['invoice_number', 'issue_date', 'due_date', 'total_amount', 'status', 'created_at']

    def perform_create(self, serializer):
        payload = self.get_write_payload(serializer)
        line_items = payload.pop('line_items', [])
        serializer.instance = services.create_invoice(
            self.composer,
            payload,
            line_items,
            organization_id=self.get_target_organization_id(serializer),
        )

    def perform_update(self, serializer):
        payload = self.get_write_payload(serializer)
        line_items = payload.pop('line_items', None)
        serializer.instance = services.update_invoice(
            self.composer, serializer.instance, payload, line_items,
        )

    @extend_schema(
        parameters=[OpenApiParameter('organization_id', str, required=False)],
        responses=NextInvoiceNumberSerializer,
    )
    @action(detail=False, methods=['get'], url_path='next-number')
    def next_number(self, request):
        """Preview the number the next invoice of an organization would get."""
        requested = self.get_requested_organization_id()
        if requested is None:
            organization_ids = sorted(self.identity.organization_ids, key=str)
            if len(organization_ids) != 1:
                raise MissingTenantContext()
            requested = organization_ids[0]
        try:
            organization_id = as_organization_id(requested)
        except (TypeError, ValueError):
            raise ValidationError({'organization_id': ["Must be a valid UUID."]})
        if not self.composer.scope(self.entity_type).allows(organization_id):
            raise MissingTenantContext()
        return Response({
            'organization_id': organization_id,
            'invoice_number': services.next_invoice_number(organization_id),
        })


class InvoiceLineItemViewSet(TenantScopedModelViewSet):
    """
    Line items addressed on their own. Their tenant is the invoice's; every
    change recomputes the invoice total.
    """

    entity_type = EntityType.INVOICE_LINE_ITEM
    queryset = InvoiceLineItem.objects.select_related('invoice')
    serializer_class = InvoiceLineItemSerializer
    filterset_class = InvoiceLineItemFilter
    ordering_fields = ['position', 'created_at']
    ordering = ['position', 'created_at']

    def get_target_organization_id(self, serializer=None):
        return None

    def perform_create(self, serializer):
        super().perform_create(serializer)
        services.recalculate_total(serializer.instance.invoice)

    def perform_update(self, serializer):
        previous_invoice = serializer.instance.invoice
        super().perform_update(serializer)
        services.recalculate_total(serializer.instance.invoice)
        if previous_invoice.pk != serializer.instance.invoice_id:
            services.recalculate_total(previous_invoice)

    def perform_destroy(self, instance):
        invoice = instance.invoice
        result = super().perform_destroy(instance)
        services.recalculate_total(invoice)
        return result
