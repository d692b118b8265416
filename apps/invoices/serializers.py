"""Invoice Serializers"""

from rest_framework import serializers

from apps.core.serializers import ScopedRelatedFieldsMixin, TenantScopedSerializer
from .models import Invoice, InvoiceLineItem


class InvoiceLineItemSerializer(ScopedRelatedFieldsMixin, serializers.ModelSerializer):
    total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = InvoiceLineItem
        fields = ['id', 'invoice', 'description', 'quantity', 'unit_price', 'total', 'position', 'created_at']
        read_only_fields = ['id', 'total', 'created_at']


class NestedLineItemSerializer(InvoiceLineItemSerializer):
    """Line item inside an invoice payload; the invoice is implied."""

    class Meta(InvoiceLineItemSerializer.Meta):
        fields = ['id', 'description', 'quantity', 'unit_price', 'total', 'position']
        extra_kwargs = {'position': {'required': False}}


class InvoiceListSerializer(TenantScopedSerializer):
    client_name = serializers.CharField(source='client.name', read_only=True, allow_null=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'organization', 'invoice_number', 'client', 'client_name',
            'total_amount', 'status', 'issue_date', 'due_date', 'created_at',
        ]
        read_only_fields = fields


class InvoiceSerializer(TenantScopedSerializer):
    client_name = serializers.CharField(source='client.name', read_only=True, allow_null=True)
    line_items = NestedLineItemSerializer(many=True, required=False)

    class Meta:
        model = Invoice
        fields = [
            'id', 'organization', 'organization_id',
            'client', 'client_name', 'invoice_number', 'total_amount',
            'status', 'issue_date', 'due_date', 'notes', 'line_items',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'total_amount', 'created_at', 'updated_at']
        extra_kwargs = {'invoice_number': {'required': False, 'allow_blank': True}}

    def validate(self, attrs):
        issue = attrs.get('issue_date', getattr(self.instance, 'issue_date', None))
        due = attrs.get('due_date', getattr(self.instance, 'due_date', None))
        if issue and due and due < issue:
            raise serializers.ValidationError({'due_date': "Due date cannot be before the issue date."})
        return attrs


class NextInvoiceNumberSerializer(serializers.Serializer):
    organization_id = serializers.UUIDField()
    invoice_number = serializers.CharField()
