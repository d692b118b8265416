"""Invoices app filters."""
import django_filters
from .models import Invoice, InvoiceLineItem


class InvoiceFilter(django_filters.FilterSet):
    client = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(choices=Invoice.StatusChoices.choices)
    issued_from = django_filters.DateFilter(field_name='issue_date', lookup_expr='gte')
    issued_to = django_filters.DateFilter(field_name='issue_date', lookup_expr='lte')

    class Meta:
        model = Invoice
        fields = ['client', 'status']


class InvoiceLineItemFilter(django_filters.FilterSet):
    invoice = django_filters.UUIDFilter()

    class Meta:
        model = InvoiceLineItem
        fields = ['invoice']
