from django.contrib import admin

from .models import Invoice, InvoiceLineItem


class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0
    fields = ['position', 'description', 'quantity', 'unit_price']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'organization', 'client', 'status', 'total_amount', 'issue_date']
    list_filter = ['status']
    search_fields = ['invoice_number', 'client__name']
    raw_id_fields = ['client']
    readonly_fields = ['total_amount']
    inlines = [InvoiceLineItemInline]
