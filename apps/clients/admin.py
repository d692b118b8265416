from django.contrib import admin

from .models import Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['name', 'organization', 'status', 'email', 'created_at']
    list_filter = ['status']
    search_fields = ['name', 'email', 'vat_number']
