"""Client Serializers"""

from apps.core.serializers import TenantScopedSerializer
from .models import Client


class ClientSerializer(TenantScopedSerializer):
    class Meta:
        model = Client
        fields = [
            'id', 'organization', 'organization_id',
            'name', 'email', 'phone', 'vat_number', 'address', 'notes', 'status',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
