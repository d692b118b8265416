"""Client Views"""

from apps.core.tenant_scope import EntityType
from apps.core.viewsets import TenantScopedModelViewSet

from .filters import ClientFilter
from .models import Client
from .serializers import ClientSerializer


class ClientViewSet(TenantScopedModelViewSet):
    """Clients of every organization the actor can see."""

    entity_type = EntityType.CLIENT
    queryset = Client.objects.select_related('organization')
    serializer_class = ClientSerializer
    filterset_class = ClientFilter
    search_fields = ['name', 'email', 'vat_number']
    ordering_fields = ['name', 'status', 'created_at']
