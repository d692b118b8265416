"""Project Views"""

from django.db.models import Count

from apps.core.tenant_scope import EntityType
from apps.core.viewsets import TenantScopedModelViewSet

from .filters import ProjectFilter
from .models import Project
from .serializers import ProjectSerializer


class ProjectViewSet(TenantScopedModelViewSet):
    """
    Projects across the actor's organizations. Deleting a project removes its
    tasks and every attachment file stored under it.
    """

    entity_type = EntityType.PROJECT
    queryset = Project.objects.select_related('organization', 'client').annotate(task_count=Count('tasks'))
    serializer_class = ProjectSerializer
    filterset_class = ProjectFilter
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'status', 'priority', 'start_date', 'due_date', 'created_at']
