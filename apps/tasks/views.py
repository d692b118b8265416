"""Task Views"""

from drf_spectacular.utils import extend_schema
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.mutation_guard import Operation
from apps.core.query_composer import run
from apps.core.tenant_scope import EntityType
from apps.core.viewsets import TenantScopedModelViewSet

from .filters import TaskFilter
from .models import Task
from .serializers import TaskMoveSerializer, TaskSerializer


class TaskViewSet(TenantScopedModelViewSet):
    """
    Tasks of the actor's organizations. An assignee must be a member of the
    task's organization.
    """

    entity_type = EntityType.TASK
    queryset = Task.objects.select_related('organization', 'project', 'assignee')
    serializer_class = TaskSerializer
    filterset_class = TaskFilter
    search_fields = ['title', 'description']
    ordering_fields = ['title', 'status', 'priority', 'position', 'due_date', 'created_at']
    ordering = ['status', 'position']

    @extend_schema(request=TaskMoveSerializer, responses=TaskSerializer)
    @action(detail=True, methods=['post'])
    def move(self, request, pk=None):
        """Move a card to another board column and/or position."""
        task = self.get_write_target()
        serializer = TaskMoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        query = self.composer.compose(
            self.entity_type,
            Operation.UPDATE,
            pk=task.pk,
            payload=serializer.validated_data,
        )
        task = run(query)
        return Response(TaskSerializer(task, context=self.get_serializer_context()).data)
