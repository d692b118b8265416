"""Task Serializers"""

from rest_framework import serializers

from apps.core.serializers import TenantScopedSerializer
from .models import Task


class TaskSerializer(TenantScopedSerializer):
    project_name = serializers.CharField(source='project.name', read_only=True, allow_null=True)
    assignee_name = serializers.CharField(source='assignee.full_name', read_only=True, allow_null=True)

    class Meta:
        model = Task
        fields = [
            'id', 'organization', 'organization_id',
            'project', 'project_name', 'assignee', 'assignee_name',
            'title', 'description', 'status', 'priority', 'position', 'due_date',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class TaskMoveSerializer(serializers.Serializer):
    """Board drag and drop: new column and position."""

    status = serializers.ChoiceField(choices=Task.StatusChoices.choices)
    position = serializers.IntegerField(min_value=0)
