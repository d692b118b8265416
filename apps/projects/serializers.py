"""Project Serializers"""

from rest_framework import serializers

from apps.core.serializers import TenantScopedSerializer
from .models import Project


class ProjectSerializer(TenantScopedSerializer):
    client_name = serializers.CharField(source='client.name', read_only=True, allow_null=True)
    task_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Project
        fields = [
            'id', 'organization', 'organization_id',
            'client', 'client_name',
            'name', 'description', 'status', 'priority', 'budget',
            'start_date', 'due_date', 'task_count',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        due = attrs.get('due_date', getattr(self.instance, 'due_date', None))
        if start and due and due < start:
            raise serializers.ValidationError({'due_date': "Due date cannot be before the start date."})
        return attrs
