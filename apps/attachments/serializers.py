"""Attachment Serializers"""

from rest_framework import serializers

from apps.core.serializers import ScopedRelatedFieldsMixin, TenantScopedSerializer
from apps.projects.models import Project
from apps.tasks.models import Task

from .models import Attachment
from .validators import validate_upload


class AttachmentSerializer(TenantScopedSerializer):
    uploaded_by = serializers.PrimaryKeyRelatedField(source='created_by', read_only=True)

    class Meta:
        model = Attachment
        fields = [
            'id', 'organization', 'project', 'task',
            'file_name', 'storage_path', 'file_type', 'file_size',
            'uploaded_by', 'created_at',
        ]
        read_only_fields = fields


class AttachmentUploadSerializer(ScopedRelatedFieldsMixin, serializers.Serializer):
    file = serializers.FileField(validators=[validate_upload])
    project = serializers.PrimaryKeyRelatedField(
        queryset=Project.objects.all(), required=False, allow_null=True,
    )
    task = serializers.PrimaryKeyRelatedField(
        queryset=Task.objects.all(), required=False, allow_null=True,
    )
    organization_id = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        if bool(attrs.get('project')) == bool(attrs.get('task')):
            raise serializers.ValidationError("Attach the file to exactly one project or one task.")
        return attrs
