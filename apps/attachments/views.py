"""Attachment Views"""

import logging

from django.http import FileResponse, Http404
from drf_spectacular.utils import OpenApiTypes, extend_schema
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from apps.core.tenant_scope import EntityType
from apps.core.viewsets import TenantScopedModelViewSet

from . import services
from .filters import AttachmentFilter
from .models import Attachment
from .serializers import AttachmentSerializer, AttachmentUploadSerializer

logger = logging.getLogger(__name__)


class AttachmentViewSet(TenantScopedModelViewSet):
    """
    Files on projects and tasks. Uploads are multipart; a file is stored
    under its organization's prefix and removed with its row.
    """

    entity_type = EntityType.ATTACHMENT
    queryset = Attachment.objects.select_related('organization', 'project', 'task')
    serializer_class = AttachmentSerializer
    filterset_class = AttachmentFilter
    search_fields = ['file_name']
    ordering_fields = ['file_name', 'file_size', 'created_at']
    parser_classes = [MultiPartParser, FormParser]
    http_method_names = ['get', 'post', 'delete', 'head', 'options']

    @extend_schema(request=AttachmentUploadSerializer, responses={201: AttachmentSerializer})
    def create(self, request, *args, **kwargs):
        upload = AttachmentUploadSerializer(data=request.data, context=self.get_serializer_context())
        upload.is_valid(raise_exception=True)
        data = upload.validated_data
        attachment = services.upload_attachment(
            self.composer,
            data['file'],
            project=data.get('project'),
            task=data.get('task'),
            organization_id=data.get('organization_id') or self.get_requested_organization_id(),
        )
        serializer = self.get_serializer(attachment)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    @extend_schema(responses={(200, 'application/octet-stream'): OpenApiTypes.BINARY})
    @action(detail=True, methods=['get'])
    def download(self, request, pk=None):
        """Stream the stored file; rows outside the read scope are 404."""
        attachment = self.get_object()
        storage = services.attachment_storage()
        try:
            handle = storage.open(attachment.storage_path, 'rb')
        except FileNotFoundError:
            logger.error("Stored file missing for attachment %s: %s", attachment.pk, attachment.storage_path)
            raise Http404("File not found")
        return FileResponse(
            handle,
            as_attachment=True,
            filename=attachment.file_name,
            content_type=attachment.file_type or 'application/octet-stream',
        )
