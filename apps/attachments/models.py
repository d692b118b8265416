"""Attachment Models"""

from django.core.exceptions import ValidationError
from django.db import models

from apps.core.models import OrganizationEntity


class Attachment(OrganizationEntity):
    """
    A stored file belonging to exactly one project or one task.

    ``storage_path`` is the key in the ``attachments`` storage:
    ``{organization_id}/{projects|tasks}/{entity_id}/{file_name}``.
    ``created_by`` is the uploader.
    """

    project = models.ForeignKey(
        'projects.Project',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='attachments',
    )
    task = models.ForeignKey(
        'tasks.Task',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='attachments',
    )
    file_name = models.CharField(max_length=255)
    storage_path = models.CharField(max_length=1024, unique=True)
    file_type = models.CharField(max_length=120, blank=True)
    file_size = models.PositiveBigIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'attachments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['organization', 'project']),
            models.Index(fields=['organization', 'task']),
        ]

    def __str__(self):
        return self.file_name

    def clean(self):
        super().clean()
        if bool(self.project_id) == bool(self.task_id):
            raise ValidationError("An attachment belongs to exactly one project or one task.")

    @property
    def parent(self):
        return self.project if self.project_id else self.task
