"""Task Models"""

from django.conf import settings
from django.db import models

from apps.core.models import OrganizationEntity


class Task(OrganizationEntity):
    """
    A unit of work, optionally inside a project. ``position`` orders cards
    within a status column of the board.
    """

    class StatusChoices(models.TextChoices):
        BACKLOG = 'backlog', 'Backlog'
        TODO = 'todo', 'To do'
        IN_PROGRESS = 'in_progress', 'In progress'
        REVIEW = 'review', 'Review'
        DONE = 'done', 'Done'

    class PriorityChoices(models.TextChoices):
        LOW = 'low', 'Low'
        MEDIUM = 'medium', 'Medium'
        HIGH = 'high', 'High'
        URGENT = 'urgent', 'Urgent'

    project = models.ForeignKey(
        'projects.Project',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='tasks',
    )
    assignee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tasks',
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(
        max_length=20,
        choices=StatusChoices.choices,
        default=StatusChoices.BACKLOG,
        db_index=True,
    )
    priority = models.CharField(
        max_length=20,
        choices=PriorityChoices.choices,
        default=PriorityChoices.MEDIUM,
    )
    position = models.PositiveIntegerField(default=0)
    due_date = models.DateField(null=True, blank=True)

    class Meta:
        db_table = 'tasks'
        ordering = ['status', 'position', '-created_at']
        indexes = [
            models.Index(fields=['organization', 'status']),
            models.Index(fields=['project']),
            models.Index(fields=['assignee']),
        ]

    def __str__(self):
        return self.title
