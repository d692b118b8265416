"""Attachments app filters."""
import django_filters
from .models import Attachment


class AttachmentFilter(django_filters.FilterSet):
    project = django_filters.UUIDFilter()
    task = django_filters.UUIDFilter()

    class Meta:
        model = Attachment
        fields = ['project', 'task']
