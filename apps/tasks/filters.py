"""Tasks app filters."""
import django_filters
from .models import Task


class TaskFilter(django_filters.FilterSet):
    project = django_filters.UUIDFilter()
    assignee = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(choices=Task.StatusChoices.choices)
    priority = django_filters.ChoiceFilter(choices=Task.PriorityChoices.choices)
    due_before = django_filters.DateFilter(field_name='due_date', lookup_expr='lte')
    unassigned = django_filters.BooleanFilter(field_name='assignee', lookup_expr='isnull')

    class Meta:
        model = Task
        fields = ['project', 'assignee', 'status', 'priority']
