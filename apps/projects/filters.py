"""Projects app filters."""
import django_filters
from .models import Project


class ProjectFilter(django_filters.FilterSet):
    client = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(choices=Project.StatusChoices.choices)
    priority = django_filters.ChoiceFilter(choices=Project.PriorityChoices.choices)
    start_date = django_filters.DateFilter(field_name='start_date', lookup_expr='gte')
    due_date = django_filters.DateFilter(field_name='due_date', lookup_expr='lte')

    class Meta:
        model = Project
        fields = ['client', 'status', 'priority']
