"""Clients app filters."""
import django_filters
from .models import Client


class ClientFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    status = django_filters.ChoiceFilter(choices=Client.StatusChoices.choices)

    class Meta:
        model = Client
        fields = ['status']
