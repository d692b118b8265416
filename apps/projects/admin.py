from django.contrib import admin

from .models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['name', 'organization', 'client', 'status', 'priority', 'due_date']
    list_filter = ['status', 'priority']
    search_fields = ['name', 'description']
    raw_id_fields = ['client']
