"""
Core Admin - organizations, their members and the file reconciliation queue
"""

from django.contrib import admin, messages

from .models import Organization, OrganizationMembership, PendingFileDeletion
from .tasks import reconcile_pending_file_deletions


class OrganizationMembershipInline(admin.TabularInline):
    model = OrganizationMembership
    extra = 0
    autocomplete_fields = ['user']
    fields = ['user', 'role', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'plan', 'industry', 'created_at']
    list_filter = ['plan']
    search_fields = ['name', 'slug', 'legal_name']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [OrganizationMembershipInline]


@admin.register(OrganizationMembership)
class OrganizationMembershipAdmin(admin.ModelAdmin):
    list_display = ['user', 'organization', 'role', 'created_at']
    list_filter = ['role']
    search_fields = ['user__email', 'organization__name']
    autocomplete_fields = ['user', 'organization']
    list_select_related = ['user', 'organization']


@admin.register(PendingFileDeletion)
class PendingFileDeletionAdmin(admin.ModelAdmin):
    list_display = ['path', 'storage_alias', 'organization_id', 'attempts', 'created_at']
    list_filter = ['storage_alias']
    search_fields = ['path']
    readonly_fields = ['storage_alias', 'path', 'organization_id', 'attempts', 'last_error', 'created_at']
    actions = ['reconcile_now']

    def has_add_permission(self, request):
        return False

    @admin.action(description="Retry removal of all queued files")
    def reconcile_now(self, request, queryset):
        reconcile_pending_file_deletions.delay()
        self.message_user(request, "File reconciliation queued.", messages.SUCCESS)
