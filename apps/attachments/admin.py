from django.contrib import admin

from .models import Attachment


@admin.register(Attachment)
class AttachmentAdmin(admin.ModelAdmin):
    list_display = ['file_name', 'organization', 'project', 'task', 'file_size', 'created_at']
    search_fields = ['file_name', 'storage_path']
    readonly_fields = ['storage_path', 'file_type', 'file_size']
    raw_id_fields = ['project', 'task']
