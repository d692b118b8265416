from django.apps import AppConfig


class TasksConfig(AppConfig):
    name = 'apps.tasks'
    default_auto_field = 'django.db.models.BigAutoField'
