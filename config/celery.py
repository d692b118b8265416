"""Celery application bootstrap for the bizdesk backend."""

import os

from celery import Celery
from celery.signals import before_task_publish, task_postrun, task_prerun


os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

app = Celery('bizdesk')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

if os.name == 'nt':
    # Windows workers must run in solo mode
    app.conf.worker_pool = 'solo'


# The request's correlation id travels with the task so worker logs line up
@before_task_publish.connect
def attach_correlation_id(headers=None, **kwargs):
    from apps.core.logging import get_correlation_id

    correlation_id = get_correlation_id()
    if headers is not None and correlation_id:
        headers.setdefault('correlation_id', correlation_id)


@task_prerun.connect
def restore_correlation_id(task=None, **kwargs):
    from apps.core.logging import get_correlation_id, new_correlation_id, set_correlation_id

    # Eager tasks run inside a request and keep its id
    if task is None or get_correlation_id() is not None:
        return
    set_correlation_id(getattr(task.request, 'correlation_id', None) or new_correlation_id())
    task.request.owns_correlation_id = True


@task_postrun.connect
def clear_correlation_id(task=None, **kwargs):
    from apps.core.logging import set_correlation_id

    if task is not None and getattr(task.request, 'owns_correlation_id', False):
        set_correlation_id(None)
