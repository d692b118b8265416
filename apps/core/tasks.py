"""
Background reconciliation of stored files left behind by cascade deletes.
"""

import logging

from celery import shared_task
from django.core.files.storage import storages
from django.db.models import F

logger = logging.getLogger(__name__)

RECONCILE_BATCH_SIZE = 200


@shared_task(bind=True, name="core.reconcile_pending_file_deletions")
def reconcile_pending_file_deletions(self, batch_size=RECONCILE_BATCH_SIZE):
    """
    Retry removal of every ``PendingFileDeletion``. A row is dropped once its
    file is gone; failures bump ``attempts`` and stay queued.
    """
    from apps.core.models import PendingFileDeletion

    removed = 0
    failed = 0
    for pending in PendingFileDeletion.objects.order_by('created_at')[:batch_size]:
        storage = storages[pending.storage_alias]
        try:
            if storage.exists(pending.path):
                storage.delete(pending.path)
        except Exception as exc:
            failed += 1
            PendingFileDeletion.objects.filter(pk=pending.pk).update(
                attempts=F('attempts') + 1,
                last_error=str(exc)[:2000],
            )
            logger.warning(
                "Pending file %s:%s still not removable (attempt %s): %s",
                pending.storage_alias, pending.path, pending.attempts + 1, exc,
            )
            continue
        pending.delete()
        removed += 1

    logger.info("File reconciliation finished: removed=%s still_pending=%s", removed, failed)
    return {'removed': removed, 'pending': failed}
