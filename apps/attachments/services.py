"""
Attachment storage: upload into the tenant-partitioned bucket, then record
the row; a row that cannot be written takes its stored file with it.
"""

import logging

from django.core.files.storage import storages

from apps.core.mutation_guard import Operation
from apps.core.query_composer import raise_rejection
from apps.core.referential import (
    ATTACHMENTS_STORAGE_ALIAS,
    attachment_storage_path,
    unique_filename,
)
from apps.core.tenant_scope import EntityType

from .validators import content_type_of

logger = logging.getLogger(__name__)


def attachment_storage():
    return storages[ATTACHMENTS_STORAGE_ALIAS]


def upload_attachment(composer, uploaded_file, project=None, task=None, organization_id=None, storage=None):
    """
    Authorize, store and record one upload.

    The write is composed first, so nothing reaches the bucket unless the
    actor may write to the parent's organization.
    """
    storage = storage or attachment_storage()
    parent, kind = (project, EntityType.PROJECT) if project is not None else (task, EntityType.TASK)

    query = raise_rejection(composer.compose(
        EntityType.ATTACHMENT,
        Operation.CREATE,
        organization_id=organization_id,
        payload={
            'project': project,
            'task': task,
            'file_name': uploaded_file.name,
            'file_type': content_type_of(uploaded_file),
            'file_size': uploaded_file.size,
        },
    ))

    path = attachment_storage_path(
        query.organization_id, kind, parent.pk, unique_filename(uploaded_file.name)
    )
    stored_path = storage.save(path, uploaded_file)
    query.values['storage_path'] = stored_path

    try:
        attachment = query.execute()
    except Exception:
        logger.error(
            "Attachment row for %s could not be written; removing stored file", stored_path,
        )
        storage.delete(stored_path)
        raise

    logger.info(
        "Attachment %s stored at %s (%s bytes) by %s",
        attachment.pk, stored_path, attachment.file_size, composer.identity.actor_id,
    )
    return attachment
