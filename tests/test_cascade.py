"""
Cascade deletes: rows and stored files leave together; files that cannot be
removed are queued, reported and reconciled.
"""

from unittest.mock import patch

from django.core.files.base import ContentFile
from django.core.files.storage import storages
from django.test import TestCase

from apps.attachments.models import Attachment
from apps.clients.models import Client
from apps.core.exceptions import PartialCascadeFailure
from apps.core.models import Organization, OrganizationMembership, PendingFileDeletion
from apps.core.referential import CascadeDeleter
from apps.core.tasks import reconcile_pending_file_deletions
from apps.invoices.models import Invoice, InvoiceLineItem
from apps.projects.models import Project
from apps.tasks.models import Task
from tests.factories import (
    AttachmentFactory,
    ClientFactory,
    InvoiceFactory,
    InvoiceLineItemFactory,
    MembershipFactory,
    OrganizationFactory,
    ProjectFactory,
    TaskFactory,
)


def stored_attachment(**kwargs):
    attachment = AttachmentFactory(**kwargs)
    storage = storages['attachments']
    attachment.storage_path = storage.save(attachment.storage_path, ContentFile(b'hello'))
    attachment.save(update_fields=['storage_path'])
    return attachment


class OrganizationCascadeTests(TestCase):

    def setUp(self):
        self.storage = storages['attachments']
        self.org = OrganizationFactory()
        self.other = OrganizationFactory()

        MembershipFactory(organization=self.org)
        client = ClientFactory(organization=self.org)
        project = ProjectFactory(organization=self.org, client=client)
        task = TaskFactory(organization=self.org, project=project)
        invoice = InvoiceFactory(organization=self.org, client=client)
        InvoiceLineItemFactory(invoice=invoice)
        InvoiceLineItemFactory(invoice=invoice)
        self.project_file = stored_attachment(project=project)
        self.task_file = stored_attachment(project=None, task=task)

        self.kept_file = stored_attachment(project=ProjectFactory(organization=self.other))
        ClientFactory(organization=self.other)

    def test_organization_delete_leaves_nothing_behind(self):
        result = CascadeDeleter().delete(self.org)

        for model in (Client, Project, Task, Invoice, Attachment, OrganizationMembership):
            self.assertEqual(model.objects.filter(organization_id=self.org.pk).count(), 0, model)
        self.assertEqual(InvoiceLineItem.objects.filter(invoice__organization_id=self.org.pk).count(), 0)
        self.assertFalse(Organization.objects.filter(pk=self.org.pk).exists())

        self.assertFalse(self.storage.exists(self.project_file.storage_path))
        self.assertFalse(self.storage.exists(self.task_file.storage_path))
        self.assertCountEqual(
            result.removed_files, [self.project_file.storage_path, self.task_file.storage_path],
        )
        self.assertEqual(result.pending_files, [])

    def test_other_organizations_are_untouched(self):
        CascadeDeleter().delete(self.org)
        self.assertTrue(Organization.objects.filter(pk=self.other.pk).exists())
        self.assertEqual(Client.objects.filter(organization=self.other).count(), 1)
        self.assertTrue(self.storage.exists(self.kept_file.storage_path))


class ProjectCascadeTests(TestCase):

    def test_project_delete_removes_task_attachments_too(self):
        storage = storages['attachments']
        project = ProjectFactory()
        task = TaskFactory(organization=project.organization, project=project)
        own = stored_attachment(project=project)
        nested = stored_attachment(project=None, task=task)

        CascadeDeleter().delete(project)

        self.assertFalse(Task.objects.filter(pk=task.pk).exists())
        self.assertFalse(Attachment.objects.filter(pk__in=[own.pk, nested.pk]).exists())
        self.assertFalse(storage.exists(own.storage_path))
        self.assertFalse(storage.exists(nested.storage_path))

    def test_client_delete_keeps_projects(self):
        client = ClientFactory()
        project = ProjectFactory(organization=client.organization, client=client)

        CascadeDeleter().delete(client)

        project.refresh_from_db()
        self.assertIsNone(project.client_id)


class PartialFailureTests(TestCase):

    def setUp(self):
        self.storage = storages['attachments']
        self.project = ProjectFactory()
        self.attachment = stored_attachment(project=self.project)

    def test_failed_file_removal_is_reported_and_queued(self):
        with patch.object(self.storage, 'delete', side_effect=OSError("bucket unavailable")):
            with self.assertLogs('apps.core.referential', level='ERROR') as logs:
                with self.assertRaises(PartialCascadeFailure) as ctx:
                    CascadeDeleter().delete(self.project)

        self.assertEqual(ctx.exception.pending_paths, [self.attachment.storage_path])
        self.assertEqual(ctx.exception.details['pending_files'], 1)
        self.assertTrue(any(self.attachment.storage_path in line for line in logs.output))

        # Rows are gone regardless
        self.assertFalse(Project.objects.filter(pk=self.project.pk).exists())
        self.assertFalse(Attachment.objects.filter(pk=self.attachment.pk).exists())

        pending = PendingFileDeletion.objects.get(path=self.attachment.storage_path)
        self.assertEqual(pending.organization_id, self.project.organization_id)
        self.assertGreaterEqual(pending.attempts, 1)
        self.assertIn('bucket unavailable', pending.last_error)
        self.assertTrue(self.storage.exists(self.attachment.storage_path))

    def test_reconciliation_removes_queued_files(self):
        with patch.object(self.storage, 'delete', side_effect=OSError("bucket unavailable")):
            with self.assertRaises(PartialCascadeFailure):
                CascadeDeleter().delete(self.project)

        result = reconcile_pending_file_deletions.apply().get()

        self.assertEqual(result, {'removed': 1, 'pending': 0})
        self.assertFalse(self.storage.exists(self.attachment.storage_path))
        self.assertFalse(PendingFileDeletion.objects.exists())

    def test_reconciliation_keeps_rows_that_still_fail(self):
        PendingFileDeletion.objects.create(path=self.attachment.storage_path, attempts=1)
        with patch.object(self.storage, 'delete', side_effect=OSError("still down")):
            result = reconcile_pending_file_deletions.apply().get()

        self.assertEqual(result, {'removed': 0, 'pending': 1})
        pending = PendingFileDeletion.objects.get(path=self.attachment.storage_path)
        self.assertEqual(pending.attempts, 2)
        self.assertEqual(pending.last_error, 'still down')

    def test_already_missing_file_is_cleared(self):
        PendingFileDeletion.objects.create(path='gone/projects/x/none.txt')
        result = reconcile_pending_file_deletions.apply().get()
        self.assertEqual(result['removed'], 1)
        self.assertFalse(PendingFileDeletion.objects.exists())
