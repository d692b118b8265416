"""
Referential consistency: tenant derivation from parents, mismatch rejection
and tenant-partitioned storage paths.
"""

import uuid

from django.test import SimpleTestCase, TestCase
from rest_framework.exceptions import ValidationError

from apps.core.exceptions import MissingTenantContext, TenantMismatch
from apps.core.models import OrganizationMembership
from apps.core.referential import (
    attachment_storage_path,
    derive_child_tenant,
    resolve_write_tenant,
    unique_filename,
    validate_child_tenant,
)
from apps.core.tenant_scope import EntityType
from tests.factories import (
    ClientFactory,
    InvoiceFactory,
    InvoiceLineItemFactory,
    MembershipFactory,
    OrganizationFactory,
    ProjectFactory,
    TaskFactory,
    UserFactory,
)


class DeriveChildTenantTests(TestCase):

    def test_organization_is_its_own_tenant(self):
        org = OrganizationFactory()
        self.assertEqual(derive_child_tenant(org), org.pk)

    def test_project_child_takes_project_tenant(self):
        project = ProjectFactory()
        self.assertEqual(derive_child_tenant(project), project.organization_id)

    def test_line_item_tenant_is_read_through_invoice(self):
        item = InvoiceLineItemFactory()
        self.assertEqual(item.organization_id, item.invoice.organization_id)
        self.assertEqual(derive_child_tenant(item), item.invoice.organization_id)

    def test_missing_parent_has_no_tenant(self):
        with self.assertRaises(MissingTenantContext):
            derive_child_tenant(None)


class ValidateChildTenantTests(SimpleTestCase):

    def test_same_organization_passes(self):
        org = uuid.uuid4()
        validate_child_tenant(org, str(org))

    def test_different_organizations_mismatch(self):
        with self.assertRaises(TenantMismatch):
            validate_child_tenant(uuid.uuid4(), uuid.uuid4())

    def test_malformed_id_mismatches(self):
        with self.assertRaises(TenantMismatch):
            validate_child_tenant('nope', uuid.uuid4())


class ResolveWriteTenantTests(TestCase):

    def setUp(self):
        self.org_a = OrganizationFactory()
        self.org_b = OrganizationFactory()

    def test_task_tenant_derived_from_project(self):
        project = ProjectFactory(organization=self.org_a)
        payload = {'title': 'Write report', 'project': project}
        resolution = resolve_write_tenant(EntityType.TASK, payload)
        self.assertEqual(resolution.organization_id, self.org_a.pk)
        self.assertEqual(resolution.references['project'], project)
        self.assertNotIn('project', payload)

    def test_parent_given_by_id(self):
        project = ProjectFactory(organization=self.org_a)
        resolution = resolve_write_tenant(EntityType.TASK, {'project_id': str(project.pk)})
        self.assertEqual(resolution.organization_id, self.org_a.pk)

    def test_declared_organization_must_match_parent(self):
        project = ProjectFactory(organization=self.org_a)
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(EntityType.TASK, {'project': project}, declared_organization_id=self.org_b.pk)

    def test_declared_organization_used_without_parent(self):
        resolution = resolve_write_tenant(EntityType.CLIENT, {'name': 'Acme'}, self.org_b.pk)
        self.assertEqual(resolution.organization_id, self.org_b.pk)

    def test_project_client_from_other_organization_mismatches(self):
        client = ClientFactory(organization=self.org_b)
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(EntityType.PROJECT, {'client': client}, self.org_a.pk)

    def test_existing_row_never_changes_organization(self):
        task = TaskFactory(organization=self.org_a)
        foreign_project = ProjectFactory(organization=self.org_b)
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(EntityType.TASK, {'project': foreign_project}, instance=task)

    def test_line_item_requires_invoice(self):
        with self.assertRaises(ValidationError):
            resolve_write_tenant(EntityType.INVOICE_LINE_ITEM, {'description': 'x', 'unit_price': 1})

    def test_line_item_with_foreign_declared_tenant_mismatches(self):
        invoice = InvoiceFactory(organization=self.org_a)
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(
                EntityType.INVOICE_LINE_ITEM, {'invoice': invoice}, declared_organization_id=self.org_b.pk,
            )

    def test_unknown_parent_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            resolve_write_tenant(EntityType.TASK, {'project': uuid.uuid4()})

    def test_assignee_must_be_member(self):
        outsider = UserFactory()
        member = MembershipFactory(organization=self.org_a).user
        resolution = resolve_write_tenant(EntityType.TASK, {'assignee': member}, self.org_a.pk)
        self.assertEqual(resolution.references['assignee'], member)
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(EntityType.TASK, {'assignee': outsider}, self.org_a.pk)

    def test_assignee_member_elsewhere_is_rejected(self):
        user = MembershipFactory(
            organization=self.org_b, role=OrganizationMembership.RoleChoices.OWNER,
        ).user
        with self.assertRaises(TenantMismatch):
            resolve_write_tenant(EntityType.TASK, {'assignee': user}, self.org_a.pk)

    def test_nothing_to_derive_from(self):
        resolution = resolve_write_tenant(EntityType.CLIENT, {'name': 'Acme'})
        self.assertIsNone(resolution.organization_id)


class StoragePathTests(SimpleTestCase):

    def test_path_order_is_organization_kind_entity_filename(self):
        org, project = uuid.uuid4(), uuid.uuid4()
        self.assertEqual(
            attachment_storage_path(org, EntityType.PROJECT, project, 'brief.pdf'),
            f'{org}/projects/{project}/brief.pdf',
        )

    def test_project_and_task_paths_never_collide(self):
        org, entity = uuid.uuid4(), uuid.uuid4()
        self.assertNotEqual(
            attachment_storage_path(org, EntityType.PROJECT, entity, 'a.txt'),
            attachment_storage_path(org, EntityType.TASK, entity, 'a.txt'),
        )

    def test_other_entity_kinds_have_no_storage(self):
        with self.assertRaises(ValidationError):
            attachment_storage_path(uuid.uuid4(), EntityType.INVOICE, uuid.uuid4(), 'a.txt')

    def test_filename_cannot_escape_prefix(self):
        for name in ('../secret.txt', 'a/b.txt', 'a\\b.txt', '..', ''):
            with self.assertRaises(ValidationError):
                attachment_storage_path(uuid.uuid4(), EntityType.TASK, uuid.uuid4(), name)

    def test_unique_filename_keeps_extension(self):
        self.assertEqual(unique_filename('report.pdf', timestamp_ms=1700000000000), 'report-1700000000000.pdf')
        self.assertEqual(unique_filename('README', timestamp_ms=5), 'README-5')
