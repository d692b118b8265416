"""
Mutation guard: the rule table for organizations, memberships and tenant rows.
"""

import uuid

from django.test import SimpleTestCase

from apps.core.identity import Membership, ResolvedIdentity
from apps.core.mutation_guard import MUTATION_RULES, Operation, Reason, authorize_mutation, authorize_self_service_organization
from apps.core.tenant_scope import EntityType

ORG_A = uuid.uuid4()
ORG_B = uuid.uuid4()

TENANT_ROWS = [
    EntityType.CLIENT,
    EntityType.PROJECT,
    EntityType.TASK,
    EntityType.INVOICE,
    EntityType.INVOICE_LINE_ITEM,
    EntityType.ATTACHMENT,
]
WRITES = [Operation.CREATE, Operation.UPDATE, Operation.DELETE]


def actor(role=None, organization_id=ORG_A, superadmin=False):
    memberships = (Membership(organization_id, role),) if role else ()
    return ResolvedIdentity(actor_id=uuid.uuid4(), is_superadmin=superadmin, memberships=memberships)


SUPERADMIN = actor(superadmin=True)


class TenantRowRuleTests(SimpleTestCase):

    def test_any_member_may_write_in_own_organization(self):
        for role in ('owner', 'admin', 'member', 'client'):
            for kind in TENANT_ROWS:
                for operation in WRITES:
                    decision = authorize_mutation(actor(role), kind, operation, ORG_A)
                    self.assertTrue(decision.allowed, (role, kind, operation))

    def test_cross_tenant_write_is_forbidden(self):
        for kind in TENANT_ROWS:
            for operation in WRITES:
                decision = authorize_mutation(actor('owner'), kind, operation, ORG_B)
                self.assertFalse(decision.allowed)
                self.assertEqual(decision.reason, Reason.FORBIDDEN_CROSS_TENANT_WRITE)

    def test_zero_membership_actor_is_forbidden(self):
        decision = authorize_mutation(actor(), EntityType.CLIENT, Operation.CREATE, ORG_A)
        self.assertEqual(decision.reason, Reason.FORBIDDEN_CROSS_TENANT_WRITE)

    def test_superadmin_may_write_anywhere(self):
        for kind in TENANT_ROWS:
            for operation in WRITES:
                self.assertTrue(authorize_mutation(SUPERADMIN, kind, operation, ORG_B).allowed)

    def test_missing_organization_is_rejected_even_for_superadmin(self):
        for identity in (SUPERADMIN, actor('owner')):
            for target in (None, '', 'garbage'):
                decision = authorize_mutation(identity, EntityType.PROJECT, Operation.CREATE, target)
                self.assertEqual(decision.reason, Reason.MISSING_TENANT_CONTEXT)


class OrganizationRuleTests(SimpleTestCase):

    def test_only_superadmin_creates_organizations(self):
        self.assertTrue(authorize_mutation(SUPERADMIN, EntityType.ORGANIZATION, Operation.CREATE, None).allowed)
        decision = authorize_mutation(actor('owner'), EntityType.ORGANIZATION, Operation.CREATE, None)
        self.assertEqual(decision.reason, Reason.SUPERADMIN_REQUIRED)

    def test_only_superadmin_deletes_organizations(self):
        self.assertTrue(authorize_mutation(SUPERADMIN, EntityType.ORGANIZATION, Operation.DELETE, ORG_A).allowed)
        decision = authorize_mutation(actor('owner'), EntityType.ORGANIZATION, Operation.DELETE, ORG_A)
        self.assertEqual(decision.reason, Reason.SUPERADMIN_REQUIRED)

    def test_owner_and_admin_update_their_organization(self):
        for role in ('owner', 'admin'):
            self.assertTrue(
                authorize_mutation(actor(role), EntityType.ORGANIZATION, Operation.UPDATE, ORG_A).allowed
            )

    def test_member_and_client_cannot_update_organization(self):
        for role in ('member', 'client'):
            decision = authorize_mutation(actor(role), EntityType.ORGANIZATION, Operation.UPDATE, ORG_A)
            self.assertEqual(decision.reason, Reason.INSUFFICIENT_ROLE)

    def test_admin_cannot_update_foreign_organization(self):
        decision = authorize_mutation(actor('admin'), EntityType.ORGANIZATION, Operation.UPDATE, ORG_B)
        self.assertEqual(decision.reason, Reason.FORBIDDEN_CROSS_TENANT_WRITE)


class MembershipRuleTests(SimpleTestCase):

    def test_owner_and_admin_add_and_remove_members(self):
        for role in ('owner', 'admin'):
            identity = actor(role)
            self.assertTrue(
                authorize_mutation(identity, EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, 'member').allowed
            )
            self.assertTrue(authorize_mutation(identity, EntityType.MEMBERSHIP, Operation.DELETE, ORG_A).allowed)

    def test_member_cannot_manage_members(self):
        decision = authorize_mutation(actor('member'), EntityType.MEMBERSHIP, Operation.DELETE, ORG_A)
        self.assertEqual(decision.reason, Reason.INSUFFICIENT_ROLE)

    def test_membership_update_is_unsupported(self):
        decision = authorize_mutation(SUPERADMIN, EntityType.MEMBERSHIP, Operation.UPDATE, ORG_A)
        self.assertEqual(decision.reason, Reason.UNSUPPORTED_OPERATION)

    def test_only_owner_grants_or_changes_owner_role(self):
        for target_role, current_role in (('owner', None), ('member', 'owner'), ('owner', 'admin')):
            decision = authorize_mutation(
                actor('admin'), EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, target_role, current_role,
            )
            self.assertEqual(decision.reason, Reason.INSUFFICIENT_ROLE, (target_role, current_role))
            self.assertTrue(authorize_mutation(
                actor('owner'), EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, target_role, current_role,
            ).allowed)
            self.assertTrue(authorize_mutation(
                SUPERADMIN, EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, target_role, current_role,
            ).allowed)

    def test_admin_may_change_roles_below_owner(self):
        decision = authorize_mutation(
            actor('admin'), EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, 'client', 'member',
        )
        self.assertTrue(decision.allowed)

    def test_unknown_role_is_invalid(self):
        decision = authorize_mutation(SUPERADMIN, EntityType.MEMBERSHIP, Operation.CREATE, ORG_A, 'emperor')
        self.assertEqual(decision.reason, Reason.INVALID_ROLE)


class RuleTableTests(SimpleTestCase):

    def test_every_write_has_an_explicit_rule(self):
        for kind in EntityType:
            if kind == EntityType.USER:
                continue
            for operation in WRITES:
                self.assertIn((kind, operation), MUTATION_RULES)

    def test_user_rows_are_not_writable_through_the_guard(self):
        decision = authorize_mutation(SUPERADMIN, EntityType.USER, Operation.UPDATE, ORG_A)
        self.assertEqual(decision.reason, Reason.UNSUPPORTED_OPERATION)


class SelfServiceTests(SimpleTestCase):

    def test_first_organization_allowed_without_memberships(self):
        self.assertTrue(authorize_self_service_organization(actor()).allowed)

    def test_existing_member_cannot_self_serve(self):
        decision = authorize_self_service_organization(actor('member'))
        self.assertEqual(decision.reason, Reason.ALREADY_MEMBER)
