"""
Organization endpoints: self-service onboarding, superadmin management and
member administration.
"""

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from apps.authentication.models import User
from apps.core.models import Organization, OrganizationMembership
from tests.factories import (
    ClientFactory,
    MembershipFactory,
    OrganizationFactory,
    SuperadminFactory,
    UserFactory,
)

Role = OrganizationMembership.RoleChoices


class OrganizationAPITestCase(APITestCase):

    def setUp(self):
        self.org_a = OrganizationFactory(name='Organization A')
        self.org_b = OrganizationFactory(name='Organization B')
        self.owner = MembershipFactory(organization=self.org_a, role=Role.OWNER).user
        self.member = MembershipFactory(organization=self.org_a, role=Role.MEMBER).user
        self.superadmin = SuperadminFactory()
        self.client = APIClient()

    def as_user(self, user):
        self.client.force_authenticate(user=user)

    def members_url(self, organization):
        return reverse('organization-members', args=[organization.pk])

    # -- listing ------------------------------------------------------------

    def test_member_lists_own_organizations_with_member_count(self):
        self.as_user(self.member)
        response = self.client.get(reverse('organization-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()['data']
        self.assertEqual([row['name'] for row in data], ['Organization A'])
        self.assertEqual(data[0]['member_count'], 2)

    def test_member_cannot_read_foreign_organization(self):
        self.as_user(self.member)
        response = self.client.get(reverse('organization-detail', args=[self.org_b.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_superadmin_lists_all(self):
        self.as_user(self.superadmin)
        response = self.client.get(reverse('organization-list'))
        self.assertEqual(len(response.json()['data']), 2)

    # -- create / update / delete ---------------------------------------------

    def test_only_superadmin_creates_organizations(self):
        self.as_user(self.owner)
        response = self.client.post(reverse('organization-list'), {'name': 'Initech'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()['error']['reason'], 'superadmin_required')

        self.as_user(self.superadmin)
        response = self.client.post(reverse('organization-list'), {'name': 'Initech', 'slug': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.json()['data']['slug'], 'initech')

    def test_name_is_unique_case_insensitively(self):
        self.as_user(self.superadmin)
        response = self.client.post(reverse('organization-list'), {'name': 'organization a'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.json()['error']['details'])

    def test_owner_updates_own_organization(self):
        self.as_user(self.owner)
        response = self.client.patch(
            reverse('organization-detail', args=[self.org_a.pk]), {'website': 'https://a.example.com'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.org_a.refresh_from_db()
        self.assertEqual(self.org_a.website, 'https://a.example.com')

    def test_plain_member_cannot_update(self):
        self.as_user(self.member)
        response = self.client.patch(
            reverse('organization-detail', args=[self.org_a.pk]), {'industry': 'Retail'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()['error']['reason'], 'insufficient_role')

    def test_owner_cannot_update_foreign_organization(self):
        self.as_user(self.owner)
        response = self.client.patch(
            reverse('organization-detail', args=[self.org_b.pk]), {'industry': 'Retail'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_owner_cannot_delete(self):
        self.as_user(self.owner)
        response = self.client.delete(reverse('organization-detail', args=[self.org_a.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Organization.objects.filter(pk=self.org_a.pk).exists())

    def test_superadmin_delete_cascades(self):
        ClientFactory(organization=self.org_b)
        MembershipFactory(organization=self.org_b)
        self.as_user(self.superadmin)
        response = self.client.delete(reverse('organization-detail', args=[self.org_b.pk]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Organization.objects.filter(pk=self.org_b.pk).exists())
        self.assertFalse(OrganizationMembership.objects.filter(organization_id=self.org_b.pk).exists())

    # -- self-service ---------------------------------------------------------

    def test_self_service_makes_creator_owner(self):
        newcomer = UserFactory()
        self.as_user(newcomer)
        response = self.client.post(reverse('organization-self-service'), {'name': 'Fresh Start'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        organization = Organization.objects.get(name='Fresh Start')
        self.assertEqual(
            OrganizationMembership.objects.get(organization=organization, user=newcomer).role, Role.OWNER,
        )

        response = self.client.get(reverse('organization-list'))
        self.assertEqual([row['name'] for row in response.json()['data']], ['Fresh Start'])

    def test_self_service_refused_for_existing_member(self):
        self.as_user(self.member)
        response = self.client.post(reverse('organization-self-service'), {'name': 'Side Project'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error']['reason'], 'already_member')
        self.assertFalse(Organization.objects.filter(name='Side Project').exists())

    # -- members ----------------------------------------------------------------

    def test_members_listing(self):
        self.as_user(self.member)
        response = self.client.get(self.members_url(self.org_a))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        emails = {row['user']['email'] for row in response.json()['data']}
        self.assertEqual(emails, {self.owner.email, self.member.email})

    def test_owner_invites_new_user(self):
        self.as_user(self.owner)
        response = self.client.post(
            self.members_url(self.org_a),
            {'email': 'New.Hire@Example.com', 'role': Role.MEMBER, 'first_name': 'New'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        user = User.objects.get(email='new.hire@example.com')
        self.assertFalse(user.has_usable_password())
        self.assertTrue(OrganizationMembership.objects.filter(organization=self.org_a, user=user).exists())

    def test_invite_existing_user_changes_role(self):
        self.as_user(self.owner)
        response = self.client.post(
            self.members_url(self.org_a), {'email': self.member.email, 'role': Role.ADMIN}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(
            OrganizationMembership.objects.get(organization=self.org_a, user=self.member).role, Role.ADMIN,
        )

    def test_admin_cannot_change_the_owner_role(self):
        admin = MembershipFactory(organization=self.org_a, role=Role.ADMIN).user
        self.as_user(admin)
        response = self.client.post(
            self.members_url(self.org_a), {'email': self.owner.email, 'role': Role.CLIENT}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()['error']['reason'], 'insufficient_role')
        self.assertEqual(
            OrganizationMembership.objects.get(organization=self.org_a, user=self.owner).role, Role.OWNER,
        )

        response = self.client.post(
            self.members_url(self.org_a), {'email': self.member.email, 'role': Role.OWNER}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(
            OrganizationMembership.objects.get(organization=self.org_a, user=self.member).role, Role.MEMBER,
        )

    def test_admin_changes_roles_below_owner(self):
        admin = MembershipFactory(organization=self.org_a, role=Role.ADMIN).user
        self.as_user(admin)
        response = self.client.post(
            self.members_url(self.org_a), {'email': self.member.email, 'role': Role.CLIENT}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertEqual(
            OrganizationMembership.objects.get(organization=self.org_a, user=self.member).role, Role.CLIENT,
        )

    def test_owner_hands_over_ownership(self):
        self.as_user(self.owner)
        response = self.client.post(
            self.members_url(self.org_a), {'email': self.member.email, 'role': Role.OWNER}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.content)
        self.assertEqual(
            OrganizationMembership.objects.get(organization=self.org_a, user=self.member).role, Role.OWNER,
        )

    def test_superadmin_is_not_an_organization_role(self):
        self.as_user(self.owner)
        response = self.client.post(
            self.members_url(self.org_a), {'email': 'boss@example.com', 'role': 'superadmin'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.json()['error']['reason'], 'invalid_role')
        self.assertFalse(User.objects.filter(email='boss@example.com').exists())

    def test_plain_member_cannot_invite(self):
        self.as_user(self.member)
        response = self.client.post(
            self.members_url(self.org_a), {'email': 'friend@example.com', 'role': Role.MEMBER}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(User.objects.filter(email='friend@example.com').exists())

    def test_cannot_invite_into_foreign_organization(self):
        self.as_user(self.owner)
        response = self.client.post(
            self.members_url(self.org_b), {'email': 'spy@example.com', 'role': Role.MEMBER}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.json()['error']['reason'], 'forbidden_cross_tenant_write')

    def test_owner_removes_member(self):
        self.as_user(self.owner)
        response = self.client.delete(
            reverse('organization-remove-member', args=[self.org_a.pk, self.member.pk]),
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(
            OrganizationMembership.objects.filter(organization=self.org_a, user=self.member).exists()
        )

    def test_remove_unknown_member(self):
        self.as_user(self.owner)
        url = reverse('organization-remove-member', args=[self.org_a.pk, UserFactory().pk])
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)

        self.as_user(self.superadmin)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_membership_directory_is_scoped(self):
        MembershipFactory(organization=self.org_b)
        self.as_user(self.member)
        response = self.client.get(reverse('membership-list'))
        organizations = {row['organization'] for row in response.json()['data']}
        self.assertEqual(organizations, {str(self.org_a.pk)})

    def test_user_directory_is_scoped(self):
        stranger = MembershipFactory(organization=self.org_b).user
        self.as_user(self.member)
        response = self.client.get(reverse('user-list'))
        emails = {row['email'] for row in response.json()['data']}
        self.assertEqual(emails, {self.owner.email, self.member.email})
        self.assertNotIn(stranger.email, emails)
