from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from apps.core.identity import IdentityCache, resolve_identity
from apps.core.models import OrganizationMembership
from tests.factories import MembershipFactory, SuperadminFactory, UserFactory


class LoginTests(APITestCase):

    def setUp(self):
        self.membership = MembershipFactory(role=OrganizationMembership.RoleChoices.ADMIN)
        self.user = self.membership.user
        self.client = APIClient()

    def login(self, email, password='TestPass123!'):
        return self.client.post(reverse('token_obtain_pair'), {'email': email, 'password': password}, format='json')

    def test_login_returns_tokens_and_user(self):
        response = self.login(self.user.email)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.json()
        self.assertIn('access', body)
        self.assertIn('refresh', body)
        self.assertEqual(body['user']['email'], self.user.email)
        self.assertFalse(body['user']['is_superadmin'])

    def test_superadmin_flag_comes_from_grant(self):
        superadmin = SuperadminFactory()
        response = self.login(superadmin.email)
        self.assertTrue(response.json()['user']['is_superadmin'])

    def test_wrong_password(self):
        response = self.login(self.user.email, 'nope')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.json()['success'])

    def test_profile_with_bearer_token(self):
        access = self.login(self.user.email).json()['access']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
        response = self.client.get(reverse('profile'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()['data']
        self.assertEqual(data['email'], self.user.email)
        self.assertEqual(data['memberships'], [{
            'organization': str(self.membership.organization_id),
            'organization_name': self.membership.organization.name,
            'role': 'admin',
        }])


class ProfileTests(APITestCase):

    def setUp(self):
        self.user = UserFactory()
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_update_names_only(self):
        response = self.client.patch(
            reverse('profile'), {'first_name': 'Ada', 'email': 'other@example.com'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, 'Ada')
        self.assertNotEqual(self.user.email, 'other@example.com')

    def test_password_change(self):
        response = self.client.post(reverse('change_password'), {
            'current_password': 'TestPass123!',
            'new_password': 'Correct-Horse-Battery-9',
            'new_password_confirm': 'Correct-Horse-Battery-9',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('Correct-Horse-Battery-9'))

    def test_password_change_requires_current_password(self):
        response = self.client.post(reverse('change_password'), {
            'current_password': 'wrong',
            'new_password': 'Correct-Horse-Battery-9',
            'new_password_confirm': 'Correct-Horse-Battery-9',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_logout_drops_cached_identity(self):
        resolve_identity(self.user)
        self.assertIsNotNone(IdentityCache.get(self.user.pk))
        response = self.client.post(reverse('logout'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.json()['success'])
        self.assertIsNone(IdentityCache.get(self.user.pk))

    def test_logout_blacklists_refresh_token(self):
        client = APIClient()
        login = client.post(
            reverse('token_obtain_pair'), {'email': self.user.email, 'password': 'TestPass123!'}, format='json',
        ).json()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {login['access']}")
        client.post(reverse('logout'), {'refresh_token': login['refresh']}, format='json')

        response = client.post(reverse('token_refresh'), {'refresh': login['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
