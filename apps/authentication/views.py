"""
Authentication Views
"""

import logging

from django.contrib.auth.signals import user_logged_out
from drf_spectacular.utils import extend_schema
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from apps.core.identity import IdentityCache, identity_for_request
from apps.core.response import success_response

from .serializers import (
    LoginSerializer,
    LogoutSerializer,
    PasswordChangeSerializer,
    ProfileSerializer,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security.audit")


# =====================================================
# LOGIN / LOGOUT
# =====================================================

class LoginView(TokenObtainPairView):
    permission_classes = [AllowAny]
    serializer_class = LoginSerializer


class LogoutView(APIView):
    """Blacklist the refresh token and drop the cached identity."""

    permission_classes = [IsAuthenticated]
    serializer_class = LogoutSerializer

    def post(self, request):
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refresh_token = serializer.validated_data.get('refresh_token')

        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError as exc:
                security_logger.info(
                    "logout_with_invalid_token user=%s error=%s", request.user.pk, exc,
                    extra={'event_type': 'logout_invalid_token', 'user_id': str(request.user.pk)},
                )

        IdentityCache.invalidate(request.user.pk)
        user_logged_out.send(sender=request.user.__class__, request=request, user=request.user)
        return success_response(message="Signed out.")


# =====================================================
# PROFILE
# =====================================================

class ProfileView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = ProfileSerializer

    def _context(self, request):
        return {'request': request, 'identity': identity_for_request(request)}

    def get(self, request):
        serializer = ProfileSerializer(request.user, context=self._context(request))
        return success_response(serializer.data)

    def patch(self, request):
        serializer = ProfileSerializer(
            request.user, data=request.data, partial=True, context=self._context(request),
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success_response(serializer.data, message="Profile updated.")


class PasswordChangeView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = PasswordChangeSerializer

    @extend_schema(request=PasswordChangeSerializer, responses={200: None})
    def post(self, request):
        serializer = PasswordChangeSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info("Password changed for user %s", request.user.pk)
        return success_response(message="Password changed.")
