"""
Accounts API Views - Staff login, Token Refresh, Profile
"""

import logging

from django.contrib.auth import authenticate
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from accounts.authentication import generate_access_token, generate_refresh_token, verify_refresh_token
from accounts.models import StaffUser
from accounts.serializers import LoginSerializer, RefreshTokenSerializer, StaffUserSerializer

logger = logging.getLogger(__name__)


class LoginThrottle(AnonRateThrottle):
    rate = '10/min'


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginThrottle])
def login(request):
    """Exchange email and password for an access/refresh token pair."""
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    user = authenticate(
        request,
        username=serializer.validated_data['email'],
        password=serializer.validated_data['password'],
    )
    if user is None:
        logger.warning(f'Failed staff login for {serializer.validated_data["email"]}')
        return Response({'error': 'Invalid email or password'}, status=status.HTTP_401_UNAUTHORIZED)

    logger.info(f'Staff login: user={user.id} role={user.role}')
    return Response({
        'access_token': generate_access_token(user),
        'refresh_token': generate_refresh_token(user),
        'user': StaffUserSerializer(user).data,
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_token_view(request):
    """Refresh JWT access token."""
    serializer = RefreshTokenSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    payload = verify_refresh_token(serializer.validated_data['refresh_token'])

    try:
        user = StaffUser.objects.get(id=payload['user_id'], is_active=True)
    except StaffUser.DoesNotExist:
        return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)

    return Response({'access_token': generate_access_token(user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    return Response(StaffUserSerializer(request.user).data)
