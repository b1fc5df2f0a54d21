"""
JWT bearer authentication for staff.

Access tokens are short-lived and carry the caller role; refresh tokens
only mint new access tokens and are refused as bearer credentials.
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'
ACCESS = 'access'
REFRESH = 'refresh'


class JWTAuthentication(BaseAuthentication):
    keyword = 'Bearer'

    def authenticate_header(self, request):
        return self.keyword

    def authenticate(self, request):
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith(f'{self.keyword} '):
            return None

        token = auth_header[len(self.keyword) + 1:]
        payload = decode_token(token, ACCESS)

        from accounts.models import StaffUser
        try:
            user = StaffUser.objects.get(id=payload['user_id'], is_active=True)
        except (StaffUser.DoesNotExist, KeyError, ValueError):
            raise AuthenticationFailed('User not found')

        return (user, token)


def decode_token(token, expected_type):
    """Decode and check a token of the given type; raises AuthenticationFailed."""
    label = 'Refresh token' if expected_type == REFRESH else 'Token'
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed(f'{label} has expired')
    except jwt.InvalidTokenError:
        raise AuthenticationFailed(f'Invalid {label.lower()}')

    if payload.get('type') != expected_type:
        logger.warning(f'Rejected {payload.get("type")} token presented as {expected_type}')
        raise AuthenticationFailed('Invalid token type')
    return payload


def _issue(user, token_type, lifetime, **claims):
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': str(user.id),
        'type': token_type,
        'iat': now,
        'exp': now + lifetime,
        **claims,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def generate_access_token(user):
    return _issue(
        user, ACCESS, timedelta(minutes=settings.JWT_ACCESS_TOKEN_LIFETIME_MINUTES), role=user.role,
    )


def generate_refresh_token(user):
    return _issue(user, REFRESH, timedelta(days=settings.JWT_REFRESH_TOKEN_LIFETIME_DAYS))


def verify_refresh_token(token):
    return decode_token(token, REFRESH)
