"""
Authentication views for user registration and login.

Registration creates the user's Profile in the same transaction. Login and
logout also flip the user's online status, which is broadcast on user.status.
"""
import logging

from django.contrib.auth.models import User
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from . import profiles
from .models import Profile
from .serializers import ProfileSerializer
from .views import envelope

logger = logging.getLogger(__name__)


def _auth_payload(user):
    refresh = RefreshToken.for_user(user)
    return {
        'user': {
            'id': user.id,
            'username': user.username,
            'email': user.email,
        },
        'tokens': {
            'access': str(refresh.access_token),
            'refresh': str(refresh),
        }
    }


class RegisterView(APIView):
    """
    User registration endpoint.

    Creates a new user with a profile and returns JWT tokens.
    """
    permission_classes = [AllowAny]

    def post(self, request):
        username = request.data.get('username', '').strip()
        email = request.data.get('email', '').strip()
        password = request.data.get('password', '')

        # Validation
        errors = {}

        if not username:
            errors['username'] = 'Username is required'
        elif not profiles.USERNAME_PATTERN.match(username):
            errors['username'] = 'Username must be 3-50 letters, digits, underscores or dots'
        elif (User.objects.filter(username__iexact=username).exists()
              or Profile.objects.filter(username__iexact=username).exists()):
            errors['username'] = 'Username already taken'

        if not email:
            errors['email'] = 'Email is required'
        elif User.objects.filter(email__iexact=email).exists():
            errors['email'] = 'Email already registered'

        if not password:
            errors['password'] = 'Password is required'
        else:
            try:
                validate_password(password)
            except ValidationError as e:
                errors['password'] = list(e.messages)

        if errors:
            return Response(
                {'success': False, 'message': 'Validation failed', 'errors': errors},
                status=status.HTTP_422_UNPROCESSABLE_ENTITY
            )

        with transaction.atomic():
            user = User.objects.create_user(
                username=username,
                email=email,
                password=password,
                first_name=request.data.get('first_name', '').strip(),
                last_name=request.data.get('last_name', '').strip(),
            )
            Profile.objects.create(user=user, username=username)

        logger.info("Registered user %s", user.id)
        return envelope(_auth_payload(user), 'Registration successful', status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    User login endpoint.

    Accepts a username or an email address and returns JWT tokens.
    """
    permission_classes = [AllowAny]

    def post(self, request):
        username = request.data.get('username', '').strip()
        password = request.data.get('password', '')

        if not username or not password:
            return Response(
                {'success': False, 'message': 'Username and password are required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        # Try to find user by username or email
        lookup = {'email__iexact': username} if '@' in username else {'username__iexact': username}
        user = User.objects.filter(is_active=True, **lookup).first()

        if user is None or not user.check_password(password):
            return Response(
                {'success': False, 'message': 'Invalid credentials'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        profiles.set_online_status(user, True)
        return envelope(_auth_payload(user), 'Login successful')


class MeView(APIView):
    """
    Get current user info with profile.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = profiles.ensure_profile(request.user)
        return envelope({
            'id': request.user.id,
            'username': request.user.username,
            'email': request.user.email,
            'profile': ProfileSerializer(profile).data,
        })


class LogoutView(APIView):
    """
    Logout endpoint - blacklists the refresh token and marks the user offline.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        refresh_token = request.data.get('refresh')
        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError:
                logger.info("Logout with invalid refresh token for user %s", request.user.id)

        profiles.set_online_status(request.user, False)
        return envelope(message='Logged out successfully')
