"""
Domain settings with defaults.

Values come from the SOCIAL dict in Django settings; anything missing falls
back to DEFAULTS. Read lazily so override_settings works in tests.
"""
from django.conf import settings

DEFAULTS = {
    'BROADCAST_TRANSPORT': 'social.broadcasting.LoggingTransport',
    'LIKE_NOTIFICATION_WINDOW_HOURS': 24,
    'NOTIFICATION_RETENTION_DAYS': 30,
    'TYPING_TIMEOUT_SECONDS': 5,
    'FRONTEND_URL': 'http://localhost:3000',
    'DEFAULT_AVATAR': 'images/default-avatar.png',
    'DEFAULT_COVER_PHOTO': 'images/default-cover.jpg',
}


class SocialSettings:

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid social setting: '{name}'")
        user_settings = getattr(settings, 'SOCIAL', {})
        return user_settings.get(name, DEFAULTS[name])


social_settings = SocialSettings()
