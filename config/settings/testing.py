"""
Django Settings - Testing Configuration
"""

from .base import *

DEBUG = False
TESTING = True

SECRET_KEY = "test-secret-key-not-for-production"
ALLOWED_HOSTS = ["*"]

# Use faster password hasher
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Use sync Celery
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

# Fast deterministic in-process cache for tests.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "bizdesk-tests-cache",
    }
}

STORAGES = {
    **STORAGES,
    "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
    "attachments": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
}

# Keep test output quiet; records still reach caplog
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {"()": "apps.core.logging.CorrelationIdFilter"},
    },
    "handlers": {
        "null": {"class": "logging.NullHandler", "filters": ["correlation_id"]},
    },
    "root": {"handlers": ["null"], "level": "DEBUG"},
}
