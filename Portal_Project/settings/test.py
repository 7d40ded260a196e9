"""
Test Django settings for Portal_Project - in-memory database, console logging
"""

from .base import *
from core.env_loader import get_env

# Environment identification
ENVIRONMENT = 'test'
DEBUG = False

SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'test-key-for-development-only-not-secure')
ALLOWED_HOSTS = [
    'testserver',
    'localhost',
    '127.0.0.1',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Fast hashing for test users
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Session configuration
SESSION_COOKIE_SECURE = False  # HTTP for testing
CSRF_COOKIE_SECURE = False

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

# Logging configuration for testing
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'level': 'WARNING',
            'class': 'logging.StreamHandler',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': True,
        },
        'discussions': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}

DISCUSSIONS_DELETED_NODE_POLICY = 'prune'
DISCUSSIONS_PAGE_SIZE = 20
