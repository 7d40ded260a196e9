"""
Production Environment Settings for Portal_Project
Extends base settings with production-specific configurations
"""

import logging
from .base import *
from core.env_loader import get_env, get_bool_env, get_int_env, get_list_env

# ==============================================
# PRODUCTION ENVIRONMENT OVERRIDES
# ==============================================

# Environment identification
ENVIRONMENT = 'production'
DEBUG = False

# ==============================================
# PRODUCTION SESSION CONFIGURATION OVERRIDES
# ==============================================

SESSION_COOKIE_SECURE = True  # Enable secure cookies for HTTPS
SESSION_SAVE_EVERY_REQUEST = False

# CSRF configuration - production overrides only
CSRF_COOKIE_SECURE = True

# Disable session corruption warnings
logging.getLogger('django.contrib.sessions').setLevel(logging.ERROR)

X_FRAME_OPTIONS = 'SAMEORIGIN'

SECURE_SSL_REDIRECT = get_bool_env('SECURE_SSL_REDIRECT', True)
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_REFERRER_POLICY = 'strict-origin-when-cross-origin'
SECURE_HSTS_SECONDS = get_int_env('SECURE_HSTS_SECONDS', 31536000)  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True

# Production allowed hosts - Use environment variable with fallback
PRIMARY_DOMAIN = get_env('PRIMARY_DOMAIN', 'localhost')

ALLOWED_HOSTS = [
    PRIMARY_DOMAIN,
]

# Add additional hosts from environment (comma-separated)
ALLOWED_HOSTS.extend(get_list_env('ADDITIONAL_ALLOWED_HOSTS', default=[]))

ALLOWED_HOSTS.extend([
    'localhost',
    '127.0.0.1',
])

# Production-specific CORS overrides (inherits base.py CORS config)
if not CORS_ALLOWED_ORIGINS:
    CORS_ALLOWED_ORIGINS = [f"https://{PRIMARY_DOMAIN}"]

CSRF_TRUSTED_ORIGINS = list(CORS_ALLOWED_ORIGINS)

# ==============================================
# PRODUCTION DATABASE CONFIGURATION
# ==============================================

DB_PASSWORD = get_env('DB_PASSWORD') or get_env('DATABASE_PASSWORD')
if not DB_PASSWORD:
    raise ValueError("Database password is required for production deployment (set DB_PASSWORD)")

DB_HOST = get_env('DB_HOST')
if not DB_HOST:
    raise ValueError("Database host is required for production deployment (set DB_HOST)")

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': get_env('DB_NAME', 'portal'),
        'USER': get_env('DB_USER', 'portal'),
        'PASSWORD': DB_PASSWORD,
        'HOST': DB_HOST,
        'PORT': get_env('DB_PORT', '5432'),
        'OPTIONS': {
            'connect_timeout': 60,
            'sslmode': get_env('DB_SSLMODE', 'prefer'),
            'application_name': 'Portal_Production',
        },
        'CONN_MAX_AGE': 180,
        'CONN_HEALTH_CHECKS': True,
        'ATOMIC_REQUESTS': False,
    }
}

# ==============================================
# PRODUCTION STATIC FILES CONFIGURATION
# ==============================================

STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage',
    },
}
