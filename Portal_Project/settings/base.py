"""
Base Django settings for Portal_Project.
Contains all common settings shared across environments.
"""

import os
import sys
from pathlib import Path
from django.core.management.utils import get_random_secret_key

# Load environment variables from unified .env file
from core.env_loader import get_env, get_bool_env, get_int_env, get_list_env

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Add the project root to the Python path
sys.path.insert(0, str(BASE_DIR))

# ==============================================
# LOGGING CONFIGURATION
# ==============================================

# Get logs directory from environment (server-independent)
LOG_DIR = get_env('LOGS_DIR', os.path.join(BASE_DIR, 'logs'))

# Ensure log directory exists
os.makedirs(LOG_DIR, exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'production.log'),
            'maxBytes': 50 * 1024 * 1024,  # 50MB
            'backupCount': 3,
            'formatter': 'verbose',
        },
        'error_file': {
            'level': 'ERROR',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'production_errors.log'),
            'maxBytes': 10 * 1024 * 1024,  # 10MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
        'console': {
            'level': 'ERROR',  # Only errors to console
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['file', 'error_file'],
            'level': 'WARNING',
            'propagate': False,
        },
        'django.db.backends': {
            'handlers': ['error_file'],
            'level': 'ERROR',  # Only log database errors
            'propagate': False,
        },
        'discussions': {
            'handlers': ['file', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['file', 'console'],
        'level': 'INFO',
    },
}

# ==============================================
# CORE DJANGO SETTINGS
# ==============================================

SECRET_KEY = get_env('DJANGO_SECRET_KEY')
if not SECRET_KEY:
    # Generate a secure secret key if not provided
    SECRET_KEY = get_random_secret_key()
elif len(SECRET_KEY) < 50 or SECRET_KEY.startswith('django-insecure-'):
    SECRET_KEY = get_random_secret_key()

DEBUG = get_bool_env('DJANGO_DEBUG', False)

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ==============================================
# INSTALLED APPS
# ==============================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'corsheaders',
    'django_extensions',

    # Core Portal Apps
    'core',

    # Community
    'discussions',
]

# ==============================================
# MIDDLEWARE CONFIGURATION
# ==============================================

MIDDLEWARE = [
    'django.middleware.gzip.GZipMiddleware',  # Enable GZIP compression
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'Portal_Project.urls'

# ==============================================
# TEMPLATES CONFIGURATION
# ==============================================

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'Portal_Project.wsgi.application'

# ==============================================
# AUTHENTICATION & AUTHORIZATION
# ==============================================

# Users, sessions and login screens are owned by django.contrib.auth
LOGIN_URL = '/admin/login/'

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# ==============================================
# SESSION CONFIGURATION
# ==============================================

SESSION_ENGINE = 'django.contrib.sessions.backends.db'
SESSION_COOKIE_AGE = 86400  # 24 hours
SESSION_EXPIRE_AT_BROWSER_CLOSE = False
SESSION_SERIALIZER = 'django.contrib.sessions.serializers.JSONSerializer'
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = 'Lax'
SESSION_COOKIE_NAME = 'portal_sessionid'
SESSION_COOKIE_SECURE = False  # Set to True in production.py

# ==============================================
# CSRF CONFIGURATION
# ==============================================

CSRF_COOKIE_NAME = 'csrftoken'
CSRF_HEADER_NAME = 'HTTP_X_CSRFTOKEN'
CSRF_USE_SESSIONS = False
CSRF_COOKIE_HTTPONLY = False  # Allow JavaScript access for AJAX requests
CSRF_COOKIE_SAMESITE = 'Lax'
CSRF_COOKIE_SECURE = False  # Set to True in production with HTTPS

# ==============================================
# CORS CONFIGURATION - STANDARDIZED ACROSS ALL ENVIRONMENTS
# ==============================================

CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOWED_ORIGINS = get_list_env('CORS_ALLOWED_ORIGINS', default=[])

CORS_ALLOW_HEADERS = [
    'accept',
    'accept-encoding',
    'authorization',
    'content-type',
    'dnt',
    'origin',
    'user-agent',
    'x-csrftoken',
    'x-requested-with',
]

CORS_ALLOW_METHODS = [
    'GET',
    'OPTIONS',
    'POST',
]

CORS_PREFLIGHT_MAX_AGE = 86400  # 24 hours

# ==============================================
# INTERNATIONALIZATION
# ==============================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ==============================================
# STATIC FILES CONFIGURATION
# ==============================================

STATIC_URL = '/static/'
STATIC_ROOT = get_env('STATIC_ROOT', str(BASE_DIR / 'staticfiles'))

# ==============================================
# DISCUSSIONS
# ==============================================

# 'prune' drops a deleted reply together with its subtree,
# 'placeholder' keeps it as an empty shell so its replies stay visible
DISCUSSIONS_DELETED_NODE_POLICY = get_env('DISCUSSIONS_DELETED_NODE_POLICY', 'prune')
DISCUSSIONS_DELETED_PLACEHOLDER = get_env('DISCUSSIONS_DELETED_PLACEHOLDER', '[deleted]')
DISCUSSIONS_MAX_BODY_LENGTH = get_int_env('DISCUSSIONS_MAX_BODY_LENGTH', 20000)
DISCUSSIONS_PAGE_SIZE = get_int_env('DISCUSSIONS_PAGE_SIZE', 20)
