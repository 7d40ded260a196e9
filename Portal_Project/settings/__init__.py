"""
Django settings for Portal_Project
Dynamically loads settings based on DJANGO_ENV environment variable
"""

import os

# Get environment from environment variable, default to staging
DJANGO_ENV = os.environ.get('DJANGO_ENV', 'staging').lower()

# Selection only applies when this package itself is the settings module;
# pointing DJANGO_SETTINGS_MODULE at a submodule (e.g. settings.test) skips it
if os.environ.get('DJANGO_SETTINGS_MODULE', __name__) == __name__:
    if DJANGO_ENV == 'staging':
        from .production import *
        # Override for staging environment
        ENVIRONMENT = 'staging'

    elif DJANGO_ENV == 'test':
        from .test import *

    else:  # production or default
        from .production import *
