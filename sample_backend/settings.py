"""
Django settings for the sample_backend project.

Azure AD values are read from the environment. The authentication filter
is only registered when both AZURE_ACTIVEDIRECTORY_CLIENT_ID and
AZURE_ACTIVEDIRECTORY_CLIENT_SECRET are set.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-sample-backend-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'False').lower() == 'true'

ALLOWED_HOSTS = [host for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if host]

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'rest_framework',
    'azure_autoconfigure.aad',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'azure_autoconfigure.aad.middleware.AADAuthenticationMiddleware',
]

ROOT_URLCONF = 'sample_backend.urls'

WSGI_APPLICATION = 'sample_backend.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DJANGO_DB_NAME', BASE_DIR / 'db.sqlite3'),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'sample-backend',
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'azure_autoconfigure.aad.authentication.AADFilterAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'UNAUTHENTICATED_USER': None,
}

# Azure AD (azure.activedirectory.*)
AZURE_ACTIVEDIRECTORY_CLIENT_ID = os.environ.get('AZURE_CLIENT_ID', '')
AZURE_ACTIVEDIRECTORY_CLIENT_SECRET = os.environ.get('AZURE_CLIENT_SECRET', '')
AZURE_ACTIVEDIRECTORY_TENANT_ID = os.environ.get('AZURE_TENANT_ID', '')
AZURE_ACTIVEDIRECTORY_APP_ID_URI = os.environ.get('AZURE_APP_ID_URI', '')
AZURE_ACTIVEDIRECTORY_ACTIVE_DIRECTORY_GROUPS = os.environ.get('AZURE_ACTIVE_DIRECTORY_GROUPS', '')
AZURE_ACTIVEDIRECTORY_ENVIRONMENT = os.environ.get('AZURE_ENVIRONMENT', 'global')
AZURE_ACTIVEDIRECTORY_SESSION_STATELESS = os.environ.get('AZURE_SESSION_STATELESS', 'false')
AZURE_ACTIVEDIRECTORY_ALLOW_TELEMETRY = os.environ.get('AZURE_ALLOW_TELEMETRY', 'true')

# Telemetry is only sent once a real Application Insights key is configured.
AZURE_TELEMETRY_INSTRUMENTATION_KEY = os.environ.get('AZURE_TELEMETRY_INSTRUMENTATION_KEY', '')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'azure_autoconfigure': {
            'handlers': ['console'],
            'level': os.environ.get('AZURE_AUTOCONFIGURE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
