"""
Django settings for the esig project.

Values that differ between deployments are read from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'insecure-development-key')
DEBUG = os.environ.get('DJANGO_DEBUG', '1') == '1'
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'signatures',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'esig.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('ESIG_DATABASE', str(BASE_DIR / 'db.sqlite3')),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
MEDIA_URL = '/media/'
MEDIA_ROOT = os.environ.get('ESIG_MEDIA_ROOT', str(BASE_DIR / 'media'))

# ----------------------------
# REST framework
# ----------------------------
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'signatures.exceptions.signing_exception_handler',
}

# ----------------------------
# Signing service account
# ----------------------------
ESIG_ACCOUNT_ID = os.environ.get('ESIG_ACCOUNT_ID', '')
ESIG_ACCOUNT_SECRET = os.environ.get('ESIG_ACCOUNT_SECRET', '')
ESIG_API_SERVER = os.environ.get('ESIG_API_SERVER', 'https://api.certificate24.com/')
ESIG_SERVER = os.environ.get('ESIG_SERVER', 'https://www.certificate24.com/')
ESIG_REQUEST_TIMEOUT = int(os.environ.get('ESIG_REQUEST_TIMEOUT', '30'))
ESIG_TOKEN_LIFETIME = int(os.environ.get('ESIG_TOKEN_LIFETIME', '300'))

# Host file storage collaborator
ESIG_FILE_RESOLVER = os.environ.get('ESIG_FILE_RESOLVER', 'signatures.files.StorageFileResolver')
ESIG_FILES_ROOT = os.environ.get('ESIG_FILES_ROOT', 'files')

# Anti-enumeration throttle for public endpoints
ESIG_FAILED_ATTEMPTS_LIMIT = int(os.environ.get('ESIG_FAILED_ATTEMPTS_LIMIT', '10'))
ESIG_FAILED_ATTEMPTS_WINDOW = int(os.environ.get('ESIG_FAILED_ATTEMPTS_WINDOW', '600'))

FRONTEND_BASE_URL = os.environ.get('FRONTEND_BASE_URL', 'http://localhost:3000')

# ----------------------------
# Mail
# ----------------------------
EMAIL_BACKEND = os.environ.get('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'esig@localhost')

# ----------------------------
# Celery
# ----------------------------
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'memory://')
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', '1') == '1'
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BEAT_SCHEDULE = {
    'archive-completed-requests': {
        'task': 'signatures.tasks.archive_completed_requests',
        'schedule': 15 * 60,
    },
}

# ----------------------------
# Logging
# ----------------------------
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'signatures': {
            'handlers': ['console'],
            'level': os.environ.get('ESIG_LOG_LEVEL', 'INFO'),
        },
    },
}
