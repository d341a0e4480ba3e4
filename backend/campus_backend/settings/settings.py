"""
Base Django settings for the campus ride-share backend.

Environment-specific overrides live beside this module (see prod.py).
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'corsheaders',
    'rest_framework',
    'rest_framework_simplejwt',
    'channels',
    'accounts',
    'rides',
    'realtime',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'campus_backend.urls'

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

WSGI_APPLICATION = 'campus_backend.wsgi.application'
ASGI_APPLICATION = 'campus_backend.asgi.application'

# Database: SQLite unless DB_ENGINE points somewhere else (see prod.py)
DATABASES = {
    'default': {
        'ENGINE': os.getenv("DB_ENGINE", "django.db.backends.sqlite3"),
        'NAME': os.getenv("DB_NAME", str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv("DB_USER", ""),
        'PASSWORD': os.getenv("DB_PASSWORD", ""),
        'HOST': os.getenv("DB_HOST", ""),
        'PORT': os.getenv("DB_PORT", ""),
    }
}

if DATABASES['default']['ENGINE'] == "django.db.backends.sqlite3":
    # SQLite ignores SELECT ... FOR UPDATE. Taking the write lock at BEGIN
    # serializes seat changes, and writers queue for up to `timeout` seconds.
    DATABASES['default']['OPTIONS'] = {
        'transaction_mode': 'IMMEDIATE',
        'timeout': int(os.getenv("DB_TIMEOUT", "20")),
    }
    # Shared-cache memory databases fail lock waits instead of queueing
    DATABASES['default']['TEST'] = {'NAME': str(BASE_DIR / 'test_db.sqlite3')}


AUTH_USER_MODEL = 'accounts.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

CORS_ALLOW_ALL_ORIGINS = True

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", 60))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
}

# In-memory layer for development; prod.py swaps in Redis
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() == "true"
CELERY_TIMEZONE = TIME_ZONE

# ---------------------- Ride policy ----------------------

RIDE_MAX_SEATS = int(os.getenv("RIDE_MAX_SEATS", 6))
RIDE_MATCH_LIMIT = int(os.getenv("RIDE_MATCH_LIMIT", 5))
RIDE_SWEEP_INTERVAL_SECONDS = int(os.getenv("RIDE_SWEEP_INTERVAL_SECONDS", 300))
# Expiry is judged against campus civil time (IST, UTC+5:30)
RIDE_CIVIL_UTC_OFFSET_MINUTES = int(os.getenv("RIDE_CIVIL_UTC_OFFSET_MINUTES", 330))
RIDE_SWEEP_STATUSES = ('waiting', 'active', 'full')

RIDE_DESTINATION_GROUPS = {
    'transport_hub': ('Railway Station', 'Bus Stand'),
    'shopping': ('Jio Mart', 'GV Mall', 'Vijetha Mart'),
    'theatres': ('Connplex Cinemas', 'Sri Ranga Mahal Theatre', 'Sri Seshmahal Theatre'),
    'nit_back_gate': ('NIT Back Gate',),
    'nit_front_gate': ('NIT Front Gate',),
    'highway': ('Tadepalligudem Highway',),
}
RIDE_DESTINATION_GROUP_OVERLAPS = (
    ('transport_hub', 'shopping'),
)

CELERY_BEAT_SCHEDULE = {
    'sweep-expired-rides': {
        'task': 'rides.tasks.sweep_expired_rides_task',
        'schedule': float(RIDE_SWEEP_INTERVAL_SECONDS),
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
}
