"""Core Django settings."""

from decouple import Csv

from server.settings.components import config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

ALLOWED_HOSTS = config(
    'DJANGO_ALLOWED_HOSTS',
    cast=Csv(),
    default='localhost',
)

INSTALLED_APPS = [
    'server.apps.resources',
]

# Resources live in S3; the database is unused
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    },
}

USE_TZ = True
TIME_ZONE = 'UTC'
