"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- Any S3-compatible service in production

User resources live under per-tenant key prefixes of one bucket.
"""

from typing import Any, Final

from server.settings.components import config

# Storage configuration dictionary
# Uses S3-compatible storage for resources, local storage for static files
STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': (
            'server.apps.resources.infrastructure.storage.NamespaceStorage'
        ),
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='user-files',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default='minioadmin'),
            'secret_key': config(
                'AWS_SECRET_ACCESS_KEY',
                default='minioadmin',
            ),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            'file_overwrite': False,  # Prevent accidental overwrites
            'default_acl': None,  # Inherit bucket ACL
        },
    },
    'staticfiles': {
        # Keep static files separate from user files
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}
