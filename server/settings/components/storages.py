"""Django storage configuration for asset backends.

Every uploaded file records the alias of the backend that holds its
bytes, so the aliases below are part of the persisted data:
- ``local`` keeps files on the local filesystem
- ``s3`` keeps files in an S3-compatible bucket (MinIO, R2, AWS)

Both backends overwrite in place, because replacing the content of
an existing file keeps its ``filename_disk``.
"""

from typing import Any, Final

from server.settings.components import BASE_DIR, config

_LOCAL_STORAGE: Final = {
    'BACKEND': 'django.core.files.storage.FileSystemStorage',
    'OPTIONS': {
        'location': config(
            'STORAGE_LOCAL_ROOT',
            default=str(BASE_DIR.joinpath('uploads')),
        ),
        'allow_overwrite': True,
    },
}

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': _LOCAL_STORAGE,
    'local': _LOCAL_STORAGE,
    's3': {
        'BACKEND': 'storages.backends.s3.S3Storage',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='assets',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='auto',
            ),
            'file_overwrite': True,  # Content updates reuse the same key
            'default_acl': None,  # Inherit bucket ACL
        },
    },
    'staticfiles': {
        # Keep static files separate from uploaded assets
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

# Aliases that may be stored on a file record
FILES_STORAGE_BACKENDS: Final = ('local', 's3')

FILES_DEFAULT_STORAGE = config('FILES_DEFAULT_STORAGE', default='local')
