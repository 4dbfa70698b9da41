"""Database models for files app."""

import uuid
from typing import Final, final, override

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

# Constants for field max lengths
_FILENAME_MAX_LENGTH: Final = 255
_STORAGE_MAX_LENGTH: Final = 64
_MIME_TYPE_MAX_LENGTH: Final = 255
_TITLE_MAX_LENGTH: Final = 255


def validate_storage_backend(value: str) -> None:
    """Ensure the value names a configured storage backend.

    Args:
        value: Storage backend alias.

    Raises:
        ValidationError: If the alias is not configured.
    """
    if value not in settings.FILES_STORAGE_BACKENDS:
        raise ValidationError(
            'Unknown storage backend: %(value)s',
            code='invalid_storage',
            params={'value': value},
        )


@final
class File(models.Model):
    """Uploaded asset whose bytes live in a storage backend.

    The record is the catalog entry: ``storage`` says which backend
    holds the bytes and ``filename_disk`` is the object name there.
    ``filename_disk`` is derived from the id when the file is created
    and never changes afterwards.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    storage = models.CharField(
        max_length=_STORAGE_MAX_LENGTH,
        validators=[validate_storage_backend],
        help_text='Alias of the storage backend holding the bytes',
    )

    filename_disk = models.CharField(
        max_length=_FILENAME_MAX_LENGTH,
        editable=False,
        help_text='Object name in storage: {id}{extension}',
    )

    filename_download = models.CharField(
        max_length=_FILENAME_MAX_LENGTH,
        help_text='Original filename offered on download',
    )

    title = models.CharField(
        max_length=_TITLE_MAX_LENGTH,
        blank=True,
        default='',
    )

    description = models.TextField(
        blank=True,
        default='',
    )

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='MIME type, detected from the filename when not given',
    )

    # Image-only fields
    width = models.PositiveIntegerField(null=True, blank=True, editable=False)
    height = models.PositiveIntegerField(null=True, blank=True, editable=False)
    filesize_bytes = models.BigIntegerField(
        null=True,
        blank=True,
        editable=False,
        help_text='Bytes written to storage',
    )
    metadata = models.JSONField(
        null=True,
        blank=True,
        editable=False,
        help_text='Parsed ICC, EXIF and IPTC blocks',
    )

    # Timestamps
    uploaded_on = models.DateTimeField(auto_now_add=True)
    modified_on = models.DateTimeField(auto_now=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering = ['-uploaded_on']

        indexes = [
            models.Index(
                fields=['storage', 'filename_disk'],
                name='files_storage_disk_idx',
            ),
        ]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(filesize_bytes__gte=0),
                name='filesize_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.storage}:{self.filename_disk}'

    def is_image(self) -> bool:
        """Whether the record describes an image."""
        return self.mime_type.startswith('image/')


@final
class AssetSettings(models.Model):
    """Singleton holding administrator-configured asset settings."""

    asset_allowlist = models.JSONField(
        default=list,
        blank=True,
        help_text=(
            'Extra derived sizes, e.g. '
            '[{"key": "card", "width": 400, "height": 300, "fit": "cover"}]'
        ),
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'Asset settings'  # type: ignore[mutable-override]
        verbose_name_plural = 'Asset settings'  # type: ignore[mutable-override]

    @override
    def __str__(self) -> str:
        """String representation."""
        return 'Asset settings'

    @classmethod
    def load(cls) -> 'AssetSettings':
        """Return the settings row, or an unsaved default one.

        Returns:
            AssetSettings instance.
        """
        return cls.objects.order_by('pk').first() or cls()
