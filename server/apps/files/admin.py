"""Django admin configuration for files app."""

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.files.logic.file_operations import delete_file
from server.apps.files.logic.links import AssetLinkResolver, LinkConfig
from server.apps.files.models import AssetSettings, File


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(File)
class FileAdmin(admin.ModelAdmin[File]):
    """Admin interface for File model.

    Files are created by ingestion only, so adding is disabled here.
    Deleting goes through ``delete_file`` to remove the stored bytes
    before the record.
    """

    list_display = [
        'filename_download',
        'title',
        'storage',
        'size_display',
        'dimensions_display',
        'mime_type',
        'uploaded_on',
    ]

    list_filter = [
        'storage',
        'mime_type',
        'uploaded_on',
    ]

    search_fields = [
        'filename_download',
        'title',
        'description',
    ]

    readonly_fields = [
        'id',
        'storage',
        'filename_disk',
        'filename_download',
        'original_link',
        'width',
        'height',
        'filesize_bytes',
        'metadata',
        'uploaded_on',
        'modified_on',
    ]

    fieldsets = (
        ('File Information', {
            'fields': (
                'id',
                'filename_download',
                'title',
                'description',
            ),
        }),
        ('Storage', {
            'fields': ('storage', 'filename_disk', 'original_link'),
        }),
        ('Metadata', {
            'fields': (
                'mime_type',
                'width',
                'height',
                'filesize_bytes',
                'metadata',
            ),
        }),
        ('Timestamps', {
            'fields': ('uploaded_on', 'modified_on'),
        }),
    )

    def size_display(self, obj: File) -> str:
        """Display file size in human-readable format.

        Args:
            obj: File instance.

        Returns:
            Formatted size string, '-' when unknown.
        """
        if obj.filesize_bytes is None:
            return '-'
        return _format_bytes(obj.filesize_bytes)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def dimensions_display(self, obj: File) -> str:
        """Display image dimensions as WIDTHxHEIGHT."""
        if not obj.is_image() or obj.width is None or obj.height is None:
            return '-'
        return f'{obj.width}x{obj.height}'
    dimensions_display.short_description = 'Dimensions'  # type: ignore[attr-defined]

    def original_link(self, obj: File) -> str:
        """Link to the stored object when its backend is public.

        Args:
            obj: File instance.

        Returns:
            HTML link, or '-' without a public URL.
        """
        resolver = AssetLinkResolver(LinkConfig.from_settings())
        url = resolver.original_url(obj.storage, obj.filename_disk)
        if url is None:
            return '-'
        return format_html('<a href="{url}">{url}</a>', url=url)
    original_link.short_description = 'Original'  # type: ignore[attr-defined]

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Files are only created by uploads."""
        return False

    def delete_model(self, request: HttpRequest, obj: File) -> None:
        """Delete stored bytes, then the record."""
        delete_file(obj.pk)

    def delete_queryset(
        self,
        request: HttpRequest,
        queryset: QuerySet[File],
    ) -> None:
        """Delete each selected file through ``delete_file``."""
        for file_id in queryset.values_list('pk', flat=True):
            delete_file(file_id)


@admin.register(AssetSettings)
class AssetSettingsAdmin(admin.ModelAdmin[AssetSettings]):
    """Admin interface for the asset settings singleton."""

    list_display = ['__str__', 'allowlist_size']

    fieldsets = (
        ('Derived sizes', {
            'fields': ('asset_allowlist',),
        }),
    )

    def allowlist_size(self, obj: AssetSettings) -> int:
        """Number of configured derived sizes."""
        return len(obj.asset_allowlist or [])
    allowlist_size.short_description = 'Configured sizes'  # type: ignore[attr-defined]

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Allow a single settings row."""
        return not AssetSettings.objects.exists()
