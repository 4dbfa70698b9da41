"""Public links for stored files.

Links are computed on every read and never stored. A file gets:
- ``asset_url``: the asset endpoint for the file id
- ``original_url``: the object in its backend, when that backend has
  a public URL configured
- ``thumbnails``: one asset URL per allowed derived size
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, Final, final
from urllib.parse import quote, urlencode, urljoin

from django.conf import settings

from server.apps.files.models import AssetSettings

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True, slots=True)
class AssetSize:
    """A derived image size the asset endpoint may render."""

    key: str
    width: int | None = None
    height: int | None = None
    fit: str | None = None


# Sizes the admin interface relies on; configured sizes are added to these
SYSTEM_ASSET_SIZES: Final = (
    AssetSize(key='system-small-cover', width=64, height=64, fit='cover'),
    AssetSize(key='system-small-contain', width=64, fit='contain'),
    AssetSize(key='system-medium-cover', width=300, height=300, fit='cover'),
    AssetSize(key='system-medium-contain', width=300, fit='contain'),
    AssetSize(key='system-large-cover', width=800, height=600, fit='cover'),
    AssetSize(key='system-large-contain', width=800, fit='contain'),
)


@final
@dataclass(frozen=True, slots=True)
class Thumbnail:
    """Link to one derived size of a file."""

    key: str
    width: int | None
    height: int | None
    fit: str | None
    url: str


@final
@dataclass(frozen=True, slots=True)
class LinkSet:
    """Links attached to a file on read."""

    asset_url: str
    original_url: str | None
    thumbnails: tuple[Thumbnail, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        """Serialize, leaving out ``original_url`` when unknown.

        Returns:
            Dictionary suitable for JSON responses.
        """
        links: dict[str, Any] = {'asset_url': self.asset_url}
        if self.original_url is not None:
            links['original_url'] = self.original_url
        links['thumbnails'] = [asdict(thumbnail) for thumbnail in self.thumbnails]
        return links


@final
@dataclass(frozen=True, slots=True)
class LinkConfig:
    """Public base URLs used to build links."""

    public_url: str
    storage_public_urls: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> 'LinkConfig':
        """Build the config from Django settings.

        Returns:
            LinkConfig from ``ASSETS_PUBLIC_URL`` and
            ``STORAGE_PUBLIC_URLS``.
        """
        return cls(
            public_url=settings.ASSETS_PUBLIC_URL,
            storage_public_urls=dict(settings.STORAGE_PUBLIC_URLS),
        )


@final
class AssetLinkResolver:
    """Compute the link set of a file record. Performs no I/O."""

    def __init__(self, config: LinkConfig) -> None:
        """Initialize AssetLinkResolver.

        Args:
            config: Public base URLs.
        """
        self._config = config

    def resolve(
        self,
        record: Mapping[str, Any],
        allowed_sizes: Sequence[AssetSize],
    ) -> LinkSet:
        """Build links for a file record.

        Args:
            record: File record with 'id', 'storage' and 'filename_disk'.
            allowed_sizes: Derived sizes to link, in order.

        Returns:
            LinkSet for the record.
        """
        asset_url = self.asset_url(record['id'])
        thumbnails = tuple(
            Thumbnail(
                key=size.key,
                width=size.width,
                height=size.height,
                fit=size.fit,
                url=f'{asset_url}?{urlencode({"key": size.key})}',
            )
            for size in allowed_sizes
        )
        return LinkSet(
            asset_url=asset_url,
            original_url=self.original_url(
                record['storage'],
                record['filename_disk'],
            ),
            thumbnails=thumbnails,
        )

    def asset_url(self, file_id: object) -> str:
        """URL of the asset endpoint for a file id."""
        return f'{self._config.public_url.rstrip("/")}/assets/{file_id}'

    def original_url(self, storage: str, filename_disk: str) -> str | None:
        """URL of the stored object, None without a public backend URL."""
        base_url = self._config.storage_public_urls.get(storage)
        if not base_url:
            return None
        return urljoin(f'{base_url.rstrip("/")}/', quote(filename_disk))


def combine_asset_sizes(
    system_sizes: Iterable[AssetSize],
    configured_sizes: Iterable[AssetSize],
) -> list[AssetSize]:
    """Add configured sizes after the system ones.

    Nothing is removed or replaced, even when keys repeat.

    Args:
        system_sizes: Built-in sizes.
        configured_sizes: Administrator-configured sizes.

    Returns:
        List of all sizes, system sizes first.
    """
    return [*system_sizes, *configured_sizes]


def parse_asset_allowlist(entries: Iterable[Any]) -> list[AssetSize]:
    """Turn stored allow-list entries into asset sizes.

    Entries that are not objects with a 'key' are logged and left out.

    Args:
        entries: Raw allow-list entries from asset settings.

    Returns:
        List of AssetSize in the stored order.
    """
    sizes: list[AssetSize] = []
    for entry in entries:
        if not isinstance(entry, Mapping) or not entry.get('key'):
            logger.warning('Skipping malformed asset allow-list entry: %r', entry)
            continue
        sizes.append(AssetSize(
            key=str(entry['key']),
            width=entry.get('width'),
            height=entry.get('height'),
            fit=entry.get('fit'),
        ))
    return sizes


def get_asset_sizes() -> list[AssetSize]:
    """Sizes allowed for thumbnails: system sizes plus the allow-list.

    Returns:
        List of AssetSize.
    """
    allowlist = AssetSettings.load().asset_allowlist or []
    return combine_asset_sizes(
        SYSTEM_ASSET_SIZES,
        parse_asset_allowlist(allowlist),
    )
