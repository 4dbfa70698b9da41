"""Shared fixtures for files app tests."""

import io
from collections.abc import Callable, Mapping, Sequence

import boto3
import pytest
from moto import mock_aws
from PIL import Image, ImageCms

_LOCAL_BACKEND = 'django.core.files.storage.FileSystemStorage'
_S3_BACKEND = 'storages.backends.s3.S3Storage'

# IPTC dataset numbers used by the fixtures
IPTC_KEYWORDS = 0x19
IPTC_HEADLINE = 0x69
IPTC_CAPTION = 0x78

# EXIF 'Make' tag
EXIF_MAKE = 0x010F


def build_iptc_segment(datasets: Sequence[tuple[int, bytes]]) -> bytes:
    """Build a JPEG APP13 segment carrying IPTC record 2 datasets.

    Args:
        datasets: (dataset number, value) pairs, repeats allowed.

    Returns:
        Complete APP13 segment including its marker.
    """
    iim = b''.join(
        b'\x1c\x02'
        + bytes([dataset])
        + len(dataset_value).to_bytes(2, 'big')
        + dataset_value
        for dataset, dataset_value in datasets
    )
    resource = (
        b'8BIM'
        + (0x0404).to_bytes(2, 'big')
        + b'\x00\x00'  # empty resource name, padded
        + len(iim).to_bytes(4, 'big')
        + iim
    )
    if len(iim) % 2:
        resource += b'\x00'
    payload = b'Photoshop 3.0\x00' + resource
    return b'\xff\xed' + (len(payload) + 2).to_bytes(2, 'big') + payload


def build_image(
    image_format: str = 'JPEG',
    size: tuple[int, int] = (32, 24),
    *,
    iptc: Sequence[tuple[int, bytes]] = (),
    exif: Mapping[int, str] | None = None,
    icc: bool = False,
) -> bytes:
    """Encode a small solid image with optional metadata blocks.

    Args:
        image_format: Pillow format name.
        size: (width, height).
        iptc: IPTC datasets, JPEG only.
        exif: EXIF base tags.
        icc: Embed an sRGB ICC profile.

    Returns:
        Encoded image bytes.
    """
    save_options = {}
    if exif:
        exif_block = Image.Exif()
        for tag_id, tag_value in exif.items():
            exif_block[tag_id] = tag_value
        save_options['exif'] = exif_block.tobytes()
    if icc:
        save_options['icc_profile'] = ImageCms.ImageCmsProfile(
            ImageCms.createProfile('sRGB'),
        ).tobytes()

    output = io.BytesIO()
    Image.new('RGB', size, color=(200, 30, 30)).save(
        output,
        format=image_format,
        **save_options,
    )
    encoded = output.getvalue()
    if iptc:
        # Splice the segment right after the SOI marker
        encoded = encoded[:2] + build_iptc_segment(iptc) + encoded[2:]
    return encoded


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Image builder.

    Returns:
        ``build_image`` function.
    """
    return build_image


@pytest.fixture
def jpeg_with_iptc() -> bytes:
    """JPEG carrying IPTC headline, caption and keywords.

    Returns:
        Encoded 40x30 JPEG.
    """
    return build_image(
        'JPEG',
        (40, 30),
        iptc=[
            (IPTC_HEADLINE, b'Harbour at dawn'),
            (IPTC_CAPTION, b'Fishing boats leaving the harbour'),
            (IPTC_KEYWORDS, b'boats'),
            (IPTC_KEYWORDS, b'sea'),
        ],
    )


@pytest.fixture
def local_storage(settings, tmp_path):
    """Point the 'local' backend at a temporary directory.

    Returns:
        Path of the storage root.
    """
    local = {
        'BACKEND': _LOCAL_BACKEND,
        'OPTIONS': {
            'location': str(tmp_path),
            'allow_overwrite': True,
        },
    }
    settings.STORAGES = {**settings.STORAGES, 'default': local, 'local': local}
    settings.FILES_DEFAULT_STORAGE = 'local'
    settings.STORAGE_PUBLIC_URLS = {
        'local': 'https://files.example.com/local/',
        's3': '',
    }
    settings.ASSETS_PUBLIC_URL = 'https://api.example.com'
    return tmp_path


@pytest.fixture
def mock_s3(settings):
    """Mock S3 service with the assets bucket.

    Yields:
        boto3 S3 resource with the assets bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket='assets')

        settings.STORAGES = {
            **settings.STORAGES,
            's3': {
                'BACKEND': _S3_BACKEND,
                'OPTIONS': {
                    'bucket_name': 'assets',
                    'region_name': 'us-east-1',
                    'file_overwrite': True,
                    'default_acl': None,
                },
            },
        }

        yield conn
