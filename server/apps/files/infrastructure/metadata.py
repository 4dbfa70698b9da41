"""Metadata extraction utilities for files.

Image metadata is read in two steps:

1. ``read_image_header`` reads just enough of a stream for Pillow to
   identify the image and collect its embedded ICC, EXIF and IPTC
   blocks. Pixel data is never decoded.
2. ``extract_image_metadata`` turns those raw blocks into
   JSON-serializable dictionaries. Each block is parsed on its own,
   so one unreadable block does not hide the others.
"""

import io
import logging
import mimetypes
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Final, final

from PIL import (
    ExifTags,
    Image,
    ImageCms,
    IptcImagePlugin,
    TiffImagePlugin,
)

from server.apps.files.exceptions import ExtractionError

logger = logging.getLogger(__name__)

_HEADER_CHUNK_SIZE: Final = 64 * 1024  # 64KB reads while looking for a header

# IPTC application record (IIM record 2) datasets we expose
_IPTC_RECORD: Final = 2
IPTC_FIELDS: Final[Mapping[int, str]] = {
    0x0F: 'category',
    0x19: 'keywords',
    0x37: 'date_created',
    0x50: 'byline',
    0x55: 'byline_title',
    0x69: 'headline',
    0x6E: 'credit',
    0x74: 'copyright',
    0x78: 'caption',
    0x7A: 'caption_writer',
}
_IPTC_LIST_FIELDS: Final = frozenset(('keywords',))

# (output key, CmsProfile attribute)
_ICC_ATTRIBUTES: Final = (
    ('description', 'profile_description'),
    ('copyright', 'copyright'),
    ('manufacturer', 'manufacturer'),
    ('model', 'model'),
    ('color_space', 'xcolor_space'),
    ('connection_space', 'connection_space'),
    ('device_class', 'device_class'),
    ('rendering_intent', 'rendering_intent'),
    ('version', 'version'),
)

_EXIF_SUB_IFDS: Final = (
    ExifTags.IFD.Exif,
    ExifTags.IFD.GPSInfo,
    ExifTags.IFD.Interop,
)
_EXIF_POINTER_TAGS: Final = frozenset(int(ifd) for ifd in _EXIF_SUB_IFDS)
_EXIF_SKIPPED_TAGS: Final = frozenset((ExifTags.Base.MakerNote,))


@final
@dataclass(frozen=True, slots=True)
class ImageHeader:
    """Structural data read from the start of an image stream."""

    width: int
    height: int
    format: str | None
    icc: bytes | None = None
    exif: bytes | None = None
    iptc: Mapping[tuple[int, int], Any] | None = None


@final
@dataclass(frozen=True, slots=True)
class ImageMetadata:
    """Parsed metadata of a stored image."""

    width: int
    height: int
    filesize_bytes: int
    icc: dict[str, Any] | None = None
    exif: dict[str, Any] | None = None
    iptc: dict[str, Any] | None = None

    def segments(self) -> dict[str, dict[str, Any]]:
        """Parsed blocks that were present, keyed by block name.

        Returns:
            Dictionary with any of 'icc', 'exif' and 'iptc'.
        """
        blocks = {'icc': self.icc, 'exif': self.exif, 'iptc': self.iptc}
        return {name: block for name, block in blocks.items() if block is not None}


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename.

    Uses Python's built-in mimetypes module to guess MIME type
    from filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type


def is_image_type(mime_type: str | None) -> bool:
    """Whether metadata extraction applies to this MIME type."""
    return mime_type is not None and mime_type.startswith('image/')


def build_disk_filename(file_id: object, filename_download: str) -> str:
    """Build the storage object name for a new file.

    Args:
        file_id: Identifier of the file record.
        filename_download: Original filename.

    Returns:
        '{file_id}{extension}', e.g. '3f2a...c1.jpg'.
    """
    return f'{file_id}{Path(filename_download).suffix}'


def read_image_header(stream: BinaryIO, max_header_bytes: int) -> ImageHeader:
    """Read an image header from a stream, then close the stream.

    Reading stops as soon as Pillow identifies the image, so only the
    leading part of the stream is held in memory. Pillow's own
    ``ImageFile.Parser`` is not used because it allocates the full
    pixel buffer once the header is known.

    Args:
        stream: Readable binary stream positioned at the image start.
        max_header_bytes: Give up after buffering this many bytes.

    Returns:
        ImageHeader with dimensions and raw metadata blocks.

    Raises:
        ExtractionError: If no image header was found.
    """
    buffered = io.BytesIO()
    buffered_bytes = 0
    next_attempt = 0
    image = None
    try:
        while buffered_bytes < max_header_bytes:
            chunk = stream.read(_HEADER_CHUNK_SIZE)
            buffered.seek(0, io.SEEK_END)
            buffered_bytes += buffered.write(chunk)
            at_end = not chunk or buffered_bytes >= max_header_bytes
            if buffered_bytes < next_attempt and not at_end:
                continue
            image = _open_partial_image(buffered)
            if image is not None or at_end:
                break
            # Retry once the buffer has doubled
            next_attempt = buffered_bytes * 2
    except Exception as error:
        raise ExtractionError('Failed to read image header') from error
    finally:
        stream.close()

    if image is None:
        raise ExtractionError(
            f'No image header found in the first {buffered_bytes} bytes',
        )

    logger.debug(
        'Read %s header (%dx%d) from %d bytes',
        image.format,
        image.width,
        image.height,
        buffered_bytes,
    )
    return ImageHeader(
        width=image.width,
        height=image.height,
        format=image.format,
        icc=image.info.get('icc_profile') or None,
        exif=image.info.get('exif') or None,
        iptc=_read_iptc_datasets(image),
    )


def extract_image_metadata(
    header: ImageHeader | None,
    mime_type: str | None,
    filesize_bytes: int,
) -> ImageMetadata | None:
    """Build image metadata from a decoded header.

    Args:
        header: Header read from the stream, if any.
        mime_type: MIME type of the file.
        filesize_bytes: Bytes written to storage.

    Returns:
        ImageMetadata, or None for non-image content.
    """
    if header is None or not is_image_type(mime_type):
        return None

    parsers: tuple[tuple[str, Any, Callable[[Any], dict[str, Any]]], ...] = (
        ('icc', header.icc, parse_icc),
        ('exif', header.exif, parse_exif),
        ('iptc', header.iptc, parse_iptc),
    )
    segments: dict[str, dict[str, Any]] = {}
    for name, raw_block, parse in parsers:
        if not raw_block:
            continue
        try:
            segments[name] = parse(raw_block)
        except ExtractionError:
            logger.warning('Ignoring unreadable %s block', name, exc_info=True)

    return ImageMetadata(
        width=header.width,
        height=header.height,
        filesize_bytes=filesize_bytes,
        **segments,
    )


def parse_icc(raw_profile: bytes) -> dict[str, Any]:
    """Parse an embedded ICC color profile.

    Args:
        raw_profile: ICC profile bytes.

    Returns:
        Profile description fields that are set.

    Raises:
        ExtractionError: If the profile cannot be read.
    """
    try:
        profile = ImageCms.ImageCmsProfile(io.BytesIO(raw_profile)).profile
    except Exception as error:
        raise ExtractionError('Unreadable ICC profile') from error

    parsed: dict[str, Any] = {}
    for key, attribute in _ICC_ATTRIBUTES:
        field_value = getattr(profile, attribute, None)
        if isinstance(field_value, str):
            field_value = field_value.strip('\x00 ')
        if field_value is not None and field_value != '':
            parsed[key] = field_value
    return parsed


def parse_exif(raw_exif: bytes) -> dict[str, Any]:
    """Parse an EXIF block into named tags.

    Sub-directories (Exif, GPSInfo, Interop) are nested under their
    names. Binary maker notes are left out.

    Args:
        raw_exif: EXIF bytes, with or without the 'Exif\\0\\0' prefix.

    Returns:
        Dictionary of tag name to JSON-safe value.

    Raises:
        ExtractionError: If the block cannot be read.
    """
    exif = Image.Exif()
    try:
        exif.load(raw_exif)
        parsed = _named_tags(exif, ExifTags.TAGS)

        exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
        if exif_ifd:
            parsed[ExifTags.IFD.Exif.name] = _named_tags(exif_ifd, ExifTags.TAGS)
        # Interop is only reachable through the Exif sub-directory
        if ExifTags.IFD.Interop in exif_ifd:
            parsed[ExifTags.IFD.Interop.name] = _named_tags(
                exif.get_ifd(ExifTags.IFD.Interop),
                ExifTags.TAGS,
            )
        gps_ifd = exif.get_ifd(ExifTags.IFD.GPSInfo)
        if gps_ifd:
            parsed[ExifTags.IFD.GPSInfo.name] = _named_tags(
                gps_ifd,
                ExifTags.GPSTAGS,
            )
    except Exception as error:
        raise ExtractionError('Unreadable EXIF block') from error
    return parsed


def parse_iptc(datasets: Mapping[tuple[int, int], Any]) -> dict[str, Any]:
    """Map IPTC datasets to named fields.

    Args:
        datasets: IPTC datasets keyed by (record, dataset), as returned
            by Pillow's ``IptcImagePlugin.getiptcinfo``.

    Returns:
        Dictionary with fields such as 'headline', 'caption' and
        'keywords' (always a list).

    Raises:
        ExtractionError: If the datasets cannot be decoded.
    """
    parsed: dict[str, Any] = {}
    try:
        for (record, dataset), raw_value in datasets.items():
            field_name = IPTC_FIELDS.get(dataset)
            if record != _IPTC_RECORD or field_name is None:
                continue
            raw_values = raw_value if isinstance(raw_value, list) else [raw_value]
            texts = [_decode_iptc_text(item) for item in raw_values if item]
            if not texts:
                continue
            if field_name in _IPTC_LIST_FIELDS:
                parsed[field_name] = texts
            else:
                parsed[field_name] = texts[0]
    except Exception as error:
        raise ExtractionError('Unreadable IPTC block') from error
    return parsed


def _open_partial_image(buffer: io.BytesIO) -> Image.Image | None:
    """Try to identify an image from a possibly incomplete prefix."""
    buffer.seek(0)
    try:
        return Image.open(buffer)
    except OSError:
        # Not enough data yet (UnidentifiedImageError is an OSError)
        return None


def _read_iptc_datasets(
    image: Image.Image,
) -> Mapping[tuple[int, int], Any] | None:
    try:
        datasets = IptcImagePlugin.getiptcinfo(image)
    except Exception:
        logger.warning('Ignoring unreadable IPTC block', exc_info=True)
        return None
    return datasets or None


def _named_tags(
    tags: Mapping[int, Any],
    names: Mapping[int, str],
) -> dict[str, Any]:
    named: dict[str, Any] = {}
    for tag_id, tag_value in tags.items():
        if tag_id in _EXIF_POINTER_TAGS or tag_id in _EXIF_SKIPPED_TAGS:
            continue
        named[names.get(tag_id, str(tag_id))] = _json_safe(tag_value)
    return named


def _json_safe(tag_value: Any) -> Any:  # noqa: WPS231
    if isinstance(tag_value, TiffImagePlugin.IFDRational):
        if not tag_value.denominator:
            return None
        return float(tag_value)
    if isinstance(tag_value, bytes):
        stripped = tag_value.rstrip(b'\x00')
        try:
            return stripped.decode('ascii')
        except UnicodeDecodeError:
            return tag_value.hex()
    if isinstance(tag_value, str):
        return tag_value.rstrip('\x00')
    if isinstance(tag_value, (tuple, list)):
        return [_json_safe(item) for item in tag_value]
    if isinstance(tag_value, dict):
        return {str(key): _json_safe(item) for key, item in tag_value.items()}
    return tag_value


def _decode_iptc_text(raw_value: bytes) -> str:
    return raw_value.decode('utf-8', errors='replace').strip()
