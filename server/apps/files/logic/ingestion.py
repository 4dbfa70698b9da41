"""Streaming ingestion of uploaded bytes.

The upload stream is written to storage and, for images, inspected
for metadata at the same time. A ``StreamTee`` hands the same chunks
to both consumers, so the source is read once and never held in
memory as a whole.

``ingest_stream`` returns only after both consumers are done: the
storage write has been acknowledged and the header reader has either
produced a header, failed, or was never started. Callers can persist
the result straight away.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import BinaryIO, final

from django.conf import settings

from server.apps.files.exceptions import ExtractionError
from server.apps.files.infrastructure.metadata import (
    ImageHeader,
    ImageMetadata,
    extract_image_metadata,
    is_image_type,
    read_image_header,
)
from server.apps.files.infrastructure.storage import StorageBackend
from server.apps.files.infrastructure.stream_tee import StreamTee

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True, slots=True)
class IngestResult:
    """What one ingest produced."""

    bytes_written: int
    metadata: ImageMetadata | None = None


def ingest_stream(
    stream: BinaryIO,
    backend: StorageBackend,
    filename_disk: str,
    mime_type: str | None,
    *,
    extract_metadata: bool = True,
) -> IngestResult:
    """Write a stream to storage, reading image metadata on the way.

    Args:
        stream: Upload stream, read exactly once.
        backend: Storage backend receiving the bytes.
        filename_disk: Object name in the backend.
        mime_type: MIME type of the upload.
        extract_metadata: Set to False to skip metadata extraction.

    Returns:
        IngestResult with the bytes written and, for images whose
        header could be read, their metadata.

    Raises:
        StorageError: If the storage write fails. No metadata is
            returned in that case.
    """
    tee = StreamTee(
        stream,
        chunk_size=settings.FILES_INGEST_CHUNK_SIZE,
        side_buffer_chunks=settings.FILES_INGEST_SIDE_BUFFER_CHUNKS,
    )
    inspect = extract_metadata and is_image_type(mime_type)

    with ThreadPoolExecutor(
        max_workers=1,
        thread_name_prefix='ingest-metadata',
    ) as executor:
        header_future: Future[ImageHeader] | None = None
        if inspect:
            header_future = executor.submit(
                read_image_header,
                tee.side(),
                settings.FILES_METADATA_MAX_HEADER_BYTES,
            )

        try:
            ack = backend.put(filename_disk, tee.primary)
        finally:
            # Ends the side stream, so the header reader always finishes
            tee.close()

        header = _settle_header(header_future, filename_disk)

    if not inspect:
        logger.debug('Metadata extraction skipped for %s', filename_disk)
        return IngestResult(bytes_written=ack.bytes_written)

    metadata = extract_image_metadata(header, mime_type, ack.bytes_written)
    return IngestResult(bytes_written=ack.bytes_written, metadata=metadata)


def _settle_header(
    header_future: Future[ImageHeader] | None,
    filename_disk: str,
) -> ImageHeader | None:
    """Wait for the header reader and absorb its failures."""
    if header_future is None:
        return None
    try:
        return header_future.result()
    except ExtractionError:
        logger.warning(
            'Could not read image metadata for %s, storing without it',
            filename_disk,
            exc_info=True,
        )
        return None
