"""Business logic for file operations.

A file is created once per upload, may have its bytes and its other
fields updated independently, and is removed by an explicit delete.
Bytes go through a storage backend, records through the generic item
operations.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any, BinaryIO, Final

from django.conf import settings

from server.apps.files.exceptions import StorageError
from server.apps.files.infrastructure.metadata import (
    build_disk_filename,
    detect_mime_type,
    is_image_type,
)
from server.apps.files.infrastructure.storage import get_storage_backend
from server.apps.files.logic.ingestion import IngestResult, ingest_stream
from server.apps.files.logic.item_operations import (
    Query,
    Record,
    create_item,
    delete_item,
    read_item,
    read_items,
    update_item,
)
from server.apps.files.logic.links import (
    AssetLinkResolver,
    LinkConfig,
    get_asset_sizes,
)
from server.apps.files.logic.payload_operations import process_values

logger = logging.getLogger(__name__)

FILES_COLLECTION: Final = 'files.File'

# Fixed at creation time
_IMMUTABLE_FIELDS: Final = ('storage', 'filename_download')

# Needed to build links and to find the bytes
_LOCATION_FIELDS: Final = ('id', 'storage', 'filename_disk')


def create_file(
    data: Mapping[str, Any],
    stream: BinaryIO,
    query: Query | None = None,
) -> Record:
    """Store an uploaded file and create its record.

    Transaction safety: Upload to storage first, then create DB record.
    If the record cannot be created, the uploaded bytes are deleted
    from storage (rollback). The record is only created after image
    metadata extraction has finished.

    Args:
        data: Raw field values ('filename_download' is required,
            'storage' defaults to ``FILES_DEFAULT_STORAGE``).
        stream: Upload stream, read once.
        query: Shape of the returned record.

    Returns:
        Created file record.

    Raises:
        ValidationError: If the field values are invalid (before any I/O).
        StorageError: If the bytes could not be stored.
    """
    payload = process_values(
        'create',
        FILES_COLLECTION,
        {'storage': settings.FILES_DEFAULT_STORAGE, **data},
    )

    file_id = uuid.uuid4()
    payload['id'] = file_id
    payload['filename_disk'] = build_disk_filename(
        file_id,
        payload['filename_download'],
    )
    if not payload['mime_type']:
        payload['mime_type'] = detect_mime_type(payload['filename_download'])

    backend = get_storage_backend(payload['storage'])

    # Step 1: Stream to storage, reading image metadata on the way
    logger.info(
        'Ingesting file %s as %s (%s)',
        payload['filename_download'],
        payload['filename_disk'],
        payload['mime_type'],
    )
    ingest_result = ingest_stream(
        stream,
        backend,
        payload['filename_disk'],
        payload['mime_type'],
    )

    # Step 2: Create database record
    try:
        return create_item(
            FILES_COLLECTION,
            merge_ingest_result(payload, ingest_result),
            query,
        )
    except Exception:
        # Rollback: Delete file from storage since DB transaction failed
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            payload['filename_disk'],
        )
        backend.rollback_upload(payload['filename_disk'])
        raise


def merge_ingest_result(
    payload: Mapping[str, Any],
    ingest_result: IngestResult,
) -> dict[str, Any]:
    """Combine the validated payload with what ingestion produced.

    Empty ``title`` and ``description`` are filled from the IPTC
    headline and caption; values supplied by the caller are kept.

    Args:
        payload: Validated field values.
        ingest_result: Result of ``ingest_stream``.

    Returns:
        New payload dictionary; the input is not modified.
    """
    merged = dict(payload)
    if not is_image_type(merged.get('mime_type')):
        return merged

    merged['filesize_bytes'] = ingest_result.bytes_written
    metadata = ingest_result.metadata
    if metadata is None:
        return merged

    merged['width'] = metadata.width
    merged['height'] = metadata.height
    merged['metadata'] = metadata.segments()
    if metadata.iptc:
        merged['title'] = merged.get('title') or metadata.iptc.get('headline', '')
        merged['description'] = (
            merged.get('description') or metadata.iptc.get('caption', '')
        )
    return merged


def read_files(query: Query | None = None) -> list[Record]:
    """List file records. Links are not attached.

    Args:
        query: Filters, ordering, paging and field selection.

    Returns:
        List of file records.
    """
    return read_items(FILES_COLLECTION, query)


def read_file(pk: object, query: Query | None = None) -> Record:
    """Fetch a file record with its links.

    Args:
        pk: File id.
        query: Field selection for the record.

    Returns:
        File record with a 'links' entry.

    Raises:
        NotFoundError: If the file does not exist.
    """
    record = read_item(FILES_COLLECTION, pk, query)
    location = record
    if not all(name in record for name in _LOCATION_FIELDS):
        location = read_item(FILES_COLLECTION, pk, Query(fields=_LOCATION_FIELDS))

    resolver = AssetLinkResolver(LinkConfig.from_settings())
    links = resolver.resolve(location, get_asset_sizes())
    return {**record, 'links': links.as_dict()}


def update_file(
    pk: object,
    data: Mapping[str, Any],
    stream: BinaryIO | None = None,
    query: Query | None = None,
) -> Record:
    """Update file fields and optionally replace its bytes.

    New bytes overwrite the object at the existing ``filename_disk``
    on the file's own backend. For images ``filesize_bytes`` follows the
    new bytes, while metadata and dimensions keep their creation values.

    Args:
        pk: File id.
        data: Raw field values to change.
        stream: New content, if the bytes change.
        query: Shape of the returned record.

    Returns:
        Updated file record.

    Raises:
        ValidationError: If values are invalid or a field fixed at
            creation is supplied (before any I/O).
        NotFoundError: If the file does not exist.
        StorageError: If the new bytes could not be stored.
    """
    payload = process_values(
        'update',
        FILES_COLLECTION,
        data,
        readonly=_IMMUTABLE_FIELDS,
    )

    if stream is not None:
        location = read_item(
            FILES_COLLECTION,
            pk,
            Query(fields=(*_LOCATION_FIELDS, 'mime_type')),
        )
        backend = get_storage_backend(location['storage'])
        logger.info(
            'Replacing content of file %s in storage %s: %s',
            pk,
            location['storage'],
            location['filename_disk'],
        )
        ingest_result = ingest_stream(
            stream,
            backend,
            location['filename_disk'],
            mime_type=None,
            extract_metadata=False,
        )
        if is_image_type(payload.get('mime_type', location['mime_type'])):
            payload['filesize_bytes'] = ingest_result.bytes_written
        logger.info(
            'Content of file %s replaced (%d bytes), metadata left as is',
            pk,
            ingest_result.bytes_written,
        )

    return update_item(FILES_COLLECTION, pk, payload, query)


def delete_file(pk: object) -> None:
    """Delete a file from storage, then its record.

    The record is removed only when the backend confirms the bytes are
    gone (deleted now, or already absent). If the backend fails, the
    record is kept so the bytes stay addressable.

    Args:
        pk: File id.

    Raises:
        NotFoundError: If the file does not exist.
        StorageError: If the backend could not delete the bytes.
    """
    location = read_item(FILES_COLLECTION, pk, Query(fields=_LOCATION_FIELDS))
    filename_disk = location['filename_disk']
    backend = get_storage_backend(location['storage'])

    # Step 1: Delete bytes from storage
    try:
        delete_result = backend.delete(filename_disk)
    except StorageError:
        logger.exception(
            'Storage delete failed, record kept: ID=%s, path=%s',
            pk,
            filename_disk,
        )
        raise

    if delete_result.deleted:
        logger.info('Storage object removed: ID=%s, path=%s', pk, filename_disk)
    else:
        logger.warning(
            'Storage object already absent: ID=%s, path=%s',
            pk,
            filename_disk,
        )

    # Step 2: Delete database record
    try:
        delete_item(FILES_COLLECTION, pk)
    except Exception:
        logger.exception(
            'Storage object removed but record delete failed: ID=%s, path=%s',
            pk,
            filename_disk,
        )
        raise
    logger.info('File record deleted from database: ID=%s', pk)
