"""Named storage backends for file bytes.

Backends are the Django storages configured in ``settings.STORAGES``
(see ``server/settings/components/storages.py``). A file record keeps
the alias of its backend, and ``get_storage_backend`` turns that alias
back into a ``StorageBackend``.
"""

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, final

from django.conf import settings
from django.core.files.base import File as DjangoFile
from django.core.files.storage import InvalidStorageError, Storage, storages

from server.apps.files.exceptions import StorageError
from server.apps.files.infrastructure.stream_tee import PrimaryReader, StreamTee

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True, slots=True)
class StorageAck:
    """Acknowledgement of a completed write."""

    name: str
    bytes_written: int


@final
@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Outcome of a delete: False when the object was already absent."""

    deleted: bool


@final
class StorageBackend:
    """Put/delete access to one configured Django storage.

    Writes overwrite existing objects: the configured storages are set
    up with ``allow_overwrite`` / ``file_overwrite`` so a name is
    never changed behind the caller's back.
    """

    def __init__(self, alias: str, storage: Storage) -> None:
        """Initialize StorageBackend.

        Args:
            alias: Name of the backend in ``settings.STORAGES``.
            storage: Django storage instance.
        """
        self.alias = alias
        self.storage = storage

    def put(self, name: str, stream: BinaryIO | PrimaryReader) -> StorageAck:
        """Stream bytes into storage under ``name``.

        Args:
            name: Object name (e.g. '3f2a...c1.jpg').
            stream: Readable binary stream. A ``PrimaryReader`` is
                written as is, anything else is counted on the way.

        Returns:
            StorageAck with the number of bytes consumed.

        Raises:
            StorageError: If the write fails or the name was changed.
        """
        reader = stream if isinstance(stream, PrimaryReader) else StreamTee(stream).primary
        # Storages expect read(n) to fill n bytes, the raw reader returns one chunk
        buffered = io.BufferedReader(reader, buffer_size=settings.FILES_INGEST_CHUNK_SIZE)
        try:
            logger.info('Uploading file to storage %s: %s', self.alias, name)
            saved_name = self.storage.save(name, DjangoFile(buffered, name))
        except Exception as error:
            logger.exception(
                'Failed to upload file to storage %s: %s',
                self.alias,
                name,
            )
            raise StorageError(self.alias, name, 'write') from error

        if saved_name != name:
            # Names are derived from record ids, a renamed object would be lost
            logger.error(
                'Storage %s saved %s as %s',
                self.alias,
                name,
                saved_name,
            )
            raise StorageError(self.alias, name, 'write')

        logger.info(
            'Successfully uploaded file to storage %s: %s (%d bytes)',
            self.alias,
            saved_name,
            reader.bytes_read,
        )
        return StorageAck(name=saved_name, bytes_written=reader.bytes_read)

    def delete(self, name: str) -> DeleteResult:
        """Delete an object from storage.

        Args:
            name: Object name.

        Returns:
            DeleteResult, ``deleted=False`` if the object did not exist.

        Raises:
            StorageError: If the backend fails for any other reason.
        """
        try:
            logger.info('Deleting file from storage %s: %s', self.alias, name)
            if not self.storage.exists(name):
                logger.warning(
                    'File not found in storage %s (already deleted?): %s',
                    self.alias,
                    name,
                )
                return DeleteResult(deleted=False)
            self.storage.delete(name)
        except Exception as error:
            logger.exception(
                'Failed to delete file from storage %s: %s',
                self.alias,
                name,
            )
            raise StorageError(self.alias, name, 'delete') from error

        logger.info('Successfully deleted file from storage %s: %s', self.alias, name)
        return DeleteResult(deleted=True)

    def rollback_upload(self, name: str) -> None:
        """Delete an uploaded object after its record could not be saved.

        This is a best-effort operation - if deletion fails, the error
        is logged but not raised, as the original failure is the one
        the caller needs to see.

        Args:
            name: Object name.
        """
        try:
            logger.warning('Rolling back upload, deleting file: %s', name)
            self.delete(name)
            logger.info('Successfully rolled back file upload: %s', name)
        except StorageError:
            # The object stays in storage without a record
            logger.exception(
                'Failed to rollback upload, orphaned file: %s',
                name,
            )


def get_storage_backend(alias: str) -> StorageBackend:
    """Look up a configured storage backend by alias.

    Args:
        alias: Backend alias stored on a file record (e.g. 'local').

    Returns:
        StorageBackend for the alias.

    Raises:
        StorageError: If the alias is not configured for files.
    """
    if alias not in settings.FILES_STORAGE_BACKENDS:
        logger.error('Unknown storage backend: %s', alias)
        raise StorageError(alias, '', 'lookup')
    try:
        storage = storages[alias]
    except InvalidStorageError as error:
        logger.exception('Storage backend is not configured: %s', alias)
        raise StorageError(alias, '', 'lookup') from error
    return StorageBackend(alias, storage)
