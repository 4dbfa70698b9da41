"""Asset links and ingestion settings."""

from server.settings.components import config

# Base for ``/assets/<id>`` links
ASSETS_PUBLIC_URL = config('PUBLIC_URL', default='http://localhost:8000')

# Public base URL of each storage backend, used for ``original_url``.
# An empty value means the backend is not publicly reachable.
STORAGE_PUBLIC_URLS = {
    'local': config('STORAGE_LOCAL_PUBLIC_URL', default=''),
    's3': config('STORAGE_S3_PUBLIC_URL', default=''),
}

# Size of the chunks read from an uploaded stream
FILES_INGEST_CHUNK_SIZE = config(
    'FILES_INGEST_CHUNK_SIZE',
    cast=int,
    default=64 * 1024,
)

# How many chunks may wait for the metadata reader before the
# storage write waits for it
FILES_INGEST_SIDE_BUFFER_CHUNKS = config(
    'FILES_INGEST_SIDE_BUFFER_CHUNKS',
    cast=int,
    default=16,
)

# Give up looking for an image header after this many bytes
FILES_METADATA_MAX_HEADER_BYTES = config(
    'FILES_METADATA_MAX_HEADER_BYTES',
    cast=int,
    default=4 * 1024 * 1024,
)
