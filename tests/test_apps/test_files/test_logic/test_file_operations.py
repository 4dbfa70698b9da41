"""Tests for file operations business logic."""

import io
import json
import uuid

import pytest
from django.core.exceptions import ValidationError

from server.apps.files.exceptions import NotFoundError, StorageError
from server.apps.files.logic import file_operations
from server.apps.files.logic.file_operations import (
    create_file,
    delete_file,
    read_file,
    read_files,
    update_file,
)
from server.apps.files.logic.item_operations import Query
from server.apps.files.logic.links import SYSTEM_ASSET_SIZES
from server.apps.files.models import File


def _stored_names(storage_root):
    return sorted(path.name for path in storage_root.iterdir())


@pytest.mark.django_db
class TestCreateFile:
    """Tests for create_file."""

    def test_image_upload(self, local_storage, jpeg_with_iptc):
        """Test an image is stored with dimensions, size and metadata."""
        record = create_file(
            {'filename_download': 'harbour.jpg'},
            io.BytesIO(jpeg_with_iptc),
        )

        assert record['storage'] == 'local'
        assert record['filename_disk'] == f'{record["id"]}.jpg'
        assert record['mime_type'] == 'image/jpeg'
        assert record['width'] == 40
        assert record['height'] == 30
        assert record['filesize_bytes'] == len(jpeg_with_iptc)
        assert record['metadata']['iptc']['keywords'] == ['boats', 'sea']
        # Empty title and description are taken from IPTC
        assert record['title'] == 'Harbour at dawn'
        assert record['description'] == 'Fishing boats leaving the harbour'

        stored = local_storage.joinpath(record['filename_disk'])
        assert stored.read_bytes() == jpeg_with_iptc

    def test_given_title_wins_over_iptc(self, local_storage, jpeg_with_iptc):
        """Test values supplied by the caller are kept."""
        record = create_file(
            {'filename_download': 'harbour.jpg', 'title': 'My title'},
            io.BytesIO(jpeg_with_iptc),
        )

        assert record['title'] == 'My title'
        assert record['description'] == 'Fishing boats leaving the harbour'

    def test_metadata_is_json(self, local_storage, make_image):
        """Test ICC and EXIF blocks are stored as JSON."""
        record = create_file(
            {'filename_download': 'camera.jpg'},
            io.BytesIO(make_image('JPEG', icc=True, exif={0x010F: 'Acme'})),
        )

        assert set(record['metadata']) == {'icc', 'exif'}
        assert record['metadata']['exif']['Make'] == 'Acme'
        json.dumps(record['metadata'])

    def test_icc_only_image_with_empty_title(self, local_storage, make_image):
        """Test an image carrying only an ICC profile."""
        payload = make_image('JPEG', (12, 7), icc=True)

        record = create_file(
            {'filename_download': 'profile.jpg', 'title': ''},
            io.BytesIO(payload),
        )

        assert (record['width'], record['height']) == (12, 7)
        assert record['filesize_bytes'] == len(payload)
        assert set(record['metadata']) == {'icc'}
        assert record['metadata']['icc']['color_space'] == 'RGB'
        # No IPTC block, so nothing fills the title
        assert record['title'] == ''

    def test_non_image_upload(self, local_storage):
        """Test non-images get no image fields."""
        record = create_file(
            {'filename_download': 'notes.txt'},
            io.BytesIO(b'plain text'),
        )

        assert record['mime_type'] == 'text/plain'
        assert record['filesize_bytes'] is None
        assert record['width'] is None
        assert record['metadata'] is None
        assert local_storage.joinpath(record['filename_disk']).read_bytes() == b'plain text'

    def test_explicit_mime_type(self, local_storage, make_image):
        """Test a given MIME type is not replaced by detection."""
        record = create_file(
            {'filename_download': 'blob', 'mime_type': 'image/png'},
            io.BytesIO(make_image('PNG', (5, 6))),
        )

        assert record['mime_type'] == 'image/png'
        assert (record['width'], record['height']) == (5, 6)
        assert record['filename_disk'] == str(record['id'])

    def test_unreadable_image_still_created(self, local_storage):
        """Test extraction failures do not fail the upload."""
        record = create_file(
            {'filename_download': 'broken.png'},
            io.BytesIO(b'not a png'),
        )

        assert record['filesize_bytes'] == 9
        assert record['width'] is None
        assert record['metadata'] is None

    def test_invalid_payload_does_no_io(self, local_storage):
        """Test validation happens before anything is stored."""
        with pytest.raises(ValidationError):
            create_file(
                {'filename_download': 'a.txt', 'filename_disk': 'x.txt'},
                io.BytesIO(b'data'),
            )

        assert _stored_names(local_storage) == []
        assert not File.objects.exists()

    def test_storage_failure(self, local_storage, monkeypatch):
        """Test no record is created when storage fails."""
        def failing_put(self, name, stream):
            raise StorageError('local', name, 'write')

        monkeypatch.setattr(
            'server.apps.files.infrastructure.storage.StorageBackend.put',
            failing_put,
        )

        with pytest.raises(StorageError):
            create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        assert not File.objects.exists()

    def test_database_failure_rolls_back_upload(self, local_storage, monkeypatch):
        """Test uploaded bytes are removed if the record is not created."""
        def failing_create(collection, payload, query=None):
            raise RuntimeError('database unavailable')

        monkeypatch.setattr(file_operations, 'create_item', failing_create)

        with pytest.raises(RuntimeError):
            create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        assert _stored_names(local_storage) == []

    def test_s3_upload(self, local_storage, mock_s3, make_image):
        """Test uploads to the S3 backend."""
        payload = make_image('PNG', (8, 8))

        record = create_file(
            {'filename_download': 'a.png', 'storage': 's3'},
            io.BytesIO(payload),
        )

        stored = mock_s3.Object('assets', record['filename_disk']).get()
        assert stored['Body'].read() == payload
        assert record['filesize_bytes'] == len(payload)

    def test_large_s3_upload(self, local_storage, mock_s3, make_image):
        """Test an image above the multipart threshold is stored whole."""
        payload = make_image('PNG', (24, 12)) + b'\x00' * (9 * 1024 * 1024)

        record = create_file(
            {'filename_download': 'large.png', 'storage': 's3'},
            io.BytesIO(payload),
        )

        stored = mock_s3.Object('assets', record['filename_disk'])
        assert '-' in stored.e_tag
        assert stored.content_length == len(payload)
        assert record['filesize_bytes'] == len(payload)
        assert (record['width'], record['height']) == (24, 12)


@pytest.mark.django_db
class TestReadFile:
    """Tests for read_file and read_files."""

    def test_read_attaches_links(self, local_storage):
        """Test links are computed on read."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        record = read_file(created['id'])

        links = record['links']
        assert links['asset_url'] == f'https://api.example.com/assets/{created["id"]}'
        assert links['original_url'] == (
            f'https://files.example.com/local/{created["filename_disk"]}'
        )
        assert len(links['thumbnails']) == len(SYSTEM_ASSET_SIZES)

    def test_read_with_field_selection(self, local_storage):
        """Test links work when location fields are not selected."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        record = read_file(created['id'], Query(fields=('title',)))

        assert set(record) == {'title', 'links'}
        assert record['links']['asset_url'].endswith(str(created['id']))

    def test_read_missing(self, local_storage):
        """Test reading an unknown file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            read_file(uuid.uuid4())

    def test_read_files_has_no_links(self, local_storage):
        """Test listing returns plain records."""
        create_file({'filename_download': 'a.txt'}, io.BytesIO(b'a'))
        create_file({'filename_download': 'b.txt'}, io.BytesIO(b'b'))

        records = read_files(Query(sort=('filename_download',)))

        assert [record['filename_download'] for record in records] == ['a.txt', 'b.txt']
        assert all('links' not in record for record in records)


@pytest.mark.django_db
class TestUpdateFile:
    """Tests for update_file."""

    def test_update_fields(self, local_storage):
        """Test plain field updates."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        updated = update_file(created['id'], {'title': 'Renamed', 'description': 'x'})

        assert updated['title'] == 'Renamed'
        assert updated['description'] == 'x'

    def test_replace_content_keeps_disk_name(self, local_storage, make_image):
        """Test new bytes overwrite the same object and refresh the size."""
        original = make_image('PNG', (10, 10))
        created = create_file({'filename_download': 'a.png'}, io.BytesIO(original))

        replacement = make_image('PNG', (20, 20)) + b'\x00' * 1000
        updated = update_file(created['id'], {}, io.BytesIO(replacement))

        assert updated['filename_disk'] == created['filename_disk']
        assert _stored_names(local_storage) == [created['filename_disk']]
        stored = local_storage.joinpath(created['filename_disk'])
        assert stored.read_bytes() == replacement
        assert updated['filesize_bytes'] == len(replacement)
        # Header fields describe the first upload
        assert updated['width'] == 10
        assert updated['metadata'] == created['metadata']

    def test_replace_content_of_non_image(self, local_storage):
        """Test non-images keep an empty size after new bytes."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        updated = update_file(created['id'], {}, io.BytesIO(b'longer data'))

        assert updated['filesize_bytes'] is None
        stored = local_storage.joinpath(created['filename_disk'])
        assert stored.read_bytes() == b'longer data'

    @pytest.mark.parametrize('field_name', [
        'storage',
        'filename_download',
        'filename_disk',
        'id',
    ])
    def test_fixed_fields_rejected(self, local_storage, field_name):
        """Test fields fixed at creation cannot be updated."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        with pytest.raises(ValidationError):
            update_file(created['id'], {field_name: 'b.txt'})

        assert read_file(created['id'])['filename_download'] == 'a.txt'

    def test_rejected_update_does_not_touch_storage(self, local_storage):
        """Test validation runs before new bytes are written."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        with pytest.raises(ValidationError):
            update_file(created['id'], {'storage': 's3'}, io.BytesIO(b'new'))

        assert local_storage.joinpath(created['filename_disk']).read_bytes() == b'data'

    def test_update_missing(self, local_storage):
        """Test updating an unknown file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            update_file(uuid.uuid4(), {'title': 'x'})


@pytest.mark.django_db
class TestDeleteFile:
    """Tests for delete_file."""

    def test_delete_removes_bytes_and_record(self, local_storage):
        """Test delete removes the object, then the record."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        delete_file(created['id'])

        assert _stored_names(local_storage) == []
        assert not File.objects.exists()

    def test_delete_when_object_already_gone(self, local_storage, caplog):
        """Test a missing object does not block the record delete."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))
        local_storage.joinpath(created['filename_disk']).unlink()

        delete_file(created['id'])

        assert not File.objects.exists()
        assert 'Storage object already absent' in caplog.text

    def test_storage_failure_keeps_record(self, local_storage, monkeypatch, caplog):
        """Test the record survives when the bytes cannot be deleted."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        def failing_delete(self, name):
            raise StorageError('local', name, 'delete')

        monkeypatch.setattr(
            'server.apps.files.infrastructure.storage.StorageBackend.delete',
            failing_delete,
        )

        with pytest.raises(StorageError):
            delete_file(created['id'])

        assert File.objects.filter(pk=created['id']).exists()
        assert 'Storage delete failed, record kept' in caplog.text

    def test_record_failure_after_storage_delete(self, local_storage, monkeypatch, caplog):
        """Test a failed record delete is reported after the bytes are gone."""
        created = create_file({'filename_download': 'a.txt'}, io.BytesIO(b'data'))

        def failing_delete_item(collection, pk):
            raise RuntimeError('database unavailable')

        monkeypatch.setattr(file_operations, 'delete_item', failing_delete_item)

        with pytest.raises(RuntimeError):
            delete_file(created['id'])

        assert _stored_names(local_storage) == []
        assert 'Storage object removed but record delete failed' in caplog.text

    def test_delete_missing(self, local_storage):
        """Test deleting an unknown file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            delete_file(uuid.uuid4())
