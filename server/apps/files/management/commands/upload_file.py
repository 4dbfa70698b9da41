"""Management command to ingest a local file as an asset."""

import json
import logging
from pathlib import Path
from typing import Any

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from server.apps.files.exceptions import StorageError
from server.apps.files.logic.file_operations import create_file

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Stream a local file into storage and create its record."""

    help = 'Upload a local file to an asset storage backend'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument('path', type=Path, help='File to upload')
        parser.add_argument(
            '--storage',
            help='Storage backend alias (default: FILES_DEFAULT_STORAGE)',
        )
        parser.add_argument('--title', help='Title of the file')
        parser.add_argument('--description', help='Description of the file')
        parser.add_argument(
            '--mime-type',
            help='MIME type (default: guessed from the filename)',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the upload command.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the file is missing or the upload fails.
        """
        path: Path = options['path']
        if not path.is_file():
            raise CommandError(f'File not found: {path}')

        data = {'filename_download': path.name}
        for option_name, field_name in (
            ('storage', 'storage'),
            ('title', 'title'),
            ('description', 'description'),
            ('mime_type', 'mime_type'),
        ):
            if options[option_name] is not None:
                data[field_name] = options[option_name]

        try:
            with path.open('rb') as stream:
                record = create_file(data, stream)
        except ValidationError as exc:
            raise CommandError(f'Invalid file data: {exc.messages}') from exc
        except StorageError as exc:
            raise CommandError(str(exc)) from exc

        logger.info('Uploaded %s as file %s', path, record['id'])
        self.stdout.write(json.dumps(record, cls=DjangoJSONEncoder, indent=2))
        self.stdout.write(self.style.SUCCESS(f'Uploaded file {record["id"]}'))
