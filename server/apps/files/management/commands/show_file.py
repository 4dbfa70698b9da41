"""Management command to print a file record with its links."""

import json
from typing import Any

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from server.apps.files.exceptions import NotFoundError
from server.apps.files.logic.file_operations import read_file


class Command(BaseCommand):
    """Print a file record and its public links as JSON."""

    help = 'Show a file record with its asset links'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument('file_id', help='File id (UUID)')

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the show command.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the file does not exist.
        """
        try:
            record = read_file(options['file_id'])
        except (NotFoundError, ValidationError) as exc:
            raise CommandError(f'File not found: {options["file_id"]}') from exc
        self.stdout.write(json.dumps(record, cls=DjangoJSONEncoder, indent=2))
