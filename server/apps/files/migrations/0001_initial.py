import uuid

from django.db import migrations, models

import server.apps.files.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='AssetSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('asset_allowlist', models.JSONField(blank=True, default=list, help_text='Extra derived sizes, e.g. [{"key": "card", "width": 400, "height": 300, "fit": "cover"}]')),
            ],
            options={
                'verbose_name': 'Asset settings',
                'verbose_name_plural': 'Asset settings',
            },
        ),
        migrations.CreateModel(
            name='File',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('storage', models.CharField(help_text='Alias of the storage backend holding the bytes', max_length=64, validators=[server.apps.files.models.validate_storage_backend])),
                ('filename_disk', models.CharField(editable=False, help_text='Object name in storage: {id}{extension}', max_length=255)),
                ('filename_download', models.CharField(help_text='Original filename offered on download', max_length=255)),
                ('title', models.CharField(blank=True, default='', max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('mime_type', models.CharField(blank=True, default='', help_text='MIME type, detected from the filename when not given', max_length=255)),
                ('width', models.PositiveIntegerField(blank=True, editable=False, null=True)),
                ('height', models.PositiveIntegerField(blank=True, editable=False, null=True)),
                ('filesize_bytes', models.BigIntegerField(blank=True, editable=False, help_text='Bytes written to storage', null=True)),
                ('metadata', models.JSONField(blank=True, editable=False, help_text='Parsed ICC, EXIF and IPTC blocks', null=True)),
                ('uploaded_on', models.DateTimeField(auto_now_add=True)),
                ('modified_on', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['-uploaded_on'],
                'indexes': [models.Index(fields=['storage', 'filename_disk'], name='files_storage_disk_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('filesize_bytes__gte', 0)), name='filesize_bytes_non_negative')],
            },
        ),
    ]
