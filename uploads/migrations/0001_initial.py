import common.utils
import django.core.serializers.json
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="UploadSession",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, verbose_name="created at"),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, verbose_name="updated at"),
                ),
                (
                    "file_id",
                    models.CharField(max_length=128, primary_key=True, serialize=False),
                ),
                ("file_name", models.CharField(max_length=255)),
                ("file_type", models.CharField(max_length=255)),
                (
                    "file_size",
                    models.PositiveBigIntegerField(
                        help_text="Expected total size in bytes"
                    ),
                ),
                ("total_chunks", models.PositiveIntegerField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("receiving", "Receiving"),
                            ("ready", "Ready to finalize"),
                            ("finalizing", "Finalizing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="created",
                        max_length=20,
                    ),
                ),
                ("error_message", models.TextField(blank=True)),
            ],
            options={
                "verbose_name": "upload session",
                "verbose_name_plural": "upload sessions",
                "db_table": "upload_session",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["updated_at"], name="upload_sess_updated_5c1e2a_idx"
                    ),
                    models.Index(fields=["status"], name="upload_sess_status_9b7d41_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(total_chunks__gte=1),
                        name="upload_session_total_chunks_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ChunkRecord",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=common.utils.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("chunk_index", models.PositiveIntegerField()),
                ("size_bytes", models.PositiveBigIntegerField()),
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, verbose_name="created at"),
                ),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chunks",
                        to="uploads.uploadsession",
                    ),
                ),
            ],
            options={
                "verbose_name": "chunk record",
                "verbose_name_plural": "chunk records",
                "db_table": "upload_chunk",
                "ordering": ["session", "chunk_index"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("session", "chunk_index"),
                        name="unique_session_chunk_index",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Upload",
            fields=[
                (
                    "id",
                    models.CharField(max_length=32, primary_key=True, serialize=False),
                ),
                ("slug", models.CharField(max_length=32, unique=True)),
                ("filename", models.CharField(max_length=255)),
                ("content_type", models.CharField(max_length=255)),
                ("size_bytes", models.PositiveBigIntegerField()),
                ("domain", models.CharField(max_length=255)),
                (
                    "storage_key",
                    models.CharField(blank=True, default="", max_length=1024),
                ),
                ("uploaded_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
            ],
            options={
                "verbose_name": "upload",
                "verbose_name_plural": "uploads",
                "db_table": "upload",
                "ordering": ["-uploaded_at"],
                "indexes": [
                    models.Index(fields=["expires_at"], name="upload_expires_3e8f0c_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(expires_at__gte=models.F("uploaded_at")),
                        name="upload_expires_after_upload",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UploadProgress",
            fields=[
                (
                    "session_id",
                    models.CharField(max_length=128, primary_key=True, serialize=False),
                ),
                ("progress", models.SmallIntegerField(default=0)),
                (
                    "received_chunks",
                    models.PositiveIntegerField(blank=True, null=True),
                ),
                ("total_chunks", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "result",
                    models.JSONField(
                        blank=True,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        null=True,
                    ),
                ),
                ("error_message", models.TextField(blank=True)),
                ("updated_at", models.DateTimeField(verbose_name="updated at")),
            ],
            options={
                "verbose_name": "upload progress",
                "verbose_name_plural": "upload progress",
                "db_table": "upload_progress",
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(
                        fields=["updated_at"], name="upload_prog_updated_7a2b9d_idx"
                    ),
                ],
            },
        ),
    ]
