"""Object storage backends for upload chunks and final objects.

The backend is picked by ``settings.UPLOAD_OBJECT_STORE``::

    UPLOAD_OBJECT_STORE = {
        "BACKEND": "uploads.storage.S3ObjectStore",
        "OPTIONS": {"bucket": "...", "endpoint_url": "..."},
    }

Every backend exposes the same small surface: put/get/delete plus the
four S3 multipart calls. Errors are raised as ``StorageError`` (missing
keys as ``ObjectNotFound``) so callers never see botocore types.
"""

import logging
import threading
import uuid
from hashlib import md5

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils.module_loading import import_string

from uploads.exceptions import ObjectNotFound, StorageError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

_store = None


class S3ObjectStore:
    """S3-compatible object store (AWS S3, Cloudflare R2, MinIO)."""

    def __init__(
        self,
        bucket,
        endpoint_url=None,
        region_name="auto",
        access_key_id=None,
        secret_access_key=None,
        client=None,
    ):
        if not bucket:
            raise StorageError("S3 bucket is not configured (set S3_BUCKET).")
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region_name,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                retries={"max_attempts": 5, "mode": "standard"},
                connect_timeout=5,
                read_timeout=60,
            ),
        )
        logger.info("S3 object store initialized: bucket=%s endpoint=%s", bucket, endpoint_url)

    def _call(self, operation, key, **kwargs):
        try:
            return getattr(self.client, operation)(Bucket=self.bucket, Key=key, **kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFound(f"Object {key} not found.") from exc
            raise StorageError(f"S3 {operation} failed for {key}: {code or exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 {operation} failed for {key}: {exc}") from exc

    def put(self, key, data, content_type):
        self._call("put_object", key, Body=data, ContentType=content_type)

    def get(self, key):
        response = self._call("get_object", key)
        try:
            return response["Body"].read()
        except BotoCoreError as exc:
            raise StorageError(f"S3 read failed for {key}: {exc}") from exc

    def delete(self, key):
        self._call("delete_object", key)

    def create_multipart(self, key, content_type):
        response = self._call("create_multipart_upload", key, ContentType=content_type)
        return response["UploadId"]

    def upload_part(self, key, upload_id, part_number, data):
        response = self._call(
            "upload_part",
            key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=data,
        )
        return response["ETag"]

    def complete_multipart(self, key, upload_id, parts):
        self._call(
            "complete_multipart_upload",
            key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    def abort_multipart(self, key, upload_id):
        self._call("abort_multipart_upload", key, UploadId=upload_id)


class InMemoryObjectStore:
    """Process-local object store for development and tests.

    Objects vanish with the process and are invisible to other workers,
    so this backend only supports a single-process deployment.
    """

    def __init__(self):
        self.objects = {}
        self.multipart = {}
        self._lock = threading.Lock()

    def put(self, key, data, content_type):
        with self._lock:
            self.objects[key] = (bytes(data), content_type)

    def get(self, key):
        with self._lock:
            try:
                return self.objects[key][0]
            except KeyError:
                raise ObjectNotFound(f"Object {key} not found.") from None

    def delete(self, key):
        with self._lock:
            self.objects.pop(key, None)

    def create_multipart(self, key, content_type):
        upload_id = uuid.uuid4().hex
        with self._lock:
            self.multipart[upload_id] = {
                "key": key,
                "content_type": content_type,
                "parts": {},
            }
        return upload_id

    def upload_part(self, key, upload_id, part_number, data):
        etag = f'"{md5(data, usedforsecurity=False).hexdigest()}"'
        with self._lock:
            upload = self._get_multipart(key, upload_id)
            upload["parts"][part_number] = (etag, bytes(data))
        return etag

    def complete_multipart(self, key, upload_id, parts):
        with self._lock:
            upload = self._get_multipart(key, upload_id)
            numbers = [p["PartNumber"] for p in parts]
            if numbers != list(range(1, len(parts) + 1)):
                raise StorageError(
                    f"Parts for {key} must be contiguous and ascending from 1, got {numbers}."
                )
            body = bytearray()
            for part in parts:
                etag, data = upload["parts"].get(part["PartNumber"], (None, b""))
                if etag != part["ETag"]:
                    raise StorageError(
                        f"ETag mismatch for part {part['PartNumber']} of {key}."
                    )
                body += data
            self.objects[key] = (bytes(body), upload["content_type"])
            del self.multipart[upload_id]

    def abort_multipart(self, key, upload_id):
        with self._lock:
            self.multipart.pop(upload_id, None)

    def _get_multipart(self, key, upload_id):
        upload = self.multipart.get(upload_id)
        if upload is None or upload["key"] != key:
            raise StorageError(f"No such multipart upload {upload_id} for {key}.")
        return upload


def get_object_store():
    """Return the configured object store, building it on first use."""
    global _store
    if _store is None:
        config = settings.UPLOAD_OBJECT_STORE
        backend = import_string(config["BACKEND"])
        _store = backend(**config.get("OPTIONS", {}))
    return _store


def reset_object_store():
    global _store
    _store = None


@receiver(setting_changed)
def _reset_store_on_setting_change(sender, setting, **kwargs):
    if setting == "UPLOAD_OBJECT_STORE":
        reset_object_store()
