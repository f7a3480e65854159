"""Blob relay: chunk bytes in, final objects out.

Chunks are written to ``chunks/<file_id>/<index>`` as they arrive and read
back in index order for reassembly. Final objects are committed with a
single PUT up to UPLOAD_MULTIPART_THRESHOLD bytes, and with an S3
multipart upload above it.
"""

import logging
import math
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from django.conf import settings

from common.utils import safe_dispatch
from uploads.exceptions import FinalizeTimeout, ObjectNotFound, StorageError
from uploads.storage import get_object_store

logger = logging.getLogger(__name__)

CHUNK_CONTENT_TYPE = "application/octet-stream"


def chunk_key(file_id, chunk_index):
    return f"chunks/{file_id}/{chunk_index}"


def part_size_for(total_size):
    """Multipart part size for an object of ``total_size`` bytes."""
    if total_size > settings.UPLOAD_MULTIPART_LARGE_FILE_SIZE:
        return settings.UPLOAD_MULTIPART_LARGE_PART_SIZE
    return settings.UPLOAD_MULTIPART_PART_SIZE


class BlobRelay:
    """Moves upload bytes between the coordinator and object storage.

    Args:
        store: Object store backend. Defaults to get_object_store().
    """

    def __init__(self, store=None):
        self.store = store or get_object_store()

    def store_chunk(self, file_id, chunk_index, data):
        """Durably write one chunk. Storage failures propagate."""
        self.store.put(chunk_key(file_id, chunk_index), data, CHUNK_CONTENT_TYPE)

    def read_chunk(self, file_id, chunk_index):
        """Return stored chunk bytes.

        Raises:
            ObjectNotFound: The ledger says the chunk exists but storage
                does not have it.
        """
        try:
            return self.store.get(chunk_key(file_id, chunk_index))
        except ObjectNotFound as exc:
            raise ObjectNotFound(
                f"Chunk {chunk_index} of {file_id} is recorded but missing from storage."
            ) from exc

    def read_all(self, file_id, chunk_indices):
        """Concatenate chunks in ascending index order."""
        return b"".join(
            self.read_chunk(file_id, chunk_index)
            for chunk_index in sorted(chunk_indices)
        )

    def delete_chunk(self, file_id, chunk_index):
        """Best-effort delete; failures are logged and swallowed."""
        with safe_dispatch(f"delete chunk {chunk_key(file_id, chunk_index)}", logger):
            self.store.delete(chunk_key(file_id, chunk_index))

    def delete_object(self, key):
        with safe_dispatch(f"delete object {key}", logger):
            self.store.delete(key)

    def commit_final(self, key, data, content_type, on_progress=None, deadline=None):
        """Write the assembled object under ``key``.

        Args:
            key: Destination object key.
            data: Complete file bytes.
            content_type: MIME type stored with the object.
            on_progress: Optional callable(done_parts, total_parts), called
                from the calling thread as parts finish.
            deadline: Optional time.monotonic() value after which the
                commit is abandoned with FinalizeTimeout.

        Returns:
            The object key.

        Raises:
            StorageError: The write failed. Any open multipart upload has
                been aborted first.
        """
        size = len(data)
        if size <= settings.UPLOAD_MULTIPART_THRESHOLD:
            self.store.put(key, data, content_type)
            if on_progress:
                on_progress(1, 1)
            logger.info("Object committed (single put): key=%s size=%d", key, size)
            return key

        part_size = part_size_for(size)
        upload_id = self.store.create_multipart(key, content_type)
        logger.info(
            "Multipart upload started: key=%s size=%d parts=%d",
            key,
            size,
            math.ceil(size / part_size),
        )
        try:
            parts = self._upload_parts(
                key, upload_id, data, part_size, on_progress, deadline
            )
            parts.sort(key=lambda part: part["PartNumber"])
            self.store.complete_multipart(key, upload_id, parts)
        except Exception as exc:
            logger.error("Multipart upload failed: key=%s error=%s", key, exc)
            with safe_dispatch(f"abort multipart upload {upload_id}", logger):
                self.store.abort_multipart(key, upload_id)
                logger.info("Multipart upload aborted: key=%s", key)
            if isinstance(exc, StorageError):
                raise
            raise StorageError(f"Multipart upload of {key} failed: {exc}") from exc

        logger.info("Object committed (multipart): key=%s parts=%d", key, len(parts))
        return key

    def _upload_parts(self, key, upload_id, data, part_size, on_progress, deadline):
        ranges = [
            (number, offset)
            for number, offset in enumerate(range(0, len(data), part_size), start=1)
        ]
        total = len(ranges)
        parts = []

        executor = ThreadPoolExecutor(
            max_workers=max(1, settings.UPLOAD_MULTIPART_CONCURRENCY),
            thread_name_prefix="multipart",
        )
        try:
            pending = {
                executor.submit(
                    self.store.upload_part,
                    key,
                    upload_id,
                    number,
                    data[offset : offset + part_size],
                ): number
                for number, offset in ranges
            }
            while pending:
                timeout = None
                if deadline is not None:
                    timeout = deadline - time.monotonic()
                    if timeout <= 0:
                        raise FinalizeTimeout(
                            f"Multipart upload of {key} exceeded the finalize timeout."
                        )
                done, _ = wait(pending, timeout=timeout, return_when=FIRST_EXCEPTION)
                if not done:
                    continue
                for future in done:
                    number = pending.pop(future)
                    parts.append({"PartNumber": number, "ETag": future.result()})
                    if on_progress:
                        on_progress(len(parts), total)
        finally:
            # Parts already in flight finish before the caller may abort.
            executor.shutdown(wait=True, cancel_futures=True)

        return parts
