"""Object storage for raw audio and rendered images."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

from vomage.utils.errors import StorageError
from vomage.utils.retry import with_retry

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mp4": "m4a",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/svg+xml": "svg",
}


def object_key(prefix: str, content_type: str) -> str:
    """Build a unique object key under a prefix."""
    base = content_type.split(";")[0].strip().lower()
    extension = _EXTENSIONS.get(base, "bin")
    return f"{prefix.strip('/')}/{uuid4().hex}.{extension}"


class ObjectStore(ABC):
    """Opaque-reference blob storage."""

    name: str = "object-store"

    @abstractmethod
    async def put(self, data: bytes, content_type: str, prefix: str) -> str:
        """Store bytes and return an opaque reference."""

    @abstractmethod
    async def get(self, ref: str) -> bytes:
        """Load bytes for a reference."""

    def public_url(self, ref: str) -> str:
        """URL a client can fetch; defaults to the reference itself."""
        return ref


class InMemoryObjectStore(ObjectStore):
    """Process-local store used for development and tests."""

    name = "memory"

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def put(self, data: bytes, content_type: str, prefix: str) -> str:
        ref = f"mem://{object_key(prefix, content_type)}"
        async with self._lock:
            self._objects[ref] = bytes(data)
        return ref

    async def get(self, ref: str) -> bytes:
        async with self._lock:
            try:
                return self._objects[ref]
            except KeyError:
                raise StorageError(f"Object not found: {ref}")

    def __len__(self) -> int:
        return len(self._objects)


class SupabaseObjectStore(ObjectStore):
    """Supabase Storage bucket adapter."""

    name = "supabase"

    def __init__(self, supabase_client: Any, bucket: str) -> None:
        """
        Initialize the store.

        Args:
            supabase_client: Supabase client instance
            bucket: Storage bucket name
        """
        self.supabase = supabase_client
        self.bucket = bucket

    def _split(self, ref: str) -> str:
        prefix = f"supabase://{self.bucket}/"
        if not ref.startswith(prefix):
            raise StorageError(f"Reference {ref} does not belong to bucket {self.bucket}")
        return ref[len(prefix):]

    @with_retry(max_attempts=3, base_delay=0.5, exceptions=(StorageError,))
    async def put(self, data: bytes, content_type: str, prefix: str) -> str:
        path = object_key(prefix, content_type)
        try:
            result = await run_in_threadpool(
                self.supabase.storage.from_(self.bucket).upload,
                path=path,
                file=data,
                file_options={"content-type": content_type or "application/octet-stream"},
            )
        except Exception as e:
            raise StorageError(f"Failed to upload {path}: {e}")

        if not result:
            raise StorageError("Upload returned empty result")

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return f"supabase://{self.bucket}/{path}"

    async def get(self, ref: str) -> bytes:
        path = self._split(ref)
        try:
            return await run_in_threadpool(self.supabase.storage.from_(self.bucket).download, path)
        except Exception as e:
            raise StorageError(f"Failed to download {path}: {e}")

    def public_url(self, ref: str) -> str:
        return self.supabase.storage.from_(self.bucket).get_public_url(self._split(ref))
