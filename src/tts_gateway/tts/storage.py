"""
Durable object stores (the authoritative cache tier).

Objects are addressed by slash-separated paths such as "speech/<key>.mp3".
Two implementations:
    - LocalObjectStore: files under a base directory, written atomically
    - GCSObjectStore: a Google Cloud Storage bucket (optional "gcs" extra)

Protocol:
    exists(path) -> bool
    get(path) -> bytes
    put(path, data, content_type)
    writer(path, content_type)   async context manager yielding a sink with
                                 `await sink.write(chunk)`; the object only
                                 becomes visible when the block exits cleanly

Blocking filesystem and client-library calls run in worker threads via
asyncio.to_thread so the event loop is never blocked.

Any failure surfaces as StoreUnavailable; the caller decides whether a
failure degrades to a cache miss or aborts the request.
"""
from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Protocol

from tts_gateway.core.config import GatewayConfig
from tts_gateway.core.errors import StoreUnavailable
from tts_gateway.core.logging import debug, get_logger, info, warn
from tts_gateway.utils.timeit import timeit

_LOG = get_logger("tts-gateway.storage")

AUDIO_CONTENT_TYPE = "audio/mpeg"
MARKS_CONTENT_TYPE = "application/json"


class ObjectSink(Protocol):
    async def write(self, chunk: bytes) -> None:
        ...


class ObjectStore(Protocol):
    async def exists(self, path: str) -> bool:
        ...

    async def get(self, path: str) -> bytes:
        ...

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def writer(self, path: str, content_type: str):
        ...


class _ThreadedSink:
    """Forwards chunks to a blocking binary file object from a worker thread."""

    def __init__(self, fh):
        self._fh = fh
        self.bytes_written = 0

    async def write(self, chunk: bytes) -> None:
        await asyncio.to_thread(self._fh.write, chunk)
        self.bytes_written += len(chunk)


class LocalObjectStore:
    """
    Filesystem-backed store rooted at `base_dir`.

    Writes go to a uniquely named temp file next to the target and are
    renamed into place, so readers never observe a partial object and two
    concurrent writers of the same path cannot corrupt each other.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def _resolve(self, path: str) -> Path:
        p = (self.base_dir / path.lstrip("/")).resolve()
        root = self.base_dir.resolve()
        if p != root and root not in p.parents:
            raise StoreUnavailable(f"path escapes storage root: {path}", details={"path": path})
        return p

    @staticmethod
    def _tmp_for(p: Path) -> Path:
        return p.with_name(f"{p.name}.{uuid.uuid4().hex}.tmp")

    async def exists(self, path: str) -> bool:
        p = self._resolve(path)
        return await asyncio.to_thread(p.is_file)

    async def get(self, path: str) -> bytes:
        p = self._resolve(path)
        with timeit("storage_read") as t:
            try:
                data = await asyncio.to_thread(p.read_bytes)
            except OSError as e:
                raise StoreUnavailable(f"read failed: {path}: {e}", details={"path": path}) from e
        debug(_LOG, "read", path=path, bytes=len(data), seconds=round(t.elapsed, 4))
        return data

    def _write_atomic(self, p: Path, data: bytes) -> None:
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._tmp_for(p)
        try:
            tmp.write_bytes(data)
            tmp.replace(p)
        finally:
            if tmp.exists():
                tmp.unlink()

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        p = self._resolve(path)
        with timeit("storage_write") as t:
            try:
                await asyncio.to_thread(self._write_atomic, p, data)
            except OSError as e:
                raise StoreUnavailable(f"write failed: {path}: {e}", details={"path": path}) from e
        info(_LOG, "saved", path=path, bytes=len(data), seconds=round(t.elapsed, 4))

    @asynccontextmanager
    async def writer(self, path: str, content_type: str) -> AsyncIterator[_ThreadedSink]:
        p = self._resolve(path)
        tmp = self._tmp_for(p)
        try:
            await asyncio.to_thread(p.parent.mkdir, parents=True, exist_ok=True)
            fh = await asyncio.to_thread(tmp.open, "wb")
        except OSError as e:
            raise StoreUnavailable(f"open failed: {path}: {e}", details={"path": path}) from e

        sink = _ThreadedSink(fh)
        try:
            try:
                yield sink
            finally:
                await asyncio.to_thread(fh.close)
            await asyncio.to_thread(tmp.replace, p)
        except OSError as e:
            raise StoreUnavailable(f"stream write failed: {path}: {e}", details={"path": path}) from e
        finally:
            if tmp.exists():
                await asyncio.to_thread(tmp.unlink)
        info(_LOG, "streamed", path=path, bytes=sink.bytes_written)


class GCSObjectStore:
    """
    Google Cloud Storage bucket.

    Takes an already constructed `google.cloud.storage.Bucket` (or anything
    with the same blob() interface); use from_bucket_name() to build one
    from application default credentials.
    """

    def __init__(self, bucket: Any):
        self._bucket = bucket

    @classmethod
    def from_bucket_name(cls, name: str, project: Optional[str] = None) -> "GCSObjectStore":
        # Optional dependency: pip install tts-gateway[gcs]
        from google.cloud import storage as gcs

        client = gcs.Client(project=project) if project else gcs.Client()
        return cls(client.bucket(name))

    async def exists(self, path: str) -> bool:
        try:
            return bool(await asyncio.to_thread(self._bucket.blob(path).exists))
        except Exception as e:
            raise StoreUnavailable(f"gcs exists failed: {path}: {e}", details={"path": path}) from e

    async def get(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(self._bucket.blob(path).download_as_bytes)
        except Exception as e:
            raise StoreUnavailable(f"gcs download failed: {path}: {e}", details={"path": path}) from e

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        blob = self._bucket.blob(path)
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except Exception as e:
            raise StoreUnavailable(f"gcs upload failed: {path}: {e}", details={"path": path}) from e
        info(_LOG, "saved", path=path, bytes=len(data))

    @asynccontextmanager
    async def writer(self, path: str, content_type: str) -> AsyncIterator[_ThreadedSink]:
        blob = self._bucket.blob(path)
        try:
            fh = await asyncio.to_thread(blob.open, "wb", content_type=content_type)
        except Exception as e:
            raise StoreUnavailable(f"gcs open failed: {path}: {e}", details={"path": path}) from e

        sink = _ThreadedSink(fh)
        try:
            yield sink
        except BaseException:
            # Abandon the resumable upload; closing would commit a partial object
            warn(_LOG, "stream_aborted", path=path, bytes=sink.bytes_written)
            raise
        try:
            await asyncio.to_thread(fh.close)
        except Exception as e:
            raise StoreUnavailable(f"gcs finalize failed: {path}: {e}", details={"path": path}) from e
        info(_LOG, "streamed", path=path, bytes=sink.bytes_written)


def create_object_store(config: GatewayConfig) -> ObjectStore:
    """Build the durable store named by storage.backend."""
    if config.storage.backend == "gcs":
        info(_LOG, "object_store", backend="gcs", bucket=config.storage.bucket)
        return GCSObjectStore.from_bucket_name(config.storage.bucket)
    info(_LOG, "object_store", backend="local", base_dir=config.storage.base_dir)
    return LocalObjectStore(config.storage.base_dir)
