"""Tests for the durable object stores."""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from tts_gateway.core.config import GatewayConfig, Settings
from tts_gateway.core.errors import StoreUnavailable
from tts_gateway.tts.storage import (
    AUDIO_CONTENT_TYPE,
    GCSObjectStore,
    LocalObjectStore,
    create_object_store,
)


class TestLocalObjectStore:
    def test_put_get_exists(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))

        async def run():
            assert await store.exists("speech/a.mp3") is False
            await store.put("speech/a.mp3", b"ID3data", AUDIO_CONTENT_TYPE)
            return await store.exists("speech/a.mp3"), await store.get("speech/a.mp3")

        exists, data = asyncio.run(run())
        assert exists is True
        assert data == b"ID3data"
        assert (tmp_path / "speech" / "a.mp3").read_bytes() == b"ID3data"

    def test_no_temp_files_left(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))
        asyncio.run(store.put("speech/a.mp3", b"x", AUDIO_CONTENT_TYPE))
        assert [p.name for p in (tmp_path / "speech").iterdir()] == ["a.mp3"]

    def test_get_missing_raises(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))
        with pytest.raises(StoreUnavailable):
            asyncio.run(store.get("speech/missing.mp3"))

    def test_path_escape_rejected(self, tmp_path):
        store = LocalObjectStore(str(tmp_path / "root"))
        with pytest.raises(StoreUnavailable, match="escapes"):
            asyncio.run(store.put("../outside.mp3", b"x", AUDIO_CONTENT_TYPE))

    def test_writer_streams(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))

        async def run():
            async with store.writer("speech/job.mp3", AUDIO_CONTENT_TYPE) as sink:
                await sink.write(b"part1")
                assert not await store.exists("speech/job.mp3")
                await sink.write(b"part2")
            return sink.bytes_written

        assert asyncio.run(run()) == 10
        assert (tmp_path / "speech" / "job.mp3").read_bytes() == b"part1part2"

    def test_writer_failure_leaves_nothing(self, tmp_path):
        store = LocalObjectStore(str(tmp_path))

        async def run():
            async with store.writer("speech/job.mp3", AUDIO_CONTENT_TYPE) as sink:
                await sink.write(b"partial")
                raise RuntimeError("backend died")

        with pytest.raises(RuntimeError):
            asyncio.run(run())
        assert list((tmp_path / "speech").iterdir()) == []


class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str):
        self._bucket = bucket
        self.name = name

    def exists(self):
        return self.name in self._bucket.objects

    def download_as_bytes(self):
        if self.name not in self._bucket.objects:
            raise LookupError(self.name)
        return self._bucket.objects[self.name]

    def upload_from_string(self, data, content_type=None):
        self._bucket.objects[self.name] = bytes(data)
        self._bucket.content_types[self.name] = content_type

    def open(self, mode, content_type=None):
        bucket, name = self._bucket, self.name

        class _Writer:
            def __init__(self):
                self.buf = bytearray()

            def write(self, chunk):
                self.buf.extend(chunk)

            def close(self):
                bucket.objects[name] = bytes(self.buf)
                bucket.content_types[name] = content_type

        return _Writer()


class FakeBucket:
    def __init__(self):
        self.objects = {}
        self.content_types = {}

    def blob(self, name):
        return FakeBlob(self, name)


class TestGCSObjectStore:
    def test_put_get_exists(self):
        bucket = FakeBucket()
        store = GCSObjectStore(bucket)

        async def run():
            await store.put("speech/a.mp3", b"abc", AUDIO_CONTENT_TYPE)
            return await store.exists("speech/a.mp3"), await store.get("speech/a.mp3")

        assert asyncio.run(run()) == (True, b"abc")
        assert bucket.content_types["speech/a.mp3"] == "audio/mpeg"

    def test_writer_commits_on_close(self):
        bucket = FakeBucket()
        store = GCSObjectStore(bucket)

        async def run():
            async with store.writer("speech/job.mp3", AUDIO_CONTENT_TYPE) as sink:
                await sink.write(b"a")
                await sink.write(b"b")

        asyncio.run(run())
        assert bucket.objects["speech/job.mp3"] == b"ab"

    def test_writer_abandons_on_error(self):
        bucket = FakeBucket()
        store = GCSObjectStore(bucket)

        async def run():
            async with store.writer("speech/job.mp3", AUDIO_CONTENT_TYPE) as sink:
                await sink.write(b"a")
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(run())
        assert "speech/job.mp3" not in bucket.objects

    def test_client_errors_wrapped(self):
        bucket = MagicMock()
        bucket.blob.return_value.download_as_bytes.side_effect = RuntimeError("403")
        with pytest.raises(StoreUnavailable):
            asyncio.run(GCSObjectStore(bucket).get("speech/a.mp3"))


class TestFactory:
    def test_local(self, tmp_path):
        config = GatewayConfig.from_settings(Settings(raw={"storage": {"base_dir": str(tmp_path)}}))
        store = create_object_store(config)
        assert isinstance(store, LocalObjectStore)
        assert store.base_dir == tmp_path
