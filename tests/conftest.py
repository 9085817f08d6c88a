"""Shared fixtures for the transport test suite."""

import os

import pytest

from multipart_transport.core.exceptions import RemoteNotFoundError
from multipart_transport.core.headers import (
    CONTENT_LENGTH,
    META_FROM,
    META_MD5,
    META_MODIFIED_TIME,
)
from multipart_transport.core.models import (
    ObjectMetadata,
    PartListing,
    TransportConfig,
    TransportSession,
    UploadedPart,
)
from multipart_transport.core.transport import ResumableTransport


class FakeStorageClient:
    """In-memory stand-in for the remote multipart API."""

    def __init__(self, max_parts=10000):
        self.max_parts = max_parts
        self.objects = {}
        self.uploads = {}
        self.calls = []
        self.fail_on_part = {}
        self.before_put_part = None
        self.before_list = None
        self.before_head = None
        self.head_error = None

    def initiate_multipart_session(self, bucket, key):
        self.calls.append(("initiate", bucket, key))
        upload_id = f"upload-{len(self.uploads) + 1}"
        self.uploads[upload_id] = {}
        return upload_id

    def list_uploaded_parts(self, bucket, key, upload_session_id):
        self.calls.append(("list", upload_session_id))
        if self.before_list is not None:
            self.before_list()
        parts = [
            UploadedPart(part_number=number, size=len(data), etag=f"etag-{number}")
            for number, data in sorted(self.uploads[upload_session_id].items())
        ]
        return PartListing(parts=parts, max_parts=self.max_parts)

    def put_part(self, bucket, key, body, headers, params):
        number = params["partNumber"]
        self.calls.append(("put_part", number))
        if self.before_put_part is not None:
            self.before_put_part(body, headers, params)
        if number in self.fail_on_part:
            raise self.fail_on_part[number]
        data = body.read()
        assert len(data) == headers[CONTENT_LENGTH]
        self.uploads[params["uploadId"]][number] = data
        return f"etag-{number}"

    def complete_multipart_session(
        self, bucket, key, upload_session_id, ordered_parts, metadata
    ):
        self.calls.append(("complete", upload_session_id))
        chunks = self.uploads[upload_session_id]
        data = b"".join(chunks[p.part_number] for p in ordered_parts)
        self.objects[(bucket, key)] = (data, dict(metadata))

    def get_object_metadata(self, bucket, key):
        self.calls.append(("head", bucket, key))
        if self.before_head is not None:
            self.before_head()
        if self.head_error is not None:
            raise self.head_error
        if (bucket, key) not in self.objects:
            raise RemoteNotFoundError(bucket, key)
        data, meta = self.objects[(bucket, key)]
        modified_time = meta.get(META_MODIFIED_TIME)
        return ObjectMetadata(
            size=len(data),
            origin=meta.get(META_FROM),
            modified_time=int(modified_time) if modified_time is not None else None,
            md5=meta.get(META_MD5),
        )

    def put_object(self, bucket, key, data, metadata=None):
        self.objects[(bucket, key)] = (data, dict(metadata or {}))

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]


class EventRecorder:
    """Collects every event a transport emits, in order."""

    NAMES = ("start", "progress", "pause", "finish", "error")

    def __init__(self, transport):
        self.events = []
        for name in self.NAMES:
            transport.on(name, self.events.append)

    def named(self, name):
        return [e for e in self.events if e.name == name]

    @property
    def terminal(self):
        return [e for e in self.events if e.name in ("pause", "finish", "error")]


@pytest.fixture
def storage():
    return FakeStorageClient()


@pytest.fixture
def config():
    return TransportConfig(part_size=1024, read_chunk_size=128, idle_timeout=5.0)


@pytest.fixture
def make_file(tmp_path):
    def _make(size, name="payload.bin"):
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return path

    return _make


@pytest.fixture
def make_transport(storage, config):
    def _make(local_path, upload_session_id=None, **overrides):
        session = TransportSession(
            id="test-session",
            bucket="bucket",
            object_key="dir/payload.bin",
            local_path=str(local_path),
            upload_session_id=upload_session_id,
        )
        transport = ResumableTransport(
            storage, session, overrides.pop("config", config), **overrides
        )
        return transport, EventRecorder(transport)

    return _make
