import base64
import json
from pathlib import Path

import pytest

from common.config import WorkerConfig
from common.encoding import EncodingCapability
from common.errors import EncodingError
from common.pipeline import JobPipeline
from common.staging import LocalStagingArea
from common.storage import ObjectStore

RAW_BUCKET = "test-raw-videos"
PROCESSED_BUCKET = "test-processed-videos"


class FakeObjectStore(ObjectStore):
    """In-memory object store that records every call."""

    def __init__(self):
        self.objects = {}
        self.public = set()
        self.calls = []
        self.fail_download = None
        self.fail_download_midway = None
        self.fail_upload = None
        self.fail_make_public = None

    async def download(self, bucket, key, destination):
        self.calls.append(("download", bucket, key, Path(destination)))
        if self.fail_download:
            raise self.fail_download
        if self.fail_download_midway:
            Path(destination).write_bytes(b"half a vid")
            raise self.fail_download_midway
        if (bucket, key) not in self.objects:
            raise FileNotFoundError(f"No such object: {bucket}/{key}")
        Path(destination).write_bytes(self.objects[(bucket, key)])

    async def upload(self, bucket, source, key):
        self.calls.append(("upload", bucket, Path(source), key))
        if self.fail_upload:
            raise self.fail_upload
        self.objects[(bucket, key)] = Path(source).read_bytes()

    async def make_public(self, bucket, key):
        self.calls.append(("make_public", bucket, key))
        if self.fail_make_public:
            raise self.fail_make_public
        self.public.add((bucket, key))

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeEncoder(EncodingCapability):
    """Writes a tagged copy of the input, or fails after leaving a partial output behind."""

    def __init__(self):
        self.calls = []
        self.error = None

    async def transform(self, source, destination, profile):
        self.calls.append((Path(source), Path(destination), profile))
        if self.error:
            Path(destination).write_bytes(b"partial")
            raise self.error
        Path(destination).write_bytes(b"encoded:" + Path(source).read_bytes())


@pytest.fixture
def staging(tmp_path):
    area = LocalStagingArea(tmp_path / "raw-videos", tmp_path / "processed-videos")
    area.ensure_directories()
    return area


@pytest.fixture
def store():
    fake = FakeObjectStore()
    fake.objects[(RAW_BUCKET, "clip1.mp4")] = b"raw clip 1"
    fake.objects[(RAW_BUCKET, "clip2.mp4")] = b"raw clip 2"
    return fake


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def pipeline(staging, store, encoder):
    return JobPipeline(
        staging=staging,
        store=store,
        encoder=encoder,
        raw_bucket=RAW_BUCKET,
        processed_bucket=PROCESSED_BUCKET,
    )


@pytest.fixture
def worker_config(tmp_path):
    return WorkerConfig(
        storage_backend="local",
        raw_bucket=RAW_BUCKET,
        processed_bucket=PROCESSED_BUCKET,
        raw_dir=tmp_path / "raw-videos",
        processed_dir=tmp_path / "processed-videos",
        local_storage_root=tmp_path / "buckets",
    )


def make_envelope(payload):
    """Wraps a job payload the way the push subscription delivers it."""
    data = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return {"message": {"data": data, "messageId": "1"}, "subscription": "projects/p/subscriptions/s"}


@pytest.fixture
def envelope():
    return make_envelope
