"""
Pytest configuration and shared fixtures for upload mover tests

The fake S3 client keeps objects as sizes keyed by (bucket, key) and
records every call, so tests can assert on the exact sequence of
multipart operations without AWS.
"""

import asyncio
import re
from typing import Any

import pytest

from upload_mover.core.logger import set_logger

_RANGE = re.compile(r"bytes=(\d+)-(\d+)")


class FakeS3Client:
    """In-memory stand-in for an aioboto3 S3 client."""

    def __init__(self):
        self.objects: dict[tuple[str, str], int] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_parts: set[int] = set()
        self.part_delays: dict[int, float] = {}
        self.default_part_delay = 0.0
        self.fail_abort = False
        self.fail_complete = False
        self.return_upload_id = True
        self.copy_delay = 0.0
        self.uploads: dict[str, dict[str, Any]] = {}
        self._next_upload = 0

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def kwargs_of(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    async def head_object(self, **kwargs):
        self.calls.append(("head_object", kwargs))
        key = (kwargs["Bucket"], kwargs["Key"])
        if key not in self.objects:
            msg = f"Not Found: {key}"
            raise LookupError(msg)
        return {"ContentLength": self.objects[key]}

    async def copy_object(self, **kwargs):
        self.calls.append(("copy_object", kwargs))
        if self.copy_delay:
            await asyncio.sleep(self.copy_delay)
        source = kwargs["CopySource"]
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = self.objects[(source["Bucket"], source["Key"])]
        return {}

    async def delete_object(self, **kwargs):
        self.calls.append(("delete_object", kwargs))
        self.objects.pop((kwargs["Bucket"], kwargs["Key"]), None)
        return {}

    async def create_multipart_upload(self, **kwargs):
        self.calls.append(("create_multipart_upload", kwargs))
        if not self.return_upload_id:
            return {}
        self._next_upload += 1
        upload_id = f"upload-{self._next_upload}"
        self.uploads[upload_id] = {"bucket": kwargs["Bucket"], "key": kwargs["Key"], "parts": {}}
        return {"UploadId": upload_id}

    async def upload_part_copy(self, **kwargs):
        self.calls.append(("upload_part_copy", kwargs))
        part_number = kwargs["PartNumber"]
        delay = self.part_delays.get(part_number, self.default_part_delay)
        if delay:
            await asyncio.sleep(delay)
        if part_number in self.fail_parts:
            msg = f"part {part_number} failed"
            raise RuntimeError(msg)
        start, end = (int(x) for x in _RANGE.match(kwargs["CopySourceRange"]).groups())
        self.uploads[kwargs["UploadId"]]["parts"][part_number] = end - start + 1
        return {"CopyPartResult": {"ETag": f'"etag-{part_number}"'}}

    async def complete_multipart_upload(self, **kwargs):
        self.calls.append(("complete_multipart_upload", kwargs))
        if self.fail_complete:
            msg = "InvalidPartOrder"
            raise RuntimeError(msg)
        upload = self.uploads.pop(kwargs["UploadId"])
        numbers = [part["PartNumber"] for part in kwargs["MultipartUpload"]["Parts"]]
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = sum(upload["parts"][n] for n in numbers)
        return {}

    async def abort_multipart_upload(self, **kwargs):
        self.calls.append(("abort_multipart_upload", kwargs))
        if self.fail_abort:
            msg = "abort refused"
            raise RuntimeError(msg)
        self.uploads.pop(kwargs["UploadId"], None)
        return {}


class FakeClientContext:
    """Async context manager returned by FakeSession.client()."""

    def __init__(self, session: "FakeSession", client: Any):
        self.session = session
        self.client = client

    async def __aenter__(self):
        return self.client

    async def __aexit__(self, *args):
        self.session.closed += 1


class FakeSession:
    """Stand-in for aioboto3.Session sharing one S3 world across regions."""

    def __init__(self, s3: FakeS3Client | None = None):
        self.s3 = s3 or FakeS3Client()
        self.opened: list[tuple[str, str]] = []
        self.closed = 0

    def client(self, service_name: str, region_name: str | None = None, **kwargs):
        self.opened.append((service_name, region_name))
        return FakeClientContext(self, self.s3)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def fake_session(fake_s3) -> FakeSession:
    return FakeSession(fake_s3)


@pytest.fixture(autouse=True)
def reset_custom_logger():
    """Ensure no test leaks a custom logger into the next one."""
    yield
    set_logger(None)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every mover variable from the environment."""
    for key in (
        "MANIFEST_TABLE",
        "MANIFEST_FILE_TABLE",
        "FILES_TABLE",
        "UPLOAD_BUCKET",
        "STORAGE_BUCKET",
        "FILE_MOVE_TIMEOUT",
        "MOVER_WORKERS",
        "MOVER_COPY_WORKERS",
        "MOVER_DELETE_SOURCE",
        "REGION",
        "AWS_REGION",
        "RDS_PROXY_ENDPOINT",
        "POSTGRES_PORT",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "LOG_LEVEL",
        "LOG_JSON",
        "METRICS_PORT",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
