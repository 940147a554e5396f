import hashlib
from datetime import datetime, timezone
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from damkit.model import (
    BrandLocations,
    BrandProfile,
    BrandSettings,
    DamConfig,
    ObjectStoreTarget,
)


def make_brand(
    base: Path,
    *,
    key: str = "appydave",
    subfolder: str = "",
    backup: bool = True,
    bucket: str = "video-staging",
    profile: str = "test-profile",
    multipart_threshold_mb: int = 100,
) -> BrandProfile:
    root = base / f"v-{key}"
    root.mkdir(parents=True, exist_ok=True)
    if subfolder:
        (root / subfolder).mkdir(exist_ok=True)
    ssd = base / "ssd" / key
    if backup:
        ssd.mkdir(parents=True, exist_ok=True)
    return BrandProfile(
        key=key,
        name=key.title(),
        shortcuts=["ad"] if key == "appydave" else [],
        locations=BrandLocations(video_projects=root, ssd_backup=ssd),
        aws=ObjectStoreTarget(
            profile=profile, region="ap-southeast-1", bucket=bucket, key_prefix=f"staging/v-{key}/"
        ),
        settings=BrandSettings(
            projects_subfolder=subfolder, multipart_threshold_mb=multipart_threshold_mb
        ),
    )


@pytest.fixture
def brand(tmp_path):
    return make_brand(tmp_path)


@pytest.fixture
def dam_config(tmp_path):
    ad = make_brand(tmp_path)
    ss = make_brand(tmp_path, key="supportsignal", subfolder="projects")
    return DamConfig(brands={"appydave": ad, "supportsignal": ss})


def write(path: Path, data: bytes = b"x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class _Paginator:
    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket, Prefix=""):
        contents = [
            {
                "Key": key,
                "Size": len(obj["body"]),
                "ETag": obj["etag"],
                "LastModified": obj["modified"],
            }
            for (bucket, key), obj in sorted(self.client.objects.items())
            if bucket == Bucket and key.startswith(Prefix)
        ]
        yield {"Contents": contents} if contents else {}


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client (only the calls damkit makes)."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail_keys = set()

    def _store(self, bucket, key, body, *, parts=0):
        digest = hashlib.md5(body).hexdigest()
        etag = f'"{digest}-{parts}"' if parts else f'"{digest}"'
        self.objects[(bucket, key)] = {
            "body": body,
            "etag": etag,
            "modified": datetime.now(timezone.utc),
        }

    def _maybe_fail(self, op, key):
        if key in self.fail_keys:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, op)

    def head_object(self, Bucket, Key):
        self.calls.append(("head_object", Key))
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {
            "ContentLength": len(obj["body"]),
            "ETag": obj["etag"],
            "LastModified": obj["modified"],
        }

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.calls.append(("put_object", Key))
        self._maybe_fail("PutObject", Key)
        self._store(Bucket, Key, Body.read())
        return {}

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None, Config=None):
        self.calls.append(("upload_file", Key))
        self._maybe_fail("UploadPart", Key)
        self._store(Bucket, Key, Path(Filename).read_bytes(), parts=2)

    def download_file(self, Bucket, Key, Filename):
        self.calls.append(("download_file", Key))
        self._maybe_fail("GetObject", Key)
        Path(Filename).write_bytes(self.objects[(Bucket, Key)]["body"])

    def delete_object(self, Bucket, Key):
        self.calls.append(("delete_object", Key))
        self._maybe_fail("DeleteObject", Key)
        self.objects.pop((Bucket, Key), None)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return _Paginator(self)

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://{Params['Bucket']}.s3.example/{Params['Key']}?expires={ExpiresIn}"

    def writes(self):
        return [c for c in self.calls if c[0] in {"put_object", "upload_file", "download_file"}]


@pytest.fixture
def fake_s3():
    return FakeS3Client()
