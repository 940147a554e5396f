"""Object-store staging tier.

Files staged under ``<project>/s3-staging/`` map one-to-one onto keys
``<key_prefix><project_id>/<relative_path>``. Equality is decided by an MD5
of the local file against the object's ETag; multipart ETags (``<md5>-<parts>``)
carry no whole-file digest, so those fall back to size.
"""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigError, S3OperationError
from .layout import flat_path, staging_dir
from .model import BrandProfile, DamConfig, SyncResult
from .policy import DEFAULT_POLICY, ExclusionPolicy
from .utils import format_duration, format_size

logger = logging.getLogger(__name__)

MD5_CHUNK = 8 * 1024 * 1024
MAX_PRESIGN_SECONDS = 7 * 24 * 3600

SYNCED = "synced"
MODIFIED = "modified"
UNKNOWN = "unknown"

TRANSFER_ERRORS = (OSError, ClientError, BotoCoreError, S3UploadFailedError)

_TEXT_EXTS = {".srt", ".vtt", ".md", ".txt"}
_EXPIRY_RE = re.compile(r"^(\d+)\s*([hd])$")


def file_md5(path: Path) -> Optional[str]:
    md5 = hashlib.md5()
    try:
        with path.open("rb") as f:
            while True:
                chunk = f.read(MD5_CHUNK)
                if not chunk:
                    break
                md5.update(chunk)
    except OSError as e:
        logger.warning("could not hash %s: %s", path, e)
        return None
    return md5.hexdigest()


def normalize_etag(etag: Optional[str]) -> str:
    return (etag or "").strip().strip('"').lower()


def is_multipart_etag(etag: Optional[str]) -> bool:
    return "-" in normalize_etag(etag)


def compare_files(local: Path, etag: Optional[str], size: Optional[int]) -> str:
    if not local.is_file() or not etag:
        return UNKNOWN
    tag = normalize_etag(etag)
    if is_multipart_etag(tag):
        return SYNCED if local.stat().st_size == size else MODIFIED
    digest = file_md5(local)
    if digest is None:
        return UNKNOWN
    return SYNCED if digest == tag else MODIFIED


def content_type(name: str) -> str:
    suffix = Path(name).suffix.lower()
    if suffix in _TEXT_EXTS:
        return "text/plain"
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


def parse_expiry(text: str) -> int:
    """'24h' / '7d' -> seconds; capped at the 7 day SigV4 maximum."""
    m = _EXPIRY_RE.match(text.strip().lower())
    if not m:
        raise ValueError(f"Invalid expiry '{text}' (use e.g. 24h or 7d)")
    n = int(m.group(1))
    seconds = n * 3600 if m.group(2) == "h" else n * 86400
    if seconds <= 0 or seconds > MAX_PRESIGN_SECONDS:
        raise ValueError(f"Expiry must be between 1h and 7d, got '{text}'")
    return seconds


def _is_not_found(err: ClientError) -> bool:
    code = str(err.response.get("Error", {}).get("Code", ""))
    return code in {"404", "NoSuchKey", "NotFound"}


def _local_mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _empty_result() -> SyncResult:
    return SyncResult(transferred=0, skipped=0, failed=0, excluded=0, bytes=0, details=[])


class S3Operations:
    """Upload, download, status and cleanup for one project's staging files."""

    def __init__(
        self,
        brand: BrandProfile,
        project_id: str,
        *,
        config: Optional[DamConfig] = None,
        client: Any = None,
        project_dir: Optional[Path] = None,
        policy: ExclusionPolicy = DEFAULT_POLICY,
    ):
        self.brand = brand
        self.project_id = project_id
        self.config = config
        self.policy = policy
        self.project_dir = project_dir or flat_path(brand, project_id)
        self._client = client

    # ---- client / target

    @property
    def bucket(self) -> str:
        return self.brand.aws.bucket

    def aws_profile(self) -> str:
        if self.config is not None:
            return self.config.aws_profile_for(self.brand)
        return self.brand.aws.profile

    def check_target(self) -> None:
        """Hard stop before any per-file work."""
        if not self.bucket:
            raise ConfigError(
                f"S3 bucket not configured for brand '{self.brand.key}'\n"
                f"Set brands.{self.brand.key}.aws.bucket in the config."
            )
        if self._client is None and not self.aws_profile():
            raise ConfigError(
                f"AWS profile not configured for current user or brand '{self.brand.key}'\n"
                f"Set brands.{self.brand.key}.aws.profile or users.<you>.default_aws_profile."
            )

    @property
    def client(self):
        if self._client is None:
            self.check_target()
            try:
                session = boto3.Session(
                    profile_name=self.aws_profile(), region_name=self.brand.aws.region or None
                )
                self._client = session.client("s3")
            except BotoCoreError as e:
                raise ConfigError(f"Could not open AWS profile '{self.aws_profile()}': {e}") from e
        return self._client

    # ---- keys

    @property
    def key_root(self) -> str:
        return f"{self.brand.aws.key_prefix}{self.project_id}/"

    def build_key(self, relpath: str) -> str:
        return f"{self.key_root}{relpath}"

    def extract_relative_path(self, key: str) -> str:
        root = self.key_root
        return key[len(root):] if key.startswith(root) else key

    @property
    def staging_dir(self) -> Path:
        return staging_dir(self.project_dir)

    # ---- remote queries

    def head(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise
        return {
            "Key": key,
            "Size": resp.get("ContentLength"),
            "ETag": resp.get("ETag"),
            "LastModified": resp.get("LastModified"),
        }

    def list_remote(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.key_root):
                for obj in page.get("Contents", []) or []:
                    out.append(
                        {
                            "Key": obj["Key"],
                            "Size": obj.get("Size"),
                            "ETag": obj.get("ETag"),
                            "LastModified": obj.get("LastModified"),
                        }
                    )
        except (ClientError, BotoCoreError) as e:
            raise S3OperationError(f"Could not list s3://{self.bucket}/{self.key_root}: {e}") from e
        out.sort(key=lambda o: o["Key"])
        return out

    def list_local(self) -> Dict[str, Path]:
        root = self.staging_dir
        if not root.is_dir():
            return {}
        files = sorted(p for p in root.rglob("*") if p.is_file())
        return {p.relative_to(root).as_posix(): p for p in files}

    # ---- transfers

    def _put(self, path: Path, key: str) -> None:
        size = path.stat().st_size
        threshold = self.brand.settings.multipart_threshold_mb * 1024 * 1024
        extra = {"ContentType": content_type(path.name)}
        if size > threshold:
            print(f"[damkit] s3: uploading large file {path.name} ({format_size(size)}) in parts", flush=True)
            self.client.upload_file(
                str(path),
                self.bucket,
                key,
                ExtraArgs=extra,
                Config=TransferConfig(multipart_threshold=threshold, multipart_chunksize=threshold),
            )
        else:
            with path.open("rb") as body:
                self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)

    def upload(self, *, dry_run: bool = False) -> SyncResult:
        self.check_target()
        local = self.list_local()
        if not local:
            print(f"[damkit] s3: nothing to upload, no files in {self.staging_dir}")
            return _empty_result()

        print(f"[damkit] s3: uploading {len(local)} file(s) from {self.project_id}/s3-staging"
              + (" (DRY RUN)" if dry_run else ""))
        transferred = skipped = failed = excluded = total = 0
        details: List[Dict[str, Any]] = []

        for rel, path in local.items():
            if self.policy.is_excluded(rel):
                excluded += 1
                continue
            key = self.build_key(rel)
            base = {"relpath": rel, "src": str(path), "key": key}
            try:
                remote = self.head(key)
                if remote is not None:
                    state = compare_files(path, remote["ETag"], remote["Size"])
                    if state == SYNCED:
                        skipped += 1
                        details.append({**base, "action": "skip", "reason": "unchanged"})
                        continue
                    self._warn_conflict(rel, path, remote, side="S3")

                size = path.stat().st_size
                if dry_run:
                    print(f"[damkit] s3: would upload {rel} -> s3://{self.bucket}/{key}", flush=True)
                    details.append({**base, "action": "upload_dry_run", "bytes": size})
                else:
                    started = time.monotonic()
                    self._put(path, key)
                    print(
                        f"[damkit] s3: uploaded {rel} ({format_size(size)}) in "
                        f"{format_duration(time.monotonic() - started)}",
                        flush=True,
                    )
                    details.append({**base, "action": "uploaded", "bytes": size})
                transferred += 1
                total += size
            except TRANSFER_ERRORS as e:
                failed += 1
                print(f"[damkit] s3: failed {rel}: {e}", flush=True)
                details.append({**base, "action": "fail", "reason": f"exception: {type(e).__name__}: {e}"})

        print(f"[damkit] s3 upload summary: uploaded={transferred} skipped={skipped} failed={failed}")
        return SyncResult(transferred, skipped, failed, excluded, total, details)

    def download(self, *, dry_run: bool = False) -> SyncResult:
        self.check_target()
        remote = self.list_remote()
        if not remote:
            print(f"[damkit] s3: no files in S3 for {self.brand.key}/{self.project_id}")
            return _empty_result()

        if not self.project_dir.is_dir():
            print(f"[damkit] s3: creating project directory {self.project_dir}")
            if not dry_run:
                self.project_dir.mkdir(parents=True, exist_ok=True)

        size_all = sum(int(o.get("Size") or 0) for o in remote)
        print(f"[damkit] s3: downloading {len(remote)} file(s) ({format_size(size_all)}) to "
              f"{self.project_id}/s3-staging" + (" (DRY RUN)" if dry_run else ""))

        transferred = skipped = failed = excluded = total = 0
        details: List[Dict[str, Any]] = []

        for obj in remote:
            key = obj["Key"]
            rel = self.extract_relative_path(key)
            if not rel or rel.endswith("/"):
                continue
            if self.policy.is_excluded(rel):
                excluded += 1
                continue
            path = self.staging_dir / rel
            size = int(obj.get("Size") or 0)
            base = {"relpath": rel, "key": key, "dst": str(path)}
            try:
                if path.exists():
                    state = compare_files(path, obj.get("ETag"), obj.get("Size"))
                    if state == SYNCED:
                        skipped += 1
                        details.append({**base, "action": "skip", "reason": "unchanged"})
                        continue
                    self._warn_conflict(rel, path, obj, side="local")

                if dry_run:
                    print(f"[damkit] s3: would download s3://{self.bucket}/{key} -> {path}", flush=True)
                    details.append({**base, "action": "download_dry_run", "bytes": size})
                else:
                    started = time.monotonic()
                    path.parent.mkdir(parents=True, exist_ok=True)
                    self.client.download_file(self.bucket, key, str(path))
                    print(
                        f"[damkit] s3: downloaded {rel} ({format_size(size)}) in "
                        f"{format_duration(time.monotonic() - started)}",
                        flush=True,
                    )
                    details.append({**base, "action": "downloaded", "bytes": size})
                transferred += 1
                total += size
            except TRANSFER_ERRORS as e:
                failed += 1
                print(f"[damkit] s3: failed {rel}: {e}", flush=True)
                details.append({**base, "action": "fail", "reason": f"exception: {type(e).__name__}: {e}"})

        print(f"[damkit] s3 download summary: downloaded={transferred} skipped={skipped} failed={failed}")
        return SyncResult(transferred, skipped, failed, excluded, total, details)

    def _warn_conflict(self, rel: str, local: Path, remote: Dict[str, Any], *, side: str) -> None:
        """Both sides hold different content; the transfer overwrites `side`."""
        print(f"[damkit] s3: warning: {rel} differs between local and S3, overwriting {side} copy")
        if is_multipart_etag(remote.get("ETag")):
            print("[damkit] s3:   (multipart upload, compared by size)")
        s3_time = remote.get("LastModified")
        if isinstance(s3_time, datetime):
            local_time = _local_mtime(local)
            print(
                f"[damkit] s3:   S3: {s3_time:%Y-%m-%d %H:%M} | Local: {local_time:%Y-%m-%d %H:%M}"
            )
            if side == "S3" and s3_time > local_time:
                print("[damkit] s3:   S3 copy is NEWER than local, recent changes may be lost")
            if side == "local" and local_time > s3_time:
                print("[damkit] s3:   local copy is NEWER than S3, recent changes may be lost")

    # ---- status

    def status(self) -> List[Tuple[str, str, int]]:
        """(relpath, state, size) rows; state in synced/modified/s3_only/local_only."""
        self.check_target()
        remote = {self.extract_relative_path(o["Key"]): o for o in self.list_remote()}
        local = self.list_local()

        rows: List[Tuple[str, str, int]] = []
        for rel in sorted(set(remote) | set(local)):
            obj = remote.get(rel)
            path = local.get(rel)
            if obj is not None and path is not None:
                state = compare_files(path, obj.get("ETag"), obj.get("Size"))
                rows.append((rel, SYNCED if state == SYNCED else MODIFIED, int(obj.get("Size") or 0)))
            elif obj is not None:
                rows.append((rel, "s3_only", int(obj.get("Size") or 0)))
            elif path is not None:
                rows.append((rel, "local_only", path.stat().st_size))
        return rows

    def sync_status(self) -> str:
        """One of none / synced / upload / download / both."""
        if not self.staging_dir.is_dir():
            return "none"
        try:
            rows = self.status()
        except (ConfigError, S3OperationError) as e:
            logger.debug("sync status unavailable for %s: %s", self.project_id, e)
            return "none"
        if not rows:
            return "none"
        up = any(state in {MODIFIED, "local_only"} for _, state, _ in rows)
        down = any(state == "s3_only" for _, state, _ in rows)
        if up and down:
            return "both"
        if up:
            return "upload"
        if down:
            return "download"
        return "synced"

    def stale_objects(self, *, now: Optional[datetime] = None) -> List[Tuple[str, float]]:
        """(relpath, age_seconds) of objects older than the brand's s3_cleanup_days."""
        limit = self.brand.settings.s3_cleanup_days * 86400
        now = now or datetime.now(timezone.utc)
        out: List[Tuple[str, float]] = []
        for obj in self.list_remote():
            modified = obj.get("LastModified")
            if not isinstance(modified, datetime):
                continue
            age = (now - modified).total_seconds()
            if age > limit:
                out.append((self.extract_relative_path(obj["Key"]), age))
        return out

    # ---- cleanup

    def cleanup(self, *, force: bool = False, dry_run: bool = False) -> SyncResult:
        """Delete this project's objects from S3 (requires force)."""
        self.check_target()
        remote = self.list_remote()
        if not remote:
            print(f"[damkit] s3: no files in S3 for {self.brand.key}/{self.project_id}")
            return _empty_result()
        print(f"[damkit] s3: {len(remote)} file(s) in S3 for {self.brand.key}/{self.project_id}")
        if not force:
            print("[damkit] s3: this DELETES every S3 file of the project; use --force to confirm")
            return _empty_result()

        deleted = failed = total = 0
        details: List[Dict[str, Any]] = []
        for obj in remote:
            key = obj["Key"]
            rel = self.extract_relative_path(key)
            try:
                if dry_run:
                    print(f"[damkit] s3: would delete s3://{self.bucket}/{key}")
                    details.append({"relpath": rel, "key": key, "action": "delete_dry_run"})
                else:
                    self.client.delete_object(Bucket=self.bucket, Key=key)
                    print(f"[damkit] s3: deleted {rel}")
                    details.append({"relpath": rel, "key": key, "action": "deleted"})
                deleted += 1
                total += int(obj.get("Size") or 0)
            except (ClientError, BotoCoreError) as e:
                failed += 1
                details.append({"relpath": rel, "key": key, "action": "fail", "reason": str(e)})
        print(f"[damkit] s3 cleanup summary: deleted={deleted} failed={failed}")
        return SyncResult(deleted, 0, failed, 0, total, details)

    def cleanup_local(self, *, force: bool = False, dry_run: bool = False) -> SyncResult:
        """Delete the local s3-staging files (requires force)."""
        local = self.list_local()
        if not local:
            print(f"[damkit] s3: no files in {self.staging_dir}")
            return _empty_result()
        print(f"[damkit] s3: {len(local)} file(s) in {self.project_id}/s3-staging")
        if not force:
            print("[damkit] s3: this DELETES every local s3-staging file; use --force to confirm")
            return _empty_result()

        deleted = failed = total = 0
        details: List[Dict[str, Any]] = []
        for rel, path in local.items():
            try:
                size = path.stat().st_size
                if dry_run:
                    print(f"[damkit] s3: would delete {path}")
                    details.append({"relpath": rel, "action": "delete_dry_run"})
                else:
                    path.unlink()
                    details.append({"relpath": rel, "action": "deleted"})
                deleted += 1
                total += size
            except OSError as e:
                failed += 1
                details.append({"relpath": rel, "action": "fail", "reason": str(e)})

        if not dry_run:
            # deepest first so parents empty out
            for d in sorted(
                (p for p in self.staging_dir.rglob("*") if p.is_dir()),
                key=lambda p: len(p.parts),
                reverse=True,
            ):
                if not any(d.iterdir()):
                    d.rmdir()
        print(f"[damkit] s3 local cleanup summary: deleted={deleted} failed={failed}")
        return SyncResult(deleted, 0, failed, 0, total, details)

    # ---- sharing

    def share(self, files: List[str], *, expires: str = "7d", download: bool = False) -> Dict[str, str]:
        """Presigned GET links for staged files, keyed by relative path."""
        self.check_target()
        seconds = parse_expiry(expires)
        links: Dict[str, str] = {}
        for rel in files:
            key = self.build_key(rel)
            try:
                found = self.head(key)
            except (ClientError, BotoCoreError) as e:
                raise S3OperationError(f"Could not check s3://{self.bucket}/{key}: {e}") from e
            if found is None:
                raise S3OperationError(f"File not found in S3: s3://{self.bucket}/{key}")
            params: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
            if download:
                params["ResponseContentDisposition"] = f'attachment; filename="{Path(rel).name}"'
            else:
                params["ResponseContentType"] = content_type(rel)
                params["ResponseContentDisposition"] = "inline"
            links[rel] = self.client.generate_presigned_url(
                ClientMethod="get_object", Params=params, ExpiresIn=seconds
            )
        return links
