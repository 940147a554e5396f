from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ConfigError, TierUnavailableError
from .layout import archived_path, flat_path, locate_backup
from .manifest import manifest_path, read_manifest
from .model import BrandProfile, SyncResult
from .policy import DEFAULT_POLICY, RESTORE_EXTS, ExclusionPolicy, ext_of, is_heavy
from .utils import format_size

logger = logging.getLogger(__name__)

PROGRESS_MIN_BYTES = 64 * 1024 * 1024


def copy_file(src: Path, dst: Path, *, chunk_size: int = 1024 * 1024) -> int:
    """Copy file in chunks; large files print percentage, MB/s and ETA.

    Raises any exception encountered; preserves file metadata with copystat on success.
    """
    total = src.stat().st_size
    show = total >= PROGRESS_MIN_BYTES
    copied = 0
    start = time.monotonic()
    last_print_pct = -1

    dst.parent.mkdir(parents=True, exist_ok=True)
    with src.open("rb") as inf, dst.open("wb") as outf:
        while True:
            chunk = inf.read(chunk_size)
            if not chunk:
                break
            outf.write(chunk)
            copied += len(chunk)

            if not show:
                continue
            pct = int(copied * 100 / total) if total > 0 else 100
            if pct != last_print_pct and pct % 10 == 0:
                elapsed = time.monotonic() - start
                rate = copied / elapsed if elapsed > 0 else 0.0
                eta = int(max(total - copied, 0) / rate) if rate > 0 else None
                eta_s = f"{eta}s" if eta is not None else "??s"
                print(
                    f"[damkit] copy: {src.name} {pct}% ({format_size(copied)}/{format_size(total)}) "
                    f"@ {rate / (1024 * 1024):.2f} MB/s ETA {eta_s}",
                    flush=True,
                )
                last_print_pct = pct

    shutil.copystat(src, dst)
    return copied


def walk_files(root: Path) -> Iterator[Tuple[Path, str]]:
    """(path, posix relpath) for every file below root, sorted."""
    files = [p for p in root.rglob("*") if p.is_file()]
    files.sort(key=lambda p: p.relative_to(root).as_posix())
    for p in files:
        yield p, p.relative_to(root).as_posix()


@dataclass(frozen=True)
class CopyStats:
    files: int
    bytes: int
    excluded: int


def copy_tree(
    src: Path, dst: Path, *, policy: ExclusionPolicy = DEFAULT_POLICY
) -> CopyStats:
    """Copy every non-excluded file of src into dst. Any failure raises."""
    files = size = excluded = 0
    dst.mkdir(parents=True, exist_ok=True)
    for path, rel in walk_files(src):
        if policy.is_excluded(rel):
            excluded += 1
            continue
        size += copy_file(path, dst / rel)
        files += 1
    return CopyStats(files=files, bytes=size, excluded=excluded)


def same_size(src: Path, dst: Path) -> bool:
    try:
        return dst.is_file() and dst.stat().st_size == src.stat().st_size
    except OSError:
        return False


def sync_dir_by_size(
    src: Path,
    dst: Path,
    *,
    dry_run: bool,
    policy: ExclusionPolicy = DEFAULT_POLICY,
    include_exts: Optional[frozenset] = None,
    project: str = "",
) -> SyncResult:
    """One-way file sync; files whose destination has the same size are skipped."""
    transferred = skipped = failed = excluded = filtered = total = 0
    details: List[Dict[str, Any]] = []

    for path, rel in walk_files(src):
        if policy.is_excluded(rel):
            excluded += 1
            continue

        target = dst / rel
        base = {"project": project, "relpath": rel, "src": str(path), "dst": str(target)}

        if is_heavy(path.name):
            filtered += 1
            details.append({**base, "action": "filtered", "reason": "heavy_file"})
            continue
        if include_exts is not None and ext_of(path.name) not in include_exts:
            filtered += 1
            details.append({**base, "action": "filtered", "reason": "extension_not_synced"})
            continue

        if same_size(path, target):
            skipped += 1
            details.append({**base, "action": "skip", "reason": "unchanged_size"})
            continue

        try:
            size = path.stat().st_size
            if dry_run:
                print(f"[damkit] sync: would copy {rel} ({format_size(size)})", flush=True)
                details.append({**base, "action": "copy_dry_run", "bytes": size})
            else:
                copy_file(path, target)
                print(f"[damkit] sync: copied {rel} ({format_size(size)})", flush=True)
                details.append({**base, "action": "copied", "bytes": size})
            transferred += 1
            total += size
        except OSError as e:
            failed += 1
            logger.debug("copy failed for %s", path, exc_info=True)
            details.append(
                {**base, "action": "fail", "reason": f"exception: {type(e).__name__}: {e}"}
            )

    return SyncResult(
        transferred=transferred,
        skipped=skipped,
        failed=failed,
        excluded=excluded,
        bytes=total,
        details=details,
        filtered=filtered,
    )


def merge_results(results: List[SyncResult], extra: Optional[List[Dict[str, Any]]] = None) -> SyncResult:
    details: List[Dict[str, Any]] = list(extra or [])
    for r in results:
        details.extend(r.details)
    return SyncResult(
        transferred=sum(r.transferred for r in results),
        skipped=sum(r.skipped for r in results),
        failed=sum(r.failed for r in results),
        excluded=sum(r.excluded for r in results),
        bytes=sum(r.bytes for r in results),
        details=details,
        filtered=sum(r.filtered for r in results),
    )


def require_backup_root(brand: BrandProfile) -> Path:
    root = brand.locations.ssd_backup
    if root is None:
        raise ConfigError(
            f"SSD backup location not configured for brand '{brand.key}'\n"
            f"Set brands.{brand.key}.locations.ssd_backup in the config."
        )
    if not root.is_dir():
        raise TierUnavailableError(f"SSD not mounted at {root}. Connect the SSD and retry.")
    return root


def sync_from_backup(
    brand: BrandProfile,
    *,
    dry_run: bool,
    policy: ExclusionPolicy = DEFAULT_POLICY,
    manifest: Optional[Dict[str, Any]] = None,
) -> SyncResult:
    """Restore light files of backup-only projects into the archived tier.

    Projects are picked from the manifest: present on the SSD, absent locally.
    """
    backup_root = require_backup_root(brand)
    if manifest is None:
        manifest = read_manifest(manifest_path(brand))

    projects = manifest.get("projects", [])
    wanted = [
        p
        for p in projects
        if p["storage"]["ssd"]["exists"] and not p["storage"]["local"]["exists"]
    ]
    print(
        f"[damkit] sync: {len(wanted)} of {len(projects)} manifest projects to restore"
        + (" (DRY RUN)" if dry_run else "")
    )

    results: List[SyncResult] = []
    notes: List[Dict[str, Any]] = []
    for p in wanted:
        pid = p["id"]
        src = locate_backup(backup_root, pid)
        if src is None:
            notes.append({"project": pid, "action": "skip_project", "reason": "ssd_path_not_found"})
            print(f"[damkit] sync: {pid} skipped (SSD path not found)")
            continue
        if flat_path(brand, pid).is_dir():
            # manifest says not local, disk disagrees
            notes.append(
                {"project": pid, "action": "skip_project", "reason": "flat_folder_exists_stale_manifest"}
            )
            print(f"[damkit] sync: {pid} skipped (flat folder exists, stale manifest?)")
            continue

        dst = archived_path(brand, pid)
        r = sync_dir_by_size(
            src, dst, dry_run=dry_run, policy=policy, include_exts=RESTORE_EXTS, project=pid
        )
        if r.transferred:
            print(f"[damkit] sync: {pid} {r.transferred} file(s), {format_size(r.bytes)}")
        results.append(r)

    result = merge_results(results, notes)
    print(
        "[damkit] sync summary: "
        f"transferred={result.transferred} skipped={result.skipped} "
        f"failed={result.failed} excluded={result.excluded} filtered={result.filtered} ({format_size(result.bytes)})"
    )
    return result
