from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional

from .errors import ProjectNotFoundError
from .layout import backup_path, flat_path
from .model import ArchiveResult, BrandProfile
from .policy import DEFAULT_POLICY, ExclusionPolicy
from .transfer import CopyStats, copy_tree, require_backup_root
from .utils import directory_size, format_size

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"

CopyFn = Callable[..., CopyStats]


def _copy_then_commit(
    src: Path, dst: Path, policy: ExclusionPolicy, copier: CopyFn
) -> CopyStats:
    """Copy into a sibling work dir and rename onto dst only once complete.

    An existing dst therefore always holds a finished copy.
    """
    work = dst.with_name(dst.name + PARTIAL_SUFFIX)
    if work.exists():
        shutil.rmtree(work)
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        stats = copier(src, work, policy=policy)
    except BaseException:
        shutil.rmtree(work, ignore_errors=True)
        raise
    work.rename(dst)
    return stats


def archive_project(
    brand: BrandProfile,
    project_id: str,
    *,
    force: bool = False,
    dry_run: bool = False,
    policy: ExclusionPolicy = DEFAULT_POLICY,
    copier: Optional[CopyFn] = None,
) -> ArchiveResult:
    """Copy a hot project to the SSD backup, then (with force) delete the hot copy.

    The hot copy is only ever deleted after the backup copy exists on disk.
    """
    backup_root = require_backup_root(brand)

    src = flat_path(brand, project_id)
    if not src.is_dir():
        raise ProjectNotFoundError(f"Project not found: {src}")

    dst = backup_path(backup_root, project_id)
    size = directory_size(src)

    print(f"[damkit] archive: {brand.key}/{project_id}")
    print(f"[damkit] archive: source {src} ({format_size(size)})")
    print(f"[damkit] archive: dest   {dst}")

    already = dst.is_dir()
    stats = CopyStats(files=0, bytes=0, excluded=0)

    if dry_run:
        if already:
            print("[damkit] archive: already on SSD, would skip copy")
        else:
            print(f"[damkit] archive: DRY RUN would copy {format_size(size)} (excluding generated files)")
        if force:
            print(f"[damkit] archive: DRY RUN would delete {src}")
        return ArchiveResult(
            project=project_id,
            source=src,
            destination=dst,
            copied=False,
            already_archived=already,
            deleted=False,
            dry_run=True,
            bytes=size,
        )

    if already:
        print("[damkit] archive: already on SSD, skipping copy")
    else:
        stats = _copy_then_commit(src, dst, policy, copier or copy_tree)
        print(
            f"[damkit] archive: copied {stats.files} files ({format_size(stats.bytes)}), "
            f"excluded {stats.excluded} generated files"
        )

    deleted = False
    if force:
        if not dst.is_dir():
            # never delete without a committed backup copy
            logger.error("backup copy missing at %s, refusing to delete %s", dst, src)
        else:
            shutil.rmtree(src)
            deleted = True
            print(f"[damkit] archive: deleted local copy, freed {format_size(size)}")
    else:
        print("[damkit] archive: copied to SSD, local copy kept (use --force to delete)")

    return ArchiveResult(
        project=project_id,
        source=src,
        destination=dst,
        copied=not already,
        already_archived=already,
        deleted=deleted,
        dry_run=False,
        bytes=stats.bytes,
        files=stats.files,
        excluded=stats.excluded,
    )
