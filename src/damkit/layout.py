from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

from .model import BrandProfile
from .ranges import bucket_for, is_range_folder

ARCHIVED_DIR = "archived"
STAGING_DIR = "s3-staging"
MANIFEST_NAME = "projects.json"

# never project folders, wherever they appear
INFRASTRUCTURE_DIRS = frozenset(
    {
        ARCHIVED_DIR,
        STAGING_DIR,
        "final",
        "docs",
        "node_modules",
        ".git",
        ".github",
        # organizational folders of brands using projects_subfolder
        "brand",
        "personas",
        "projects",
        "video-scripts",
    }
)


def is_project_dir_name(name: str) -> bool:
    if name in INFRASTRUCTURE_DIRS:
        return False
    return not name.startswith((".", "_"))


def projects_directory(brand: BrandProfile) -> Path:
    sub = brand.settings.projects_subfolder
    return brand.root / sub if sub else brand.root


def flat_path(brand: BrandProfile, project_id: str) -> Path:
    return projects_directory(brand) / project_id


def archived_path(brand: BrandProfile, project_id: str) -> Path:
    return brand.root / ARCHIVED_DIR / bucket_for(project_id) / project_id


def backup_path(backup_root: Path, project_id: str) -> Path:
    return backup_root / bucket_for(project_id) / project_id


def staging_dir(project_dir: Path) -> Path:
    return project_dir / STAGING_DIR


def subdirs(path: Path) -> Iterator[Path]:
    if not path.is_dir():
        return
    for p in sorted(path.iterdir()):
        if p.is_dir():
            yield p


def locate_backup(backup_root: Path, project_id: str) -> Optional[Path]:
    """Find a project on the backup tier.

    Tries the legacy flat location, then the computed bucket, then every
    range folder (projects filed under an older bucket scheme).
    """
    flat = backup_root / project_id
    if flat.is_dir():
        return flat
    expected = backup_path(backup_root, project_id)
    if expected.is_dir():
        return expected
    for folder in subdirs(backup_root):
        if not is_range_folder(folder.name):
            continue
        cand = folder / project_id
        if cand.is_dir():
            return cand
    return None
