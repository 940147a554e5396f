from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .model import BrandProfile, DamConfig
from .projects import ProjectLocator
from .utils import directory_size


@dataclass(frozen=True)
class BrandRow:
    key: str
    shortcut: str
    name: str
    projects: int
    path: Path
    exists: bool


@dataclass(frozen=True)
class ProjectRow:
    project: str
    size: int
    modified: Optional[datetime]


def _latest_mtime(path: Path) -> Optional[datetime]:
    latest = None
    for p in path.rglob("*"):
        try:
            m = p.stat().st_mtime
        except OSError:
            continue
        if latest is None or m > latest:
            latest = m
    if latest is None:
        return None
    return datetime.fromtimestamp(latest, tz=timezone.utc)


def list_brands(config: DamConfig, locator: ProjectLocator) -> List[BrandRow]:
    rows: List[BrandRow] = []
    for key in sorted(config.brands):
        brand = config.brands[key]
        exists = brand.root.is_dir()
        count = len(locator.list_projects(brand)) if exists else 0
        rows.append(
            BrandRow(
                key=key,
                shortcut=brand.shortcut,
                name=brand.name,
                projects=count,
                path=brand.root,
                exists=exists,
            )
        )
    return rows


def list_brand_projects(
    brand: BrandProfile, locator: ProjectLocator, pattern: Optional[str] = None
) -> List[ProjectRow]:
    names = (
        locator.resolve_pattern(brand, pattern) if pattern else locator.list_projects(brand)
    )
    rows = []
    for name in names:
        path = locator.project_path(brand, name)
        rows.append(
            ProjectRow(project=name, size=directory_size(path), modified=_latest_mtime(path))
        )
    return rows
