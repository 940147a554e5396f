from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ManifestError, ProjectNotFoundError
from .layout import (
    ARCHIVED_DIR,
    MANIFEST_NAME,
    archived_path,
    flat_path,
    is_project_dir_name,
    locate_backup,
    projects_directory,
    staging_dir,
    subdirs,
)
from .model import BrandProfile
from .policy import is_heavy, is_light
from .ranges import coded_number, is_range_folder
from .utils import bytes_summary, directory_size, format_size, utc_now_iso

MANIFEST_NOTE = "Auto-generated manifest. Regenerate with: damkit manifest"

_CODED_ID_RE = re.compile(r"^[a-z]\d{2}-[a-z0-9][a-z0-9._-]*$")
_LEGACY_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
_CODED_TYPE_RE = re.compile(r"^[a-z]\d{2}-")


@dataclass(frozen=True)
class ManifestReport:
    path: Path
    manifest: Dict[str, Any]
    warnings: List[str]


def manifest_path(brand: BrandProfile) -> Path:
    return brand.root / MANIFEST_NAME


def _backup_root(brand: BrandProfile) -> Optional[Path]:
    root = brand.locations.ssd_backup
    return root if root is not None and root.is_dir() else None


def collect_project_ids(brand: BrandProfile) -> List[str]:
    ids: set[str] = set()

    backup = _backup_root(brand)
    if backup is not None:
        for folder in subdirs(backup):
            if is_range_folder(folder.name):
                ids.update(p.name for p in subdirs(folder) if is_project_dir_name(p.name))
            elif is_project_dir_name(folder.name):
                # legacy flat backup
                ids.add(folder.name)

    ids.update(
        p.name for p in subdirs(projects_directory(brand)) if is_project_dir_name(p.name)
    )

    for folder in subdirs(brand.root / ARCHIVED_DIR):
        ids.update(p.name for p in subdirs(folder) if is_project_dir_name(p.name))

    return sorted(ids)


def project_type(local_dir: Optional[Path], project_id: str) -> str:
    if local_dir is not None and (local_dir / "data" / "storyline.json").is_file():
        return "storyline"
    if _CODED_TYPE_RE.match(project_id):
        return "flivideo"
    if project_id[:1].isdigit():
        return "flivideo"
    return "general"


def has_heavy_files(path: Path) -> bool:
    # top level only; heavy media never lives in sub-folders
    return any(p.is_file() and is_heavy(p.name) for p in path.iterdir())


def has_light_files(path: Path) -> bool:
    return any(p.is_file() and is_light(p.name) for p in path.rglob("*"))


def _local_dir(brand: BrandProfile, project_id: str) -> Tuple[Optional[Path], Optional[str]]:
    flat = flat_path(brand, project_id)
    if flat.is_dir():
        return flat, "flat"
    archived = archived_path(brand, project_id)
    if archived.is_dir():
        return archived, "archived"
    return None, None


def build_entry(brand: BrandProfile, project_id: str) -> Tuple[Dict[str, Any], int, int]:
    """Return (entry, local_bytes, backup_bytes) for one project."""
    local_dir, structure = _local_dir(brand, project_id)

    backup = _backup_root(brand)
    backup_dir = locate_backup(backup, project_id) if backup is not None else None

    entry = {
        "id": project_id,
        "type": project_type(local_dir, project_id),
        "storage": {
            "local": {
                "exists": local_dir is not None,
                "structure": structure,
                "has_heavy_files": has_heavy_files(local_dir) if local_dir else False,
                "has_light_files": has_light_files(local_dir) if local_dir else False,
            },
            "ssd": {
                "exists": backup_dir is not None,
                "path": backup_dir.relative_to(backup).as_posix()
                if backup_dir is not None and backup is not None
                else None,
            },
            "staging": {
                # no remote listing during manifest build
                "exists": local_dir is not None and staging_dir(local_dir).is_dir(),
            },
        },
    }
    local_bytes = directory_size(local_dir) if local_dir else 0
    backup_bytes = directory_size(backup_dir) if backup_dir else 0
    return entry, local_bytes, backup_bytes


def validate_projects(projects: List[Dict[str, Any]]) -> List[str]:
    warnings: List[str] = []

    for p in projects:
        pid = p["id"]
        if not (_CODED_ID_RE.match(pid) or _LEGACY_ID_RE.match(pid)):
            warnings.append(f"Invalid project id format: {pid}")
        st = p["storage"]
        if not st["local"]["exists"] and not st["ssd"]["exists"]:
            warnings.append(f"Project has no storage: {pid}")

    # active (flat) number range per letter
    active: Dict[str, Tuple[int, int]] = {}
    for p in projects:
        if p["storage"]["local"]["structure"] != "flat":
            continue
        cn = coded_number(p["id"])
        if cn is None:
            continue
        letter, n = cn
        lo, hi = active.get(letter, (n, n))
        active[letter] = (min(lo, n), max(hi, n))

    for p in projects:
        if p["storage"]["local"]["structure"] != "archived":
            continue
        cn = coded_number(p["id"])
        if cn is None or cn[0] not in active:
            continue
        letter, n = cn
        lo, hi = active[letter]
        if lo <= n <= hi:
            warnings.append(
                f"Archived project {p['id']} ({letter}{n:02d}) "
                f"falls within active range {letter}{lo:02d}-{letter}{hi:02d}"
            )

    return warnings


def build_manifest(
    brand: BrandProfile, *, now: Optional[str] = None
) -> Tuple[Dict[str, Any], List[str]]:
    """Full rescan of every tier; returns (manifest, warnings)."""
    ids = collect_project_ids(brand)
    if not ids:
        raise ProjectNotFoundError(f"No projects found for brand '{brand.key}'")

    projects: List[Dict[str, Any]] = []
    local_total = 0
    backup_total = 0
    for pid in ids:
        entry, lb, bb = build_entry(brand, pid)
        projects.append(entry)
        local_total += lb
        backup_total += bb

    manifest = {
        "config": {
            "brand": brand.key,
            "local_base": str(brand.root),
            "ssd_base": str(brand.locations.ssd_backup)
            if brand.locations.ssd_backup
            else None,
            "last_updated": now or utc_now_iso(),
            "note": MANIFEST_NOTE,
            "disk_usage": {
                "local": bytes_summary(local_total),
                "ssd": bytes_summary(backup_total),
            },
        },
        "projects": projects,
    }
    return manifest, validate_projects(projects)


def write_manifest(path: Path, manifest: Dict[str, Any]) -> Path:
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        raise ManifestError(f"Could not write manifest {path}: {e}") from e
    return path


def read_manifest(path: Path) -> Dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestError(
            f"Manifest not found: {path}\nRun: damkit manifest <brand>"
        ) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Manifest is not valid JSON: {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("projects"), list):
        raise ManifestError(f"Manifest must be an object with a projects[] list: {path}")
    return data


def summarize(projects: List[Dict[str, Any]]) -> Dict[str, int]:
    local_only = backup_only = both = 0
    for p in projects:
        local = p["storage"]["local"]["exists"]
        backup = p["storage"]["ssd"]["exists"]
        if local and backup:
            both += 1
        elif local:
            local_only += 1
        elif backup:
            backup_only += 1
    return {"local_only": local_only, "ssd_only": backup_only, "both": both}


def generate_manifest(brand: BrandProfile, output: Optional[Path] = None) -> ManifestReport:
    backup = brand.locations.ssd_backup
    if backup is None:
        print(f"[damkit] manifest: SSD backup not configured for '{brand.key}'; local projects only")
    elif not backup.is_dir():
        print(f"[damkit] manifest: SSD not mounted at {backup}; local projects only")

    print(f"[damkit] manifest: scanning {brand.key}...")
    manifest, warnings = build_manifest(brand)
    path = write_manifest(output or manifest_path(brand), manifest)

    projects = manifest["projects"]
    dist = summarize(projects)
    usage = manifest["config"]["disk_usage"]
    print(f"[damkit] manifest: wrote {path} ({len(projects)} projects)")
    print(
        f"[damkit] manifest: local only={dist['local_only']} ssd only={dist['ssd_only']} "
        f"both={dist['both']}"
    )
    print(
        f"[damkit] manifest: disk usage local={format_size(usage['local']['total_bytes'])} "
        f"ssd={format_size(usage['ssd']['total_bytes'])}"
    )
    if warnings:
        print(f"[damkit] manifest: {len(warnings)} warning(s)")
        for w in warnings:
            print(f"  - {w}")
    else:
        print("[damkit] manifest: all validations passed")

    return ManifestReport(path=path, manifest=manifest, warnings=warnings)
