from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .model import (
    BrandLocations,
    BrandProfile,
    BrandSettings,
    DamConfig,
    ObjectStoreTarget,
    UserProfile,
)
from .utils import as_path

try:
    import tomllib  # py311+
except ModuleNotFoundError as exc:  # pragma: no cover
    raise SystemExit("Python 3.11+ required (missing tomllib).") from exc

DEFAULT_CONFIG_PATH = "~/.config/damkit/config.toml"
CONFIG_ENV_VAR = "DAMKIT_CONFIG"


def default_config_path() -> Path:
    return as_path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_toml(path: Path) -> Dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise ConfigError(
            f"Config file not found: {path}\n"
            "Create it with a [brands.<key>] table per brand, or point "
            f"{CONFIG_ENV_VAR} / --config at an existing file."
        ) from e
    try:
        return tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config is not valid UTF-8: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"TOML parse error in {path}: {e}") from e


def _table(d: Dict[str, Any], key: str, where: str) -> Dict[str, Any]:
    v = d.get(key, {})
    if isinstance(v, dict):
        return v
    raise ConfigError(f"Expected table/dict for '{where}.{key}', got: {type(v).__name__}")


def _optional_str(d: Dict[str, Any], key: str, default: str, where: str) -> str:
    if key not in d:
        return default
    v = d.get(key)
    if isinstance(v, str):
        return v
    raise ConfigError(f"Expected string for '{where}.{key}', got: {type(v).__name__}")


def _optional_int(d: Dict[str, Any], key: str, default: int, where: str) -> int:
    if key not in d:
        return default
    v = d.get(key)
    if isinstance(v, int) and not isinstance(v, bool):
        return v
    raise ConfigError(f"Expected integer for '{where}.{key}', got: {type(v).__name__}")


def _optional_path(d: Dict[str, Any], key: str, where: str) -> Optional[Path]:
    v = _optional_str(d, key, "", where)
    return as_path(v) if v.strip() else None


def _shortcuts(d: Dict[str, Any], where: str) -> List[str]:
    # "shortcut" (single) and "shortcuts" (list) are both accepted
    out: List[str] = []
    single = d.get("shortcut")
    if single is not None:
        if not isinstance(single, str):
            raise ConfigError(f"Expected string for '{where}.shortcut'")
        if single:
            out.append(single)
    many = d.get("shortcuts", [])
    if not isinstance(many, list) or not all(isinstance(x, str) for x in many):
        raise ConfigError(f"Expected list of strings for '{where}.shortcuts', got: {many!r}")
    out.extend(x for x in many if x and x not in out)
    return out


def _parse_brand(
    key: str, tbl: Dict[str, Any], projects_root: Optional[Path]
) -> BrandProfile:
    where = f"brands.{key}"
    if not isinstance(tbl, dict):
        raise ConfigError(f"'{where}' must be a table")

    loc = _table(tbl, "locations", where)
    video_projects = _optional_path(loc, "video_projects", f"{where}.locations")
    if video_projects is None:
        if projects_root is None:
            raise ConfigError(
                f"{where}.locations.video_projects is not set and "
                "settings.video_projects_root is not configured"
            )
        video_projects = projects_root / f"v-{key}"

    aws = _table(tbl, "aws", where)
    settings = _table(tbl, "settings", where)
    threshold = _optional_int(settings, "multipart_threshold_mb", 100, f"{where}.settings")
    if threshold <= 0:
        raise ConfigError(f"{where}.settings.multipart_threshold_mb must be positive")

    return BrandProfile(
        key=key,
        name=_optional_str(tbl, "name", key, where),
        shortcuts=_shortcuts(tbl, where),
        locations=BrandLocations(
            video_projects=video_projects,
            ssd_backup=_optional_path(loc, "ssd_backup", f"{where}.locations"),
        ),
        aws=ObjectStoreTarget(
            profile=_optional_str(aws, "profile", "", f"{where}.aws"),
            region=_optional_str(aws, "region", "ap-southeast-1", f"{where}.aws"),
            bucket=_optional_str(aws, "bucket", "", f"{where}.aws"),
            key_prefix=_optional_str(aws, "key_prefix", "", f"{where}.aws"),
        ),
        settings=BrandSettings(
            projects_subfolder=_optional_str(
                settings, "projects_subfolder", "", f"{where}.settings"
            ).strip("/"),
            multipart_threshold_mb=threshold,
            s3_cleanup_days=_optional_int(settings, "s3_cleanup_days", 90, f"{where}.settings"),
        ),
    )


def parse_config(root: Dict[str, Any]) -> DamConfig:
    settings = _table(root, "settings", "root")
    projects_root = _optional_path(settings, "video_projects_root", "settings")
    current_user = _optional_str(settings, "current_user", "", "settings") or None

    users_tbl = _table(root, "users", "root")
    users: Dict[str, UserProfile] = {}
    for ukey, u in users_tbl.items():
        if not isinstance(u, dict):
            raise ConfigError(f"'users.{ukey}' must be a table")
        users[ukey] = UserProfile(
            key=ukey,
            name=_optional_str(u, "name", "", f"users.{ukey}"),
            default_aws_profile=_optional_str(u, "default_aws_profile", "", f"users.{ukey}"),
        )

    brands_tbl = root.get("brands")
    if not isinstance(brands_tbl, dict) or not brands_tbl:
        raise ConfigError("Missing required table: [brands.<key>] (at least one brand)")

    brands = {
        key: _parse_brand(key, tbl, projects_root) for key, tbl in brands_tbl.items()
    }

    return DamConfig(
        brands=brands,
        projects_root=projects_root,
        current_user=current_user,
        users=users,
    )


def load_config(path: Optional[Path] = None) -> DamConfig:
    return parse_config(load_toml(path or default_config_path()))
