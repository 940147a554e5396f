from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class BrandLocations:
    video_projects: Path
    ssd_backup: Optional[Path] = None


@dataclass(frozen=True)
class ObjectStoreTarget:
    profile: str = ""
    region: str = "ap-southeast-1"
    bucket: str = ""
    key_prefix: str = ""


@dataclass(frozen=True)
class BrandSettings:
    # some brands nest projects one level below the brand root
    projects_subfolder: str = ""
    multipart_threshold_mb: int = 100
    s3_cleanup_days: int = 90


@dataclass(frozen=True)
class BrandProfile:
    key: str
    name: str
    shortcuts: List[str]
    locations: BrandLocations
    aws: ObjectStoreTarget = field(default_factory=ObjectStoreTarget)
    settings: BrandSettings = field(default_factory=BrandSettings)

    @property
    def shortcut(self) -> str:
        return self.shortcuts[0] if self.shortcuts else self.key

    @property
    def root(self) -> Path:
        return self.locations.video_projects


@dataclass(frozen=True)
class UserProfile:
    key: str
    name: str = ""
    default_aws_profile: str = ""


@dataclass(frozen=True)
class DamConfig:
    brands: Dict[str, BrandProfile]
    projects_root: Optional[Path] = None
    current_user: Optional[str] = None
    users: Dict[str, UserProfile] = field(default_factory=dict)

    def aws_profile_for(self, brand: BrandProfile) -> str:
        """Current user's default profile wins over the brand's profile."""
        if self.current_user:
            user = self.users.get(self.current_user)
            if user and user.default_aws_profile:
                return user.default_aws_profile
        return brand.aws.profile


@dataclass(frozen=True)
class SyncResult:
    transferred: int
    skipped: int
    failed: int
    excluded: int
    bytes: int
    details: List[Dict[str, Any]]
    # files seen but outside the sync's file classes (heavy media, other extensions)
    filtered: int = 0


@dataclass(frozen=True)
class ArchiveResult:
    project: str
    source: Path
    destination: Path
    copied: bool
    already_archived: bool
    deleted: bool
    dry_run: bool
    bytes: int = 0
    files: int = 0
    excluded: int = 0
