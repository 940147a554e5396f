from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import FrozenSet, Tuple

HEAVY_EXTS: FrozenSet[str] = frozenset({"mp4", "mov", "avi", "mkv", "webm"})

# what the manifest reports as "light" presence
LIGHT_EXTS: FrozenSet[str] = frozenset(
    {"srt", "vtt", "jpg", "png", "md", "txt", "json", "yml"}
)

# what a restore from backup brings back locally
RESTORE_EXTS: FrozenSet[str] = frozenset(
    {"srt", "vtt", "txt", "md", "jpg", "jpeg", "png", "webp", "json", "yml", "yaml"}
)

DEFAULT_EXCLUDES: Tuple[str, ...] = (
    "node_modules",
    ".git",
    ".next",
    "dist",
    "build",
    "out",
    ".cache",
    "coverage",
    ".turbo",
    ".vercel",
    "tmp",
    ".DS_Store",
    "*:Zone.Identifier",
)


def ext_of(name: str) -> str:
    return PurePosixPath(name).suffix.lower().lstrip(".")


def is_heavy(name: str) -> bool:
    return ext_of(name) in HEAVY_EXTS


def is_light(name: str) -> bool:
    return ext_of(name) in LIGHT_EXTS


@dataclass(frozen=True)
class ExclusionPolicy:
    """Generated/junk paths left out of every copy, upload and download.

    Literal patterns match any segment of the relative path; patterns with a
    wildcard match the file name only.
    """

    patterns: Tuple[str, ...] = DEFAULT_EXCLUDES

    def is_excluded(self, relpath: str) -> bool:
        parts = [p for p in relpath.replace("\\", "/").split("/") if p]
        if not parts:
            return False
        name = parts[-1]
        for pat in self.patterns:
            if any(ch in pat for ch in "*?["):
                if fnmatch.fnmatchcase(name, pat):
                    return True
            elif pat in parts:
                return True
        return False


DEFAULT_POLICY = ExclusionPolicy()
