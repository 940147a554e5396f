from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .brands import DISPLAY_PREFIX, BrandResolver
from .errors import ProjectNotFoundError
from .fuzzy import find_matches
from .layout import is_project_dir_name, projects_directory, subdirs
from .model import BrandProfile

_SHORT_CODE_RE = re.compile(r"^[a-z]\d+$")
_WILDCARD_CHARS = "*?["


@dataclass(frozen=True)
class AmbiguousProject:
    """Several projects share a short code; the caller picks one."""

    hint: str
    candidates: List[str]

    def select(self, choice: int) -> str:
        if 1 <= choice <= len(self.candidates):
            return self.candidates[choice - 1]
        raise ProjectNotFoundError(
            f"Invalid selection {choice} (expected 1-{len(self.candidates)})"
        )


Resolved = Union[str, List[str], AmbiguousProject]


def is_pattern(hint: str) -> bool:
    return any(ch in hint for ch in _WILDCARD_CHARS)


class ProjectLocator:
    def __init__(self, resolver: BrandResolver):
        self.resolver = resolver

    def _brand(self, brand: Union[str, BrandProfile]) -> BrandProfile:
        if isinstance(brand, BrandProfile):
            return brand
        return self.resolver.require(brand)

    def projects_directory(self, brand: Union[str, BrandProfile]) -> Path:
        return projects_directory(self._brand(brand))

    def project_path(self, brand: Union[str, BrandProfile], project_id: str) -> Path:
        return self.projects_directory(brand) / project_id

    def is_valid_project(self, path: Path) -> bool:
        return path.is_dir() and is_project_dir_name(path.name)

    def list_projects(
        self, brand: Union[str, BrandProfile], pattern: Optional[str] = None
    ) -> List[str]:
        names = [
            p.name
            for p in subdirs(self.projects_directory(brand))
            if is_project_dir_name(p.name)
        ]
        if pattern:
            names = [n for n in names if fnmatch.fnmatchcase(n, pattern)]
        return sorted(names)

    def resolve_pattern(self, brand: Union[str, BrandProfile], pattern: str) -> List[str]:
        matches = self.list_projects(brand, pattern)
        if not matches:
            raise ProjectNotFoundError(
                f"No projects found matching pattern '{pattern}' in "
                f"{self.projects_directory(brand)}"
            )
        return matches

    def resolve(self, brand: Union[str, BrandProfile], hint: str) -> Resolved:
        """Expand a project hint.

        'b6*' -> list of matches, 'b65' -> 'b65-some-title' (or an
        AmbiguousProject when several share the code), exact names as-is.
        """
        if not hint:
            raise ProjectNotFoundError("Project name is required")

        profile = self._brand(brand)
        if is_pattern(hint):
            return self.resolve_pattern(profile, hint)

        if self.project_path(profile, hint).is_dir():
            return hint

        if _SHORT_CODE_RE.match(hint):
            matches = self.list_projects(profile, f"{hint}-*")
            if not matches:
                raise ProjectNotFoundError(
                    f"No project found matching '{hint}' in {DISPLAY_PREFIX}{profile.key}"
                )
            if len(matches) == 1:
                return matches[0]
            return AmbiguousProject(hint=hint, candidates=matches)

        # may legitimately not exist yet (e.g. download target)
        return hint

    def suggest(self, brand: Union[str, BrandProfile], hint: str) -> List[str]:
        return find_matches(hint, self.list_projects(brand), threshold=3)

    def detect_from_path(self, path: Path) -> Tuple[Optional[str], Optional[str]]:
        """(brand_key, project) when `path` sits inside a brand's project folder."""
        path = path.resolve()
        for key, brand in self.resolver.config.brands.items():
            base = projects_directory(brand).resolve()
            try:
                rel = path.relative_to(base)
            except ValueError:
                continue
            if not rel.parts:
                continue
            project = rel.parts[0]
            if is_project_dir_name(project) and (base / project).is_dir():
                return key, project
        return None, None
