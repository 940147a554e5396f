from __future__ import annotations

from typing import List, Optional

from .errors import BrandNotFoundError
from .fuzzy import find_matches
from .model import BrandProfile, DamConfig

DISPLAY_PREFIX = "v-"

# shortcuts that are not a prefix of the brand key
LEGACY_SHORTCUTS = {
    "ad": "appydave",
    "joy": "beauty-and-joy",
    "ss": "supportsignal",
}


class BrandResolver:
    """Convert between shortcuts ('ad'), config keys ('appydave') and
    display names ('v-appydave')."""

    def __init__(self, config: DamConfig):
        self.config = config

    def normalize(self, name: str) -> str:
        s = str(name or "")
        return s[len(DISPLAY_PREFIX):] if s.startswith(DISPLAY_PREFIX) else s

    def expand(self, text: str) -> str:
        s = str(text or "")
        if s.startswith(DISPLAY_PREFIX):
            return s
        return f"{DISPLAY_PREFIX}{self.to_config_key(s)}"

    def to_display(self, text: str) -> str:
        return self.expand(text)

    def to_config_key(self, text: str) -> str:
        normalized = self.normalize(text)
        low = normalized.lower()

        for key in self.config.brands:
            if key.lower() == low:
                return key
        for key, brand in self.config.brands.items():
            if any(s.lower() == low for s in brand.shortcuts):
                return key

        return LEGACY_SHORTCUTS.get(low, low)

    def get(self, text: str) -> Optional[BrandProfile]:
        return self.config.brands.get(self.to_config_key(text))

    def available_brands_display(self) -> str:
        rows = [
            f"  {b.shortcut.ljust(10)} - {b.name}" for b in self.config.brands.values()
        ]
        return "\n".join(sorted(rows))

    def suggest(self, text: str, threshold: int = 3) -> List[str]:
        candidates: List[str] = []
        for key, brand in self.config.brands.items():
            candidates.append(key)
            candidates.extend(s for s in brand.shortcuts if s not in candidates)
        return find_matches(self.normalize(text), candidates, threshold=threshold)

    def validate(self, text: str) -> str:
        """Return the config key for `text`; the brand's working directory must exist."""
        brand = self.get(text)
        if brand is None or not brand.root.is_dir():
            raise BrandNotFoundError(
                str(text),
                self.available_brands_display(),
                suggestions=self.suggest(str(text)),
            )
        return brand.key

    def require(self, text: str) -> BrandProfile:
        return self.config.brands[self.validate(text)]

    def exists(self, text: str) -> bool:
        try:
            self.validate(text)
        except BrandNotFoundError:
            return False
        return True
