from __future__ import annotations

from typing import Iterable, List


def levenshtein(a: str, b: str) -> int:
    """Edit distance between `a` and `b` (insert/delete/substitute, cost 1)."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def find_matches(text: str, candidates: Iterable[str], threshold: int = 3) -> List[str]:
    """Return candidates within `threshold` edits of `text`, closest first."""
    if not text:
        return []
    needle = text.lower()
    scored = [(levenshtein(needle, c.lower()), c) for c in candidates]
    scored = [s for s in scored if s[0] <= threshold]
    scored.sort(key=lambda s: s[0])
    return [c for _, c in scored]
