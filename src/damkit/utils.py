from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Union


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def as_path(s: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(s))
    return Path(expanded).resolve()


def directory_size(path: Path) -> int:
    """Sum of file sizes below `path` (hidden files included)."""
    if not path.is_dir():
        return 0
    total = 0
    for p in path.rglob("*"):
        try:
            if p.is_file():
                total += p.stat().st_size
        except OSError:
            # unreadable entries are not counted
            continue
    return total


def bytes_summary(total: int) -> Dict[str, Union[int, float]]:
    return {
        "total_bytes": int(total),
        "total_mb": round(total / 1024 / 1024, 2),
        "total_gb": round(total / 1024 / 1024 / 1024, 2),
    }


def format_size(num: int) -> str:
    if num < 1024:
        return f"{num} B"
    if num < 1024 * 1024:
        return f"{num / 1024:.1f} KB"
    if num < 1024 * 1024 * 1024:
        return f"{num / (1024 * 1024):.1f} MB"
    return f"{num / (1024 * 1024 * 1024):.2f} GB"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m {int(round(seconds % 60))}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"


def format_age(seconds: float) -> str:
    if seconds < 60:
        return "just now"
    minutes = seconds / 60
    if minutes < 60:
        return f"{round(minutes)}m"
    hours = minutes / 60
    if hours < 24:
        return f"{round(hours)}h"
    days = hours / 24
    if days < 7:
        return f"{round(days)}d"
    if days < 28:
        return f"{round(days / 7)}w"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{round(days / 365)}y"
