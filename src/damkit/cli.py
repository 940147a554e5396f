from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, List, Optional

from .archive import archive_project
from .brands import BrandResolver
from .config import load_config
from .errors import (
    BrandNotFoundError,
    ConfigError,
    DamError,
    ManifestError,
    ProjectNotFoundError,
    TierUnavailableError,
)
from .listing import list_brand_projects, list_brands
from .manifest import generate_manifest
from .model import BrandProfile, DamConfig, SyncResult
from .projects import AmbiguousProject, ProjectLocator
from .s3 import S3Operations
from .transfer import sync_from_backup
from .utils import as_path, format_age, format_size

EXIT_CONFIG = 2
EXIT_NOT_FOUND = 3
EXIT_TIER = 4
EXIT_FAILED_FILES = 5


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="damkit",
        description="Video asset tiers: local, archived, SSD backup and S3 staging.",
    )
    p.add_argument("--config", default=None, help="Path to config TOML (default: $DAMKIT_CONFIG or ~/.config/damkit/config.toml).")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    p.add_argument("--write-report", default=None, help="Optional path for a JSON report of per-file outcomes.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("brands", help="List configured brands.")

    sp = sub.add_parser("list", help="List projects of a brand.")
    sp.add_argument("brand")
    sp.add_argument("pattern", nargs="?", default=None)

    sp = sub.add_parser("manifest", help="Rescan all tiers and write projects.json.")
    sp.add_argument("brand")

    sp = sub.add_parser("archive", help="Copy a project to the SSD backup.")
    sp.add_argument("brand")
    sp.add_argument("project")
    sp.add_argument("--force", action="store_true", help="Delete the local copy after archiving.")
    sp.add_argument("--dry-run", action="store_true")

    sp = sub.add_parser("sync-ssd", help="Restore light files of SSD-only projects.")
    sp.add_argument("brand")
    sp.add_argument("--dry-run", action="store_true")

    for name, text in (("s3-up", "Upload s3-staging files."), ("s3-down", "Download into s3-staging.")):
        sp = sub.add_parser(name, help=text)
        sp.add_argument("brand")
        sp.add_argument("project")
        sp.add_argument("--dry-run", action="store_true")

    sp = sub.add_parser("s3-status", help="Compare s3-staging with S3.")
    sp.add_argument("brand")
    sp.add_argument("project")

    for name, text in (
        ("s3-cleanup", "Delete the project's files from S3."),
        ("s3-cleanup-local", "Delete local s3-staging files."),
    ):
        sp = sub.add_parser(name, help=text)
        sp.add_argument("brand")
        sp.add_argument("project")
        sp.add_argument("--force", action="store_true")
        sp.add_argument("--dry-run", action="store_true")

    sp = sub.add_parser("s3-share", help="Presigned links for staged files.")
    sp.add_argument("brand")
    sp.add_argument("project")
    sp.add_argument("files", nargs="+")
    sp.add_argument("--expires", default="7d")
    sp.add_argument("--download", action="store_true")

    return p


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        for noisy in ("boto3", "botocore", "s3transfer", "urllib3"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def prompt_choice(amb: AmbiguousProject, read: Optional[Callable[[str], str]] = None) -> str:
    read = read or input
    print(f"[damkit] multiple projects match '{amb.hint}':")
    for i, name in enumerate(amb.candidates, start=1):
        print(f"  {i}. {name}")
    try:
        raw = read(f"Select project (1-{len(amb.candidates)}): ")
    except (EOFError, KeyboardInterrupt):
        # no answer counts as an invalid selection
        print()
        raw = ""
    try:
        choice = int(raw.strip())
    except ValueError:
        choice = 0
    return amb.select(choice)


def resolve_one(locator: ProjectLocator, brand: BrandProfile, hint: str) -> str:
    resolved = locator.resolve(brand, hint)
    if isinstance(resolved, AmbiguousProject):
        return prompt_choice(resolved)
    if isinstance(resolved, list):
        if len(resolved) != 1:
            raise ProjectNotFoundError(
                f"Pattern '{hint}' matches {len(resolved)} projects; name one project"
            )
        return resolved[0]
    return resolved


def _write_report(path: Optional[str], command: str, result: SyncResult, dry_run: bool) -> None:
    if not path:
        return
    rp = as_path(path)
    rp.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "command": command,
        "dry_run": dry_run,
        "transferred": result.transferred,
        "skipped": result.skipped,
        "failed": result.failed,
        "excluded": result.excluded,
        "filtered": result.filtered,
        "bytes": result.bytes,
        "details": result.details,
    }
    rp.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"[damkit] wrote report: {rp}")


def _run(args: argparse.Namespace, cfg: DamConfig) -> int:
    resolver = BrandResolver(cfg)
    locator = ProjectLocator(resolver)

    if args.command == "brands":
        for row in list_brands(cfg, locator):
            mark = "" if row.exists else "  (missing)"
            print(f"  {row.shortcut.ljust(10)} {row.key.ljust(20)} {row.projects:>4} projects  {row.path}{mark}")
        return 0

    brand = resolver.require(args.brand)

    if args.command == "list":
        for row in list_brand_projects(brand, locator, args.pattern):
            when = row.modified.strftime("%Y-%m-%d") if row.modified else "-"
            print(f"  {row.project.ljust(40)} {format_size(row.size):>10}  {when}")
        return 0

    if args.command == "manifest":
        generate_manifest(brand)
        return 0

    if args.command == "sync-ssd":
        result = sync_from_backup(brand, dry_run=args.dry_run)
        _write_report(args.write_report, args.command, result, args.dry_run)
        return EXIT_FAILED_FILES if result.failed else 0

    project = resolve_one(locator, brand, args.project)

    if args.command == "archive":
        if not locator.project_path(brand, project).is_dir():
            hints = locator.suggest(brand, project)
            extra = f"\nDid you mean: {', '.join(hints)}?" if hints else ""
            raise ProjectNotFoundError(f"Project not found: {brand.key}/{project}{extra}")
        archive_project(brand, project, force=args.force, dry_run=args.dry_run)
        return 0

    ops = S3Operations(brand, project, config=cfg)

    if args.command in {"s3-up", "s3-down"}:
        if args.dry_run:
            print("[damkit] DRY RUN (no filesystem or S3 changes)")
        result = ops.upload(dry_run=args.dry_run) if args.command == "s3-up" else ops.download(dry_run=args.dry_run)
        _write_report(args.write_report, args.command, result, args.dry_run)
        return EXIT_FAILED_FILES if result.failed else 0

    if args.command == "s3-status":
        rows = ops.status()
        if not rows:
            print(f"[damkit] no files in S3 or s3-staging for {brand.key}/{project}")
            return 0
        for rel, state, size in rows:
            print(f"  {state.ljust(10)} {rel} ({format_size(size)})")
        print(f"[damkit] sync status: {ops.sync_status()}")
        stale = ops.stale_objects()
        if stale:
            print(
                f"[damkit] {len(stale)} S3 file(s) older than "
                f"{brand.settings.s3_cleanup_days} days (see s3-cleanup):"
            )
            for rel, age in stale:
                print(f"  {rel} ({format_age(age)})")
        return 0

    if args.command in {"s3-cleanup", "s3-cleanup-local"}:
        fn = ops.cleanup if args.command == "s3-cleanup" else ops.cleanup_local
        result = fn(force=args.force, dry_run=args.dry_run)
        return EXIT_FAILED_FILES if result.failed else 0

    if args.command == "s3-share":
        links = ops.share(list(args.files), expires=args.expires, download=args.download)
        for rel, url in links.items():
            print(f"{rel}\n  {url}")
        return 0

    raise ConfigError(f"unknown command: {args.command}")  # pragma: no cover


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        cfg = load_config(as_path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"[damkit] config error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        return _run(args, cfg)
    except ConfigError as e:
        print(f"[damkit] config error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except (BrandNotFoundError, ProjectNotFoundError, ManifestError) as e:
        print(f"[damkit] not found: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except TierUnavailableError as e:
        print(f"[damkit] tier unavailable: {e}", file=sys.stderr)
        return EXIT_TIER
    except (DamError, ValueError) as e:
        print(f"[damkit] error: {e}", file=sys.stderr)
        return 1
