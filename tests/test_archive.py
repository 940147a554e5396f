import pytest

from conftest import make_brand, write
from damkit.archive import PARTIAL_SUFFIX, archive_project
from damkit.errors import ProjectNotFoundError, TierUnavailableError
from damkit.manifest import build_manifest
from damkit.transfer import copy_tree


def seed(brand, pid="b40-done"):
    proj = brand.root / pid
    write(proj / "final.mp4", b"v" * 32)
    write(proj / "assets" / "thumb.png", b"png")
    write(proj / "node_modules" / "x.js")
    return proj


def test_archive_copies_and_keeps_source(brand, capsys):
    src = seed(brand)
    r = archive_project(brand, "b40-done")

    dst = brand.locations.ssd_backup / "b00-b49" / "b40-done"
    assert r.destination == dst
    assert r.copied and not r.deleted
    assert (dst / "final.mp4").read_bytes() == b"v" * 32
    assert (dst / "assets" / "thumb.png").exists()
    assert not (dst / "node_modules").exists()
    assert (r.files, r.excluded) == (2, 1)
    assert src.is_dir()
    assert "use --force" in capsys.readouterr().out


def test_archive_force_deletes_after_copy(brand):
    src = seed(brand)
    r = archive_project(brand, "b40-done", force=True)
    assert r.deleted
    assert not src.exists()
    assert (r.destination / "final.mp4").exists()


def test_archive_dry_run_changes_nothing(brand, capsys):
    src = seed(brand)
    r = archive_project(brand, "b40-done", force=True, dry_run=True)
    assert r.dry_run and not r.copied and not r.deleted
    assert src.is_dir()
    assert not r.destination.exists()
    out = capsys.readouterr().out
    assert "DRY RUN would copy" in out
    assert "DRY RUN would delete" in out


def test_archive_existing_destination_skips_copy(brand):
    seed(brand)
    write(brand.locations.ssd_backup / "b00-b49" / "b40-done" / "old.txt")
    r = archive_project(brand, "b40-done")
    assert r.already_archived
    assert not r.copied
    assert not (r.destination / "final.mp4").exists()


def test_failed_copy_leaves_source_and_no_destination(brand):
    src = seed(brand)

    def broken_copier(s, d, *, policy):
        copy_tree(s / "assets", d, policy=policy)
        raise OSError("disk full")

    with pytest.raises(OSError, match="disk full"):
        archive_project(brand, "b40-done", force=True, copier=broken_copier)

    dst = brand.locations.ssd_backup / "b00-b49" / "b40-done"
    assert src.is_dir()
    assert (src / "final.mp4").exists()
    assert not dst.exists()
    assert not dst.with_name(dst.name + PARTIAL_SUFFIX).exists()


def test_leftover_partial_copy_is_replaced(brand):
    seed(brand)
    dst = brand.locations.ssd_backup / "b00-b49" / "b40-done"
    write(dst.with_name(dst.name + PARTIAL_SUFFIX) / "stale.bin")
    r = archive_project(brand, "b40-done")
    assert r.copied
    assert not (dst / "stale.bin").exists()
    assert not dst.with_name(dst.name + PARTIAL_SUFFIX).exists()


def test_uncoded_project_lands_in_sentinel_bucket(brand):
    seed(brand, "boy-baker")
    r = archive_project(brand, "boy-baker")
    assert r.destination == brand.locations.ssd_backup / "000-099" / "boy-baker"


def test_archive_missing_project(brand):
    with pytest.raises(ProjectNotFoundError):
        archive_project(brand, "b99-nope")


def test_archive_requires_mounted_backup(tmp_path):
    brand = make_brand(tmp_path, backup=False)
    seed(brand)
    with pytest.raises(TierUnavailableError):
        archive_project(brand, "b40-done", force=True)
    assert (brand.root / "b40-done").is_dir()


def test_sample_project_lifecycle(brand):
    src = brand.root / "b65-sample"
    write(src / "intro.mp4", b"v" * 8 * 1024)
    write(src / "intro.srt", b"s" * 2 * 1024)
    dst = brand.locations.ssd_backup / "b50-b99" / "b65-sample"

    planned = archive_project(brand, "b65-sample", dry_run=True)
    assert planned.destination == dst
    assert planned.bytes == 10 * 1024
    assert not dst.exists()

    kept = archive_project(brand, "b65-sample")
    assert kept.copied and dst.is_dir() and src.is_dir()

    removed = archive_project(brand, "b65-sample", force=True)
    assert removed.already_archived and not removed.copied
    assert removed.deleted
    assert not src.exists()
    assert (dst / "intro.srt").exists()


def test_archived_project_survives_manifest_rebuild(brand):
    write(brand.root / "b100-big" / "final.mp4", b"v" * 16)
    archive_project(brand, "b100-big", force=True)

    manifest, _ = build_manifest(brand)
    entries = {p["id"]: p for p in manifest["projects"]}
    assert list(entries) == ["b100-big"]
    assert entries["b100-big"]["storage"]["ssd"] == {"exists": True, "path": "b100-b149/b100-big"}
    assert entries["b100-big"]["storage"]["local"]["exists"] is False
