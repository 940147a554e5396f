import json
from pathlib import Path

import pytest

from conftest import write
from damkit import cli
from damkit.cli import main, prompt_choice
from damkit.errors import ProjectNotFoundError
from damkit.projects import AmbiguousProject
from damkit.s3 import S3Operations


def _cfg_file(tmp_path: Path) -> Path:
    # example config with every location moved under tmp_path
    base = Path(__file__).resolve().parents[1]
    ex = (base / "config.example.toml").read_text()
    ex = ex.replace("/Users/me/dev/video-projects", str(tmp_path / "vp"))
    ex = ex.replace("/Volumes/T7/youtube-PUBLISHED", str(tmp_path / "ssd"))
    cfg_file = tmp_path / "config.toml"
    cfg_file.write_text(ex)
    return cfg_file


def _brand_root(tmp_path: Path) -> Path:
    root = tmp_path / "vp" / "v-appydave"
    root.mkdir(parents=True, exist_ok=True)
    return root


def test_brands_lists_every_brand(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    write(_brand_root(tmp_path) / "b65-sample" / "a.srt")

    assert main(["--config", str(cfg), "brands"]) == 0
    out = capsys.readouterr().out
    assert "appydave" in out
    assert "1 projects" in out
    assert "supportsignal" in out and "(missing)" in out


def test_list_with_pattern(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    root = _brand_root(tmp_path)
    write(root / "b65-sample" / "a.srt")
    write(root / "b40-old" / "a.srt")

    assert main(["--config", str(cfg), "list", "ad", "b6*"]) == 0
    out = capsys.readouterr().out
    assert "b65-sample" in out
    assert "b40-old" not in out


def test_unknown_brand_exits_not_found(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    _brand_root(tmp_path)
    assert main(["--config", str(cfg), "list", "appydav"]) == cli.EXIT_NOT_FOUND
    err = capsys.readouterr().err
    assert "Did you mean: appydave" in err


def test_missing_config_exits_config(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.toml"), "brands"]) == cli.EXIT_CONFIG
    assert "config error" in capsys.readouterr().err


def test_manifest_command_writes_projects_json(tmp_path):
    cfg = _cfg_file(tmp_path)
    root = _brand_root(tmp_path)
    write(root / "b65-sample" / "intro.mp4")

    assert main(["--config", str(cfg), "manifest", "appydave"]) == 0
    data = json.loads((root / "projects.json").read_text())
    assert [p["id"] for p in data["projects"]] == ["b65-sample"]


def test_archive_short_code_dry_run(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    root = _brand_root(tmp_path)
    write(root / "b65-sample" / "intro.mp4")
    (tmp_path / "ssd" / "appydave").mkdir(parents=True)

    assert main(["--config", str(cfg), "archive", "ad", "b65", "--dry-run"]) == 0
    assert "DRY RUN would copy" in capsys.readouterr().out
    assert not (tmp_path / "ssd" / "appydave" / "b50-b99").exists()


def test_archive_without_ssd_exits_tier_unavailable(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    write(_brand_root(tmp_path) / "b65-sample" / "intro.mp4")
    assert main(["--config", str(cfg), "archive", "ad", "b65-sample"]) == cli.EXIT_TIER
    assert "SSD not mounted" in capsys.readouterr().err
    assert (tmp_path / "vp" / "v-appydave" / "b65-sample").is_dir()


def test_sync_ssd_writes_report(tmp_path):
    cfg = _cfg_file(tmp_path)
    root = _brand_root(tmp_path)
    write(tmp_path / "ssd" / "appydave" / "b00-b49" / "b40-old" / "a.srt", b"subs")
    assert main(["--config", str(cfg), "manifest", "ad"]) == 0

    report = tmp_path / "out" / "report.json"
    rc = main(["--config", str(cfg), "--write-report", str(report), "sync-ssd", "ad"])
    assert rc == 0
    data = json.loads(report.read_text())
    assert data["command"] == "sync-ssd"
    assert data["transferred"] == 1
    assert (root / "archived" / "b00-b49" / "b40-old" / "a.srt").exists()


def test_s3_without_bucket_exits_config(tmp_path, capsys):
    cfg = _cfg_file(tmp_path)
    root = tmp_path / "vp" / "v-supportsignal"
    write(root / "projects" / "a01-intro" / "s3-staging" / "a.srt")
    assert main(["--config", str(cfg), "s3-up", "ss", "a01-intro"]) == cli.EXIT_CONFIG
    assert "S3 bucket not configured" in capsys.readouterr().err


def test_s3_status_with_client(tmp_path, capsys, monkeypatch, fake_s3):
    cfg = _cfg_file(tmp_path)
    write(_brand_root(tmp_path) / "b65-sample" / "s3-staging" / "a.srt", b"subs")
    monkeypatch.setattr(
        cli,
        "S3Operations",
        lambda brand, pid, config=None: S3Operations(brand, pid, config=config, client=fake_s3),
    )

    assert main(["--config", str(cfg), "s3-up", "ad", "b65-sample"]) == 0
    assert main(["--config", str(cfg), "s3-status", "ad", "b65-sample"]) == 0
    out = capsys.readouterr().out
    assert "synced" in out
    assert "sync status: synced" in out

    fake_s3.fail_keys.add("staging/v-appydave/b65-sample/a.srt")
    (tmp_path / "vp" / "v-appydave" / "b65-sample" / "s3-staging" / "a.srt").write_bytes(b"new")
    assert main(["--config", str(cfg), "s3-up", "ad", "b65-sample"]) == cli.EXIT_FAILED_FILES


def test_prompt_choice_reads_selection(capsys):
    amb = AmbiguousProject(hint="b65", candidates=["b65-one", "b65-two"])
    assert prompt_choice(amb, read=lambda _: "2") == "b65-two"
    assert "1. b65-one" in capsys.readouterr().out


def test_prompt_choice_without_answer_is_invalid(capsys):
    amb = AmbiguousProject(hint="b65", candidates=["b65-one", "b65-two"])

    def closed_stdin(_):
        raise EOFError

    with pytest.raises(ProjectNotFoundError, match="Invalid selection"):
        prompt_choice(amb, read=closed_stdin)


def test_ambiguous_code_with_closed_stdin_exits_not_found(tmp_path, capsys, monkeypatch):
    cfg = _cfg_file(tmp_path)
    root = _brand_root(tmp_path)
    write(root / "b65-one" / "a.srt")
    write(root / "b65-two" / "a.srt")

    def closed_stdin(_):
        raise EOFError

    monkeypatch.setattr("builtins.input", closed_stdin)
    assert main(["--config", str(cfg), "archive", "ad", "b65", "--dry-run"]) == cli.EXIT_NOT_FOUND
    assert "Invalid selection" in capsys.readouterr().err
