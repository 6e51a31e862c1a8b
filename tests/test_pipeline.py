from __future__ import annotations

import threading
from pathlib import Path

import pytest

from folio.cli import main
from folio.config import SiteConfig
from folio.errors import BuildError
from folio.pipeline import asset_tasks, build_site, run_parallel


def snapshot(directory: Path) -> dict[str, bytes]:
    return {
        str(path.relative_to(directory)): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


def test_build_site_produces_full_output(project: SiteConfig) -> None:
    result = build_site(project, today="2024-05-01")
    dist = project.dist_path
    assert result.dist_dir == dist
    assert result.today == "2024-05-01"
    for name in [
        "index.html",
        "cv.html",
        "script.min.js",
        "script.min.js.map",
        "style.min.css",
        "style.min.css.map",
        "cv-style.min.css",
        "robots.txt",
        "sitemap.xml",
        "images/photo.png",
        "case-study/alpha/index.html",
    ]:
        assert (dist / name).is_file(), name
    assert dist / "index.html" in result.files
    assert "<lastmod>2024-05-01</lastmod>" in (dist / "sitemap.xml").read_text(encoding="utf-8")
    assert not (dist / "favicon.ico").exists()


def test_build_is_deterministic(project: SiteConfig) -> None:
    build_site(project, today="2024-05-01")
    first = snapshot(project.dist_path)
    build_site(project, today="2024-05-01")
    assert snapshot(project.dist_path) == first


def test_build_removes_stale_output(project: SiteConfig) -> None:
    project.dist_path.mkdir()
    (project.dist_path / "old.html").write_text("stale", encoding="utf-8")
    build_site(project, today="2024-05-01")
    assert not (project.dist_path / "old.html").exists()


def test_missing_script_aborts_before_pages(project: SiteConfig) -> None:
    (project.src_path / "script.js").unlink()
    with pytest.raises(BuildError) as excinfo:
        build_site(project, today="2024-05-01")
    assert excinfo.value.stage == "minify_js"
    assert not (project.dist_path / "index.html").exists()


def test_template_error_fails_the_build(project: SiteConfig) -> None:
    (project.src_path / "pages" / "broken.html").write_text("{{ no_such_value }}", encoding="utf-8")
    with pytest.raises(BuildError) as excinfo:
        build_site(project, today="2024-05-01")
    assert excinfo.value.stage == "compile_pages"


def test_asset_tasks_cover_every_stylesheet(project: SiteConfig) -> None:
    names = list(asset_tasks(project, "2024-05-01"))
    assert names == [
        "minify_js",
        "minify_css:style.css",
        "minify_css:cv-style.css",
        "favicons",
        "static_assets",
        "sitemap",
    ]


def test_run_parallel_runs_tasks_concurrently(tmp_path: Path) -> None:
    barrier = threading.Barrier(2, timeout=5)

    def task(name: str):
        def run() -> Path:
            barrier.wait()
            return tmp_path / name
        return run

    written = run_parallel({"a": task("a"), "b": task("b")}, workers=2)
    assert written == [tmp_path / "a", tmp_path / "b"]


def test_run_parallel_reports_failing_task() -> None:
    def boom() -> None:
        raise ValueError("bad input")

    with pytest.raises(BuildError, match="Build stage 'broken' failed: bad input") as excinfo:
        run_parallel({"ok": lambda: None, "broken": boom}, workers=2)
    assert isinstance(excinfo.value.cause, ValueError)


def test_cli_main_builds_from_config(project: SiteConfig) -> None:
    config_path = project.root / "site.toml"
    config_path.write_text('[site]\nsite_url = "https://example.com/"\n', encoding="utf-8")
    assert main(["--config", str(config_path)]) == 0
    assert (project.dist_path / "index.html").is_file()


def test_cli_main_reports_failure(project: SiteConfig, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = project.root / "site.toml"
    config_path.write_text("[site]\njs_file = \"missing.js\"\n", encoding="utf-8")
    assert main(["--config", str(config_path)]) == 1
    assert "ERROR: Build process failed." in capsys.readouterr().err
