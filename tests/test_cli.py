from __future__ import annotations

import json
from pathlib import Path

import pytest

from folio import cli
from folio.cli import audit_main, requested_port


def write_test_config(path: Path, tmp_path: Path, **accessibility) -> Path:
    data = {
        "global": {
            "dist_directory": str(tmp_path / "dist"),
            "report_directory": str(tmp_path / "reports"),
        },
        "accessibility": accessibility,
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def read_report(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "reports" / "test-report.json").read_text(encoding="utf-8"))


def test_requested_port() -> None:
    assert requested_port("http://localhost:3000") == 3000
    assert requested_port("http://localhost:8080/") == 8080
    assert requested_port("http://localhost") == 3000


def test_audit_main_with_accessibility_disabled(tmp_path: Path) -> None:
    config = write_test_config(tmp_path / "test-config.json", tmp_path, enabled=False)
    assert audit_main(["--config", str(config)]) == 0
    report = read_report(tmp_path)
    assert report["modules"]["accessibility"]["status"] == "skipped"
    assert (tmp_path / "reports" / "test-report.html").is_file()


def test_audit_main_fails_without_built_site(tmp_path: Path) -> None:
    config = write_test_config(tmp_path / "test-config.json", tmp_path)
    assert audit_main(["--config", str(config)]) == 1
    assert read_report(tmp_path)["summary"]["overall_status"] == "failed"


def test_audit_main_rejects_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "test-config.json"
    path.write_text('{"visual": {"threshold": 2}}', encoding="utf-8")
    assert audit_main(["--config", str(path)]) == 1
    assert "Configuration validation failed" in capsys.readouterr().err


def test_audit_main_serves_dist_to_the_auditor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "dist").mkdir()
    (tmp_path / "dist" / "index.html").write_text("<h1>Home</h1>", encoding="utf-8")
    config = write_test_config(tmp_path / "test-config.json", tmp_path)
    seen = {}

    def fake_run(config, server, report_dir):
        seen["healthy"] = server.is_healthy()
        seen["base_url"] = server.base_url
        return {"module": "accessibility", "status": "passed", "duration": 10, "details": None}

    monkeypatch.setattr(cli, "run_accessibility", fake_run)
    assert audit_main(["--config", str(config)]) == 0
    assert seen["healthy"] is True
    assert seen["base_url"].startswith("http://127.0.0.1:")
    assert read_report(tmp_path)["summary"]["passed_modules"] == 1
