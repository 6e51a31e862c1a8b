from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from .a11y import (
    AccessibilityAuditor,
    BrowserOptions,
    BrowserSession,
    create_axe_config,
    require_dependencies,
)
from .config import is_module_enabled, load_site_config, load_test_config
from .errors import FolioError
from .pipeline import build_site
from .report import ReportGenerator
from .server import DEFAULT_PORT, StaticFileServer

logger = logging.getLogger("folio")


def configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("folio")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Build the portfolio site into minified static files.")
    parser.add_argument("--config", default="site.toml", help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_site_config(Path(args.config))
        result = build_site(config)
    except Exception:
        logger.exception("ERROR: Build process failed.")
        return 1
    print(f"Build completed in {result.elapsed:.2f}s.")
    print(f"Site generated in: {result.dist_dir}")
    return 0


def requested_port(base_url: str) -> int:
    return urlsplit(base_url).port or DEFAULT_PORT


def run_accessibility(config, server: StaticFileServer, report_dir: Path) -> dict:
    settings = config.accessibility
    axe_script = Path(settings.axe_script)
    require_dependencies(axe_script)
    axe_config = create_axe_config(
        wcag_level=settings.wcag_level,
        exclude_rules=settings.exclude_rules,
        timeout=settings.timeout,
    )
    options = BrowserOptions(
        headless=settings.headless,
        timeout=settings.timeout,
        navigation_timeout=config.global_.test_timeout,
    )
    started = time.perf_counter()
    audits = []
    with BrowserSession(options) as session:
        auditor = AccessibilityAuditor(
            session,
            axe_config,
            axe_script,
            test_both_themes=settings.test_both_themes,
            take_screenshots=settings.take_screenshots,
            screenshot_dir=report_dir / "screenshots",
        )
        for page in settings.pages:
            audits.append(auditor.audit(f"{server.base_url}{page}"))

    violations = []
    recommendations = []
    for audit in audits:
        for theme, result in audit["results"].items():
            for violation in result["violations"]:
                violations.append(f"{audit['url']} [{theme}] {violation['id']}: {violation['help']}")
            for item in result.get("remediation_suggestions", []):
                if item["suggestion"] not in recommendations:
                    recommendations.append(item["suggestion"])
    passed = sum(1 for audit in audits if audit["success"])
    return {
        "module": "accessibility",
        "status": "passed" if passed == len(audits) else "failed",
        "duration": round((time.perf_counter() - started) * 1000),
        "details": {
            "tests_run": len(audits),
            "tests_passed": passed,
            "tests_failed": len(audits) - passed,
            "violations": violations,
            "recommendations": recommendations,
            "audits": audits,
        },
    }


def audit_main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve the built site and run the accessibility audits.")
    parser.add_argument("--config", default=None, help="Path to test config file (default: ./test-config.json).")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_test_config(Path(args.config) if args.config else None)
    except FolioError as exc:
        logger.error("%s", exc)
        return 1

    report_dir = Path(config.global_.report_directory)
    reporter = ReportGenerator(report_dir)
    results = []
    if not is_module_enabled(config, "accessibility"):
        results.append({"module": "accessibility", "status": "skipped", "duration": 0, "details": None})
    else:
        server = StaticFileServer(
            config.global_.dist_directory,
            port=requested_port(config.global_.base_url),
        )
        try:
            with server:
                if not server.wait_until_healthy():
                    raise FolioError(f"Test server at {server.base_url} did not become healthy")
                results.append(run_accessibility(config, server, report_dir))
        except Exception:
            logger.exception("ERROR: Accessibility tests failed to run.")
            results.append({"module": "accessibility", "status": "failed", "duration": 0, "details": None})

    report = reporter.unified_report(results)
    reporter.save_json(report)
    reporter.save_html(report)
    print(f"Overall status: {report['summary']['overall_status'].upper()}")
    return 0 if report["summary"]["overall_status"] == "passed" else 1


if __name__ == "__main__":
    sys.exit(main())
