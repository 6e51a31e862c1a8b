from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path

from jinja2 import Environment, select_autoescape

from .utils import write_text

logger = logging.getLogger(__name__)

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Test Report - {{ report.timestamp }}</title>
<style>
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 20px; background: #f8f9fa; }
.container { max-width: 1200px; margin: 0 auto; background: white; border-radius: 8px; }
.header { background: {{ status_color }}; color: white; padding: 20px; border-radius: 8px 8px 0 0; }
.content { padding: 20px; }
.summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; }
.summary-card { background: #f8f9fa; padding: 15px; border-radius: 6px; text-align: center; }
.module { margin-bottom: 30px; border: 1px solid #dee2e6; border-radius: 6px; padding: 15px; }
.status-passed { color: #28a745; }
.status-failed { color: #dc3545; }
.status-skipped { color: #6c757d; }
.recommendations { background: #fff3cd; border: 1px solid #ffeaa7; border-radius: 6px; padding: 15px; }
</style>
</head>
<body>
<div class="container">
<div class="header">
<h1>Test Report</h1>
<p>Generated: {{ report.timestamp }}</p>
<p>Overall Status: <strong>{{ report.summary.overall_status | upper }}</strong></p>
</div>
<div class="content">
<div class="summary">
<div class="summary-card"><h3>Total Modules</h3><div>{{ report.summary.total_modules }}</div></div>
<div class="summary-card"><h3>Passed</h3><div class="status-passed">{{ report.summary.passed_modules }}</div></div>
<div class="summary-card"><h3>Failed</h3><div class="status-failed">{{ report.summary.failed_modules }}</div></div>
<div class="summary-card"><h3>Duration</h3><div>{{ (report.summary.total_duration / 1000) | round | int }}s</div></div>
</div>
{% for name, module in report.modules.items() %}
<div class="module">
<h2>{{ name }} <span class="status-{{ module.status }}">{{ module.status | upper }}</span></h2>
<p>Duration: {{ ((module.duration or 0) / 1000) | round | int }}s</p>
{% if module.details %}
<p><strong>Tests Run:</strong> {{ module.details.tests_run | default("N/A") }}</p>
<p><strong>Tests Passed:</strong> {{ module.details.tests_passed | default("N/A") }}</p>
<p><strong>Tests Failed:</strong> {{ module.details.tests_failed | default("N/A") }}</p>
{% if module.details.violations %}
<h4>Violations:</h4>
<ul>{% for violation in module.details.violations %}<li>{{ violation }}</li>{% endfor %}</ul>
{% endif %}
{% else %}
<p>No detailed results available</p>
{% endif %}
</div>
{% endfor %}
{% if report.recommendations %}
<div class="recommendations">
<h3>Recommendations</h3>
<ul>{% for item in report.recommendations %}<li>{{ item }}</li>{% endfor %}</ul>
</div>
{% endif %}
</div>
</div>
</body>
</html>
"""


class ReportGenerator:
    def __init__(self, report_directory: Path = Path("test-reports")) -> None:
        self.report_directory = report_directory
        self._env = Environment(autoescape=select_autoescape(default_for_string=True))

    def unified_report(self, results: list[dict]) -> dict:
        """Fold per-module results (``module``, ``status``, ``duration`` ms, ``details``) into one report."""
        summary = {
            "total_modules": len(results),
            "passed_modules": 0,
            "failed_modules": 0,
            "skipped_modules": 0,
            "total_duration": 0,
        }
        report = {
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "summary": summary,
            "modules": {},
            "recommendations": [],
        }
        for result in results:
            report["modules"][result["module"]] = result
            summary["total_duration"] += result.get("duration") or 0
            status = result.get("status")
            if status == "passed":
                summary["passed_modules"] += 1
            elif status == "failed":
                summary["failed_modules"] += 1
                details = result.get("details") or {}
                report["recommendations"].extend(details.get("recommendations", []))
            elif status == "skipped":
                summary["skipped_modules"] += 1
        summary["overall_status"] = "failed" if summary["failed_modules"] else "passed"
        return report

    def render_html(self, report: dict) -> str:
        status_color = "#28a745" if report["summary"]["overall_status"] == "passed" else "#dc3545"
        template = self._env.from_string(HTML_TEMPLATE)
        return template.render(report=report, status_color=status_color)

    def save_json(self, report: dict, filename: str = "test-report.json") -> Path:
        path = self.report_directory / filename
        write_text(path, json.dumps(report, indent=2, default=str))
        logger.info("JSON report saved to: %s", path)
        return path

    def save_html(self, report: dict, filename: str = "test-report.html") -> Path:
        path = self.report_directory / filename
        write_text(path, self.render_html(report))
        logger.info("HTML report saved to: %s", path)
        return path
