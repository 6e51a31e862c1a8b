"""Accessibility audits with axe-core driven through a headless Chromium.

``BrowserSession`` owns the browser: open it, hand it to an
``AccessibilityAuditor`` and close it when done (or use it as a context
manager). Nothing here keeps process-wide state.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

from .errors import AuditError, ConfigurationError

try:
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import sync_playwright
except ImportError:  # pragma: no cover - optional dependency
    PlaywrightError = None
    sync_playwright = None

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_TIMEOUT_MS = 30000

REMEDIATIONS = {
    "color-contrast": "Increase color contrast ratio to meet WCAG standards. "
    "Consider using darker text or lighter backgrounds.",
    "image-alt": 'Add descriptive alt text to images. Use empty alt="" for decorative images.',
    "heading-order": "Ensure headings follow a logical hierarchy (h1, h2, h3 and so on).",
    "landmark-one-main": "Add a main landmark to identify the primary content area.",
    "page-has-heading-one": "Add an h1 heading to provide a clear page title.",
    "region": "Wrap content in semantic landmarks (main, nav, aside).",
    "skip-link": "Add a skip link to allow keyboard users to bypass navigation.",
    "focus-order-semantics": "Ensure interactive elements have proper focus management.",
    "aria-allowed-attr": "Remove or correct invalid ARIA attributes.",
    "aria-required-attr": "Add required ARIA attributes for accessibility.",
    "button-name": "Ensure buttons have accessible names via text content or aria-label.",
    "link-name": "Ensure links have descriptive text or aria-label attributes.",
}


@dataclass
class Theme:
    name: str
    label: str
    apply_script: str
    ready_script: str


THEMES = {
    "light": Theme(
        name="light",
        label="Light Theme",
        apply_script="""() => {
            document.documentElement.removeAttribute('data-theme');
            if (window.setTheme) { window.setTheme('light'); }
        }""",
        ready_script="""() => getComputedStyle(document.body)
            .getPropertyValue('--color-text').trim() === '#333'""",
    ),
    "dark": Theme(
        name="dark",
        label="Dark Theme",
        apply_script="""() => {
            document.documentElement.setAttribute('data-theme', 'dark');
            if (window.setTheme) { window.setTheme('dark'); }
        }""",
        ready_script="""() => getComputedStyle(document.body)
            .getPropertyValue('--color-text').trim() === '#e4e6eb'""",
    ),
}

RUN_AXE_SCRIPT = """async ([context, options]) => {
    return await window.axe.run(context || document, options);
}"""

CONFIGURE_AXE_SCRIPT = """(config) => {
    for (const ruleId of config.disableRules) {
        window.axe.configure({ rules: [{ id: ruleId, enabled: false }] });
    }
}"""


def utc_timestamp() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def page_slug(url: str) -> str:
    """/ -> index, /cv.html -> cv-html, /case-study/a/ -> case-study-a"""
    slug = re.sub(r"[^\w-]+", "-", urlsplit(url).path).strip("-")
    return slug or "index"


# --- dependencies ---


def check_dependencies(axe_script: Path) -> dict[str, bool]:
    status = {
        "playwright": sync_playwright is not None,
        "axe_core": axe_script.is_file(),
    }
    status["all_available"] = all(status.values())
    return status


def require_dependencies(axe_script: Path, context: str = "accessibility testing") -> None:
    status = check_dependencies(axe_script)
    if status["all_available"]:
        return
    missing = []
    if not status["playwright"]:
        missing.append("playwright (pip install playwright && playwright install chromium)")
    if not status["axe_core"]:
        missing.append(f"axe-core script at {axe_script} (npm install axe-core)")
    raise ConfigurationError(f"Missing required dependencies for {context}: {'; '.join(missing)}")


# --- axe configuration ---


@dataclass
class AxeConfig:
    tags: list[str] = field(default_factory=lambda: ["wcag2a", "wcag2aa"])
    disable_rules: list[str] = field(default_factory=list)
    include_best_practices: bool = True
    timeout: int = DEFAULT_TIMEOUT_MS
    run_options: dict[str, Any] = field(
        default_factory=lambda: {
            "iframes": True,
            "performanceTimer": False,
            "resultTypes": ["violations", "incomplete", "passes"],
            "selectors": True,
            "ancestry": True,
            "xpath": True,
        }
    )

    def options(self) -> dict[str, Any]:
        return {"runOnly": {"type": "tag", "values": list(self.tags)}, **self.run_options}


def create_axe_config(
    wcag_level: Optional[list[str]] = None,
    exclude_rules: Optional[list[str]] = None,
    include_best_practices: bool = True,
    timeout: int = DEFAULT_TIMEOUT_MS,
) -> AxeConfig:
    config = AxeConfig(include_best_practices=include_best_practices, timeout=timeout)
    if wcag_level is not None:
        config.tags = list(wcag_level)
        if include_best_practices:
            config.tags.append("best-practice")
    if exclude_rules is not None:
        config.disable_rules = list(exclude_rules)
    return config


def inject_axe(page, axe_script: Path) -> None:
    page.add_script_tag(path=str(axe_script))
    if not page.evaluate("() => typeof window.axe !== 'undefined'"):
        raise AuditError("Failed to inject axe-core into page")
    logger.debug("axe-core injected into page")


def configure_axe(page, config: AxeConfig) -> None:
    page.evaluate(CONFIGURE_AXE_SCRIPT, {"disableRules": list(config.disable_rules)})


def run_axe(page, config: AxeConfig, context: Optional[str] = None) -> dict:
    return page.evaluate(RUN_AXE_SCRIPT, [context, config.options()])


def format_violations(violations: list[dict]) -> list[dict]:
    return [
        {
            "id": violation.get("id"),
            "impact": violation.get("impact"),
            "description": violation.get("description"),
            "help": violation.get("help"),
            "help_url": violation.get("helpUrl"),
            "tags": violation.get("tags", []),
            "nodes": [
                {
                    "target": node.get("target"),
                    "html": node.get("html"),
                    "failure_summary": node.get("failureSummary"),
                    "xpath": node.get("xpath"),
                }
                for node in violation.get("nodes", [])
            ],
        }
        for violation in violations
    ]


def remediation_suggestions(violations: list[dict]) -> list[dict]:
    suggestions = []
    seen = set()
    for violation in violations:
        rule = violation.get("id")
        if rule in seen or rule not in REMEDIATIONS:
            continue
        seen.add(rule)
        suggestions.append({"rule": rule, "suggestion": REMEDIATIONS[rule]})
    return suggestions


# --- browser ---


@dataclass
class BrowserOptions:
    headless: bool = True
    args: list[str] = field(default_factory=lambda: list(CHROMIUM_ARGS))
    viewport: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    timeout: int = DEFAULT_TIMEOUT_MS
    navigation_timeout: int = DEFAULT_TIMEOUT_MS
    ignore_https_errors: bool = True
    slow_mo: int = 0


class BrowserSession:
    def __init__(self, options: Optional[BrowserOptions] = None) -> None:
        self.options = options or BrowserOptions()
        self._playwright = None
        self._browser = None
        self._context = None
        self.pages: list = []

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    def open(self) -> "BrowserSession":
        if self.is_open:
            return self
        if sync_playwright is None:
            raise ConfigurationError("playwright is not installed. Run: pip install playwright")
        logger.info("Launching Chromium...")
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=self.options.headless,
                args=self.options.args,
                slow_mo=self.options.slow_mo,
                timeout=self.options.timeout,
            )
            self._context = self._browser.new_context(
                viewport=self.options.viewport,
                ignore_https_errors=self.options.ignore_https_errors,
            )
        except PlaywrightError as exc:
            self.close()
            raise AuditError(f"Failed to launch browser: {exc}") from exc
        return self

    def close(self) -> None:
        for page in list(self.pages):
            self.close_page(page)
        if self._context is not None:
            self._context.close()
        if self._browser is not None:
            self._browser.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None

    def new_page(self, viewport: Optional[dict[str, int]] = None):
        if not self.is_open:
            raise AuditError("Browser session is not open")
        page = self._context.new_page()
        if viewport:
            page.set_viewport_size(viewport)
        page.set_default_timeout(self.options.timeout)
        page.set_default_navigation_timeout(self.options.navigation_timeout)
        page.on("pageerror", lambda error: logger.error("Page script error: %s", error))
        self.pages.append(page)
        return page

    def close_page(self, page) -> None:
        if page in self.pages:
            self.pages.remove(page)
            page.close()

    def navigate(
        self,
        page,
        url: str,
        wait_until: str = "networkidle",
        wait_for_selector: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        logger.info("Navigating to: %s", url)
        page.goto(url, wait_until=wait_until, timeout=timeout or self.options.navigation_timeout)
        if wait_for_selector:
            page.wait_for_selector(wait_for_selector, timeout=timeout or self.options.timeout)

    def screenshot(self, page, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(path), full_page=True)
        logger.info("Screenshot saved: %s", path)

    def info(self) -> dict:
        if not self.is_open:
            return {"status": "not_launched"}
        return {
            "status": "running",
            "version": self._browser.version,
            "pages": len(self.pages),
            "connected": self._browser.is_connected(),
        }

    def __enter__(self) -> "BrowserSession":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()


# --- audits ---


class AccessibilityAuditor:
    def __init__(
        self,
        session: BrowserSession,
        axe_config: AxeConfig,
        axe_script: Path,
        test_both_themes: bool = True,
        take_screenshots: bool = False,
        screenshot_dir: Path = Path("test-reports/screenshots"),
    ) -> None:
        self.session = session
        self.axe_config = axe_config
        self.axe_script = axe_script
        self.test_both_themes = test_both_themes
        self.take_screenshots = take_screenshots
        self.screenshot_dir = screenshot_dir

    def audit(self, url: str, context: Optional[str] = None) -> dict:
        page = self.session.new_page()
        try:
            self.session.navigate(page, url)
            inject_axe(page, self.axe_script)
            configure_axe(page, self.axe_config)
            slug = page_slug(url)
            if self.test_both_themes:
                results = {name: self.audit_theme(page, name, context, slug) for name in ("light", "dark")}
            else:
                results = {"current": self.analyse(page, "current", context, slug)}
        except AuditError:
            raise
        except Exception as exc:
            raise AuditError(f"Accessibility test failed for {url}: {exc}") from exc
        finally:
            self.session.close_page(page)
        return {
            "url": url,
            "timestamp": utc_timestamp(),
            "success": all(not result["violations"] for result in results.values()),
            "results": results,
        }

    def audit_theme(
        self, page, theme_name: str, context: Optional[str] = None, slug: str = "index"
    ) -> dict:
        theme = THEMES.get(theme_name)
        if theme is None:
            raise AuditError(f"Unknown theme: {theme_name}")
        page.evaluate(theme.apply_script)
        page.wait_for_function(theme.ready_script)
        return self.analyse(page, theme_name, context, slug)

    def analyse(self, page, label: str, context: Optional[str] = None, slug: str = "index") -> dict:
        if self.take_screenshots:
            self.session.screenshot(page, self.screenshot_dir / f"{slug}-{label}-theme.png")
        raw = run_axe(page, self.axe_config, context)
        violations = raw.get("violations", [])
        result = {
            "theme": label,
            "violations": format_violations(violations),
            "passes": len(raw.get("passes", [])),
            "incomplete": len(raw.get("incomplete", [])),
            "inapplicable": len(raw.get("inapplicable", [])),
            "timestamp": utc_timestamp(),
        }
        if violations:
            result["remediation_suggestions"] = remediation_suggestions(violations)
        return result
