from __future__ import annotations

import copy
import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import ConfigurationError
from .utils import parse_int

try:
    import tomllib as toml
except ImportError:
    try:
        import tomli as toml
    except ImportError:  # pragma: no cover - optional dependency
        toml = None

try:
    import yaml
except ImportError:  # pragma: no cover - optional dependency
    yaml = None

DEFAULT_SITE_DESCRIPTION = (
    "Portfolio of a senior software engineer. Case studies and system designs "
    "that drive measurable business impact."
)
DEFAULT_PAGES = {
    "index.html": {"title": "Portfolio | Senior Software Engineer"},
    "404.html": {"title": "404: Page Not Found"},
    "cv.html": {"title": "CV", "page_class": "page-cv"},
}
VALID_WCAG_LEVELS = ("wcag2a", "wcag2aa", "wcag2aaa")
TEST_CONFIG_FILE = "test-config.json"


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        if toml is None:
            raise ConfigurationError("TOML config requires tomllib (Python 3.11+) or tomli.")
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        if yaml is None:
            raise ConfigurationError("YAML config requires PyYAML.")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            return {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config must be a mapping: {path}")
    return data


def merge_config(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict:
    """Deep-merge ``overrides`` into a copy of ``base``.

    Nested mappings merge key by key; every other value (lists included)
    replaces the base value. Neither argument is modified.
    """
    result = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = merge_config(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# --- Site build configuration ---


@dataclass
class SiteConfig:
    root: Path = field(default_factory=Path.cwd)
    src_dir: str = "src"
    dist_dir: str = "dist"
    js_file: str = "script.js"
    css_files: list[str] = field(default_factory=lambda: ["style.css", "cv-style.css"])
    favicon: str = "favicon.svg"
    favicon_sizes: list[int] = field(default_factory=lambda: [16, 32, 48])
    sitemap: str = "sitemap.xml"
    root_files: list[str] = field(default_factory=lambda: ["robots.txt"])
    asset_dirs: list[str] = field(default_factory=lambda: ["images", "case-study", "assets"])
    content_dir: str = "content"
    pages_dir: str = "pages"
    site_description: str = DEFAULT_SITE_DESCRIPTION
    site_url: str = ""
    pages: dict[str, dict] = field(default_factory=lambda: copy.deepcopy(DEFAULT_PAGES))
    build_workers: int = 0

    @property
    def src_path(self) -> Path:
        return self.root / self.src_dir

    @property
    def dist_path(self) -> Path:
        return self.root / self.dist_dir

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], root: Optional[Path] = None) -> "SiteConfig":
        known = {f.name for f in dataclasses.fields(cls)} - {"root"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown site config keys: {', '.join(unknown)}")
        values = dict(data)
        if "pages" in values:
            values["pages"] = merge_config(DEFAULT_PAGES, values["pages"])
        if "build_workers" in values:
            values["build_workers"] = parse_int(values["build_workers"], 0)
        for key in ("css_files", "root_files", "asset_dirs", "favicon_sizes"):
            if key in values and not isinstance(values[key], list):
                raise ConfigurationError(f"Site config '{key}' must be a list")
        return cls(root=root or Path.cwd(), **values)


def load_site_config(path: Path) -> SiteConfig:
    data = load_config(path)
    site = data.get("site", data)
    root = path.resolve().parent if path.exists() else Path.cwd()
    return SiteConfig.from_mapping(site, root)


# --- Test configuration ---


@dataclass
class GlobalSettings:
    test_timeout: int = 30000
    dist_directory: str = "./dist"
    base_url: str = "http://localhost:3000"
    report_directory: str = "./test-reports"


@dataclass
class AccessibilitySettings:
    enabled: bool = True
    wcag_level: list[str] = field(default_factory=lambda: ["wcag2a", "wcag2aa"])
    test_both_themes: bool = True
    exclude_rules: list[str] = field(default_factory=list)
    timeout: int = 30000
    pages: list[str] = field(default_factory=lambda: ["/", "/cv.html", "/404.html"])
    axe_script: str = "node_modules/axe-core/axe.min.js"
    take_screenshots: bool = False
    headless: bool = True


@dataclass
class PerformanceSettings:
    enabled: bool = True
    budgets: dict[str, int] = field(
        default_factory=lambda: {"performance": 95, "accessibility": 100, "best_practices": 95, "seo": 95}
    )
    test_mobile: bool = True
    test_desktop: bool = True
    timeout: int = 60000


@dataclass
class BuildSettings:
    enabled: bool = True
    timeout: int = 15000


@dataclass
class VisualSettings:
    enabled: bool = True
    threshold: float = 0.2
    update_baseline: bool = False
    viewports: list[dict[str, int]] = field(
        default_factory=lambda: [{"width": 1920, "height": 1080}, {"width": 768, "height": 1024}]
    )
    timeout: int = 45000


SECTIONS = {
    "global": GlobalSettings,
    "accessibility": AccessibilitySettings,
    "performance": PerformanceSettings,
    "build": BuildSettings,
    "visual": VisualSettings,
}


@dataclass
class TestConfig:
    __test__ = False  # not a pytest test class

    global_: GlobalSettings = field(default_factory=GlobalSettings)
    accessibility: AccessibilitySettings = field(default_factory=AccessibilitySettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    build: BuildSettings = field(default_factory=BuildSettings)
    visual: VisualSettings = field(default_factory=VisualSettings)

    def section(self, name: str) -> Any:
        if name not in SECTIONS:
            raise ConfigurationError(f"Configuration for module '{name}' not found")
        return getattr(self, "global_" if name == "global" else name)

    def to_dict(self) -> dict:
        return {name: dataclasses.asdict(self.section(name)) for name in SECTIONS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TestConfig":
        kwargs = {}
        for name, section_cls in SECTIONS.items():
            values = data.get(name, {})
            known = {f.name for f in dataclasses.fields(section_cls)}
            kwargs["global_" if name == "global" else name] = section_cls(
                **{key: value for key, value in values.items() if key in known}
            )
        return cls(**kwargs)


def _type_matches(value: object, expected: object) -> bool:
    if expected is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, expected)


def validate_config(data: Mapping[str, Any]) -> list[str]:
    """Return one message per missing or mistyped field; empty when valid."""
    errors: list[str] = []
    for name, section_cls in SECTIONS.items():
        section = data.get(name)
        if not isinstance(section, Mapping):
            errors.append(f"Missing required configuration section: {name}")
            continue
        defaults = section_cls()
        for f in dataclasses.fields(section_cls):
            path = f"{name}.{f.name}"
            if f.name not in section:
                errors.append(f"Missing required configuration: {path}")
                continue
            value = section[f.name]
            expected = type(getattr(defaults, f.name))
            if not _type_matches(value, expected):
                errors.append(f"Configuration {path} must be {expected.__name__}, got {type(value).__name__}")
                continue
            if f.name == "threshold" and not 0 <= value <= 1:
                errors.append(f"Configuration {path} must be between 0 and 1, got {value}")
            if f.name == "wcag_level":
                invalid = [level for level in value if level not in VALID_WCAG_LEVELS]
                if invalid:
                    errors.append(f"Configuration {path} contains invalid WCAG levels: {', '.join(map(str, invalid))}")
    return errors


def load_test_config(path: Optional[Path] = None) -> TestConfig:
    config_path = path or Path.cwd() / TEST_CONFIG_FILE
    data = TestConfig().to_dict()
    if config_path.exists():
        data = merge_config(data, load_config(config_path))
    errors = validate_config(data)
    if errors:
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(errors))
    return TestConfig.from_dict(data)


def module_config(config: TestConfig, name: str) -> dict:
    """Settings of one test module, layered over the global settings."""
    return {**dataclasses.asdict(config.global_), **dataclasses.asdict(config.section(name))}


def is_module_enabled(config: TestConfig, name: str) -> bool:
    try:
        return module_config(config, name).get("enabled") is True
    except ConfigurationError:
        return False
