from __future__ import annotations

import logging
from pathlib import Path

from .config import SiteConfig
from .content import load_content
from .errors import ConfigurationError
from .render import create_environment, minify_document, render_page, rewrite_asset_links
from .utils import write_text

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".html"


def site_context(config: SiteConfig, content: dict[str, str]) -> dict:
    return {
        "site_description": config.site_description,
        "site_url": config.site_url,
        "content": content,
    }


def page_context(config: SiteConfig, site_data: dict, page_name: str) -> dict:
    page_data = {"title": "", "page_class": ""}
    page_data.update(config.pages.get(page_name, {}))
    return {**site_data, **page_data}


def compile_page(config: SiteConfig, env, site_data: dict, page_name: str) -> Path:
    template_name = f"{config.pages_dir}/{page_name}"
    html_text = render_page(env, template_name, page_context(config, site_data, page_name))
    html_text = rewrite_asset_links(html_text, [config.js_file, *config.css_files])
    out_path = config.dist_path / page_name
    write_text(out_path, minify_document(html_text))
    logger.info("Successfully compiled and minified %s", page_name)
    return out_path


def compile_pages(config: SiteConfig) -> list[Path]:
    pages_dir = config.src_path / config.pages_dir
    if not pages_dir.is_dir():
        raise ConfigurationError(f"Pages directory not found: {pages_dir}")
    logger.info("Compiling HTML from templates...")
    content = load_content(config.src_path / config.content_dir)
    env = create_environment(config.src_path)
    site_data = site_context(config, content)
    written = []
    for template in sorted(pages_dir.glob(f"*{TEMPLATE_SUFFIX}")):
        written.append(compile_page(config, env, site_data, template.name))
    return written
