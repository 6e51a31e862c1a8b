from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Optional

import csscompressor
import rjsmin

from .config import SiteConfig
from .errors import ConfigurationError
from .utils import minified_name, utc_today, write_text

logger = logging.getLogger(__name__)

LASTMOD_RE = re.compile(r"<lastmod>.*?</lastmod>")


def source_map(minified_file: str, source_file: str, source_text: str) -> str:
    # rjsmin/csscompressor keep no position data, so the map only carries the source.
    return json.dumps(
        {
            "version": 3,
            "file": minified_file,
            "sources": [source_file],
            "sourcesContent": [source_text],
            "names": [],
            "mappings": "",
        },
        ensure_ascii=True,
    )


def minify_js(config: SiteConfig) -> Path:
    src_path = config.src_path / config.js_file
    if not src_path.exists():
        raise ConfigurationError(f"JavaScript source not found: {src_path}")
    logger.info("Minifying JavaScript...")
    dist_path = config.dist_path / minified_name(config.js_file)
    code = src_path.read_text(encoding="utf-8")
    minified = rjsmin.jsmin(code)
    map_name = f"{dist_path.name}.map"
    write_text(dist_path, f"{minified}\n//# sourceMappingURL={map_name}\n")
    write_text(dist_path.with_name(map_name), source_map(dist_path.name, config.js_file, code))
    logger.info("JavaScript minified successfully.")
    return dist_path


def minify_css(config: SiteConfig, filename: str) -> Optional[Path]:
    src_path = config.src_path / filename
    if not src_path.exists():
        return None
    logger.info("Minifying %s...", filename)
    dist_path = config.dist_path / minified_name(filename)
    code = src_path.read_text(encoding="utf-8")
    minified = csscompressor.compress(code)
    map_name = f"{dist_path.name}.map"
    write_text(dist_path, f"{minified}\n/*# sourceMappingURL={map_name} */\n")
    write_text(dist_path.with_name(map_name), source_map(dist_path.name, filename, code))
    logger.info("%s minified successfully.", filename)
    return dist_path


def copy_static_assets(config: SiteConfig) -> list[Path]:
    logger.info("Copying static assets...")
    copied = []
    for name in [*config.asset_dirs, *config.root_files]:
        src = config.src_path / name
        dest = config.dist_path / name
        if not src.exists():
            continue
        if src.is_dir():
            shutil.copytree(src, dest, dirs_exist_ok=True)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        copied.append(dest)
    logger.info("Static assets copied.")
    return copied


def refresh_lastmod(sitemap_text: str, today: str) -> str:
    return LASTMOD_RE.sub(f"<lastmod>{today}</lastmod>", sitemap_text)


def process_sitemap(config: SiteConfig, today: Optional[str] = None) -> Optional[Path]:
    src_path = config.src_path / config.sitemap
    if not src_path.exists():
        return None
    logger.info("Processing sitemap...")
    today = today or utc_today()
    dist_path = config.dist_path / config.sitemap
    write_text(dist_path, refresh_lastmod(src_path.read_text(encoding="utf-8"), today))
    logger.info("Sitemap updated with date: %s", today)
    return dist_path
