from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

import minify_html
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from .utils import minified_name


def create_environment(src_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(src_dir)),
        autoescape=select_autoescape(["html", "xml"]),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )


def render_page(env: Environment, template_name: str, context: dict) -> str:
    return env.get_template(template_name).render(**context)


def rewrite_asset_links(html_text: str, filenames: Iterable[str]) -> str:
    """Point references to ``style.css`` etc. at their minified names.

    A name only matches when it is not the tail of a longer name, so
    ``style.css`` leaves ``cv-style.css`` alone.
    """
    for filename in filenames:
        pattern = re.compile(rf"(?<![\w.-]){re.escape(filename)}(?![\w-])")
        html_text = pattern.sub(minified_name(filename), html_text)
    return html_text


def minify_document(html_text: str) -> str:
    return minify_html.minify(
        html_text,
        minify_css=True,
        minify_js=True,
        keep_closing_tags=True,
        keep_html_and_head_opening_tags=True,
    )
