from __future__ import annotations

import re
from pathlib import Path

import markdown

LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "codehilite"]
MARKDOWN_EXTENSION_CONFIGS = {"codehilite": {"guess_lang": False, "css_class": "highlight"}}


def strip_front_matter(text: str) -> str:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        return clean_text
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            return "\n".join(lines[i + 1 :])
    return clean_text


def normalize_list_spacing(text: str) -> str:
    """Insert the blank line Python-Markdown needs before a top-level list."""
    out: list[str] = []
    fence_marker = ""
    for line in text.splitlines():
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not fence_marker:
                fence_marker = marker
            elif marker == fence_marker:
                fence_marker = ""
        elif not fence_marker:
            list_match = LIST_MARKER_RE.match(line)
            if list_match and not list_match.group("indent"):
                if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                    out.append("")
        out.append(line)
    return "\n".join(out)


def render_markdown(text: str) -> str:
    md = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS, extension_configs=MARKDOWN_EXTENSION_CONFIGS)
    return md.convert(normalize_list_spacing(strip_front_matter(text)))


def load_content(content_dir: Path) -> dict[str, str]:
    """Convert every ``*.md`` file in ``content_dir`` to HTML, keyed by file stem."""
    if not content_dir.is_dir():
        return {}
    content = {}
    for md_file in sorted(content_dir.glob("*.md")):
        content[md_file.stem] = render_markdown(md_file.read_text(encoding="utf-8"))
    return content
