from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image
from scour import scour

from .config import SiteConfig
from .errors import ConfigurationError
from .utils import write_text

try:
    import cairosvg
except (ImportError, OSError):  # pragma: no cover - needs the cairo system library
    cairosvg = None

logger = logging.getLogger(__name__)


def optimize_svg(svg_text: str) -> str:
    options = scour.sanitizeOptions()
    options.remove_metadata = True
    options.strip_comments = True
    options.strip_xml_prolog = True
    options.enable_viewboxing = True
    options.indent_type = "none"
    options.newlines = False
    return scour.scourString(svg_text, options)


def rasterize(svg_bytes: bytes, size: int) -> Image.Image:
    if cairosvg is None:
        raise ConfigurationError("Favicon rasterization requires cairosvg and the cairo library.")
    png = cairosvg.svg2png(bytestring=svg_bytes, output_width=size, output_height=size)
    image = Image.open(io.BytesIO(png))
    image.load()
    return image.convert("RGBA")


def build_ico(svg_bytes: bytes, sizes: list[int]) -> bytes:
    images = [rasterize(svg_bytes, size) for size in sorted(set(sizes))]
    if not images:
        raise ConfigurationError("At least one favicon size is required.")
    largest = images[-1]
    buffer = io.BytesIO()
    largest.save(
        buffer,
        format="ICO",
        sizes=[image.size for image in images],
        append_images=images[:-1],
    )
    return buffer.getvalue()


def process_favicons(config: SiteConfig) -> Optional[list[Path]]:
    svg_path = config.src_path / config.favicon
    if not svg_path.exists():
        return None
    logger.info("Processing favicons...")
    svg_bytes = svg_path.read_bytes()
    svg_out = config.dist_path / config.favicon
    write_text(svg_out, optimize_svg(svg_bytes.decode("utf-8")))
    ico_out = config.dist_path / "favicon.ico"
    ico_out.write_bytes(build_ico(svg_bytes, config.favicon_sizes))
    logger.info("Favicons processed successfully.")
    return [svg_out, ico_out]
