from __future__ import annotations

import datetime as dt
import shutil
from pathlib import Path

from .errors import ConfigurationError


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def utc_today() -> str:
    return dt.datetime.now(dt.timezone.utc).date().isoformat()


def minified_name(filename: str) -> str:
    """style.css -> style.min.css"""
    stem, dot, suffix = filename.rpartition(".")
    if not dot:
        return f"{filename}.min"
    return f"{stem}.min.{suffix}"


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def reset_output_dir(output_dir: Path, project_root: Path) -> None:
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise ConfigurationError("Refusing to clean project root.")
    if not output_resolved.is_relative_to(root_resolved):
        raise ConfigurationError(f"Refusing to clean output directory outside project root: {output_dir}")
    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)
