from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .assets import copy_static_assets, minify_css, minify_js, process_sitemap
from .config import SiteConfig
from .errors import BuildError
from .favicon import process_favicons
from .pages import compile_pages
from .utils import reset_output_dir, utc_today

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    dist_dir: Path
    today: str
    files: list[Path] = field(default_factory=list)
    elapsed: float = 0.0


def clean_dist(config: SiteConfig) -> None:
    logger.info("Cleaning old '%s' directory...", config.dist_dir)
    reset_output_dir(config.dist_path, config.root)
    logger.info("Created new '%s' directory.", config.dist_dir)


def asset_tasks(config: SiteConfig, today: str) -> dict[str, Callable[[], object]]:
    tasks: dict[str, Callable[[], object]] = {"minify_js": lambda: minify_js(config)}
    for filename in config.css_files:
        tasks[f"minify_css:{filename}"] = lambda filename=filename: minify_css(config, filename)
    tasks["favicons"] = lambda: process_favicons(config)
    tasks["static_assets"] = lambda: copy_static_assets(config)
    tasks["sitemap"] = lambda: process_sitemap(config, today)
    return tasks


def _collect(value: object) -> list[Path]:
    if value is None:
        return []
    if isinstance(value, Path):
        return [value]
    return list(value)


def run_parallel(tasks: dict[str, Callable[[], object]], workers: int) -> list[Path]:
    """Run independent tasks concurrently; the first failure aborts the stage.

    Tasks that have not started yet are cancelled, running ones are left
    to finish before the failure is raised.
    """
    written: list[Path] = []
    executor = ThreadPoolExecutor(max_workers=workers)
    try:
        futures: dict[Future, str] = {executor.submit(task): name for name, task in tasks.items()}
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                raise BuildError(futures[future], exc) from exc
        for future in futures:
            written.extend(_collect(future.result()))
    finally:
        executor.shutdown(wait=True, cancel_futures=True)
    return written


def build_site(config: SiteConfig, today: Optional[str] = None) -> BuildResult:
    start = time.perf_counter()
    today = today or utc_today()
    result = BuildResult(dist_dir=config.dist_path, today=today)
    logger.info("--- Starting Build Process ---")

    clean_dist(config)

    tasks = asset_tasks(config, today)
    workers = config.build_workers
    if workers <= 0:
        workers = min(len(tasks), os.cpu_count() or 1)
    result.files.extend(run_parallel(tasks, max(1, min(workers, 32))))

    try:
        result.files.extend(compile_pages(config))
    except Exception as exc:
        raise BuildError("compile_pages", exc) from exc

    result.elapsed = time.perf_counter() - start
    logger.info("--- Build Complete! ---")
    logger.info("Production-ready files are in the '%s' directory.", config.dist_dir)
    return result
