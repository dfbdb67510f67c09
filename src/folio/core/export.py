"""Export: write rendered pages to the output tree"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from folio.core.errors import PermalinkCollision
from folio.core.models import BuildResult, RenderedPage


logger = logging.getLogger(__name__)


def check_unique_paths(pages: list[RenderedPage]) -> None:
    """Raise if two pages would be written to the same output path."""
    owners: dict[str, str] = {}
    for page in pages:
        first = owners.setdefault(page.output_path, page.source)
        if first != page.source:
            raise PermalinkCollision(page.output_path, first, page.source)


def write_page(page: RenderedPage, output_dir: Path) -> Path:
    """Write one page's bytes under output_dir and return the written path."""
    dest = output_dir / page.output_path
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(page.html)
    return dest


def write_site(result: BuildResult, output_dir: Path, workers: int = 0) -> list[Path]:
    """Write every page plus the index. Paths are checked for uniqueness before any write.

    Returns written paths in publish order, index last.
    """
    pages = result.all_pages()
    check_unique_paths(pages)
    output_dir.mkdir(parents=True, exist_ok=True)
    with ThreadPoolExecutor(max_workers=workers or os.cpu_count() or 1) as pool:
        written = list(pool.map(lambda p: write_page(p, output_dir), pages))
    logger.info("Wrote %d file(s) to %s", len(written), output_dir)
    return written
