"""CLI command implementations"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from folio.config import Settings, load_config
from folio.core.errors import BuildError, BuildFailed
from folio.core.export import write_site
from folio.core.layouts import load_layouts
from folio.core.models import BuildResult
from folio.core.site import SiteBuilder


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling."""
    try:
        return load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _mode(best_effort: Optional[bool]) -> Optional[bool]:
    """--best-effort maps to fail_fast=False; unset leaves config in charge."""
    return None if best_effort is None else not best_effort


def _build(settings: Settings, content: Optional[str]) -> BuildResult:
    """Load layouts and run the pipeline, turning build errors into CLI failures."""
    try:
        layouts = load_layouts(Path(settings.layouts_dir), settings.max_layout_chain_depth)
        return SiteBuilder(settings, layouts, Path(content) if content else None).build()
    except BuildFailed as e:
        _fail(str(e))
    except BuildError as e:
        _fail("Build aborted", e)
    except FileNotFoundError as e:
        _fail(str(e))


def _echo_errors(result: BuildResult) -> None:
    for e in result.errors:
        typer.echo(f"  failed: {e}", err=True)


def build_cmd(
    content: Annotated[Optional[str], typer.Argument(help="Content directory (default: content_dir)")] = None,
    layouts: Annotated[Optional[str], typer.Option("--layouts-dir", help="Layouts directory")] = None,
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    best_effort: Annotated[Optional[bool], typer.Option("--best-effort/--fail-fast", help="Skip failing documents instead of aborting")] = None,
    tz: Annotated[Optional[str], typer.Option("--default-timezone", help="Timezone for documents that omit one")] = None,
    depth: Annotated[Optional[int], typer.Option("--max-layout-chain-depth", help="Max layout parent chain length")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", help="Worker threads; 0 = cpu count")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
    ):
    """Render every document and write the site."""
    _setup_logging(verbose)
    settings = _settings(overrides={
        "layouts_dir": layouts, "output_dir": out, "fail_fast": _mode(best_effort),
        "default_timezone": tz, "max_layout_chain_depth": depth, "workers": workers,
    })
    result = _build(settings, content)

    output_dir = Path(settings.output_dir)
    try:
        written = write_site(result, output_dir, settings.workers)
    except (BuildError, OSError) as e:
        _fail("Write failed", e)
    for page, path in zip(result.all_pages(), written):
        typer.echo(f"  {page.source} -> {path}")
    typer.echo(f"Built {len(result.pages)} page(s) to {output_dir}/")

    if result.errors:
        _echo_errors(result)
        _fail(f"{len(result.errors)} document(s) failed")


def check_cmd(
    content: Annotated[Optional[str], typer.Argument(help="Content directory (default: content_dir)")] = None,
    layouts: Annotated[Optional[str], typer.Option("--layouts-dir", help="Layouts directory")] = None,
    best_effort: Annotated[Optional[bool], typer.Option("--best-effort/--fail-fast", help="Report every failure instead of the first")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
    ):
    """Run the whole pipeline without writing anything."""
    _setup_logging(verbose)
    settings = _settings(overrides={"layouts_dir": layouts, "fail_fast": _mode(best_effort)})
    result = _build(settings, content)
    for page in result.pages:
        typer.echo(f"  ok: {page.source} -> {page.output_path}")
    if result.errors:
        _echo_errors(result)
        _fail(f"{len(result.errors)} document(s) failed")
    typer.echo(f"Checked {len(result.pages)} document(s)")


def layouts_cmd(
    layouts: Annotated[Optional[str], typer.Option("--layouts-dir", help="Layouts directory")] = None,
    ):
    """List every layout with its resolved parent chain."""
    settings = _settings(overrides={"layouts_dir": layouts})
    try:
        layout_set = load_layouts(Path(settings.layouts_dir), settings.max_layout_chain_depth)
    except (BuildFailed, FileNotFoundError) as e:
        _fail(str(e))
    if not len(layout_set):
        typer.echo("No layouts found.")
        raise typer.Exit(1)
    for name in layout_set.names:
        try:
            chain = " -> ".join(layout_set.resolve_chain(name))
        except BuildError as e:
            chain = f"error: {e}"
        typer.echo(f"{name}: {chain}")
