"""CLI entrypoint: Typer app definition and command registration"""

import typer

from folio.cli.commands import build_cmd, check_cmd, layouts_cmd


app = typer.Typer(name="folio", no_args_is_help=True, help="Static blog publishing pipeline")

app.command(name="build")(build_cmd)
app.command(name="check")(check_cmd)
app.command(name="layouts")(layouts_cmd)
