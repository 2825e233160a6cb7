"""Root CLI group for sealctl with global flags and command registration."""

from __future__ import annotations

import click

from sealctl import __version__
from sealctl.commands import register_commands
from sealctl.commands._base import SealGroup
from sealctl.commands._context import AppContext
from sealctl.config.settings import SealSettings


@click.group(
    cls=SealGroup,
    invoke_without_command=True,
    examples="""\
  sealctl decrypt secrets.yaml
  sealctl -v decrypt secrets003.yaml --layers
  sealctl -c ./sealctl.toml decrypt secrets.env""",
)
@click.version_option(version=__version__, prog_name="sealctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress warnings.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logs and a timing summary on stderr.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """sealctl — decrypt structured secret documents."""
    ctx.ensure_object(dict)
    settings = SealSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
