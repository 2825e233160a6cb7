"""Command: decrypt an encrypted document."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from sealctl.commands._base import SealCommand
from sealctl.infrastructure.stores import STORES

if TYPE_CHECKING:
    from sealctl.commands._context import AppContext

_FORMAT = click.Choice(sorted(STORES), case_sensitive=False)


@click.command(
    cls=SealCommand,
    examples="""\
  sealctl decrypt secrets.yaml
  sealctl decrypt secrets.yaml --extract '["db"]["password"]'
  sealctl decrypt secrets003.yaml --layers
  sealctl decrypt secrets.json --output-type yaml --output plain.yaml
  sealctl --json decrypt secrets.yaml --keyring ~/.config/sealctl/keyring.toml""",
)
@click.argument("file")
@click.option(
    "--extract",
    default=None,
    metavar="EXPR",
    help='Output only the value at EXPR, e.g. \'["db"]["password"]\' or \'["hosts"][0]\'.',
)
@click.option(
    "--layers/--no-layers",
    default=None,
    help="Merge numbered predecessor files (secrets002.yaml, secrets001.yaml, ...).",
)
@click.option(
    "--ignore-mac/--verify-mac",
    default=None,
    help="Skip MAC verification (dangerous: tampering goes undetected).",
)
@click.option("--input-type", type=_FORMAT, default=None, help="Input format (default: by extension).")
@click.option(
    "--output-type", type=_FORMAT, default=None, help="Output format (default: input format)."
)
@click.option(
    "--keyring",
    "keyrings",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Keyring file to consult (repeatable, tried after configured keyrings).",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    default=None,
    help="Write plaintext to this file instead of stdout.",
)
@click.pass_obj
def decrypt(
    app: AppContext,
    file: str,
    extract: str | None,
    layers: bool | None,
    ignore_mac: bool | None,
    input_type: str | None,
    output_type: str | None,
    keyrings: tuple[Path, ...],
    output_path: Path | None,
) -> None:
    """Decrypt FILE and print the plaintext."""
    from sealctl.services.decrypt import DecryptService

    result = DecryptService(app.settings).decrypt_file(
        file,
        extract=extract,
        layers=layers,
        ignore_mac=ignore_mac,
        input_type=input_type,
        output_type=output_type,
        keyrings=list(keyrings),
    )
    app.emit(result, output_path=output_path)
