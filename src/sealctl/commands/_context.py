"""AppContext — shared Click context for all commands.

Created once by the root CLI group and passed to subcommands via
``@click.pass_obj``. Owns logging setup and result emission: plaintext to
stdout (or a file), status and errors to stderr, and exit codes.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from sealctl.domain.codes import ExitCode
from sealctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from sealctl.config.settings import SealSettings
    from sealctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy."""

    def __init__(self, settings: SealSettings) -> None:
        self.settings = settings

        from sealctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from sealctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def output_settings(self) -> OutputSettings:
        return OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )

    def emit(self, result: ServiceResult, *, output_path: Path | None = None) -> None:
        """Write a ServiceResult with correct stream routing and exit status.

        * Failure: rendered error to stderr, exit with the error's exit code.
        * ``--json``: the serialized result to stdout.
        * Otherwise: the raw plaintext bytes to stdout or *output_path*.
          Warnings (unless ``--quiet``) and the ``--verbose`` summary go to
          stderr so piped output stays byte-exact.
        """
        settings = self.output_settings
        if not result.ok:
            click.echo(format_result(result, settings=settings), err=True)
            raise SystemExit(result.exit_code)

        if settings.json_output:
            click.echo(format_result(result, settings=settings))
            return

        payload: bytes = result.data.get("output", b"")
        if output_path is not None:
            try:
                output_path.write_bytes(payload)
            except OSError as exc:
                click.echo(f"ERROR: could not write {output_path}: {exc}", err=True)
                raise SystemExit(int(ExitCode.COULD_NOT_WRITE_OUTPUT_FILE)) from exc
        else:
            click.echo(payload, nl=False)

        if result.warnings and not settings.quiet:
            from sealctl.output.renderers import render_warnings

            click.echo(render_warnings(result.warnings), err=True)
        if settings.verbose:
            click.echo(format_result(result, settings=settings), err=True)
