"""Rich/JSON output helpers.

Human mode renders status lines through :mod:`sealctl.output.renderers`;
``--json`` serializes the whole ServiceResult, with the plaintext decoded
as UTF-8 under ``data.output``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sealctl.services.result import ServiceResult


@dataclass(frozen=True)
class OutputSettings:
    """Output mode flags resolved from the global CLI options."""

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def _to_json(result: ServiceResult) -> str:
    output = result.data.get("output")
    if isinstance(output, bytes):
        data = {**result.data, "output": output.decode("utf-8", errors="replace")}
        result = result.model_copy(update={"data": data})
    return result.model_dump_json(indent=2)


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    Precedence: ``json_output`` > ``quiet`` > human (Rich).
    """
    settings = settings or OutputSettings()
    if settings.json_output:
        return _to_json(result)

    from sealctl.output.renderers import render_quiet, render_result

    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
