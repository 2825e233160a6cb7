"""Rich renderers for ServiceResult.

The plaintext itself is never rendered here; the CLI writes it raw to
stdout. These renderers produce the status lines that go to stderr:
errors, the verbose summary, and the telemetry span tree.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.text import Text

from sealctl.domain.paths import format_extract_path
from sealctl.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from sealctl.services.result import ServiceResult


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()
    if result.ok:
        _render_summary(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)
    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """One line for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"
    return f"OK: {result.op}"


def render_warnings(warnings: list[str]) -> str:
    """Render one styled ``WARNING:`` line per warning."""
    console = create_console()
    for warning in warnings:
        console.print(Text("WARNING:", style="seal.warning"), Text(warning))
    return get_output(console).rstrip("\n")


def _field(console: Console, key: str, value: Any) -> None:
    line = Text(f"  {key}: ", style="seal.key")
    line.append(str(value), style="seal.path" if key in ("path", "layers") else "")
    console.print(line)


def _render_summary(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    console.print(Text("OK", style="seal.ok"), Text(f"  {result.op}", style="seal.op"))
    data = result.data
    for key in ("path", "format"):
        if key in data:
            _field(console, key, data[key])
    if data.get("layers"):
        _field(console, "layers", ", ".join(data["layers"]))
    if data.get("extract"):
        _field(console, "extract", format_extract_path(data["extract"]))
    if "output" in data:
        _field(console, "bytes", len(data["output"]))
    if verbose:
        _render_meta(console, result)


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(
        Text("ERROR", style="seal.error"),
        Text(f"  {result.op}", style="seal.op"),
        Text(" — "),
        Text(msg),
    )
    if err is None:
        return
    console.print(Text(f"  code: {err.code}", style="seal.code"))
    if verbose and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(Text(f"    {k}: {v}"))


def _render_meta(console: Console, result: ServiceResult) -> None:
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_span(console, v, indent=4)
        else:
            console.print(Text(f"    {k}: {v}"))


def _render_span(console: Console, span: dict[str, Any], indent: int) -> None:
    """Render a span and its children with color-coded timing."""
    duration = span.get("duration_ms", 0.0)
    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"
    line = Text(" " * indent)
    line.append(f"{duration:>8.2f}ms", style=style)
    line.append(f"  {span.get('name', '?')}")
    annotations = span.get("annotations") or {}
    if annotations:
        line.append(f"  ({', '.join(f'{k}={v}' for k, v in annotations.items())})")
    console.print(line)
    for child in span.get("children", []):
        _render_span(console, child, indent + 4)
