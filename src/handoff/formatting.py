"""Pretty-print support for handoff violations.

Uses rich library for formatted terminal output.

To avoid circular imports, this module does NOT import domain models
at module level. Functions access object attributes dynamically.
"""
from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def _ensure_utf8_stdout() -> None:
    """Reconfigure stdout to UTF-8 on Windows to avoid cp1252 encoding errors."""
    import sys
    if sys.platform == "win32" and hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8")
        except (OSError, ValueError):
            pass


def _make_console(file: Any = None) -> Console:
    """Create a Console, optionally writing to a file-like object."""
    if file is not None:
        return Console(file=file, force_terminal=True, width=100)
    _ensure_utf8_stdout()
    return Console()


def _truncate(text: str | None, limit: int = 80) -> str:
    if not text:
        return ""
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."


def pprint_violation(violation: Any, *, file: Any = None) -> None:
    """Pretty-print a HandoffViolation and its attempt ledger.

    Args:
        violation: A HandoffViolation instance.
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)
    ctx = violation.context

    header = Text()
    header.append("Violation ", style="bold")
    header.append(ctx.node_name, style="cyan")
    header.append(f" ({ctx.contract_type.value})", style="dim")
    console.print(Panel(header, border_style="red", expand=False))

    info = Text()
    for label, value in (
        ("field", ctx.field_path),
        ("expected", ctx.expected),
        ("received", f"{_truncate(ctx.received)} [{ctx.received_type}]"),
        ("suggestion", ctx.suggestion),
        ("attempts", str(violation.total_attempts)),
    ):
        info.append(f"  {label + ':':<12}", style="dim")
        info.append(f"{value}\n", style="bold")
    console.print(info)

    if not violation.history:
        return

    table = Table(show_header=True, header_style="bold", expand=False)
    table.add_column("#", justify="right")
    table.add_column("started", style="dim")
    table.add_column("ms", justify="right")
    table.add_column("kind")
    table.add_column("message")
    for record in violation.history:
        diag = record.diagnostic
        table.add_row(
            str(record.attempt),
            record.timestamp.strftime("%H:%M:%S.%f")[:-3],
            f"{record.duration_ms:.1f}",
            Text("ok", style="green") if diag is None else Text(diag.kind.value, style="red"),
            Text("" if diag is None else _truncate(diag.message)),
        )
    console.print(table)
