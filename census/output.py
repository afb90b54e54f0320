"""Output renderer: rich tables and JSON for identities and census summaries."""

import dataclasses
import json
import sys
from io import StringIO

from rich.console import Console
from rich.table import Table
from rich.text import Text

from census.aggregator import CensusSummary
from census.models import IdentityRecord

# How many entries to show in each distribution table.
_TOP_N = 10

# (title, column header, CensusSummary attribute) for each distribution table.
_SUMMARY_TABLES = [
    ("Clients", "Client", "clients"),
    ("Client versions", "Version", "versions"),
    ("Forks", "Fork", "forks"),
    ("Countries", "Country", "countries"),
    ("Operating systems", "OS", "operating_systems"),
    ("Transports", "Transport", "transports"),
]


def render_identity(
    raw: str,
    identity: IdentityRecord | None,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render a parsed version string.

    Args:
        raw: The version string that was parsed.
        identity: Parser result, ``None`` if unparseable.
        fmt: Output format, ``"table"`` or ``"json"``.
        file: Writable file object (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is unknown.
    """
    out = file or sys.stdout
    if fmt == "json":
        payload = dataclasses.asdict(identity) if identity else None
        json.dump({"raw": raw, "identity": payload}, out, indent=2)
        out.write("\n")  # type: ignore[union-attr]
        return
    if fmt != "table":
        raise ValueError(f"Unknown output format: {fmt!r}")

    console = Console(file=out, highlight=False, width=width)
    if identity is None:
        console.print(f"Unparseable version string: {raw}", markup=False)
        return

    table = Table(title=Text(raw))
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Name", Text(identity.name))
    table.add_row("Label", _fmt(identity.label))
    table.add_row("Version", Text(str(identity.version)))
    table.add_row("OS", _fmt(identity.os.os))
    table.add_row("Architecture", _fmt(identity.os.architecture))
    table.add_row("Language", _fmt(identity.language.name))
    table.add_row("Language version", _fmt(identity.language.version))
    console.print(table)


def render_summary(
    summary: CensusSummary,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render a census summary as rich tables or JSON.

    Raises:
        ValueError: If *fmt* is unknown.
    """
    out = file or sys.stdout
    if fmt == "json":
        json.dump(dataclasses.asdict(summary), out, indent=2)
        out.write("\n")  # type: ignore[union-attr]
        return
    if fmt != "table":
        raise ValueError(f"Unknown output format: {fmt!r}")

    console = Console(file=out, highlight=False, width=width)
    console.print(f"\n[bold]{summary.total} observations[/bold]\n")

    if not summary.total:
        console.print("  No observations recorded.")
        return

    for title, header, attr in _SUMMARY_TABLES:
        distribution = getattr(summary, attr)
        if not distribution:
            continue
        t = Table(title=title)
        t.add_column(header)
        t.add_column("Nodes", justify="right")
        t.add_column("Share", justify="right")
        for label, count in distribution[:_TOP_N]:
            t.add_row(Text(label), str(count), f"{count / summary.total:.1%}")
        console.print(t)


def _fmt(value: str) -> Text:
    """Plain cell text; empty strings become ``"—"``."""
    return Text(value or "—")


def summary_to_string(summary: CensusSummary, fmt: str, *, width: int = 200) -> str:
    """Render a summary to a string instead of stdout, useful for testing."""
    buf = StringIO()
    render_summary(summary, fmt, file=buf, width=width)
    return buf.getvalue()


def identity_to_string(
    raw: str, identity: IdentityRecord | None, fmt: str, *, width: int = 200
) -> str:
    """Render a parsed identity to a string instead of stdout."""
    buf = StringIO()
    render_identity(raw, identity, fmt, file=buf, width=width)
    return buf.getvalue()
