"""
Terminal Reporter - Rich-powered console summary of the generated timeline.

Renders:
  - Summary statistics panel (events, hosts, devices, duration, MITRE, lateral movement)
  - Optional table of the first N events in chronological order
"""
from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ..builder import TimelineResult, fmt_dt

_default_console = Console(highlight=False)

# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------

C_BAD     = "bold red"
C_WARN    = "yellow"
C_DIM     = "dim"
C_CYAN    = "bold cyan"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _kv_table(rows: List[tuple], label_style: str = "bold dim", value_style: str = "white") -> Table:
    """Build a compact key-value grid (no box, pure padding)."""
    tbl = Table.grid(padding=(0, 3))
    tbl.add_column(style=label_style, justify="right", min_width=22)
    tbl.add_column(style=value_style, overflow="fold")
    for label, value, *rest in rows:
        style = rest[0] if rest else value_style
        tbl.add_row(label, Text(str(value), style=style))
    return tbl


def _cell(value: str, limit: int = 60) -> Text:
    # Text, not markup: CSV fields may hold brackets such as "[/tmp/x]"
    value = value or "—"
    return Text(value if len(value) <= limit else value[: limit - 1] + "…")


# ---------------------------------------------------------------------------
# Main reporter
# ---------------------------------------------------------------------------

class TerminalReporter:

    def __init__(self, con: Optional[Console] = None) -> None:
        self.con = con or _default_console

    def render(self, result: TimelineResult, show_events: int = 0) -> None:
        self._render_summary(result)
        if show_events > 0:
            self._render_events(result, show_events)

    def _render_summary(self, result: TimelineResult) -> None:
        st = result.stats
        rows = [
            ("Total Events",           st.total_events,             C_CYAN),
            ("Unique Hosts",           st.unique_hosts,             "bold green"),
            ("Perimeter Devices",      st.unique_perimeter_devices, "white"),
            ("Duration (minutes)",     st.duration_minutes,         C_CYAN),
            ("MITRE Techniques",       st.unique_mitre_techniques,  C_WARN),
            ("Lateral Movement Events", st.lateral_movement_events,
             C_BAD if st.lateral_movement_events else "green"),
            ("First Event",            fmt_dt(result.first_event_at), C_DIM),
            ("Last Event",             fmt_dt(result.last_event_at),  C_DIM),
        ]
        self.con.print()
        self.con.print(Panel(
            _kv_table(rows),
            title="[bold white]Timeline Statistics[/bold white]",
            border_style="cyan",
            padding=(1, 2),
        ))

    def _render_events(self, result: TimelineResult, limit: int) -> None:
        self.con.print()
        self.con.print(Rule(f"[bold cyan]  Timeline (first {limit})  ", style="cyan"))

        tbl = Table(box=box.ROUNDED, show_lines=False, expand=False)
        tbl.add_column("#", style=C_DIM, justify="right")
        tbl.add_column("Timestamp", style="white", no_wrap=True)
        tbl.add_column("Source", style="green")
        tbl.add_column("Destination", style="green")
        tbl.add_column("Action", style="white")
        tbl.add_column("MITRE", style=C_WARN)
        tbl.add_column("Init", justify="center")

        for evt in result.events[:limit]:
            tbl.add_row(
                str(evt.id),
                fmt_dt(evt.occurred_at),
                _cell(evt.source_host, 24),
                _cell(evt.destination_host, 24),
                _cell(evt.action),
                _cell(evt.mitre_attack_id, 16),
                "[bold red]★[/bold red]" if evt.is_initial_access else "",
            )
        self.con.print(tbl)

        hidden = len(result.events) - limit
        if hidden > 0:
            self.con.print(f"  [dim]+{hidden} more event(s) in the HTML report[/dim]")
