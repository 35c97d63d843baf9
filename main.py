#!/usr/bin/env python3
"""
Incident Timeline Builder — animated HTML timeline from an incident CSV
======================================================================

Usage:
    python main.py --csv incident.csv --template templates/incident_timeline_template.html

    # Template path via environment variable
    export INCIDENT_TIMELINE_TEMPLATE="templates/incident_timeline_template.html"
    python main.py --csv incident.csv --title "ACME Breach 2024" -o acme.html

Required CSV columns:
    Timestamp, SourceHost, DestinationHost, Action, LateralMovementMethod,
    ToolsUsed, FilesInvolved, Details, MitreAttackID, MitreAttackTechnique,
    PerimeterDevice, IsInitialAccess

Version: 1.0.0
"""
from __future__ import annotations

import argparse
import io
import logging
import os
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

# Force UTF-8 on Windows console to support Unicode symbols
if sys.platform == "win32":
    try:
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")
    except AttributeError:
        pass

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.rule import Rule

# Bootstrap: ensure the package is importable even when run from another cwd
sys.path.insert(0, str(Path(__file__).parent))

from incident_timeline.loader import DEFAULT_ENCODING, CSVLoader, TimelineError, require_file
from incident_timeline.builder import TimelineBuilder
from incident_timeline.reporters.html_reporter import DEFAULT_TITLE, HTMLReporter
from incident_timeline.reporters.csv_reporter import CSVReporter
from incident_timeline.reporters.terminal_reporter import TerminalReporter

VERSION = "1.0.0"
DEFAULT_OUTPUT = "incident_timeline.html"
TEMPLATE_ENV_VAR = "INCIDENT_TIMELINE_TEMPLATE"

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("incident_timeline")

console = Console(highlight=False)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="incident-timeline",
        description="Incident Timeline Builder — render an incident CSV into an animated HTML timeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    required = p.add_argument_group("required arguments")
    required.add_argument(
        "-c", "--csv",
        required=True,
        metavar="CSV_PATH",
        help="Incident event CSV to ingest",
    )
    required.add_argument(
        "-t", "--template",
        metavar="TEMPLATE_PATH",
        help=f"HTML template with {{{{TOKEN}}}} placeholders (default: ${TEMPLATE_ENV_VAR})",
    )

    inputs = p.add_argument_group("input options")
    inputs.add_argument(
        "-e", "--encoding",
        default=DEFAULT_ENCODING,
        help=f"CSV text encoding, e.g. cp1252 for Excel exports (default: {DEFAULT_ENCODING})",
    )

    output = p.add_argument_group("output options")
    output.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        metavar="FILE",
        help=f"Output HTML file (default: {DEFAULT_OUTPUT})",
    )
    output.add_argument(
        "-T", "--title",
        default=DEFAULT_TITLE,
        help=f'Incident title shown in the page (default: "{DEFAULT_TITLE}")',
    )
    output.add_argument(
        "--export-csv",
        metavar="FILE",
        help="Also write the sorted, id-numbered timeline as CSV",
    )
    output.add_argument(
        "--show-events",
        type=int,
        default=0,
        metavar="N",
        help="Print the first N events in the terminal",
    )
    output.add_argument("--open",      action="store_true", help="Open the result in the browser without asking")
    output.add_argument("--no-prompt", action="store_true", help="Never ask to open the browser")
    output.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging",
    )
    output.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    return p


def _resolve_template(arg: Optional[str]) -> str:
    """
    Resolve the template path using this priority chain:
      1. --template argument
      2. INCIDENT_TIMELINE_TEMPLATE environment variable
    """
    if arg:
        return arg
    env_path = os.environ.get(TEMPLATE_ENV_VAR, "").strip()
    if env_path:
        console.print(f"[dim]  Template loaded from [bold]{TEMPLATE_ENV_VAR}[/bold] environment variable.[/dim]")
    return env_path


# ---------------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------------

def _step(num: int, total: int, label: str) -> None:
    console.print(f"\n[bold cyan]  [{num}/{total}]  {label}[/bold cyan]")


def _ok(msg: str) -> None:
    console.print(f"        [bold green]✓[/bold green]  {msg}")


def _err(msg: str) -> None:
    console.print(f"        [bold red]✗[/bold red]  {msg}")


def _offer_browser(path: str, force: bool, never: bool) -> None:
    if force:
        webbrowser.open(Path(path).resolve().as_uri())
        return
    if never or not sys.stdin.isatty():
        return
    if Confirm.ask("\n  Open in browser now?", console=console, default=False):
        webbrowser.open(Path(path).resolve().as_uri())


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    template_path = _resolve_template(args.template)

    console.print()
    console.print(Rule(style="purple"))
    console.print(
        f"  [bold cyan]INCIDENT TIMELINE BUILDER[/bold cyan]  [dim]v{VERSION}[/dim]",
        justify="center",
    )
    console.print(Rule(style="purple"))

    try:
        # --------------------------------------------------------------
        # Step 1 — Inputs
        # --------------------------------------------------------------
        _step(1, 4, "Checking input files")
        require_file(args.csv, "CSV")
        if not template_path:
            _err(f"No template given. Use --template or set {TEMPLATE_ENV_VAR}.")
            return 1
        require_file(template_path, "Template")
        _ok(f"CSV  [white]{escape(args.csv)}[/white]")
        _ok(f"Template  [white]{escape(template_path)}[/white]")

        # --------------------------------------------------------------
        # Step 2 — Load & validate
        # --------------------------------------------------------------
        _step(2, 4, "Loading and validating CSV")
        bundle = CSVLoader(encoding=args.encoding).load(args.csv)
        _ok(f"{bundle.row_count} row(s)  ·  all required columns present")

        # --------------------------------------------------------------
        # Step 3 — Build timeline
        # --------------------------------------------------------------
        _step(3, 4, "Building timeline")
        result = TimelineBuilder().build(bundle)
        _ok(
            f"Events: [cyan]{len(result.events)}[/cyan]  ·  "
            f"Hosts: [cyan]{len(result.hosts)}[/cyan]  ·  "
            f"Perimeter devices: [cyan]{len(result.perimeter_devices)}[/cyan]"
        )

        # --------------------------------------------------------------
        # Step 4 — Output
        # --------------------------------------------------------------
        _step(4, 4, "Writing output")
        out_path = HTMLReporter(template_path, title=args.title).write(result, args.output)
        size_kb = os.path.getsize(out_path) / 1024
        _ok(f"HTML  →  [white]{escape(out_path)}[/white]  [dim]({size_kb:.0f} KB)[/dim]")

        if args.export_csv:
            csv_path = CSVReporter().write(result, args.export_csv)
            _ok(f"CSV   →  [white]{escape(csv_path)}[/white]")

    except TimelineError as exc:
        logger.debug("Run aborted", exc_info=True)
        _err(escape(str(exc)))
        return 1

    TerminalReporter(console).render(result, show_events=args.show_events)
    console.print()
    console.print(Rule(style="green"))

    _offer_browser(out_path, force=args.open, never=args.no_prompt)
    return 0


if __name__ == "__main__":
    sys.exit(main())
