"""
Builder - Transforms raw CSV rows into the timeline data products.

Produces:
  - The chronologically sorted, id-numbered IncidentEvent list
  - The alphabetical set of participating hosts (minus "External")
  - The first-seen ordered set of perimeter devices
  - Summary statistics for the terminal report
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .loader import EmptyTimelineError, ParseError, TimelineBundle

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EXTERNAL_HOST = "External"

# Tried in order after ISO 8601
TIMESTAMP_FORMATS: List[str] = [
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%d/%m/%Y %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%d %b %Y %H:%M:%S",
    "%b %d %Y %H:%M:%S",
    "%m/%d/%Y",
]

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class IncidentEvent:
    """One incident CSV row, typed and validated."""
    id: int
    timestamp: str                  # original string, kept for output
    occurred_at: datetime           # parsed value used for ordering
    source_host: str = ""
    destination_host: str = ""
    action: str = ""
    lateral_movement_method: str = ""
    tools_used: str = ""
    files_involved: str = ""
    details: str = ""               # escaped for embedding in a JS string
    mitre_attack_id: str = ""
    mitre_attack_technique: str = ""
    perimeter_device: str = ""
    is_initial_access: bool = False
    raw_details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Key layout consumed by the timeline template."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "sourceHost": self.source_host,
            "destinationHost": self.destination_host,
            "action": self.action,
            "lateralMovementMethod": self.lateral_movement_method,
            "toolsUsed": self.tools_used,
            "filesInvolved": self.files_involved,
            "details": self.details,
            "mitreAttackId": self.mitre_attack_id,
            "mitreAttackTechnique": self.mitre_attack_technique,
            "perimeterDevice": self.perimeter_device,
            "isInitialAccess": self.is_initial_access,
        }


@dataclass
class SummaryStats:
    total_events: int = 0
    unique_hosts: int = 0
    unique_perimeter_devices: int = 0
    duration_minutes: int = 0
    unique_mitre_techniques: int = 0
    lateral_movement_events: int = 0


@dataclass
class TimelineResult:
    bundle: TimelineBundle
    events: List[IncidentEvent] = field(default_factory=list)
    hosts: List[str] = field(default_factory=list)
    perimeter_devices: List[str] = field(default_factory=list)
    stats: SummaryStats = field(default_factory=SummaryStats)

    @property
    def first_event_at(self) -> Optional[datetime]:
        return self.events[0].occurred_at if self.events else None

    @property
    def last_event_at(self) -> Optional[datetime]:
        return self.events[-1].occurred_at if self.events else None


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class TimelineBuilder:
    """
    Builds a TimelineResult from a loaded TimelineBundle.

    Usage:
        result = TimelineBuilder().build(bundle)
    """

    def build(self, bundle: TimelineBundle) -> TimelineResult:
        if not bundle.rows:
            raise EmptyTimelineError(f"No events found in {bundle.csv_path}")

        result = TimelineResult(bundle=bundle)
        result.events = self._build_sorted_events(bundle.rows)
        result.hosts = collect_hosts(result.events)
        result.perimeter_devices = collect_perimeter_devices(result.events)
        result.stats = self._compute_stats(result)

        logger.debug(
            "Built timeline: %d event(s), %d host(s), %d perimeter device(s)",
            len(result.events), len(result.hosts), len(result.perimeter_devices),
        )
        return result

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _build_sorted_events(
        self, rows: Sequence[Mapping[str, str]]
    ) -> List[IncidentEvent]:
        # Parse everything first so a bad row aborts before any record exists
        parsed = [
            (parse_timestamp(row.get("Timestamp", ""), row=idx), row)
            for idx, row in enumerate(rows, start=1)
        ]
        # sorted() is stable: identical timestamps keep their CSV order
        parsed = sorted(parsed, key=lambda pair: pair[0])

        return [
            self._make_event(event_id, occurred_at, row)
            for event_id, (occurred_at, row) in enumerate(parsed)
        ]

    @staticmethod
    def _make_event(
        event_id: int, occurred_at: datetime, row: Mapping[str, str]
    ) -> IncidentEvent:
        details = row.get("Details", "")
        return IncidentEvent(
            id=event_id,
            timestamp=row.get("Timestamp", ""),
            occurred_at=occurred_at,
            source_host=row.get("SourceHost", ""),
            destination_host=row.get("DestinationHost", ""),
            action=row.get("Action", ""),
            lateral_movement_method=row.get("LateralMovementMethod", ""),
            tools_used=row.get("ToolsUsed", ""),
            files_involved=row.get("FilesInvolved", ""),
            details=escape_details(details),
            mitre_attack_id=row.get("MitreAttackID", ""),
            mitre_attack_technique=row.get("MitreAttackTechnique", ""),
            perimeter_device=row.get("PerimeterDevice", ""),
            is_initial_access=parse_flag(row.get("IsInitialAccess", "")),
            raw_details=details,
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @staticmethod
    def _compute_stats(result: TimelineResult) -> SummaryStats:
        events = result.events
        return SummaryStats(
            total_events=len(events),
            unique_hosts=len(result.hosts),
            unique_perimeter_devices=len(result.perimeter_devices),
            duration_minutes=duration_minutes(result.first_event_at, result.last_event_at),
            unique_mitre_techniques=len(
                {e.mitre_attack_id for e in events if e.mitre_attack_id}
            ),
            lateral_movement_events=sum(1 for e in events if e.lateral_movement_method),
        )


# ---------------------------------------------------------------------------
# Aggregators
# ---------------------------------------------------------------------------

def collect_hosts(events: Iterable[IncidentEvent]) -> List[str]:
    """Unique source/destination hosts, alphabetical, without "External"."""
    hosts = set()
    for evt in events:
        for name in (evt.source_host, evt.destination_host):
            if name and name != EXTERNAL_HOST:
                hosts.add(name)
    return sorted(hosts)


def collect_perimeter_devices(events: Iterable[IncidentEvent]) -> List[str]:
    """Unique perimeter devices in first-seen order."""
    seen: Dict[str, None] = {}
    for evt in events:
        if evt.perimeter_device:
            seen.setdefault(evt.perimeter_device, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------

def parse_timestamp(value: str, row: int = 0) -> datetime:
    """
    Parse a CSV Timestamp into a naive datetime.

    Offset-aware values are converted to UTC first so mixed inputs stay
    comparable.  Raises ParseError when no known format matches.
    """
    text = (value or "").strip()
    if not text:
        raise ParseError(row, value)

    dt: Optional[datetime] = None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in TIMESTAMP_FORMATS:
            try:
                dt = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        raise ParseError(row, value)

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_flag(value: str) -> bool:
    """True only for the literal TRUE, in any letter case; padded values are false."""
    return (value or "").upper() == "TRUE"


def escape_details(text: str) -> str:
    """Turn line breaks into a literal \\n and escape double quotes."""
    return (
        (text or "")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace('"', '\\"')
    )


def duration_minutes(first: Optional[datetime], last: Optional[datetime]) -> int:
    """Whole minutes between first and last, rounded up."""
    if first is None or last is None:
        return 0
    return math.ceil((last - first).total_seconds() / 60)


def fmt_dt(dt: Optional[datetime]) -> str:
    """Format a parsed datetime as YYYY-MM-DD HH:MM:SS."""
    if dt is None:
        return "—"
    return dt.strftime(DISPLAY_FORMAT)
