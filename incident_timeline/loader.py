"""
Loader - Reads the incident CSV and packages raw rows into a TimelineBundle.

Key responsibility: check that both input files exist and that the CSV
header carries every column the builder relies on.  Rows stay as plain
column → string mappings here; the typed IncidentEvent record is built
later by the TimelineBuilder.
"""
from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS: List[str] = [
    "Timestamp",
    "SourceHost",
    "DestinationHost",
    "Action",
    "LateralMovementMethod",
    "ToolsUsed",
    "FilesInvolved",
    "Details",
    "MitreAttackID",
    "MitreAttackTechnique",
    "PerimeterDevice",
    "IsInitialAccess",
]


# utf-8-sig strips the BOM spreadsheet exports tend to add
DEFAULT_ENCODING = "utf-8-sig"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TimelineError(Exception):
    """Base class for every fatal error of a timeline run."""


class MissingInputFile(TimelineError):
    """Raised when the CSV or template path does not exist."""

    def __init__(self, path: str, label: str = "Input"):
        super().__init__(f"{label} file not found: {path}")
        self.path = path
        self.label = label


class SchemaError(TimelineError):
    """Raised when required CSV columns are absent."""

    def __init__(self, missing: Sequence[str]):
        super().__init__(f"Missing required columns: {', '.join(missing)}")
        self.missing = list(missing)


class ParseError(TimelineError):
    """Raised when a Timestamp value cannot be parsed as a date-time."""

    def __init__(self, row: int, value: str):
        super().__init__(f"Row {row}: unparsable Timestamp {value!r}")
        self.row = row
        self.value = value


class InputDecodeError(TimelineError):
    """Raised when an input file cannot be decoded or parsed as text/CSV."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path


class EmptyTimelineError(TimelineError):
    """Raised when the CSV holds a header but no events."""


class WriteError(TimelineError):
    """Raised when the output file cannot be written."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = path


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class TimelineBundle:
    """All raw data read from the incident CSV for one run."""

    csv_path: str
    fieldnames: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def require_file(path: str, label: str) -> None:
    if not path or not os.path.isfile(path):
        raise MissingInputFile(path, label)


def validate_columns(
    rows: Sequence[Mapping[str, str]],
    fieldnames: Optional[Sequence[str]] = None,
) -> None:
    """
    Confirm the required columns are present.

    Only the first row's keys are inspected; later rows are not checked
    individually.  When there are no rows the header field names are used
    instead.
    """
    if rows:
        present = set(rows[0].keys())
    else:
        present = set(fieldnames or ())
    missing = [c for c in REQUIRED_COLUMNS if c not in present]
    if missing:
        raise SchemaError(missing)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class CSVLoader:
    """
    Reads an incident CSV into a TimelineBundle.

    Usage:
        bundle = CSVLoader().load("incident.csv")
        bundle = CSVLoader(encoding="cp1252").load("excel_export.csv")
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING) -> None:
        self.encoding = encoding

    def load(self, csv_path: str) -> TimelineBundle:
        require_file(csv_path, "CSV")

        bundle = TimelineBundle(csv_path=csv_path)
        try:
            with open(csv_path, newline="", encoding=self.encoding) as fh:
                reader = csv.DictReader(fh)
                bundle.fieldnames = list(reader.fieldnames or [])
                for raw in reader:
                    bundle.rows.append(self._clean_row(raw))
        except UnicodeDecodeError as exc:
            raise InputDecodeError(
                csv_path, f"not valid {self.encoding} text ({exc.reason} at byte {exc.start})"
            ) from exc
        except csv.Error as exc:
            raise InputDecodeError(csv_path, f"malformed CSV ({exc})") from exc
        except LookupError as exc:
            raise InputDecodeError(csv_path, f"unknown encoding {self.encoding!r}") from exc

        logger.debug(
            "Read %d row(s) with %d column(s) from %s",
            bundle.row_count, len(bundle.fieldnames), csv_path,
        )
        validate_columns(bundle.rows, bundle.fieldnames)
        return bundle

    @staticmethod
    def _clean_row(raw: Dict[Optional[str], object]) -> Dict[str, str]:
        # DictReader yields None for short rows and a None key for overflow cells
        row: Dict[str, str] = {}
        for key, val in raw.items():
            if key is None:
                continue
            row[key] = val if isinstance(val, str) else ""
        return row
