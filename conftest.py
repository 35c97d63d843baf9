import csv
from pathlib import Path

import pytest

from incident_timeline.loader import REQUIRED_COLUMNS


def make_row(timestamp: str, **fields) -> dict:
    row = {c: "" for c in REQUIRED_COLUMNS}
    row["Timestamp"] = timestamp
    row["IsInitialAccess"] = "FALSE"
    row.update(fields)
    return row


@pytest.fixture
def write_csv(tmp_path: Path):
    """Write rows to an incident CSV and return its path."""

    def _write(rows, name="incident.csv", columns=None, encoding="utf-8"):
        path = tmp_path / name
        fieldnames = list(columns or REQUIRED_COLUMNS)
        with open(path, "w", newline="", encoding=encoding) as fh:
            writer = csv.DictWriter(fh, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
        return path

    return _write


@pytest.fixture
def template_file(tmp_path: Path) -> Path:
    path = tmp_path / "template.html"
    path.write_text(
        "<title>{{INCIDENT_TITLE}}</title>\n"
        "<script>\n"
        "const HOSTS = {{HOSTS_DATA}};\n"
        "const DEVICES = {{PERIMETER_DEVICES}};\n"
        "const EVENTS = {{TIMELINE_EVENTS}};\n"
        "</script>\n"
        "<p>{{TOTAL_DURATION}}|{{START_TIME}}|{{END_TIME}}</p>\n"
        "<p>{{UNKNOWN_TOKEN}}</p>\n",
        encoding="utf-8",
    )
    return path
