"""
CSV Reporter - Exports the sorted, id-numbered timeline to a flat CSV file.

Columns are the canonical incident columns prefixed with the event Id, so
the export can be diffed against the input or re-imported into a SIEM or
spreadsheet.  Details are written unescaped.
"""
from __future__ import annotations

import csv
import os

from ..builder import TimelineResult
from ..loader import REQUIRED_COLUMNS, WriteError


class CSVReporter:

    def write(self, result: TimelineResult, filepath: str) -> str:
        """
        Write all events, in timeline order, to filepath.

        Returns:
            Absolute path of the written file.
        """
        fieldnames = ["Id"] + REQUIRED_COLUMNS
        try:
            with open(filepath, "w", newline="", encoding="utf-8-sig") as fh:
                writer = csv.DictWriter(fh, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
                writer.writeheader()
                for evt in result.events:
                    writer.writerow({
                        "Id":                    evt.id,
                        "Timestamp":             evt.timestamp,
                        "SourceHost":            evt.source_host,
                        "DestinationHost":       evt.destination_host,
                        "Action":                evt.action,
                        "LateralMovementMethod": evt.lateral_movement_method,
                        "ToolsUsed":             evt.tools_used,
                        "FilesInvolved":         evt.files_involved,
                        "Details":               evt.raw_details,
                        "MitreAttackID":         evt.mitre_attack_id,
                        "MitreAttackTechnique":  evt.mitre_attack_technique,
                        "PerimeterDevice":       evt.perimeter_device,
                        "IsInitialAccess":       "TRUE" if evt.is_initial_access else "FALSE",
                    })
        except OSError as exc:
            raise WriteError(filepath, exc.strerror or str(exc)) from exc

        return os.path.abspath(filepath)
