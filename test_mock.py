"""End-to-end test with a mock ransomware intrusion — no real incident data needed."""
import sys, os, json, tempfile
from pathlib import Path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from incident_timeline.loader import CSVLoader, REQUIRED_COLUMNS
from incident_timeline.builder import TimelineBuilder
from incident_timeline.reporters.csv_reporter import CSVReporter
from incident_timeline.reporters.html_reporter import HTMLReporter
from incident_timeline.reporters.terminal_reporter import TerminalReporter

TEMPLATE = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "templates", "incident_timeline_template.html"
)

# Deliberately out of order: the builder must sort them
mock_rows = [
    {
        "Timestamp": "2024-03-15 10:12:00", "SourceHost": "WS-JOHN", "DestinationHost": "DC-01",
        "Action": "Credential dumping", "LateralMovementMethod": "",
        "ToolsUsed": "mimikatz.exe", "FilesInvolved": "lsass.dmp",
        "Details": 'sekurlsa::logonpasswords\r\nprivilege::debug',
        "MitreAttackID": "T1003.001", "MitreAttackTechnique": "LSASS Memory",
        "PerimeterDevice": "", "IsInitialAccess": "FALSE",
    },
    {
        "Timestamp": "2024-03-15 10:00:00", "SourceHost": "External", "DestinationHost": "WS-JOHN",
        "Action": "Phishing attachment opened", "LateralMovementMethod": "",
        "ToolsUsed": "WINWORD.EXE", "FilesInvolved": "invoice.docm",
        "Details": 'User opened "invoice.docm" from mail\nMacro spawned powershell',
        "MitreAttackID": "T1566.001", "MitreAttackTechnique": "Spearphishing Attachment",
        "PerimeterDevice": "MAIL-GW", "IsInitialAccess": "TRUE",
    },
    {
        "Timestamp": "2024-03-15 10:25:00", "SourceHost": "DC-01", "DestinationHost": "FS-02",
        "Action": "Remote service execution", "LateralMovementMethod": "PsExec",
        "ToolsUsed": "psexec.exe", "FilesInvolved": "locker.exe",
        "Details": "psexec \\\\FS-02 -s locker.exe",
        "MitreAttackID": "T1569.002", "MitreAttackTechnique": "Service Execution",
        "PerimeterDevice": "", "IsInitialAccess": "FALSE",
    },
    {
        "Timestamp": "2024-03-15 10:31:20", "SourceHost": "FS-02", "DestinationHost": "External",
        "Action": "Exfiltration", "LateralMovementMethod": "",
        "ToolsUsed": "rclone.exe", "FilesInvolved": "finance.zip",
        "Details": "Upload to 185.234.219.47:443",
        "MitreAttackID": "T1567.002", "MitreAttackTechnique": "Exfiltration to Cloud Storage",
        "PerimeterDevice": "FW-EDGE", "IsInitialAccess": "FALSE",
    },
    {
        "Timestamp": "2024-03-15 10:05:00", "SourceHost": "WS-JOHN", "DestinationHost": "External",
        "Action": "C2 beacon", "LateralMovementMethod": "",
        "ToolsUsed": "powershell.exe", "FilesInvolved": "",
        "Details": "HTTPS beacon every 60s",
        "MitreAttackID": "T1071.001", "MitreAttackTechnique": "Web Protocols",
        "PerimeterDevice": "FW-EDGE", "IsInitialAccess": "FALSE",
    },
]


def _write_mock_csv(path):
    import csv
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=REQUIRED_COLUMNS)
        writer.writeheader()
        writer.writerows(mock_rows)


def test_mock_incident_end_to_end(tmp_path: Path):
    out = str(tmp_path)
    csv_in = os.path.join(out, "mock_incident.csv")
    _write_mock_csv(csv_in)

    bundle = CSVLoader().load(csv_in)
    result = TimelineBuilder().build(bundle)
    print("Timeline complete:")
    print(f"  Total events:       {result.stats.total_events}")
    print(f"  Hosts:              {result.hosts}")
    print(f"  Perimeter devices:  {result.perimeter_devices}")
    print(f"  Duration (min):     {result.stats.duration_minutes}")
    print(f"  MITRE techniques:   {result.stats.unique_mitre_techniques}")
    print(f"  Lateral movement:   {result.stats.lateral_movement_events}")

    assert [e.action for e in result.events][:2] == ["Phishing attachment opened", "C2 beacon"]
    assert result.hosts == ["DC-01", "FS-02", "WS-JOHN"]
    assert result.perimeter_devices == ["MAIL-GW", "FW-EDGE"]
    assert result.stats.duration_minutes == 32
    assert result.stats.unique_mitre_techniques == 5
    assert result.stats.lateral_movement_events == 1

    TerminalReporter().render(result, show_events=3)

    html_path = HTMLReporter(TEMPLATE, title="Mock Ransomware Intrusion").write(
        result, os.path.join(out, "timeline.html")
    )
    print(f"\nHTML: {os.path.basename(html_path)} ({os.path.getsize(html_path):,} bytes)")
    with open(html_path, encoding="utf-8") as fh:
        doc = fh.read()
    assert "{{" not in doc
    assert "<title>Mock Ransomware Intrusion</title>" in doc
    assert json.dumps(result.events[0].details) in doc

    csv_path = CSVReporter().write(result, os.path.join(out, "timeline.csv"))
    print(f"CSV:  {os.path.basename(csv_path)} ({os.path.getsize(csv_path):,} bytes)")

    print(f"\nReports written to: {out}")


if __name__ == "__main__":
    test_mock_incident_end_to_end(Path(tempfile.mkdtemp(prefix="timeline_mock_")))
    print("\nAll tests PASSED!")
