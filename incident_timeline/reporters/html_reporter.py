"""
HTML Reporter - Renders the incident timeline into an HTML template.

The template is treated as an opaque string.  Seven placeholder tokens
are replaced verbatim:
  {{INCIDENT_TITLE}}     operator supplied title (not escaped)
  {{HOSTS_DATA}}         JSON array of host names
  {{PERIMETER_DEVICES}}  JSON array of perimeter device names
  {{TIMELINE_EVENTS}}    JSON array of event objects
  {{TOTAL_DURATION}}     whole minutes between first and last event
  {{START_TIME}}         first event, YYYY-MM-DD HH:MM:SS
  {{END_TIME}}           last event, YYYY-MM-DD HH:MM:SS
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from typing import Any, Dict, Iterable, Mapping

from ..builder import TimelineResult, fmt_dt
from ..loader import InputDecodeError, WriteError, require_file

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Cybersecurity Incident Timeline"

PLACEHOLDERS = (
    "{{INCIDENT_TITLE}}",
    "{{HOSTS_DATA}}",
    "{{PERIMETER_DEVICES}}",
    "{{TIMELINE_EVENTS}}",
    "{{TOTAL_DURATION}}",
    "{{START_TIME}}",
    "{{END_TIME}}",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def to_json_array(items: Iterable[Any]) -> str:
    # list() first so a single item can never collapse into a bare scalar
    text = json.dumps(list(items), indent=2, ensure_ascii=False)
    # keep "</script>" and entities inert inside the template's <script> block
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def substitute_placeholders(template: str, replacements: Mapping[str, str]) -> str:
    """
    Replace every occurrence of each token in a single pass.

    Substituted values are never rescanned, so a token inside event text
    or the title stays verbatim.  Unknown tokens stay as-is.
    """
    if not replacements:
        return template
    pattern = re.compile("|".join(re.escape(token) for token in replacements))
    return pattern.sub(lambda m: replacements[m.group(0)], template)


def build_replacements(result: TimelineResult, title: str = DEFAULT_TITLE) -> Dict[str, str]:
    return {
        "{{INCIDENT_TITLE}}":    title,
        "{{HOSTS_DATA}}":        to_json_array(result.hosts),
        "{{PERIMETER_DEVICES}}": to_json_array(result.perimeter_devices),
        "{{TIMELINE_EVENTS}}":   to_json_array(e.to_dict() for e in result.events),
        "{{TOTAL_DURATION}}":    str(result.stats.duration_minutes),
        "{{START_TIME}}":        fmt_dt(result.first_event_at),
        "{{END_TIME}}":          fmt_dt(result.last_event_at),
    }


def read_template(template_path: str) -> str:
    require_file(template_path, "Template")
    try:
        with open(template_path, encoding="utf-8", newline="") as fh:
            return fh.read()
    except UnicodeDecodeError as exc:
        raise InputDecodeError(
            template_path, f"not valid utf-8 text ({exc.reason} at byte {exc.start})"
        ) from exc


def write_atomic(filepath: str, text: str) -> None:
    """
    Write text to filepath via a temp file in the same directory.

    The previous file, if any, is only replaced once the new content is
    fully on disk.
    """
    target_dir = os.path.dirname(os.path.abspath(filepath))
    tmp_path = ""
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=target_dir, prefix=".timeline-", suffix=".tmp"
        )
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, filepath)
    except OSError as exc:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise WriteError(filepath, exc.strerror or str(exc)) from exc


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------

class HTMLReporter:

    def __init__(self, template_path: str, title: str = DEFAULT_TITLE) -> None:
        self.template_path = template_path
        self.title = title

    def render(self, result: TimelineResult) -> str:
        template = read_template(self.template_path)
        missing = [t for t in PLACEHOLDERS if t not in template]
        if missing:
            logger.warning("Template %s has no %s placeholder(s)",
                           self.template_path, ", ".join(missing))
        return substitute_placeholders(template, build_replacements(result, self.title))

    def write(self, result: TimelineResult, output_path: str) -> str:
        """
        Render the timeline and write it to output_path.

        Returns:
            Absolute path of the written file.
        """
        doc = self.render(result)
        write_atomic(output_path, doc)
        logger.debug("Wrote %d characters to %s", len(doc), output_path)
        return os.path.abspath(output_path)
