"""
End-of-document summary and Excel report.

The summary is what the completion dialog shows: a performance tier, a
title and message, the formatted time, throughput and one line per incident.
The report is a spreadsheet of the lines, completed rows in green and
incomplete rows in red, for the supervisor's records.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
from openpyxl.styles import PatternFill

from code_normalizer import strip_folio_padding
from logger import get_logger
from models import IncidentType
from session_clock import EXCELLENT, GOOD_PACE, LIGHTNING, format_elapsed, rate_performance

logger = get_logger(__name__)

INCIDENT_LABELS = {
    IncidentType.MISSING: "Missing",
    IncidentType.EXTRA: "Extra",
    IncidentType.RETURN: "Return",
    IncidentType.CHANGED: "Changed",
}

COMPLETE_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
INCOMPLETE_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")


def get_current_timestamp() -> str:
    """Current local time in ISO 8601 with offset, e.g. 2026-10-19T14:15:00+02:00."""
    return datetime.now().astimezone().isoformat()


def _tier_text(tier: str, elapsed: str, line_count: int):
    if tier == LIGHTNING:
        return "Incredible speed!", f"You completed {line_count} lines in {elapsed}. True professional!"
    if tier == EXCELLENT:
        return "Excellent work!", f"Total time: {elapsed} for {line_count} lines. Very efficient!"
    if tier == GOOD_PACE:
        return "Good pace!", f"You finished the document in {elapsed}. Keep it up!"
    return "Document completed!", f"Total time: {elapsed}. Accuracy matters more than speed."


def incident_summary_lines(incidents) -> List[str]:
    """One line per incident, e.g. "Missing: A100 (3)"."""
    lines = []
    for incident in incidents:
        label = INCIDENT_LABELS.get(incident.incident_type, incident.incident_type.value)
        subject = incident.notes or incident.name or incident.code
        suffix = f" ({incident.quantity})" if incident.quantity else ""
        lines.append(f"{label}: {subject}{suffix}")
    return lines


def build_summary(engine) -> Dict[str, Any]:
    """
    Build the completion report for an engine.

    Returns:
        Dict with folio, tier, title, message, elapsed_seconds, elapsed,
        lines, units, items_per_hour, incidents, containers, generated_at
    """
    elapsed_seconds = engine.clock.elapsed_seconds
    line_count = len(engine.registry)
    tier = rate_performance(elapsed_seconds, line_count)
    elapsed = format_elapsed(elapsed_seconds)
    title, message = _tier_text(tier, elapsed, line_count)

    progress = engine.progress()
    units = progress['units_done']
    items_per_hour = round(units / (elapsed_seconds / 3600), 1) if elapsed_seconds > 0 else 0.0

    incidents = incident_summary_lines(engine.incidents.incidents)
    if incidents:
        message += "\n\nIncidents:\n" + "\n".join(incidents)

    return {
        'folio': engine.header.folio,
        'display_folio': strip_folio_padding(engine.header.folio),
        'workflow': engine.config.workflow,
        'tier': tier,
        'title': title,
        'message': message,
        'elapsed_seconds': round(elapsed_seconds, 1),
        'elapsed': elapsed,
        'lines': line_count,
        'lines_complete': progress['lines_complete'],
        'units': units,
        'items_per_hour': items_per_hour,
        'incidents': incidents,
        'containers': len(engine.containers.instances),
        'complete': engine.is_complete(),
        'generated_at': get_current_timestamp(),
    }


def save_summary(summary: Dict[str, Any], output_path) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, ensure_ascii=False)
    logger.info(f"Summary saved to {path}")
    return path


def export_report(engine, output_path) -> Path:
    """
    Write the lines of a document to an Excel sheet.

    Rows whose line is complete are filled green, the rest red.
    """
    rows = []
    complete_flags = []
    for index, line in enumerate(engine.registry):
        complete = engine.completion.is_line_complete(index)
        complete_flags.append(complete)
        rows.append({
            'Code': line.code,
            'Name': line.name,
            'Unit': line.unit or '',
            'Required': line.required,
            'Returned': line.returned,
            'Scanned': line.scanned,
            'Packed': line.packed,
            'Status': 'Complete' if complete else 'Incomplete',
            'Note': line.note,
        })
    df = pd.DataFrame(rows, columns=['Code', 'Name', 'Unit', 'Required', 'Returned',
                                     'Scanned', 'Packed', 'Status', 'Note'])

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine='openpyxl') as writer:
        df.to_excel(writer, index=False, sheet_name='Lines')
        worksheet = writer.sheets['Lines']
        for row_idx, complete in enumerate(complete_flags):
            fill = COMPLETE_FILL if complete else INCOMPLETE_FILL
            for cell in worksheet[row_idx + 2]:
                cell.fill = fill

    logger.info(f"Report for {engine.header.folio} saved to {path}")
    return path

