from __future__ import annotations

import csv
import io
from typing import Iterable, List

from .models import AuditRecord, ChatRow

CHAT_COLUMNS = ["Question", "Intent", "Confidence", "Entity", "Output", "Time"]
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def chat_row(record: AuditRecord) -> ChatRow:
    """Purpose: Flatten one audit record into an export row.
    Inputs/Outputs: Input is AuditRecord; output is ChatRow.
    Side Effects / State: None; pure function.
    Dependencies: AuditRecord request/response dict shapes.
    Failure Modes: None; missing parts use the <no intent>/<no entity>/<no dialog> markers.
    If Removed: /chats cannot build its table.
    Testing Notes: Records without intents/entities/output show the markers.
    """
    question = ""
    request_input = record.request.get("input")
    if isinstance(request_input, dict):
        question = str(request_input.get("text") or "")

    response = record.response or {}
    intent = "<no intent>"
    confidence: float = 0
    intents = response.get("intents") or []
    if intents:
        intent = str(intents[0].get("intent", ""))
        confidence = intents[0].get("confidence", 0)

    entity = "<no entity>"
    entities = response.get("entities") or []
    if entities:
        entity = f"{entities[0].get('entity', '')} : {entities[0].get('value', '')}"

    output_text = "<no dialog>"
    output = response.get("output") or {}
    lines = output.get("text") if isinstance(output, dict) else None
    if lines:
        output_text = " ".join(lines) if isinstance(lines, list) else str(lines)

    return ChatRow(
        question=question,
        intent=intent,
        confidence=confidence,
        entity=entity,
        output=output_text,
        time=record.time.astimezone().strftime(TIME_FORMAT),
    )


def chat_rows(records: Iterable[AuditRecord]) -> List[ChatRow]:
    """Export rows ordered oldest first."""
    return [chat_row(record) for record in sorted(records, key=lambda r: r.time)]


def render_csv(rows: Iterable[ChatRow]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CHAT_COLUMNS)
    for row in rows:
        writer.writerow([row.question, row.intent, row.confidence, row.entity, row.output, row.time])
    return buffer.getvalue()
