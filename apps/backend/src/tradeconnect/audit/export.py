from __future__ import annotations

import csv
import json
from io import StringIO
from typing import Any

from fastapi.responses import StreamingResponse

from tradeconnect.audit.enums import ExportFormat

__all__ = ["serialize_rows", "streaming_export"]


def _to_csv(rows: list[dict[str, Any]]) -> str:
    if not rows:
        return ""

    output = StringIO()
    writer = csv.DictWriter(
        output, fieldnames=list(rows[0].keys()), quoting=csv.QUOTE_ALL
    )
    writer.writeheader()
    writer.writerows(rows)
    return output.getvalue()


def serialize_rows(rows: list[dict[str, Any]], fmt: ExportFormat) -> str:
    if fmt is ExportFormat.CSV:
        return _to_csv(rows)
    return json.dumps(rows, indent=2, default=str)


def streaming_export(
    content: str, *, media_type: str, filename: str
) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
