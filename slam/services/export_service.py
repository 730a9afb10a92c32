"""Export service - styled xlsx workbook of SLA records.

Rows are filtered and sorted with the query engine, laid out in store
column order, and written with openpyxl.  Text that a spreadsheet would
evaluate (leading ``=``, ``+``, ``-``, ``@``) is stored as a plain string.
"""
import io
import json
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from slam.services.field_codec import BY_HEADER, EMAIL_DELIMITER, SLA_COLUMNS, TAG_DELIMITER
from slam.services.query_engine import apply_filters, apply_sorting

logger = logging.getLogger(__name__)

STATUS_FILLS = {
    "met": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "exceeded": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "at-risk": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "missed": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _cell_value(header, value):
    """Flatten a decoded record value into something a worksheet cell holds."""
    kind = BY_HEADER[header].kind
    if kind == "emails":
        return f"{EMAIL_DELIMITER} ".join(value or [])
    if kind == "tags":
        return f"{TAG_DELIMITER} ".join(value or [])
    if kind == "json":
        if isinstance(value, dict | list):
            return json.dumps(value, ensure_ascii=False) if value else ""
        return value or ""
    if value == "":
        return None
    return value


def export_slas_xlsx(records: list[dict], filters: dict | None = None, sort: dict | None = None) -> io.BytesIO:
    """
    Generate a styled workbook of SLA records in store column order.

    Args:
        records: Decoded SLA records (see ``sla_service.load_records``).
        filters/sort: Same semantics as the query action.

    Returns a BytesIO buffer ready for Flask send_file.
    """
    rows = apply_sorting(apply_filters(records, filters), sort)

    wb = Workbook()
    ws = wb.active
    ws.title = "SLA_MASTER"

    headers = list(SLA_COLUMNS)
    ws.append(headers)
    _apply_header_style(ws, 1, len(headers))
    ws.freeze_panes = "B2"

    status_col = headers.index("Status") + 1
    for record in rows:
        ws.append([_cell_value(h, record.get(BY_HEADER[h].name)) for h in headers])
        excel_row = ws.max_row
        for col in range(1, len(headers) + 1):
            cell = ws.cell(row=excel_row, column=col)
            cell.border = THIN_BORDER
            if isinstance(cell.value, str) and cell.value.startswith(FORMULA_PREFIXES):
                cell.data_type = "s"
        fill = STATUS_FILLS.get(record.get("status"))
        if fill:
            status_cell = ws.cell(row=excel_row, column=status_col)
            status_cell.fill = fill
            status_cell.font = WHITE_FONT

    _auto_width(ws)

    meta = wb.create_sheet("Export Info")
    meta.append(["Generated At", datetime.now(timezone.utc).isoformat()])
    meta.append(["Rows", len(rows)])
    meta.append(["Filters", json.dumps(filters or {}, default=str)])

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported %d SLA rows to xlsx", len(rows))
    return buf
