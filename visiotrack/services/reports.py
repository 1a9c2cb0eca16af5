"""Attendance export rendering: CSV and Excel through pandas, PDF through ReportLab."""
import io
from datetime import datetime

import pandas as pd

REPORT_COLUMNS = [
    "Date",
    "Student ID",
    "Department",
    "Course",
    "Status",
    "Arrival Time",
    "Method",
    "Remarks",
    "Attendance %",
]


def attendance_frame(rows: list[dict]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def render_csv(df: pd.DataFrame, title: str) -> bytes:
    stream = io.StringIO()
    df.to_csv(stream, index=False)
    return stream.getvalue().encode("utf-8")


def render_excel(df: pd.DataFrame, title: str) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Attendance")
    return output.getvalue()


def render_pdf(df: pd.DataFrame, title: str) -> bytes:
    """Landscape A4 table with a title line and generation time."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.lib.units import mm
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()

    data = [list(df.columns)] + df.fillna("").astype(str).values.tolist()
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f3a5f")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f2f4f7")]),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )

    doc.build(
        [
            Paragraph(title, styles["Title"]),
            Paragraph(f"Generated {datetime.utcnow().strftime('%d %b %Y %H:%M')} UTC", styles["Normal"]),
            Spacer(1, 6 * mm),
            table,
        ]
    )
    return buffer.getvalue()


# format -> (renderer, media type, file extension)
EXPORT_FORMATS = {
    "csv": (render_csv, "text/csv", "csv"),
    "excel": (render_excel, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "pdf": (render_pdf, "application/pdf", "pdf"),
}
