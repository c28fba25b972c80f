"""PDF report of the currently filtered accounts."""
import io
import logging
from datetime import datetime
from typing import Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from query import STATUS_CANCELED, STATUS_PAID
from settings import settings
from utils import STATUS_PENDING, dashboard_stats, format_money

logger = logging.getLogger(__name__)

HEADER_BLUE = colors.HexColor("#2563eb")
STATUS_COLORS = {
    STATUS_PAID: colors.HexColor("#10b981"),
    STATUS_PENDING: colors.HexColor("#f59e0b"),
    STATUS_CANCELED: colors.HexColor("#94a3b8"),
}


class NumberedCanvas(canvas.Canvas):
    """Canvas that knows the page count when drawing each footer."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_pages = []

    def showPage(self):
        self._saved_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_pages)
        for state in self._saved_pages:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        width, _ = self._pagesize
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.HexColor("#94a3b8"))
        self.drawCentredString(
            width / 2, 20,
            f"Page {self._pageNumber} of {total} - generated by {settings.APP_NAME}",
        )


def build_accounts_report(
    accounts: Sequence,
    currency: str = settings.CURRENCY,
    issued_at: Optional[datetime] = None,
) -> bytes:
    issued_at = issued_at or datetime.now()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=36, leftMargin=36, topMargin=36, bottomMargin=40)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("title", parent=styles["Title"], alignment=0, fontSize=18)
    muted = ParagraphStyle("muted", parent=styles["Normal"], fontSize=9, textColor=colors.HexColor("#64748b"))
    normal = styles["Normal"]

    stats = dashboard_stats(accounts)

    story = [
        Paragraph(f"{settings.APP_NAME} - Accounts Report", title_style),
        Paragraph(f"Issued at {issued_at:%d/%m/%Y %H:%M}", muted),
        Paragraph(f"Records: {len(accounts)}", muted),
        Spacer(1, 10),
        Paragraph(
            f"Paid: {currency} {format_money(stats['total_paid'])} &nbsp;&nbsp; "
            f"Pending: {currency} {format_money(stats['total_pending'])} &nbsp;&nbsp; "
            f"<b>Total: {currency} {format_money(stats['total'])}</b>",
            normal,
        ),
        Spacer(1, 12),
    ]

    rows = [["Due date", "Supplier", "Title", "Company", "Amount", "Status"]]
    for acc in accounts:
        rows.append([
            acc.due_date.strftime("%d/%m/%Y"),
            acc.supplier,
            acc.title,
            acc.company,
            format_money(acc.amount),
            acc.status,
        ])

    table = Table(rows, colWidths=[62, 110, 130, 90, 70, 60], repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BLUE),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8fafc")]),
        ("ALIGN", (4, 1), (4, -1), "RIGHT"),
        ("FONTNAME", (4, 1), (4, -1), "Helvetica-Bold"),
        ("ALIGN", (5, 0), (5, -1), "CENTER"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#e2e8f0")),
    ]
    for row_index, acc in enumerate(accounts, start=1):
        color = STATUS_COLORS.get(acc.status)
        if color is not None:
            style.append(("TEXTCOLOR", (5, row_index), (5, row_index), color))
    table.setStyle(TableStyle(style))
    story.append(table)

    doc.build(story, canvasmaker=NumberedCanvas)
    logger.info("Built PDF report with %d accounts", len(accounts))
    return buffer.getvalue()
