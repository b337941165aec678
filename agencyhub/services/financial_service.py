"""Financial summary and invoice exports (Excel / CSV).

Summary figures exclude cancelled documents:

    quoted       Σ total of quotes
    invoiced     Σ total of invoices
    paid         Σ total of invoices with status paid
    outstanding  invoiced − paid
    overdue      Σ total of invoices that are overdue, or unpaid/sent past due_date
"""
import csv
import io
import logging
from datetime import date, datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from agencyhub.models.invoice import INVOICE_STATUSES, Invoice
from agencyhub.utils.helpers import parse_date

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
STATUS_FILLS = {
    "paid": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "overdue": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "unpaid": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)

INVOICE_COLUMNS = [
    ("Number", "invoice_number", 14),
    ("Type", "invoice_type", 10),
    ("Status", "status", 12),
    ("Client", "client_name", 28),
    ("Project", "project_name", 28),
    ("Issue Date", "issue_date", 13),
    ("Due Date", "due_date", 13),
    ("Paid Date", "paid_date", 13),
    ("Currency", "currency", 10),
    ("Subtotal", "subtotal", 12),
    ("Discount", "discount", 12),
    ("Tax", "tax_amount", 12),
    ("Total", "total", 14),
]

SUMMARY_LABELS = [
    ("Quoted", "quoted"),
    ("Invoiced", "invoiced"),
    ("Paid", "paid"),
    ("Outstanding", "outstanding"),
    ("Overdue", "overdue"),
]


# ── Query ────────────────────────────────────────────────────────────────


def filtered_invoices(filters: dict) -> list[Invoice]:
    query = Invoice.query
    if filters.get("type"):
        query = query.filter(Invoice.invoice_type == filters["type"])
    if filters.get("status"):
        query = query.filter(Invoice.status == filters["status"])
    if filters.get("project_id"):
        query = query.filter(Invoice.project_id == int(filters["project_id"]))
    if filters.get("company_id"):
        query = query.filter(Invoice.company_id == int(filters["company_id"]))
    date_from = parse_date(filters.get("date_from"))
    if date_from:
        query = query.filter(Invoice.issue_date >= date_from)
    date_to = parse_date(filters.get("date_to"))
    if date_to:
        query = query.filter(Invoice.issue_date <= date_to)
    return query.order_by(Invoice.issue_date.asc(), Invoice.id.asc()).all()


def is_overdue(invoice: Invoice, today: date | None = None) -> bool:
    if invoice.invoice_type != "invoice":
        return False
    if invoice.status == "overdue":
        return True
    today = today or date.today()
    return (
        invoice.status in ("unpaid", "sent")
        and invoice.due_date is not None
        and invoice.due_date < today
    )


def summarize(invoices: list[Invoice], today: date | None = None) -> dict:
    """Aggregate totals, status counts and a per-month breakdown."""
    totals = {key: 0.0 for _, key in SUMMARY_LABELS}
    by_status = {s: 0 for s in sorted(INVOICE_STATUSES)}
    months: dict[str, dict] = {}

    for inv in invoices:
        by_status[inv.status] = by_status.get(inv.status, 0) + 1
        if inv.status == "cancelled":
            continue
        amount = float(inv.total or 0)
        month_key = inv.issue_date.strftime("%Y-%m") if inv.issue_date else "undated"
        month = months.setdefault(month_key, {"month": month_key, "quoted": 0.0, "invoiced": 0.0, "paid": 0.0})

        if inv.invoice_type == "quote":
            totals["quoted"] += amount
            month["quoted"] += amount
            continue

        totals["invoiced"] += amount
        month["invoiced"] += amount
        if inv.status == "paid":
            totals["paid"] += amount
            month["paid"] += amount
        if is_overdue(inv, today):
            totals["overdue"] += amount

    totals["outstanding"] = totals["invoiced"] - totals["paid"]
    for month in months.values():
        for key in ("quoted", "invoiced", "paid"):
            month[key] = round(month[key], 2)

    return {
        **{k: round(v, 2) for k, v in totals.items()},
        "count": len(invoices),
        "by_status": by_status,
        "by_month": [months[k] for k in sorted(months)],
    }


def financial_summary(filters: dict) -> dict:
    return summarize(filtered_invoices(filters))


# ── Export ───────────────────────────────────────────────────────────────


def _row_values(inv: Invoice) -> list:
    data = inv.to_dict(include_items=False)
    return [data.get(key) for _, key, _ in INVOICE_COLUMNS]


def export_invoices_xlsx(filters: dict) -> io.BytesIO:
    """
    Generate a styled Excel workbook (Summary + Invoices sheets).
    Returns a BytesIO buffer ready for Flask send_file.
    """
    invoices = filtered_invoices(filters)
    summary = summarize(invoices)
    wb = Workbook()

    # ── Sheet 1: Summary ──────────────────────────────────────────────
    ws = wb.active
    ws.title = "Summary"
    ws.merge_cells("A1:D1")
    ws["A1"] = "Financial Summary"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    row = 4
    for col, header in enumerate(["Metric", "Amount"], 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
    for label, key in SUMMARY_LABELS:
        row += 1
        ws.cell(row=row, column=1, value=label).border = THIN_BORDER
        amount = ws.cell(row=row, column=2, value=summary[key])
        amount.number_format = "#,##0.00"
        amount.border = THIN_BORDER

    row += 2
    for col, header in enumerate(["Status", "Count"], 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
    for status, count in summary["by_status"].items():
        row += 1
        ws.cell(row=row, column=1, value=status).border = THIN_BORDER
        ws.cell(row=row, column=2, value=count).border = THIN_BORDER

    ws.column_dimensions["A"].width = 20
    ws.column_dimensions["B"].width = 16

    # ── Sheet 2: Invoices ─────────────────────────────────────────────
    ws2 = wb.create_sheet("Invoices")
    for col, (header, _, width) in enumerate(INVOICE_COLUMNS, 1):
        cell = ws2.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        ws2.column_dimensions[get_column_letter(col)].width = width

    status_col = [key for _, key, _ in INVOICE_COLUMNS].index("status") + 1
    for i, inv in enumerate(invoices, 2):
        for col, value in enumerate(_row_values(inv), 1):
            ws2.cell(row=i, column=col, value=value).border = THIN_BORDER
        status_cell = ws2.cell(row=i, column=status_col)
        fill = STATUS_FILLS.get("overdue" if is_overdue(inv) else inv.status)
        if fill:
            status_cell.fill = fill
            status_cell.font = WHITE_FONT
            status_cell.alignment = Alignment(horizontal="center")
    ws2.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported %d invoice rows to xlsx", len(invoices))
    return buf


def export_invoices_csv(filters: dict) -> str:
    """Return the invoice rows as CSV text (same columns as the Excel sheet)."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _, _ in INVOICE_COLUMNS])
    for inv in filtered_invoices(filters):
        writer.writerow(["" if v is None else v for v in _row_values(inv)])
    return output.getvalue()
