"""Invoice & quote service layer.

Transaction policy: methods use flush(), never commit().
Errors are raised as core exceptions (NotFoundError / ValidationError); the
invoice blueprint maps them to HTTP codes.

Operations:
- Invoice/quote create with issuer snapshot from the user's InvoiceSettings
- Update with wholesale item replacement + totals recompute
- Free-form status change (``paid`` stamps paid_date)
- Quote → invoice conversion
- Per-user InvoiceSettings upsert
"""
import logging
import time
from datetime import date

from flask import current_app

from agencyhub.core.exceptions import NotFoundError, ValidationError
from agencyhub.models import db
from agencyhub.models.company import Company
from agencyhub.models.invoice import (
    DEFAULT_PREFIXES, INVOICE_STATUSES, INVOICE_TYPES,
    Invoice, InvoiceItem, InvoiceSettings,
)
from agencyhub.models.project import Project
from agencyhub.utils.helpers import parse_date, parse_float

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = (
    "company_name", "company_logo_url", "company_address", "company_phone",
    "company_email", "company_trn", "bank_name", "bank_account_name",
    "bank_account_number", "bank_iban", "bank_swift", "invoice_prefix",
    "quote_prefix", "currency", "default_terms",
)
_CLIENT_FIELDS = ("client_name", "client_email", "client_phone", "client_address")


# ── Settings ─────────────────────────────────────────────────────────────


def get_settings(user_id):
    """Return the user's InvoiceSettings, or an unsaved default instance."""
    settings = None
    if user_id is not None:
        settings = InvoiceSettings.query.filter_by(user_id=user_id).first()
    if settings is None:
        settings = InvoiceSettings(
            user_id=user_id,
            invoice_prefix=DEFAULT_PREFIXES["invoice"],
            quote_prefix=DEFAULT_PREFIXES["quote"],
            currency=current_app.config.get("DEFAULT_CURRENCY", "AED"),
            tax_rate=current_app.config.get("DEFAULT_TAX_RATE", 5.0),
        )
    return settings


def upsert_settings(user_id, data):
    if user_id is None:
        raise ValidationError("An acting user (X-User-Id) is required to save invoice settings")
    settings = InvoiceSettings.query.filter_by(user_id=user_id).first()
    if settings is None:
        settings = get_settings(None)
        settings.user_id = user_id
        db.session.add(settings)

    for field in _SETTINGS_FIELDS:
        if field in data:
            value = data[field]
            setattr(settings, field, value.strip() if isinstance(value, str) else value)
    if "tax_rate" in data:
        settings.tax_rate = parse_float(data["tax_rate"], settings.tax_rate or 0.0)
    if not settings.invoice_prefix:
        settings.invoice_prefix = DEFAULT_PREFIXES["invoice"]
    if not settings.quote_prefix:
        settings.quote_prefix = DEFAULT_PREFIXES["quote"]
    db.session.flush()
    return settings


# ── Numbering ────────────────────────────────────────────────────────────


def next_invoice_number(prefix):
    """``{prefix}-{last 6 digits of the ms clock}``, bumped until unused."""
    seq = int(time.time() * 1000) % 1_000_000
    while True:
        candidate = f"{prefix}-{seq:06d}"
        if not Invoice.query.filter_by(invoice_number=candidate).first():
            return candidate
        seq = (seq + 1) % 1_000_000


# ── Helpers ──────────────────────────────────────────────────────────────


def _build_items(raw_items):
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    items = []
    for entry in raw_items:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        description = str(entry.get("description") or "").strip()
        if not description:
            continue
        quantity = parse_float(entry.get("quantity"), 1.0)
        unit_price = parse_float(entry.get("unit_price"), 0.0)
        items.append(InvoiceItem(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=round(quantity * unit_price, 2),
            sort_order=len(items),
        ))
    return items


def _snapshot_issuer(invoice, settings):
    invoice.issuer_company_name = settings.company_name
    invoice.issuer_logo_url = settings.company_logo_url
    invoice.issuer_address = settings.company_address
    invoice.issuer_phone = settings.company_phone
    invoice.issuer_email = settings.company_email
    invoice.issuer_trn = settings.company_trn
    invoice.bank_name = settings.bank_name
    invoice.bank_account_name = settings.bank_account_name
    invoice.bank_account_number = settings.bank_account_number
    invoice.bank_iban = settings.bank_iban
    invoice.bank_swift = settings.bank_swift


def _check_status(status):
    if status not in INVOICE_STATUSES:
        raise ValidationError(
            f"Invalid status: {status}",
            details={"allowed": sorted(INVOICE_STATUSES)},
        )


# ── CRUD ─────────────────────────────────────────────────────────────────


def get_invoice(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError(resource="Invoice", resource_id=invoice_id)
    return invoice


def list_invoices(filters):
    query = Invoice.query
    if filters.get("type"):
        query = query.filter(Invoice.invoice_type == filters["type"])
    if filters.get("status"):
        query = query.filter(Invoice.status == filters["status"])
    if filters.get("project_id"):
        query = query.filter(Invoice.project_id == int(filters["project_id"]))
    if filters.get("company_id"):
        query = query.filter(Invoice.company_id == int(filters["company_id"]))
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def create_invoice(data, *, user_id=None):
    """Create an invoice or quote. Returns the flushed Invoice."""
    invoice_type = data.get("invoice_type", "invoice")
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"Invalid invoice_type: {invoice_type}")
    client_name = str(data.get("client_name") or "").strip()
    if not client_name:
        raise ValidationError("client_name is required")
    status = data.get("status", "draft")
    _check_status(status)

    project_id = data.get("project_id")
    company_id = data.get("company_id")
    if project_id is not None:
        project = db.session.get(Project, project_id)
        if not project:
            raise NotFoundError(resource="Project", resource_id=project_id)
        company_id = company_id or project.company_id
    if company_id is not None and not db.session.get(Company, company_id):
        raise NotFoundError(resource="Company", resource_id=company_id)

    settings = get_settings(user_id)
    prefix = settings.quote_prefix if invoice_type == "quote" else settings.invoice_prefix

    invoice = Invoice(
        project_id=project_id,
        company_id=company_id,
        invoice_number=next_invoice_number(prefix or DEFAULT_PREFIXES[invoice_type]),
        invoice_type=invoice_type,
        status=status,
        client_name=client_name,
        client_email=data.get("client_email"),
        client_phone=data.get("client_phone"),
        client_address=data.get("client_address"),
        issue_date=parse_date(data.get("issue_date")) or date.today(),
        due_date=parse_date(data.get("due_date")),
        currency=data.get("currency") or settings.currency,
        discount=parse_float(data.get("discount"), 0.0),
        tax_rate=parse_float(data.get("tax_rate"), settings.tax_rate),
        notes=data.get("notes"),
        terms=data.get("terms") or settings.default_terms,
        created_by_user_id=user_id,
    )
    _snapshot_issuer(invoice, settings)
    invoice.items = _build_items(data.get("items"))
    invoice.recalculate()
    if status == "paid":
        invoice.paid_date = date.today()

    db.session.add(invoice)
    db.session.flush()
    logger.info("Created %s %s total=%.2f", invoice_type, invoice.invoice_number, invoice.total,
                extra={"project_id": project_id})
    return invoice


def update_invoice(invoice, data):
    """Update fields; a provided ``items`` list replaces the items wholesale."""
    if "client_name" in data and not str(data["client_name"] or "").strip():
        raise ValidationError("client_name cannot be empty")
    for field in _CLIENT_FIELDS:
        if field in data:
            setattr(invoice, field, data[field])
    for field in ("currency", "notes", "terms"):
        if field in data:
            setattr(invoice, field, data[field])
    for field in ("issue_date", "due_date", "paid_date"):
        if field in data:
            setattr(invoice, field, parse_date(data[field]))
    if "discount" in data:
        invoice.discount = parse_float(data["discount"], 0.0)
    if "tax_rate" in data:
        invoice.tax_rate = parse_float(data["tax_rate"], 0.0)
    if "items" in data:
        invoice.items = _build_items(data["items"])
    if "status" in data:
        set_status(invoice, data["status"])

    invoice.recalculate()
    db.session.flush()
    return invoice


def set_status(invoice, status):
    _check_status(status)
    invoice.status = status
    if status == "paid" and invoice.paid_date is None:
        invoice.paid_date = date.today()
    db.session.flush()
    return invoice


def convert_quote(quote, *, user_id=None):
    """Create an unpaid invoice from a quote and mark the quote accepted."""
    if quote.invoice_type != "quote":
        raise ValidationError(
            "Only quotes can be converted to invoices",
            details={"invoice_type": quote.invoice_type},
        )
    settings = get_settings(user_id)

    invoice = Invoice(
        project_id=quote.project_id,
        company_id=quote.company_id,
        invoice_number=next_invoice_number(settings.invoice_prefix or DEFAULT_PREFIXES["invoice"]),
        invoice_type="invoice",
        status="unpaid",
        client_name=quote.client_name,
        client_email=quote.client_email,
        client_phone=quote.client_phone,
        client_address=quote.client_address,
        issue_date=date.today(),
        currency=quote.currency,
        discount=quote.discount,
        tax_rate=quote.tax_rate,
        notes=quote.notes,
        terms=quote.terms,
        converted_from_id=quote.id,
        created_by_user_id=user_id,
    )
    _snapshot_issuer(invoice, settings)
    invoice.items = [
        InvoiceItem(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            amount=item.amount,
            sort_order=item.sort_order,
        )
        for item in quote.items
    ]
    invoice.recalculate()
    quote.status = "accepted"

    db.session.add(invoice)
    db.session.flush()
    logger.info("Converted quote %s → invoice %s", quote.invoice_number, invoice.invoice_number)
    return invoice


def delete_invoice(invoice):
    db.session.delete(invoice)
    db.session.flush()
