"""
Agency Hub
Invoice & quote models.

Models:
    - Invoice:          quote or invoice issued against a project
    - InvoiceItem:      line item (description x quantity x unit price)
    - InvoiceSettings:  per-user issuer profile (company, bank, prefixes, tax)

Architecture:
    Project ──1:N──▶ Invoice ──1:N──▶ InvoiceItem
    User    ──1:1──▶ InvoiceSettings

Totals:
    subtotal   = Σ quantity × unit_price
    tax_amount = (subtotal − discount) × tax_rate / 100, rounded half-up to cents
    total      = subtotal − discount + tax_amount

Lifecycle (informal, not enforced):
    invoice:  draft → sent → paid | unpaid | overdue | cancelled
    quote:    draft → sent → accepted | rejected
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from agencyhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

INVOICE_TYPES = {"invoice", "quote"}

INVOICE_STATUSES = {
    "draft", "sent", "paid", "unpaid", "overdue",
    "cancelled", "accepted", "rejected",
}

DEFAULT_PREFIXES = {"invoice": "INV", "quote": "QUO"}


_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(float(value or 0)))


def compute_invoice_totals(items, discount=0.0, tax_rate=0.0) -> dict:
    """
    Compute document totals from line items.

    Amounts are summed in Decimal and rounded half-up to cents. ``total`` is
    derived from the rounded parts, so the stored fields always satisfy
    total = subtotal - discount + tax_amount.

    Args:
        items: iterable of dicts (or objects) with quantity and unit_price.
        discount: absolute discount subtracted before tax.
        tax_rate: percentage applied to (subtotal - discount).

    Returns:
        dict with subtotal, discount, tax_rate, tax_amount, total as floats.
    """
    subtotal = Decimal("0")
    for item in items:
        if isinstance(item, dict):
            qty, price = item.get("quantity", 0), item.get("unit_price", 0)
        else:
            qty, price = item.quantity, item.unit_price
        subtotal += _money(qty) * _money(price)

    subtotal = subtotal.quantize(_CENT, rounding=ROUND_HALF_UP)
    discount = _money(discount).quantize(_CENT, rounding=ROUND_HALF_UP)
    rate = _money(tax_rate)
    tax_amount = ((subtotal - discount) * rate / 100).quantize(_CENT, rounding=ROUND_HALF_UP)
    total = subtotal - discount + tax_amount
    return {
        "subtotal": float(subtotal),
        "discount": float(discount),
        "tax_rate": float(rate),
        "tax_amount": float(tax_amount),
        "total": float(total),
    }


# ── Invoice ──────────────────────────────────────────────────────────────────

class Invoice(db.Model):
    """Quote or invoice document with snapshot of issuer details."""

    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    invoice_number = db.Column(db.String(30), nullable=False, unique=True)
    invoice_type = db.Column(db.String(10), nullable=False, default="invoice", comment="invoice | quote")
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | sent | paid | unpaid | overdue | cancelled | accepted | rejected",
    )

    # Client
    client_name = db.Column(db.String(200), nullable=False)
    client_email = db.Column(db.String(255), nullable=True)
    client_phone = db.Column(db.String(50), nullable=True)
    client_address = db.Column(db.Text, nullable=True)

    # Dates
    issue_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)

    # Amounts
    currency = db.Column(db.String(3), nullable=False, default="AED")
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=5.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    # Issuer snapshot (copied from InvoiceSettings at creation)
    issuer_company_name = db.Column(db.String(200), nullable=True)
    issuer_logo_url = db.Column(db.String(500), nullable=True)
    issuer_address = db.Column(db.Text, nullable=True)
    issuer_phone = db.Column(db.String(50), nullable=True)
    issuer_email = db.Column(db.String(255), nullable=True)
    issuer_trn = db.Column(db.String(50), nullable=True)
    bank_name = db.Column(db.String(150), nullable=True)
    bank_account_name = db.Column(db.String(150), nullable=True)
    bank_account_number = db.Column(db.String(50), nullable=True)
    bank_iban = db.Column(db.String(50), nullable=True)
    bank_swift = db.Column(db.String(20), nullable=True)

    converted_from_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True, comment="Quote this invoice was converted from",
    )
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = db.relationship(
        "InvoiceItem", backref="invoice", lazy="select",
        cascade="all, delete-orphan", order_by="InvoiceItem.sort_order",
    )
    project = db.relationship("Project", lazy="joined")

    def recalculate(self):
        """Recompute subtotal/tax/total from current items."""
        totals = compute_invoice_totals(self.items, self.discount, self.tax_rate)
        self.subtotal = totals["subtotal"]
        self.tax_amount = totals["tax_amount"]
        self.total = totals["total"]

    def to_dict(self, include_items=True):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "company_id": self.company_id,
            "invoice_number": self.invoice_number,
            "invoice_type": self.invoice_type,
            "status": self.status,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "client_address": self.client_address,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "currency": self.currency,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "notes": self.notes,
            "terms": self.terms,
            "issuer": {
                "company_name": self.issuer_company_name,
                "logo_url": self.issuer_logo_url,
                "address": self.issuer_address,
                "phone": self.issuer_phone,
                "email": self.issuer_email,
                "trn": self.issuer_trn,
            },
            "bank": {
                "name": self.bank_name,
                "account_name": self.bank_account_name,
                "account_number": self.bank_account_number,
                "iban": self.bank_iban,
                "swift": self.bank_swift,
            },
            "converted_from_id": self.converted_from_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<Invoice {self.invoice_number} [{self.invoice_type}/{self.status}]>"


class InvoiceItem(db.Model):
    """Single line on a quote or invoice."""

    __tablename__ = "invoice_items"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=1.0)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "amount": self.amount,
            "sort_order": self.sort_order,
        }


class InvoiceSettings(db.Model):
    """Issuer profile used when a user creates invoices (one row per user)."""

    __tablename__ = "invoice_settings"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    company_name = db.Column(db.String(200), nullable=True)
    company_logo_url = db.Column(db.String(500), nullable=True)
    company_address = db.Column(db.Text, nullable=True)
    company_phone = db.Column(db.String(50), nullable=True)
    company_email = db.Column(db.String(255), nullable=True)
    company_trn = db.Column(db.String(50), nullable=True, comment="Tax registration number")
    bank_name = db.Column(db.String(150), nullable=True)
    bank_account_name = db.Column(db.String(150), nullable=True)
    bank_account_number = db.Column(db.String(50), nullable=True)
    bank_iban = db.Column(db.String(50), nullable=True)
    bank_swift = db.Column(db.String(20), nullable=True)
    invoice_prefix = db.Column(db.String(10), nullable=False, default="INV")
    quote_prefix = db.Column(db.String(10), nullable=False, default="QUO")
    currency = db.Column(db.String(3), nullable=False, default="AED")
    tax_rate = db.Column(db.Float, nullable=False, default=5.0)
    default_terms = db.Column(db.Text, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_name": self.company_name,
            "company_logo_url": self.company_logo_url,
            "company_address": self.company_address,
            "company_phone": self.company_phone,
            "company_email": self.company_email,
            "company_trn": self.company_trn,
            "bank_name": self.bank_name,
            "bank_account_name": self.bank_account_name,
            "bank_account_number": self.bank_account_number,
            "bank_iban": self.bank_iban,
            "bank_swift": self.bank_swift,
            "invoice_prefix": self.invoice_prefix,
            "quote_prefix": self.quote_prefix,
            "currency": self.currency,
            "tax_rate": self.tax_rate,
            "default_terms": self.default_terms,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
