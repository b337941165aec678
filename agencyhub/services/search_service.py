"""Global search across companies, contacts, projects and invoices."""

from __future__ import annotations

from sqlalchemy import or_

from agencyhub.models.company import Company, Contact
from agencyhub.models.invoice import Invoice
from agencyhub.models.project import Project

SECTION_LIMIT = 8


def _empty() -> dict:
    return {"companies": [], "contacts": [], "projects": [], "invoices": []}


def normalize_query(raw: str | None) -> str:
    """Strip LIKE wildcards and surrounding whitespace."""
    return (raw or "").replace("%", "").replace("_", "").strip()


def search(raw_query: str | None, *, limit: int = SECTION_LIMIT) -> dict:
    q = normalize_query(raw_query)
    if not q:
        return _empty()
    like = f"%{q}%"

    companies = (
        Company.query
        .filter(or_(Company.name.ilike(like), Company.email.ilike(like), Company.industry.ilike(like)))
        .order_by(Company.name.asc()).limit(limit).all()
    )
    contacts = (
        Contact.query
        .filter(or_(Contact.first_name.ilike(like), Contact.last_name.ilike(like), Contact.email.ilike(like)))
        .order_by(Contact.first_name.asc()).limit(limit).all()
    )
    projects = (
        Project.query
        .filter(or_(Project.name.ilike(like), Project.description.ilike(like)))
        .order_by(Project.created_at.desc()).limit(limit).all()
    )
    invoices = (
        Invoice.query
        .filter(or_(Invoice.invoice_number.ilike(like), Invoice.client_name.ilike(like)))
        .order_by(Invoice.created_at.desc()).limit(limit).all()
    )

    return {
        "companies": [c.to_dict() for c in companies],
        "contacts": [c.to_dict() for c in contacts],
        "projects": [p.to_dict() for p in projects],
        "invoices": [i.to_dict(include_items=False) for i in invoices],
    }
