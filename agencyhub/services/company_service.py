"""Company, contact and user directory service.

Transaction policy: flush only; route handlers commit.
Functions return ``(obj, None)`` on success or ``(None, {"error", "status"})``.
"""

from __future__ import annotations

from sqlalchemy import func

from agencyhub.models import db
from agencyhub.models.company import Company, Contact
from agencyhub.models.project import Project
from agencyhub.models.user import User

_COMPANY_FIELDS = ("email", "phone", "industry", "website", "address")
_CONTACT_FIELDS = ("last_name", "email", "phone", "job_title")


def _clean(value) -> str:
    return str(value or "").strip()


# ── Users ────────────────────────────────────────────────────────────────


def list_users() -> list[User]:
    return User.query.order_by(User.full_name.asc(), User.email.asc()).all()


def create_user(*, data: dict) -> tuple[User | None, dict | None]:
    email = _clean(data.get("email")).lower()
    if not email:
        return None, {"error": "email is required", "status": 400}
    if User.query.filter(func.lower(User.email) == email).first():
        return None, {"error": "A user with this email already exists", "status": 409}

    user = User(
        email=email,
        full_name=_clean(data.get("full_name")) or None,
        first_name=_clean(data.get("first_name")) or None,
        last_name=_clean(data.get("last_name")) or None,
    )
    db.session.add(user)
    db.session.flush()
    return user, None


# ── Companies ────────────────────────────────────────────────────────────


def list_companies(*, q: str | None = None) -> list[Company]:
    query = Company.query
    if q:
        query = query.filter(Company.name.ilike(f"%{q.strip()}%"))
    return query.order_by(Company.name.asc()).all()


def create_company(*, data: dict) -> tuple[Company | None, dict | None]:
    name = _clean(data.get("name"))
    if not name:
        return None, {"error": "name is required", "status": 400}

    company = Company(name=name, **{f: _clean(data.get(f)) or None for f in _COMPANY_FIELDS})
    db.session.add(company)
    db.session.flush()
    return company, None


def update_company(*, company: Company, data: dict) -> tuple[Company | None, dict | None]:
    if "name" in data:
        name = _clean(data.get("name"))
        if not name:
            return None, {"error": "name cannot be empty", "status": 400}
        company.name = name
    for field in _COMPANY_FIELDS:
        if field in data:
            setattr(company, field, _clean(data.get(field)) or None)
    db.session.flush()
    return company, None


def delete_company(*, company: Company) -> dict | None:
    """Delete a company; refused while projects still reference it."""
    in_use = Project.query.filter_by(company_id=company.id).count()
    if in_use:
        return {"error": f"Company has {in_use} project(s); archive or move them first", "status": 409}
    db.session.delete(company)
    db.session.flush()
    return None


# ── Contacts ─────────────────────────────────────────────────────────────


def list_contacts(*, company_id: int | None = None) -> list[Contact]:
    query = Contact.query
    if company_id is not None:
        query = query.filter(Contact.company_id == company_id)
    return query.order_by(Contact.first_name.asc(), Contact.last_name.asc()).all()


def create_contact(*, data: dict) -> tuple[Contact | None, dict | None]:
    first_name = _clean(data.get("first_name"))
    if not first_name:
        return None, {"error": "first_name is required", "status": 400}

    company_id = data.get("company_id")
    if company_id is not None and not db.session.get(Company, company_id):
        return None, {"error": "Company not found", "status": 404}

    contact = Contact(
        company_id=company_id,
        first_name=first_name,
        **{f: _clean(data.get(f)) or None for f in _CONTACT_FIELDS},
    )
    db.session.add(contact)
    db.session.flush()
    return contact, None


def update_contact(*, contact: Contact, data: dict) -> tuple[Contact | None, dict | None]:
    if "first_name" in data:
        first_name = _clean(data.get("first_name"))
        if not first_name:
            return None, {"error": "first_name cannot be empty", "status": 400}
        contact.first_name = first_name
    if "company_id" in data:
        company_id = data.get("company_id")
        if company_id is not None and not db.session.get(Company, company_id):
            return None, {"error": "Company not found", "status": 404}
        contact.company_id = company_id
    for field in _CONTACT_FIELDS:
        if field in data:
            setattr(contact, field, _clean(data.get(field)) or None)
    db.session.flush()
    return contact, None
