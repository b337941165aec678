"""
Agency Hub
Company & Contact models.

Models:
    - Company: client organisation
    - Contact: person at a client organisation (company optional)

Architecture:
    Company ──1:N──▶ Contact
    Company ──1:N──▶ Project
"""

from datetime import datetime, timezone

from agencyhub.models import db


class Company(db.Model):
    """Client organisation."""

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    industry = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    contacts = db.relationship(
        "Contact", backref="company", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_contacts=False):
        result = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "industry": self.industry,
            "website": self.website,
            "address": self.address,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_contacts:
            result["contacts"] = [c.to_dict() for c in self.contacts.order_by(Contact.first_name)]
        return result

    def __repr__(self):
        return f"<Company {self.id}: {self.name}>"


class Contact(db.Model):
    """Person at a client organisation."""

    __tablename__ = "contacts"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    job_title = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "job_title": self.job_title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Contact {self.id}: {self.full_name}>"
