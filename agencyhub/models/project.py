"""
Agency Hub
Project domain models.

Models:
    - Project:      client engagement (website, branding, social media)
    - ProjectNote:  free-text note on a project, newest first

Architecture:
    Company ──1:N──▶ Project ──1:N──▶ ProjectNote
    Project ──1:N──▶ Task, Invoice
    Project ──1:1──▶ ProjectWorkflow  (website projects only)

Lifecycle:
    Project.status is a sales/delivery stage string edited directly by users;
    there is no transition guard, only membership in PROJECT_STATUSES.
    Projects are archived (is_archived=True), never hard-deleted.
"""

import re
from datetime import datetime, timezone

from agencyhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_TYPES = {"social_media", "website", "branding"}

PROJECT_STATUSES = [
    "New Lead",
    "Processed",
    "Discovery",
    "Proposal",
    "Quotation",
    "Invoice",
    "Project Started",
    "Project Delivered",
    "Closed",
    "Abandoned",
]

PIPELINES = ["Sales", "Marketing", "Development", "Support"]

DEFAULT_STATUS = "New Lead"
DEFAULT_PIPELINE = "Sales"

MENTION_PATTERN = re.compile(r"@\[([^\]]+)\]\(([^)]+)\)")


def extract_mentions(text: str | None) -> list[dict]:
    """Return ``[{"name", "user_id"}]`` for every ``@[Name](id)`` mention in text."""
    if not text:
        return []
    return [{"name": m.group(1), "user_id": m.group(2)} for m in MENTION_PATTERN.finditer(text)]


def parse_project_value(raw):
    """Normalise a monetary value: commas stripped, must be a number >= 0, else None."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        try:
            number = float(str(raw).replace(",", "").strip())
        except ValueError:
            return None
    if number != number or number < 0:  # NaN check
        return None
    return number


# ── Project ──────────────────────────────────────────────────────────────────

class Project(db.Model):
    """Client engagement tracked from lead to delivery."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    project_type = db.Column(
        db.String(30), nullable=False,
        comment="social_media | website | branding",
    )
    status = db.Column(db.String(50), nullable=False, default=DEFAULT_STATUS)
    pipeline = db.Column(
        db.String(30), nullable=False, default=DEFAULT_PIPELINE,
        comment="Sales | Marketing | Development | Support",
    )
    value = db.Column(db.Float, nullable=True, comment="Estimated deal value; >= 0")
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    company_id = db.Column(
        db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    contact_id = db.Column(
        db.Integer, db.ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    company = db.relationship("Company", lazy="joined")
    contact = db.relationship("Contact", lazy="joined")
    notes = db.relationship(
        "ProjectNote", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProjectNote.created_at.desc()",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "project_type": self.project_type,
            "status": self.status,
            "pipeline": self.pipeline,
            "value": self.value,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_archived": bool(self.is_archived),
            "company_id": self.company_id,
            "company_name": self.company.name if self.company else None,
            "contact_id": self.contact_id,
            "contact_name": self.contact.full_name if self.contact else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


# ── ProjectNote ──────────────────────────────────────────────────────────────

class ProjectNote(db.Model):
    """Free-text note attached to a project."""

    __tablename__ = "project_notes"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    body = db.Column(db.Text, nullable=False)
    author_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    author_name = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "body": self.body,
            "author_user_id": self.author_user_id,
            "author_name": self.author_name,
            "mentions": extract_mentions(self.body),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProjectNote {self.id} project={self.project_id}>"
