"""
Agency Hub
Task & checklist models.

A "task" created for several assignees is stored as one row per assignee;
rows created together share a grouping key (see ``Task.group_key``).
Status is mutated directly, no transition guard.
"""

from datetime import datetime, timezone

from agencyhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = ["not_started", "in_progress", "completed"]
TASK_PRIORITIES = ["low", "medium", "high"]
TASK_TYPES = ["todo", "call", "email", "other"]
TASK_SOURCES = {"user", "admin", "workflow"}


class Task(db.Model):
    """Unit of work assigned to a single user."""

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="not_started",
        comment="not_started | in_progress | completed",
    )
    priority = db.Column(db.String(10), nullable=False, default="medium", comment="low | medium | high")
    type = db.Column(db.String(10), nullable=False, default="todo", comment="todo | call | email | other")
    source = db.Column(db.String(20), nullable=False, default="user", comment="user | admin | workflow")
    activity_date = db.Column(db.Date, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_name = db.Column(db.String(200), nullable=True)
    assigned_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    assigned_user_name = db.Column(db.String(200), nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    checklist_items = db.relationship(
        "TaskChecklistItem", backref="task", lazy="select",
        cascade="all, delete-orphan", order_by="TaskChecklistItem.sort_order",
    )

    @property
    def group_key(self) -> str:
        activity = self.activity_date.isoformat() if self.activity_date else ""
        return "||".join([
            self.name or "",
            self.content or "",
            activity,
            self.priority or "",
            self.created_by_name or "",
        ])

    def to_dict(self, include_checklist=True):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "content": self.content,
            "status": self.status,
            "priority": self.priority,
            "type": self.type,
            "source": self.source,
            "activity_date": self.activity_date.isoformat() if self.activity_date else None,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "assigned_user_id": self.assigned_user_id,
            "assigned_user_name": self.assigned_user_name,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_checklist:
            result["checklist"] = [i.to_dict() for i in self.checklist_items]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {self.name} [{self.status}]>"


class TaskChecklistItem(db.Model):
    """Checklist entry on a task."""

    __tablename__ = "task_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    label = db.Column(db.String(500), nullable=False)
    is_done = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "label": self.label,
            "is_done": bool(self.is_done),
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<TaskChecklistItem {self.id} task={self.task_id}>"
