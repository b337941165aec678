"""
Agency Hub
Workflow persistence models.

Models:
    - ProjectWorkflow:       one JSON workflow document per project (upsert by project_id)
    - WorkflowStepMention:   @-mention recorded from a workflow step comment

The document itself is opaque to the database; its structure and rules live in
``agencyhub.workflow``. ``version`` is bumped on every write and backs the
optional If-Match check on save.
"""

from datetime import datetime, timezone

from agencyhub.models import db


class ProjectWorkflow(db.Model):
    """Persisted workflow document for a project."""

    __tablename__ = "project_workflows"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    workflow_data = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=1, comment="Monotonic write counter")
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "workflow_data": self.workflow_data,
            "version": self.version,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProjectWorkflow project={self.project_id} v{self.version}>"


class WorkflowStepMention(db.Model):
    """A user mentioned in a workflow step comment."""

    __tablename__ = "workflow_step_mentions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_id = db.Column(db.String(50), nullable=False)
    mentioned_user_id = db.Column(db.String(64), nullable=False, index=True)
    comment_body = db.Column(db.Text, nullable=False)
    author_name = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "step_id": self.step_id,
            "mentioned_user_id": self.mentioned_user_id,
            "comment_body": self.comment_body,
            "author_name": self.author_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
