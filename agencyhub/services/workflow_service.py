"""Workflow service — persistence around the pure ``agencyhub.workflow`` engine.

Transaction policy: functions flush, never commit. The route handler commits,
so every step action is a single load → reduce → save transaction.

Versioning:
    ProjectWorkflow.version is bumped on every write. ``save`` accepts an
    ``expected_version``; a mismatch raises VersionConflictError (HTTP 409).
    A project with no stored workflow is at version 0.

Only website projects carry a workflow.
"""
import logging
from datetime import datetime, timezone

from agencyhub.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from agencyhub.models import db
from agencyhub.models.invoice import Invoice
from agencyhub.models.project import Project, extract_mentions
from agencyhub.models.task import Task
from agencyhub.models.user import User
from agencyhub.models.workflow import ProjectWorkflow, WorkflowStepMention
from agencyhub.workflow import engine
from agencyhub.workflow.catalog import default_document
from agencyhub.workflow.migrations import migrate_document

logger = logging.getLogger(__name__)

WEBSITE_ONLY_MESSAGE = "Workflows are only available for Website projects"


# ── Load / save ──────────────────────────────────────────────────────────


def get_website_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id)
    if project.project_type != "website":
        raise ValidationError(WEBSITE_ONLY_MESSAGE, details={"project_type": project.project_type})
    return project


def _get_row(project_id: int, *, lock: bool = False) -> ProjectWorkflow | None:
    query = ProjectWorkflow.query.filter_by(project_id=project_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def load(project_id: int) -> tuple[dict, int]:
    """Return (document, version), migrating and re-persisting legacy documents."""
    get_website_project(project_id)
    row = _get_row(project_id)
    if row is None:
        return default_document(), 0

    doc, changed = migrate_document(row.workflow_data or {})
    if changed:
        row.workflow_data = doc
        row.version = (row.version or 0) + 1
        db.session.flush()
        logger.info(
            "Migrated workflow document to schema v%s", doc.get("schemaVersion"),
            extra={"project_id": project_id},
        )
    return doc, row.version


def save(project_id: int, document: dict, *, expected_version=None,
         user_id: int | None = None) -> tuple[dict, int]:
    """Overwrite the stored document (upsert by project).

    Raises:
        VersionConflictError: ``expected_version`` does not match the stored version.
        ValidationError: the document is structurally invalid.
    """
    get_website_project(project_id)
    engine.validate_document(document)
    doc, _ = migrate_document(document)

    row = _get_row(project_id, lock=True)
    current = row.version if row else 0
    if expected_version is not None and int(expected_version) != current:
        raise VersionConflictError("Workflow", expected=int(expected_version), actual=current)

    if row is None:
        row = ProjectWorkflow(
            project_id=project_id,
            workflow_data=doc,
            version=1,
            updated_by_user_id=user_id,
        )
        db.session.add(row)
    else:
        row.workflow_data = doc
        row.version = current + 1
        row.updated_by_user_id = user_id
    db.session.flush()
    return doc, row.version


def _mutate(project_id: int, reducer, *, expected_version=None, user_id=None) -> tuple[dict, int]:
    """Load (row-locked where supported), apply ``reducer``, save."""
    get_website_project(project_id)
    _get_row(project_id, lock=True)
    doc, version = load(project_id)
    if expected_version is not None and int(expected_version) != version:
        raise VersionConflictError("Workflow", expected=int(expected_version), actual=version)
    new_doc = reducer(doc)
    return save(project_id, new_doc, expected_version=version, user_id=user_id)


# ── Step actions ─────────────────────────────────────────────────────────


def select_subtype(project_id, *, subtype, subtype_name="", needs_figma=None,
                   user_id=None, expected_version=None):
    return _mutate(
        project_id,
        lambda doc: engine.select_subtype(doc, subtype, subtype_name, needs_figma),
        expected_version=expected_version, user_id=user_id,
    )


def _create_workflow_task(project_id, step, assignee: User, actor: User | None) -> Task:
    task = Task(
        project_id=project_id,
        name=f"Workflow: {step.get('title')}",
        content=step.get("description"),
        status="not_started",
        priority="high",
        type="todo",
        source="workflow",
        created_by_user_id=actor.id if actor else None,
        created_by_name=actor.display_name if actor else "System",
        assigned_user_id=assignee.id,
        assigned_user_name=assignee.display_name,
    )
    db.session.add(task)
    db.session.flush()
    return task


def assign_step(project_id, step_id, *, assignee_id, actor: User | None = None,
                expected_version=None):
    """Assign a user to a step; creates the step's task on first assignment."""
    try:
        assignee = db.session.get(User, int(assignee_id))
    except (TypeError, ValueError):
        assignee = None
    if not assignee:
        raise NotFoundError(resource="User", resource_id=assignee_id)

    def reducer(doc):
        _, step = engine.find_step(doc, step_id)
        task = db.session.get(Task, step["taskId"]) if step.get("taskId") else None
        if task is None:
            task = _create_workflow_task(project_id, step, assignee, actor)
        else:
            task.assigned_user_id = assignee.id
            task.assigned_user_name = assignee.display_name
        return engine.assign_user(doc, step_id, assignee.id, assignee.display_name, task.id)

    return _mutate(project_id, reducer, expected_version=expected_version,
                   user_id=actor.id if actor else None)


def complete_step(project_id, step_id, *, user_id=None, expected_version=None):
    doc, version = _mutate(
        project_id, lambda doc: engine.complete_step(doc, step_id),
        expected_version=expected_version, user_id=user_id,
    )
    _sync_step_task(doc, step_id, completed=True)
    logger.info("Workflow step completed", extra={"project_id": project_id, "step_id": step_id})
    return doc, version


def mark_incomplete(project_id, step_id, *, user_id=None, expected_version=None):
    doc, version = _mutate(
        project_id, lambda doc: engine.mark_incomplete(doc, step_id),
        expected_version=expected_version, user_id=user_id,
    )
    _sync_step_task(doc, step_id, completed=False)
    return doc, version


def set_review_status(project_id, step_id, *, status, user_id=None, expected_version=None):
    doc, version = _mutate(
        project_id, lambda doc: engine.set_review_status(doc, step_id, status),
        expected_version=expected_version, user_id=user_id,
    )
    if status == "passed":
        _sync_step_task(doc, step_id, completed=True)
    return doc, version


def _sync_step_task(doc, step_id, *, completed: bool) -> None:
    """Mirror step completion onto the step's workflow task, if any."""
    _, step = engine.find_step(doc, step_id)
    if not step.get("taskId"):
        return
    task = db.session.get(Task, step["taskId"])
    if task is None:
        return
    if completed:
        task.status = "completed"
        task.completed_at = datetime.now(timezone.utc)
    elif task.status == "completed":
        task.status = "in_progress"
        task.completed_at = None
    db.session.flush()


def add_comment(project_id, step_id, *, author: User | None, body: str, expected_version=None):
    """Append a comment and record one mention row per ``@[Name](id)``.

    Returns (doc, version, comment).
    """
    holder = {}

    def reducer(doc):
        new_doc, comment = engine.add_comment(
            doc, step_id,
            author.id if author else None,
            author.display_name if author else "Unknown",
            body,
        )
        holder["comment"] = comment
        return new_doc

    doc, version = _mutate(project_id, reducer, expected_version=expected_version,
                           user_id=author.id if author else None)
    comment = holder["comment"]
    for mention in extract_mentions(comment["body"]):
        db.session.add(WorkflowStepMention(
            project_id=project_id,
            step_id=step_id,
            mentioned_user_id=mention["user_id"],
            comment_body=comment["body"],
            author_name=comment["userName"],
        ))
    db.session.flush()
    return doc, version, comment


def add_file(project_id, step_id, *, name, url, uploaded_by=None, user_id=None, expected_version=None):
    return _mutate(
        project_id,
        lambda doc: engine.add_file(doc, step_id, name, url, uploaded_by=uploaded_by),
        expected_version=expected_version, user_id=user_id,
    )


def set_file_active(project_id, step_id, index, *, user_id=None, expected_version=None):
    return _mutate(
        project_id, lambda doc: engine.set_file_active(doc, step_id, index),
        expected_version=expected_version, user_id=user_id,
    )


def delete_file(project_id, step_id, index, *, user_id=None, expected_version=None):
    return _mutate(
        project_id, lambda doc: engine.delete_file(doc, step_id, index),
        expected_version=expected_version, user_id=user_id,
    )


def update_step_data(project_id, step_id, *, key, value, user_id=None, expected_version=None):
    return _mutate(
        project_id, lambda doc: engine.update_step_data(doc, step_id, key, value),
        expected_version=expected_version, user_id=user_id,
    )


def _resolve_associations(project_id, entries, invoice_type):
    """Fill invoiceNumber/total from the referenced Invoice rows."""
    if not isinstance(entries, list):
        raise ValidationError(f"{invoice_type}s must be a list")
    resolved = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("invoiceId") in (None, ""):
            raise ValidationError(f"Each {invoice_type} entry needs an invoiceId")
        try:
            invoice = db.session.get(Invoice, int(entry["invoiceId"]))
        except (TypeError, ValueError):
            invoice = None
        if not invoice:
            raise NotFoundError(resource="Invoice", resource_id=entry["invoiceId"])
        if invoice.invoice_type != invoice_type:
            raise ValidationError(
                f"{invoice.invoice_number} is not a {invoice_type}",
                details={"invoice_id": invoice.id, "invoice_type": invoice.invoice_type},
            )
        if invoice.project_id not in (None, project_id):
            raise ValidationError(
                f"{invoice.invoice_number} belongs to another project",
                details={"invoice_id": invoice.id},
            )
        resolved.append({
            **entry,
            "invoiceId": invoice.id,
            "invoiceNumber": invoice.invoice_number,
            "total": invoice.total,
        })
    return resolved


def update_quotes(project_id, step_id, *, quotes, user_id=None, expected_version=None):
    resolved = _resolve_associations(project_id, quotes, "quote")
    return _mutate(
        project_id, lambda doc: engine.update_quotes(doc, step_id, resolved),
        expected_version=expected_version, user_id=user_id,
    )


def update_invoices(project_id, step_id, *, invoices, user_id=None, expected_version=None):
    resolved = _resolve_associations(project_id, invoices, "invoice")
    return _mutate(
        project_id, lambda doc: engine.update_invoices(doc, step_id, resolved),
        expected_version=expected_version, user_id=user_id,
    )


def update_revision_status(project_id, step_id, *, status, user_id=None, expected_version=None):
    return _mutate(
        project_id, lambda doc: engine.update_revision_status(doc, step_id, status),
        expected_version=expected_version, user_id=user_id,
    )


def update_revision_checklist(project_id, step_id, *, items, user_id=None, expected_version=None):
    return _mutate(
        project_id, lambda doc: engine.update_revision_checklist(doc, step_id, items),
        expected_version=expected_version, user_id=user_id,
    )


def readiness(project_id):
    doc, version = load(project_id)
    return engine.readiness(doc), version
