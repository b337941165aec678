"""Project CRUD, archiving, status/pipeline edits, summary and notes.

Transaction policy: flush only; route handlers commit.
"""

from __future__ import annotations

from sqlalchemy import func, or_

from agencyhub.models import db
from agencyhub.models.company import Company, Contact
from agencyhub.models.project import (
    DEFAULT_PIPELINE,
    DEFAULT_STATUS,
    PIPELINES,
    PROJECT_STATUSES,
    PROJECT_TYPES,
    Project,
    ProjectNote,
    parse_project_value,
)
from agencyhub.utils.helpers import parse_date


def _truthy(value) -> bool:
    return str(value).lower() in ("1", "true", "yes", "on")


def list_projects(*, filters: dict) -> list[Project]:
    """List projects. Archived projects are hidden unless ``archived`` is truthy."""
    query = Project.query.filter(Project.is_archived.is_(_truthy(filters.get("archived", "false"))))

    if filters.get("status"):
        query = query.filter(Project.status == filters["status"])
    if filters.get("pipeline"):
        query = query.filter(Project.pipeline == filters["pipeline"])
    if filters.get("company_id"):
        query = query.filter(Project.company_id == int(filters["company_id"]))
    if filters.get("project_type"):
        query = query.filter(Project.project_type == filters["project_type"])
    q = (filters.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Project.name.ilike(like), Project.description.ilike(like)))

    return query.order_by(Project.created_at.desc()).all()


def _validate_refs(data: dict, *, require_company: bool) -> dict | None:
    if require_company and not data.get("company_id"):
        return {"error": "company_id is required", "status": 400}
    if data.get("company_id") and not db.session.get(Company, data["company_id"]):
        return {"error": "Company not found", "status": 404}
    if data.get("contact_id") and not db.session.get(Contact, data["contact_id"]):
        return {"error": "Contact not found", "status": 404}
    return None


def create_project(*, data: dict, user_id: int | None = None) -> tuple[Project | None, dict | None]:
    name = str(data.get("name", "") or "").strip()
    project_type = str(data.get("project_type", "") or "").strip()

    if not name:
        return None, {"error": "name is required", "status": 400}
    if project_type not in PROJECT_TYPES:
        return None, {
            "error": f"project_type must be one of: {', '.join(sorted(PROJECT_TYPES))}",
            "status": 400,
        }
    err = _validate_refs(data, require_company=True)
    if err:
        return None, err

    status = data.get("status") or DEFAULT_STATUS
    if status not in PROJECT_STATUSES:
        return None, {"error": f"Invalid status: {status}", "status": 400}
    pipeline = data.get("pipeline") or DEFAULT_PIPELINE
    if pipeline not in PIPELINES:
        return None, {"error": f"Invalid pipeline: {pipeline}", "status": 400}

    project = Project(
        name=name,
        description=data.get("description"),
        project_type=project_type,
        status=status,
        pipeline=pipeline,
        value=parse_project_value(data.get("value")),
        start_date=parse_date(data.get("start_date")),
        due_date=parse_date(data.get("due_date")),
        company_id=data["company_id"],
        contact_id=data.get("contact_id"),
        created_by_user_id=user_id,
    )
    db.session.add(project)
    db.session.flush()
    return project, None


def update_project(*, project: Project, data: dict) -> tuple[Project | None, dict | None]:
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            return None, {"error": "name cannot be empty", "status": 400}
        project.name = name
    if "project_type" in data:
        if data["project_type"] not in PROJECT_TYPES:
            return None, {"error": f"Invalid project_type: {data['project_type']}", "status": 400}
        project.project_type = data["project_type"]

    err = _validate_refs(data, require_company=False)
    if err:
        return None, err
    if data.get("company_id"):
        project.company_id = data["company_id"]
    if "contact_id" in data:
        project.contact_id = data.get("contact_id")

    if "description" in data:
        project.description = data.get("description")
    if "value" in data:
        project.value = parse_project_value(data.get("value"))
    if "start_date" in data:
        project.start_date = parse_date(data.get("start_date"))
    if "due_date" in data:
        project.due_date = parse_date(data.get("due_date"))

    _, err = patch_project(project=project, data=data)
    if err:
        return None, err
    db.session.flush()
    return project, None


def patch_project(*, project: Project, data: dict) -> tuple[Project | None, dict | None]:
    """Apply status/pipeline edits, validated against the enumerations."""
    if "status" in data:
        if data["status"] not in PROJECT_STATUSES:
            return None, {"error": f"Invalid status: {data['status']}", "status": 400}
        project.status = data["status"]
    if "pipeline" in data:
        if data["pipeline"] not in PIPELINES:
            return None, {"error": f"Invalid pipeline: {data['pipeline']}", "status": 400}
        project.pipeline = data["pipeline"]
    db.session.flush()
    return project, None


def set_archived(*, project: Project, archived: bool) -> Project:
    project.is_archived = bool(archived)
    db.session.flush()
    return project


def project_summary() -> dict:
    """Status counts and total value over non-archived projects."""
    rows = (
        db.session.query(Project.status, func.count(Project.id), func.coalesce(func.sum(Project.value), 0.0))
        .filter(Project.is_archived.is_(False))
        .group_by(Project.status)
        .all()
    )
    by_status = {s: 0 for s in PROJECT_STATUSES}
    total_value = 0.0
    for status, count, value in rows:
        by_status[status] = count
        total_value += float(value or 0)
    return {
        "by_status": by_status,
        "total": sum(by_status.values()),
        "totalValue": round(total_value, 2),
    }


# ── Notes ────────────────────────────────────────────────────────────────


def list_notes(project: Project) -> list[ProjectNote]:
    return project.notes.all()


def add_note(*, project: Project, body, author=None) -> tuple[ProjectNote | None, dict | None]:
    body = str(body or "").strip()
    if not body:
        return None, {"error": "body is required", "status": 400}
    note = ProjectNote(
        project_id=project.id,
        body=body,
        author_user_id=author.id if author else None,
        author_name=author.display_name if author else "Unknown",
    )
    db.session.add(note)
    db.session.flush()
    return note, None


def delete_note(note: ProjectNote) -> None:
    db.session.delete(note)
    db.session.flush()
