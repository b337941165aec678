"""Task service — fan-out creation, grouping, checklist, bulk status.

Transaction policy: methods use flush(), never commit().

A task created for N assignees is stored as N rows that share the same
checklist content; ``list_grouped`` folds them back together by
``Task.group_key``.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func

from agencyhub.models import db
from agencyhub.models.project import Project
from agencyhub.models.task import (
    TASK_PRIORITIES, TASK_SOURCES, TASK_STATUSES, TASK_TYPES,
    Task, TaskChecklistItem,
)
from agencyhub.models.user import User
from agencyhub.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _validate_enums(data):
    for field, allowed in (("status", TASK_STATUSES), ("priority", TASK_PRIORITIES), ("type", TASK_TYPES)):
        if field in data and data[field] not in allowed:
            return {"error": f"Invalid {field}: {data[field]}", "status": 400}
    if "source" in data and data["source"] not in TASK_SOURCES:
        return {"error": f"Invalid source: {data['source']}", "status": 400}
    return None


def _checklist_labels(raw):
    labels = []
    for entry in raw or []:
        label = entry.get("label") if isinstance(entry, dict) else entry
        label = str(label or "").strip()
        if label:
            labels.append(label)
    return labels


def _apply_status(task, status):
    task.status = status
    if status == "completed":
        task.completed_at = task.completed_at or datetime.now(timezone.utc)
    else:
        task.completed_at = None


# ── Create / update ──────────────────────────────────────────────────────


def create_tasks(data, *, creator=None):
    """Create one task row per assignee (or one for the creator).

    Returns:
        (list[Task], None) or (None, error_dict)
    """
    name = str(data.get("name") or "").strip()
    if not name:
        return None, {"error": "name is required", "status": 400}
    err = _validate_enums(data)
    if err:
        return None, err

    project_id = data.get("project_id")
    if project_id is not None and not db.session.get(Project, project_id):
        return None, {"error": "Project not found", "status": 404}

    assignees = []
    for uid in data.get("assignee_ids") or []:
        user = db.session.get(User, uid)
        if not user:
            return None, {"error": f"User {uid} not found", "status": 404}
        assignees.append(user)
    if not assignees and creator is not None:
        assignees = [creator]

    labels = _checklist_labels(data.get("checklist"))
    targets = assignees or [None]
    tasks = []
    for assignee in targets:
        task = Task(
            project_id=project_id,
            name=name,
            content=data.get("content"),
            priority=data.get("priority", "medium"),
            type=data.get("type", "todo"),
            source=data.get("source", "user"),
            activity_date=parse_date(data.get("activity_date")),
            created_by_user_id=creator.id if creator else None,
            created_by_name=creator.display_name if creator else "Unknown",
            assigned_user_id=assignee.id if assignee else None,
            assigned_user_name=assignee.display_name if assignee else None,
        )
        _apply_status(task, data.get("status", "not_started"))
        task.checklist_items = [
            TaskChecklistItem(label=label, sort_order=i) for i, label in enumerate(labels)
        ]
        db.session.add(task)
        tasks.append(task)

    db.session.flush()
    logger.info("Created %d task row(s) '%s'", len(tasks), name, extra={"project_id": project_id})
    return tasks, None


def update_task(task, data):
    err = _validate_enums(data)
    if err:
        return None, err
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            return None, {"error": "name cannot be empty", "status": 400}
        task.name = name
    for field in ("content", "priority", "type"):
        if field in data:
            setattr(task, field, data[field])
    if "activity_date" in data:
        task.activity_date = parse_date(data.get("activity_date"))
    if "assigned_user_id" in data:
        user = db.session.get(User, data["assigned_user_id"]) if data["assigned_user_id"] else None
        if data["assigned_user_id"] and not user:
            return None, {"error": "User not found", "status": 404}
        task.assigned_user_id = user.id if user else None
        task.assigned_user_name = user.display_name if user else None
    if "status" in data:
        _apply_status(task, data["status"])
    db.session.flush()
    return task, None


def bulk_update_status(task_ids, status):
    """Set ``status`` on every task in ``task_ids``. Returns number updated."""
    if status not in TASK_STATUSES:
        return None, {"error": f"Invalid status: {status}", "status": 400}
    if not isinstance(task_ids, list) or not task_ids:
        return None, {"error": "task_ids must be a non-empty list", "status": 400}
    tasks = Task.query.filter(Task.id.in_(task_ids)).all()
    for task in tasks:
        _apply_status(task, status)
    db.session.flush()
    return len(tasks), None


# ── Query ────────────────────────────────────────────────────────────────


def _filtered(filters):
    query = Task.query
    if filters.get("project_id"):
        query = query.filter(Task.project_id == int(filters["project_id"]))
    if filters.get("status"):
        query = query.filter(Task.status == filters["status"])
    if filters.get("assigned_user_id"):
        query = query.filter(Task.assigned_user_id == int(filters["assigned_user_id"]))
    return query


def list_tasks(filters):
    return _filtered(filters).order_by(Task.created_at.desc(), Task.id.desc()).all()


def list_grouped(filters):
    """Fold per-assignee rows into groups keyed by ``Task.group_key``."""
    groups = {}
    for task in _filtered(filters).order_by(Task.created_at.asc(), Task.id.asc()).all():
        group = groups.get(task.group_key)
        if group is None:
            group = groups[task.group_key] = {
                "key": task.group_key,
                "task": task.to_dict(),
                "task_ids": [],
                "assignees": [],
                "statuses": {},
            }
        group["task_ids"].append(task.id)
        if task.assigned_user_id is not None:
            group["assignees"].append({
                "user_id": task.assigned_user_id,
                "name": task.assigned_user_name,
                "task_id": task.id,
                "status": task.status,
            })
        group["statuses"][task.status] = group["statuses"].get(task.status, 0) + 1
    return list(groups.values())


def task_stats(project_id=None):
    query = db.session.query(Task.status, func.count(Task.id))
    if project_id:
        query = query.filter(Task.project_id == project_id)
    counts = {s: 0 for s in TASK_STATUSES}
    for status, count in query.group_by(Task.status).all():
        counts[status] = count
    return {"by_status": counts, "total": sum(counts.values())}


# ── Checklist ────────────────────────────────────────────────────────────


def add_checklist_item(task, label):
    label = str(label or "").strip()
    if not label:
        return None, {"error": "label is required", "status": 400}
    next_order = max((i.sort_order for i in task.checklist_items), default=-1) + 1
    item = TaskChecklistItem(task_id=task.id, label=label, sort_order=next_order)
    db.session.add(item)
    db.session.flush()
    return item, None


def toggle_checklist_item(item, is_done=None):
    item.is_done = (not item.is_done) if is_done is None else bool(is_done)
    db.session.flush()
    return item


def delete_checklist_item(item):
    db.session.delete(item)
    db.session.flush()
