"""
Task blueprint: fan-out task creation, grouping, bulk status, checklists.

Endpoints:
    GET    /api/v1/tasks                  ?project_id=&status=&assigned_user_id=&grouped=1
    POST   /api/v1/tasks                  {name, assignee_ids?, checklist?, ...}
    GET    /api/v1/tasks/stats            ?project_id=
    POST   /api/v1/tasks/bulk-status      {task_ids, status}
    GET    /api/v1/tasks/<id>
    PUT    /api/v1/tasks/<id>
    DELETE /api/v1/tasks/<id>

    POST   /api/v1/tasks/<id>/checklist              {label}
    POST   /api/v1/tasks/<id>/checklist/<item>/toggle {is_done?}
    DELETE /api/v1/tasks/<id>/checklist/<item>
"""

import logging

from flask import Blueprint, jsonify, request

from agencyhub.auth import current_user
from agencyhub.blueprints import error_body
from agencyhub.models import db
from agencyhub.models.task import Task, TaskChecklistItem
from agencyhub.services import task_service
from agencyhub.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")


@task_bp.route("/tasks", methods=["GET"])
def list_tasks():
    if request.args.get("grouped") in ("1", "true"):
        return jsonify(task_service.list_grouped(request.args))
    return jsonify([t.to_dict() for t in task_service.list_tasks(request.args)])


@task_bp.route("/tasks", methods=["POST"])
def create_task():
    data = request.get_json(silent=True) or {}
    if not str(data.get("name") or "").strip():
        return jsonify({"error": "name is required"}), 400
    if "assignee_ids" in data and not isinstance(data["assignee_ids"], list):
        return jsonify({"error": "assignee_ids must be a list"}), 400

    tasks, err = task_service.create_tasks(data, creator=current_user())
    if err:
        db.session.rollback()
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify([t.to_dict() for t in tasks]), 201


@task_bp.route("/tasks/stats", methods=["GET"])
def task_stats():
    return jsonify(task_service.task_stats(request.args.get("project_id", type=int)))


@task_bp.route("/tasks/bulk-status", methods=["POST"])
def bulk_status():
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    updated, err = task_service.bulk_update_status(data.get("task_ids"), data["status"])
    if err:
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"updated": updated})


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    task, err = get_or_404(Task, task_id)
    if err:
        return err
    return jsonify(task.to_dict())


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    task, err = get_or_404(Task, task_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    task, svc_err = task_service.update_task(task, data)
    if svc_err:
        db.session.rollback()
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict())


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    task, err = get_or_404(Task, task_id)
    if err:
        return err
    db.session.delete(task)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Task deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/tasks/<int:task_id>/checklist", methods=["POST"])
def add_checklist_item(task_id):
    task, err = get_or_404(Task, task_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    item, svc_err = task_service.add_checklist_item(task, data.get("label"))
    if svc_err:
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict()), 201


@task_bp.route("/tasks/<int:task_id>/checklist/<int:item_id>/toggle", methods=["POST"])
def toggle_checklist_item(task_id, item_id):
    item, err = _get_item(task_id, item_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    task_service.toggle_checklist_item(item, data.get("is_done"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict())


@task_bp.route("/tasks/<int:task_id>/checklist/<int:item_id>", methods=["DELETE"])
def delete_checklist_item(task_id, item_id):
    item, err = _get_item(task_id, item_id)
    if err:
        return err
    task_service.delete_checklist_item(item)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Checklist item deleted"}), 200


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_item(task_id, item_id):
    item = db.session.get(TaskChecklistItem, item_id)
    if not item or item.task_id != task_id:
        return None, (jsonify({"error": "Checklist item not found"}), 404)
    return item, None
