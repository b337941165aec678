"""
Project blueprint: CRUD, archiving, status/pipeline edits, summary,
notes and document uploads.

Endpoints:
    GET    /api/v1/projects                     ?archived=&status=&pipeline=&company_id=&project_type=&q=
    POST   /api/v1/projects
    GET    /api/v1/projects/summary
    GET    /api/v1/projects/<id>
    PUT    /api/v1/projects/<id>
    PATCH  /api/v1/projects/<id>                 status / pipeline only
    POST   /api/v1/projects/<id>/archive
    POST   /api/v1/projects/<id>/unarchive
    POST   /api/v1/projects/<id>/documents       multipart "file"

    GET    /api/v1/projects/<id>/notes
    POST   /api/v1/projects/<id>/notes
    DELETE /api/v1/projects/<id>/notes/<note_id>

Projects are never hard-deleted; archiving sets ``is_archived``.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from agencyhub.auth import current_user
from agencyhub.blueprints import error_body
from agencyhub.core.exceptions import ValidationError
from agencyhub.models import db
from agencyhub.models.project import Project, ProjectNote
from agencyhub.services import project_service, storage_service
from agencyhub.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@project_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": str(error), "details": error.details}), 422


@project_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    db.session.rollback()
    logger.exception("Unexpected error in project_bp endpoint=%s", request.endpoint)
    return jsonify({"error": "Internal server error"}), 500


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(filters=request.args)
    return jsonify([p.to_dict() for p in projects])


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True) or {}
    user = current_user()
    project, err = project_service.create_project(data=data, user_id=user.id if user else None)
    if err:
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Project created: %s", project.name, extra={"project_id": project.id})
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/summary", methods=["GET"])
def project_summary():
    return jsonify(project_service.project_summary())


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    project, svc_err = project_service.update_project(project=project, data=data)
    if svc_err:
        db.session.rollback()
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["PATCH"])
def patch_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if "status" not in data and "pipeline" not in data:
        return jsonify({"error": "status or pipeline is required"}), 400
    project, svc_err = project_service.patch_project(project=project, data=data)
    if svc_err:
        db.session.rollback()
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>/archive", methods=["POST"])
def archive_project(project_id):
    return _set_archived(project_id, True)


@project_bp.route("/projects/<int:project_id>/unarchive", methods=["POST"])
def unarchive_project(project_id):
    return _set_archived(project_id, False)


@project_bp.route("/projects/<int:project_id>/documents", methods=["POST"])
def upload_document(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400
    stored = storage_service.store_project_document(project.id, request.files["file"])
    return jsonify(stored), 201


# ═════════════════════════════════════════════════════════════════════════
# Notes
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:project_id>/notes", methods=["GET"])
def list_notes(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify([n.to_dict() for n in project_service.list_notes(project)])


@project_bp.route("/projects/<int:project_id>/notes", methods=["POST"])
def create_note(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    note, svc_err = project_service.add_note(project=project, body=data.get("body"), author=current_user())
    if svc_err:
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(note.to_dict()), 201


@project_bp.route("/projects/<int:project_id>/notes/<int:note_id>", methods=["DELETE"])
def delete_note(project_id, note_id):
    note, err = get_or_404(ProjectNote, note_id, "Note")
    if err:
        return err
    if note.project_id != project_id:
        return jsonify({"error": "Note not found"}), 404
    project_service.delete_note(note)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Note deleted"}), 200


# ── Helpers ──────────────────────────────────────────────────────────────────


def _set_archived(project_id, archived):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    project_service.set_archived(project=project, archived=archived)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Project %s", "archived" if archived else "unarchived", extra={"project_id": project_id})
    return jsonify(project.to_dict())
