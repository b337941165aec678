"""
Website workflow blueprint.

All routes live under /api/v1/projects/<pid>/workflow and answer with

    {"workflow": <document>, "version": <int>, "progress": {completed, total, percent}}

plus an ``ETag: "<version>"`` header. Writes accept the version they were
based on either as an ``If-Match`` header or an ``expected_version`` body
field; a stale version answers 409.

Endpoints:
    GET    /workflow                                   load (migrates legacy documents)
    PUT    /workflow                                   {workflow} whole-document save
    GET    /workflow/readiness                         completion predicate per step
    POST   /workflow/subtype                           {subtype, subtype_name?, needs_figma?}
    POST   /workflow/steps/<sid>/assign                {user_id}
    POST   /workflow/steps/<sid>/complete
    POST   /workflow/steps/<sid>/incomplete
    POST   /workflow/steps/<sid>/review                {status}
    POST   /workflow/steps/<sid>/comments              {body}
    POST   /workflow/steps/<sid>/files                 multipart "file"
    POST   /workflow/steps/<sid>/files/<idx>/activate
    DELETE /workflow/steps/<sid>/files/<idx>
    PATCH  /workflow/steps/<sid>/data                  {key, value}
    PUT    /workflow/steps/<sid>/quotes                {quotes}
    PUT    /workflow/steps/<sid>/invoices              {invoices}
    PUT    /workflow/steps/<sid>/revision-status       {status}
    PUT    /workflow/steps/<sid>/revision-checklist    {items}
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from agencyhub.auth import current_user
from agencyhub.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from agencyhub.models import db
from agencyhub.services import storage_service, workflow_service
from agencyhub.utils.errors import E, api_error, exception_error
from agencyhub.utils.helpers import db_commit_or_error
from agencyhub.workflow import engine

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1/projects/<int:pid>/workflow")


class _BadVersion(Exception):
    pass


# ── Error handlers ────────────────────────────────────────────────────────────


@workflow_bp.errorhandler(NotFoundError)
@workflow_bp.errorhandler(ValidationError)
@workflow_bp.errorhandler(ConflictError)
def _handle_service_error(error: Exception):
    db.session.rollback()
    if isinstance(error, VersionConflictError):
        logger.info("Stale workflow write rejected: %s", error)
    return exception_error(error)


@workflow_bp.errorhandler(_BadVersion)
def _handle_bad_version(error: _BadVersion):
    return api_error(E.VALIDATION_INVALID, str(error))


@workflow_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    db.session.rollback()
    logger.exception("Unexpected error in workflow_bp endpoint=%s", request.endpoint)
    return jsonify({"error": "Internal server error"}), 500


# ═════════════════════════════════════════════════════════════════════════
# Document
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("", methods=["GET"])
def get_workflow(pid):
    doc, version = workflow_service.load(pid)
    # load() re-persists migrated documents
    return _respond(doc, version)


@workflow_bp.route("", methods=["PUT"])
def save_workflow(pid):
    data = _body()
    document = data.get("workflow")
    if not isinstance(document, dict):
        return jsonify({"error": "workflow is required"}), 400
    doc, version = workflow_service.save(
        pid, document, expected_version=_expected_version(data), user_id=_user_id(),
    )
    return _respond(doc, version)


@workflow_bp.route("/readiness", methods=["GET"])
def get_readiness(pid):
    steps, version = workflow_service.readiness(pid)
    err = db_commit_or_error()
    if err:
        return err
    resp = jsonify({"steps": steps, "version": version})
    resp.headers["ETag"] = f'"{version}"'
    return resp


@workflow_bp.route("/subtype", methods=["POST"])
def select_subtype(pid):
    data = _body()
    if not data.get("subtype"):
        return jsonify({"error": "subtype is required"}), 400
    doc, version = workflow_service.select_subtype(
        pid,
        subtype=data["subtype"],
        subtype_name=data.get("subtype_name", ""),
        needs_figma=data.get("needs_figma"),
        user_id=_user_id(),
        expected_version=_expected_version(data),
    )
    logger.info("Website subtype selected: %s", data["subtype"], extra={"project_id": pid})
    return _respond(doc, version)


# ═════════════════════════════════════════════════════════════════════════
# Step actions
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/steps/<step_id>/assign", methods=["POST"])
def assign_step(pid, step_id):
    data = _body()
    if data.get("user_id") in (None, ""):
        return jsonify({"error": "user_id is required"}), 400
    doc, version = workflow_service.assign_step(
        pid, step_id,
        assignee_id=data["user_id"],
        actor=current_user(),
        expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/complete", methods=["POST"])
def complete_step(pid, step_id):
    data = _body()
    doc, version = workflow_service.complete_step(
        pid, step_id, user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/incomplete", methods=["POST"])
def mark_incomplete(pid, step_id):
    data = _body()
    doc, version = workflow_service.mark_incomplete(
        pid, step_id, user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/review", methods=["POST"])
def set_review_status(pid, step_id):
    data = _body()
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    doc, version = workflow_service.set_review_status(
        pid, step_id, status=data["status"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/comments", methods=["POST"])
def add_comment(pid, step_id):
    data = _body()
    if not isinstance(data.get("body"), str):
        return jsonify({"error": "body is required"}), 400
    doc, version, comment = workflow_service.add_comment(
        pid, step_id, author=current_user(), body=data["body"],
        expected_version=_expected_version(data),
    )
    return _respond(doc, version, status=201, comment=comment)


# ── Files ────────────────────────────────────────────────────────────────────


@workflow_bp.route("/steps/<step_id>/files", methods=["POST"])
def upload_file(pid, step_id):
    workflow_service.get_website_project(pid)
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "file is required"}), 400

    expected_version = _expected_version(request.form)
    user = current_user()
    stored = storage_service.store_workflow_file(pid, step_id, upload)
    try:
        doc, version = workflow_service.add_file(
            pid, step_id,
            name=upload.filename,
            url=stored["url"],
            uploaded_by=user.display_name if user else None,
            user_id=user.id if user else None,
            expected_version=expected_version,
        )
    except (NotFoundError, ValidationError, ConflictError):
        storage_service.discard(stored["path"])
        raise
    return _respond(doc, version, status=201, file=stored)


@workflow_bp.route("/steps/<step_id>/files/<int:index>/activate", methods=["POST"])
def activate_file(pid, step_id, index):
    data = _body()
    doc, version = workflow_service.set_file_active(
        pid, step_id, index, user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/files/<int:index>", methods=["DELETE"])
def delete_file(pid, step_id, index):
    doc, version = workflow_service.delete_file(
        pid, step_id, index, user_id=_user_id(), expected_version=_expected_version({}),
    )
    return _respond(doc, version)


# ── Payloads ─────────────────────────────────────────────────────────────────


@workflow_bp.route("/steps/<step_id>/data", methods=["PATCH"])
def update_step_data(pid, step_id):
    data = _body()
    if not data.get("key"):
        return jsonify({"error": "key is required"}), 400
    if "value" not in data:
        return jsonify({"error": "value is required"}), 400
    doc, version = workflow_service.update_step_data(
        pid, step_id, key=data["key"], value=data["value"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/quotes", methods=["PUT"])
def update_quotes(pid, step_id):
    data = _body()
    if not isinstance(data.get("quotes"), list):
        return jsonify({"error": "quotes must be a list"}), 400
    doc, version = workflow_service.update_quotes(
        pid, step_id, quotes=data["quotes"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/invoices", methods=["PUT"])
def update_invoices(pid, step_id):
    data = _body()
    if not isinstance(data.get("invoices"), list):
        return jsonify({"error": "invoices must be a list"}), 400
    doc, version = workflow_service.update_invoices(
        pid, step_id, invoices=data["invoices"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/revision-status", methods=["PUT"])
def update_revision_status(pid, step_id):
    data = _body()
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    doc, version = workflow_service.update_revision_status(
        pid, step_id, status=data["status"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


@workflow_bp.route("/steps/<step_id>/revision-checklist", methods=["PUT"])
def update_revision_checklist(pid, step_id):
    data = _body()
    if not isinstance(data.get("items"), list):
        return jsonify({"error": "items must be a list"}), 400
    doc, version = workflow_service.update_revision_checklist(
        pid, step_id, items=data["items"],
        user_id=_user_id(), expected_version=_expected_version(data),
    )
    return _respond(doc, version)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _user_id():
    user = current_user()
    return user.id if user else None


def _expected_version(data):
    """Version the client based its write on: If-Match header wins over the body field."""
    raw = request.headers.get("If-Match")
    if raw:
        raw = raw.strip()
        if raw.startswith("W/"):
            raw = raw[2:]
        raw = raw.strip('"')
        if raw == "*":
            return None
    else:
        raw = data.get("expected_version")
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise _BadVersion(f"Invalid workflow version: {raw!r}")


def _respond(doc, version, status=200, **extra):
    err = db_commit_or_error()
    if err:
        return err
    body = {"workflow": doc, "version": version, "progress": engine.progress(doc), **extra}
    resp = jsonify(body)
    resp.status_code = status
    resp.headers["ETag"] = f'"{version}"'
    return resp
