"""Local object storage for uploaded documents.

Layout under ``UPLOAD_FOLDER``:

    project-documents/{project_id}/{timestamp}.{ext}
    workflows/{project_id}/{step_id}/{timestamp}.{ext}

Each stored object is addressed by ``{PUBLIC_FILES_BASE_URL}/{path}`` and
served back by the ``files`` route in ``blueprints.health_bp``.
"""
import logging
import os
import time

from flask import current_app
from werkzeug.utils import secure_filename

from agencyhub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _extension(filename: str) -> str:
    safe = secure_filename(filename or "")
    if "." not in safe:
        return "file"
    ext = safe.rsplit(".", 1)[1].lower()
    return ext or "file"


def _timestamp() -> int:
    return int(time.time() * 1000)


def upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def public_url(path: str) -> str:
    base = current_app.config.get("PUBLIC_FILES_BASE_URL", "/files").rstrip("/")
    return f"{base}/{path}"


def _store(file_storage, relative_dir: str) -> dict:
    if file_storage is None or not file_storage.filename:
        raise ValidationError("A file is required")

    root = upload_root()
    target_dir = os.path.join(root, relative_dir)
    os.makedirs(target_dir, exist_ok=True)

    stamp = _timestamp()
    ext = _extension(file_storage.filename)
    name = f"{stamp}.{ext}"
    while os.path.exists(os.path.join(target_dir, name)):
        stamp += 1
        name = f"{stamp}.{ext}"

    file_storage.save(os.path.join(target_dir, name))
    path = f"{relative_dir}/{name}"
    logger.info("Stored upload %s (%s)", path, file_storage.filename)
    return {
        "path": path,
        "url": public_url(path),
        "name": secure_filename(file_storage.filename) or name,
    }


def store_project_document(project_id: int, file_storage) -> dict:
    """Store a project document. Returns {path, url, name}."""
    return _store(file_storage, f"project-documents/{int(project_id)}")


def store_workflow_file(project_id: int, step_id: str, file_storage) -> dict:
    """Store a workflow step file. Returns {path, url, name}."""
    step_dir = secure_filename(step_id or "")
    if not step_dir:
        raise ValidationError("step_id is required")
    return _store(file_storage, f"workflows/{int(project_id)}/{step_dir}")


def resolve_path(path: str) -> str | None:
    """Absolute path for a stored object, or None when it escapes the upload root."""
    root = os.path.realpath(upload_root())
    full = os.path.realpath(os.path.join(root, path))
    if not full.startswith(root + os.sep):
        return None
    return full


def discard(path: str) -> None:
    """Remove a stored object that ended up unreferenced."""
    full = resolve_path(path)
    if full and os.path.isfile(full):
        os.remove(full)
        logger.info("Discarded upload %s", path)
