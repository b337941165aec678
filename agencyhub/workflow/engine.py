"""
Workflow transition engine.

Every public function is a reducer: it takes a workflow document and returns a
new document, never mutating its input. No database access happens here;
``services.workflow_service`` wraps each reducer in load → reduce → save.

Status lifecycle per step:
    locked → pending → in_progress → completed
    (mark_incomplete moves a step back to in_progress and re-locks everything after it)

Unlock rules on completion:
    - the next stage unlocks: either the single next step, or the whole
      concurrent group that follows
    - financials always unlocks both design steps, whether they are a
      concurrent group (7a + 7b) or sequential (template with Figma)
    - a concurrent member only unlocks the step after its group once every
      member of the group is completed (fan-in)

Errors:
    NotFoundError   — step id not present in the document
    ValidationError — action not allowed in the current state
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone

from agencyhub.core.exceptions import NotFoundError, ValidationError
from agencyhub.workflow import kinds
from agencyhub.workflow.catalog import SUBTYPES, build_steps


def _now_iso(now=None) -> str:
    if now is None:
        now = datetime.now(timezone.utc)
    if isinstance(now, datetime):
        return now.isoformat()
    return str(now)


def _clone(doc: dict) -> dict:
    if not isinstance(doc, dict) or not isinstance(doc.get("steps"), list):
        raise ValidationError("Workflow document must be an object with a 'steps' list")
    return copy.deepcopy(doc)


def find_step(doc: dict, step_id: str) -> tuple[int, dict]:
    """Return (index, step) for ``step_id`` or raise NotFoundError."""
    for i, step in enumerate(doc.get("steps") or []):
        if step.get("id") == step_id:
            return i, step
    raise NotFoundError(resource="Workflow step", resource_id=step_id)


def _kind(step: dict) -> kinds.StepKind:
    try:
        return kinds.kind_for(step.get("id"))
    except KeyError as exc:
        raise ValidationError(str(exc.args[0])) from None


def _concurrent_group(steps: list[dict], index: int) -> tuple[int, int]:
    """Return [start, end) of the run of concurrent steps around ``index``."""
    if not steps[index].get("concurrent"):
        return index, index + 1
    start = index
    while start > 0 and steps[start - 1].get("concurrent"):
        start -= 1
    end = index + 1
    while end < len(steps) and steps[end].get("concurrent"):
        end += 1
    return start, end


def _unlock(step: dict) -> None:
    if step.get("status") == "locked":
        step["status"] = "pending"


def _unlock_stage_at(steps: list[dict], index: int) -> None:
    """Unlock the step at ``index`` and, if concurrent, its whole group."""
    if index >= len(steps):
        return
    start, end = _concurrent_group(steps, index)
    for step in steps[start:end]:
        _unlock(step)


def _reset(step: dict, status: str) -> None:
    step["status"] = status
    step["completedAt"] = None
    if "reviewStatus" in step:
        step["reviewStatus"] = None


# ═════════════════════════════════════════════════════════════════════════════
# Step 1: subtype selection
# ═════════════════════════════════════════════════════════════════════════════

def select_subtype(doc: dict, subtype: str, subtype_name: str = "",
                   needs_figma: bool | None = None, now=None) -> dict:
    """Complete step 1 and expand the document with the subtype's catalog."""
    new = _clone(doc)
    if not subtype:
        raise ValidationError("Project subtype is required")
    if subtype not in SUBTYPES:
        raise ValidationError(
            f"Invalid project subtype: {subtype}",
            details={"allowed": sorted(SUBTYPES)},
        )
    rules = SUBTYPES[subtype]
    subtype_name = (subtype_name or "").strip()
    if rules["requires_name"] and not subtype_name:
        raise ValidationError(f"A name is required for {rules['label']} projects")
    if rules["requires_figma_choice"] and needs_figma is None:
        raise ValidationError("Specify whether the template project needs a Figma design")

    _, first = find_step(new, kinds.WEBSITE_TYPE.kind_id)
    if first.get("status") == "completed":
        raise ValidationError("Project type already selected; mark step 1 incomplete to change it")

    first["status"] = "completed"
    first["completedAt"] = _now_iso(now)
    first.setdefault("data", {})["selectedType"] = subtype

    steps = build_steps(subtype, bool(needs_figma) if subtype == "template" else None)
    steps[0]["status"] = "pending"

    new["projectSubtype"] = subtype
    new["subtypeName"] = subtype_name
    new["needsFigma"] = bool(needs_figma) if subtype == "template" else None
    new["steps"] = [first] + steps
    return new


# ═════════════════════════════════════════════════════════════════════════════
# Assignment / completion
# ═════════════════════════════════════════════════════════════════════════════

def assign_user(doc: dict, step_id: str, user_id, user_name: str | None,
                task_id=None) -> dict:
    if user_id in (None, ""):
        raise ValidationError("user_id is required to assign a step")
    new = _clone(doc)
    _, step = find_step(new, step_id)
    step["assignedUserId"] = str(user_id)
    step["assignedUserName"] = user_name
    if task_id is not None:
        step["taskId"] = task_id
    if step.get("status") not in ("locked", "completed"):
        step["status"] = "in_progress"
    return new


def complete_step(doc: dict, step_id: str, now=None, *, enforce: bool = True) -> dict:
    """Mark ``step_id`` completed and unlock whatever it gates."""
    new = _clone(doc)
    index, step = find_step(new, step_id)
    kind = _kind(step)

    if kind.kind_id == kinds.WEBSITE_TYPE.kind_id:
        raise ValidationError("Step 1 is completed by selecting the project subtype")
    if step.get("status") == "locked":
        raise ValidationError("Step is locked", details={"step_id": step_id})
    if step.get("status") == "completed":
        raise ValidationError("Step is already completed", details={"step_id": step_id})
    if not step.get("assignedUserId"):
        raise ValidationError("Assign a user before completing this step", details={"step_id": step_id})
    if enforce:
        reason = kind.missing(step)
        if reason:
            raise ValidationError(reason, details={"step_id": step_id})

    step["status"] = "completed"
    step["completedAt"] = _now_iso(now)

    steps = new["steps"]
    if kind.kind_id == kinds.FINANCIALS.kind_id:
        for later in steps[index + 1:]:
            if later.get("id") in kinds.DESIGN_STEP_IDS:
                _unlock(later)
    start, end = _concurrent_group(steps, index)
    if all(s.get("status") == "completed" for s in steps[start:end]):
        _unlock_stage_at(steps, end)
    return new


def mark_incomplete(doc: dict, step_id: str) -> dict:
    """Re-open ``step_id`` and lock every later step (payloads are kept)."""
    new = _clone(doc)
    index, step = find_step(new, step_id)
    _reset(step, "in_progress")

    if step_id == kinds.WEBSITE_TYPE.kind_id:
        new["steps"] = [step]
        new["projectSubtype"] = None
        new["needsFigma"] = None
        return new

    for later in new["steps"][index + 1:]:
        _reset(later, "locked")
    return new


def set_review_status(doc: dict, step_id: str, status: str, now=None) -> dict:
    if status not in kinds.REVIEW_STATUSES:
        raise ValidationError(
            f"Invalid review status: {status}",
            details={"allowed": list(kinds.REVIEW_STATUSES)},
        )
    new = _clone(doc)
    _, step = find_step(new, step_id)
    if not _kind(step).reviewed:
        raise ValidationError("This step has no review", details={"step_id": step_id})
    if not step.get("assignedUserId"):
        raise ValidationError("Assign a user before reviewing this step", details={"step_id": step_id})

    step["reviewStatus"] = status
    if status == "passed" and step.get("status") != "completed":
        return complete_step(new, step_id, now)
    return new


# ═════════════════════════════════════════════════════════════════════════════
# Files
# ═════════════════════════════════════════════════════════════════════════════

def _file_step(new: dict, step_id: str) -> dict:
    _, step = find_step(new, step_id)
    if not _kind(step).has_files:
        raise ValidationError("This step does not accept files", details={"step_id": step_id})
    step.setdefault("files", [])
    return step


def _check_index(files: list, index: int) -> None:
    if not isinstance(index, int) or index < 0 or index >= len(files):
        raise ValidationError(f"File index {index} out of range", details={"count": len(files)})


def add_file(doc: dict, step_id: str, name: str, url: str, now=None,
             uploaded_by: str | None = None) -> dict:
    """Append a new file version; it becomes the only active file."""
    new = _clone(doc)
    step = _file_step(new, step_id)
    files = step["files"]
    version = max((int(f.get("version") or 0) for f in files), default=0) + 1
    for f in files:
        f["isActive"] = False
    files.append({
        "name": name,
        "url": url,
        "uploadedAt": _now_iso(now),
        "uploadedBy": uploaded_by,
        "version": version,
        "isActive": True,
    })
    return new


def set_file_active(doc: dict, step_id: str, index: int) -> dict:
    new = _clone(doc)
    files = _file_step(new, step_id)["files"]
    _check_index(files, index)
    for i, f in enumerate(files):
        f["isActive"] = i == index
    return new


def delete_file(doc: dict, step_id: str, index: int) -> dict:
    new = _clone(doc)
    files = _file_step(new, step_id)["files"]
    _check_index(files, index)
    files.pop(index)
    if files and not any(f.get("isActive") for f in files):
        files[-1]["isActive"] = True
    return new


# ═════════════════════════════════════════════════════════════════════════════
# Comments / step payloads
# ═════════════════════════════════════════════════════════════════════════════

def add_comment(doc: dict, step_id: str, user_id, user_name: str | None,
                body: str, now=None) -> tuple[dict, dict]:
    """Return (new_doc, comment)."""
    body = (body or "").strip()
    if not body:
        raise ValidationError("Comment body is required")
    new = _clone(doc)
    _, step = find_step(new, step_id)
    comment = {
        "id": str(uuid.uuid4()),
        "userId": str(user_id) if user_id is not None else None,
        "userName": user_name or "Unknown",
        "body": body,
        "createdAt": _now_iso(now),
    }
    step.setdefault("comments", []).append(comment)
    return new, comment


def update_step_data(doc: dict, step_id: str, key: str, value) -> dict:
    new = _clone(doc)
    _, step = find_step(new, step_id)
    allowed = _kind(step).data_keys()
    if key not in allowed:
        raise ValidationError(
            f"Unknown data field '{key}' for step {step_id}",
            details={"allowed": sorted(allowed)},
        )
    step.setdefault("data", {})[key] = value
    return new


def _financial_step(new: dict, step_id: str) -> dict:
    _, step = find_step(new, step_id)
    if not _kind(step).financial:
        raise ValidationError("This step has no financial associations", details={"step_id": step_id})
    return step


def _require_list(value, label: str) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{label} must be a list")
    return value


def _association_base(entry, label: str) -> dict:
    if not isinstance(entry, dict) or entry.get("invoiceId") in (None, ""):
        raise ValidationError(f"Each {label} entry needs an invoiceId")
    return {
        "invoiceId": entry["invoiceId"],
        "invoiceNumber": entry.get("invoiceNumber"),
        "total": entry.get("total"),
    }


def update_quotes(doc: dict, step_id: str, quotes) -> dict:
    new = _clone(doc)
    step = _financial_step(new, step_id)
    normalised = []
    for entry in _require_list(quotes, "quotes"):
        quote = _association_base(entry, "quote")
        quote["sentToClient"] = bool(entry.get("sentToClient"))
        quote["approvedByClient"] = bool(entry.get("approvedByClient"))
        quote["revisions"] = list(entry.get("revisions") or [])
        normalised.append(quote)
    step["quotes"] = normalised
    return new


def update_invoices(doc: dict, step_id: str, invoices) -> dict:
    new = _clone(doc)
    step = _financial_step(new, step_id)
    normalised = []
    for entry in _require_list(invoices, "invoices"):
        invoice = _association_base(entry, "invoice")
        payment_status = entry.get("paymentStatus") or "unpaid"
        if payment_status not in kinds.PAYMENT_STATUSES:
            raise ValidationError(
                f"Invalid payment status: {payment_status}",
                details={"allowed": list(kinds.PAYMENT_STATUSES)},
            )
        invoice["sentToClient"] = bool(entry.get("sentToClient"))
        invoice["paymentStatus"] = payment_status
        invoice["paidAmount"] = entry.get("paidAmount") or 0
        invoice["revisions"] = list(entry.get("revisions") or [])
        normalised.append(invoice)
    step["invoices"] = normalised
    return new


def _revision_step(new: dict, step_id: str) -> dict:
    _, step = find_step(new, step_id)
    if not _kind(step).revision:
        raise ValidationError("This step has no revision tracking", details={"step_id": step_id})
    return step


def update_revision_status(doc: dict, step_id: str, status) -> dict:
    if status is not None and status not in kinds.REVISION_STATUSES:
        raise ValidationError(
            f"Invalid revision status: {status}",
            details={"allowed": list(kinds.REVISION_STATUSES)},
        )
    new = _clone(doc)
    _revision_step(new, step_id)["revisionStatus"] = status
    return new


def update_revision_checklist(doc: dict, step_id: str, items) -> dict:
    new = _clone(doc)
    step = _revision_step(new, step_id)
    checklist = []
    for item in _require_list(items, "revisionChecklist"):
        if not isinstance(item, dict):
            raise ValidationError("Each checklist entry must be an object")
        text = (item.get("text") or "").strip()
        if not text:
            continue
        checklist.append({
            "id": item.get("id") or str(uuid.uuid4()),
            "text": text,
            "completed": bool(item.get("completed")),
            "assignedUserId": item.get("assignedUserId"),
            "assignedUserName": item.get("assignedUserName"),
            "taskId": item.get("taskId"),
        })
    step["revisionChecklist"] = checklist
    return new


# ═════════════════════════════════════════════════════════════════════════════
# Read-only views
# ═════════════════════════════════════════════════════════════════════════════

def progress(doc: dict) -> dict:
    steps = doc.get("steps") or []
    total = len(steps)
    completed = sum(1 for s in steps if s.get("status") == "completed")
    percent = round(completed * 100 / total) if total else 0
    return {"completed": completed, "total": total, "percent": percent}


def readiness(doc: dict) -> list[dict]:
    """Completion-predicate result for every step in document order."""
    result = []
    for step in doc.get("steps") or []:
        kind = _kind(step)
        reason = kind.missing(step)
        result.append({
            "id": step.get("id"),
            "number": step.get("number"),
            "status": step.get("status"),
            "ready": reason is None,
            "missing": reason,
        })
    return result


def validate_document(doc) -> dict:
    """Structural check for a client-supplied document (whole-document save)."""
    if not isinstance(doc, dict) or not isinstance(doc.get("steps"), list) or not doc["steps"]:
        raise ValidationError("Workflow document must be an object with a non-empty 'steps' list")
    subtype = doc.get("projectSubtype")
    if subtype is not None and subtype not in SUBTYPES:
        raise ValidationError(f"Invalid project subtype: {subtype}")
    seen = set()
    for step in doc["steps"]:
        if not isinstance(step, dict):
            raise ValidationError("Each step must be an object")
        step_id = step.get("id")
        if not kinds.is_known(step_id):
            raise ValidationError(f"Unknown workflow step: {step_id}")
        if step_id in seen:
            raise ValidationError(f"Duplicate workflow step: {step_id}")
        seen.add(step_id)
        if step.get("status") not in kinds.STEP_STATUSES:
            raise ValidationError(
                f"Invalid status for step {step_id}: {step.get('status')}",
                details={"allowed": list(kinds.STEP_STATUSES)},
            )
    return doc
