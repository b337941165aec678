"""
Step-kind registry.

Every workflow step id maps to exactly one ``StepKind`` which declares:
    - the payload the step carries (data defaults, files, review, financial
      associations, revision checklist)
    - the completion predicate gating ``complete_step``

``kind_for`` is exhaustive: an id that is not registered raises KeyError, so a
new step type must be added here before the catalog or engine can use it.

Usage:
    from agencyhub.workflow.kinds import kind_for

    kind = kind_for("financials")
    kind.missing(step)      # -> None when ready, else a human-readable reason
    kind.is_ready(step)     # -> bool
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Callable

# ── Status vocabularies ──────────────────────────────────────────────────────

STEP_STATUSES = ("locked", "pending", "in_progress", "completed")
REVIEW_STATUSES = ("needs_improvement", "lacks_information", "passed")
PAYMENT_STATUSES = ("unpaid", "partially_paid", "paid")
REVISION_STATUSES = ("in_progress", "submitted", "approved")

PAID_STATUSES = {"paid", "partially_paid"}


# ── Predicates ───────────────────────────────────────────────────────────────
# Each returns None when satisfied, otherwise the reason the step is not ready.

def _has_active_file(step: dict) -> bool:
    return any(f.get("isActive") for f in step.get("files") or [])


def _text(step: dict, key: str) -> str:
    value = (step.get("data") or {}).get(key)
    return value.strip() if isinstance(value, str) else ""


def _needs_active_file(step: dict) -> str | None:
    if _has_active_file(step):
        return None
    return "Upload a file and mark it active"


def _needs_scope(step: dict) -> str | None:
    if _text(step, "scopeText") or _has_active_file(step):
        return None
    return "Enter or generate the technical scope, or upload a scope document"


def _needs_passed_review(step: dict) -> str | None:
    if step.get("reviewStatus") == "passed":
        return None
    return "Review status must be 'passed'"


def _needs_financials(step: dict) -> str | None:
    approved_quote = any(q.get("approvedByClient") is True for q in step.get("quotes") or [])
    paid_invoice = any(i.get("paymentStatus") in PAID_STATUSES for i in step.get("invoices") or [])
    if approved_quote and paid_invoice:
        return None
    if not approved_quote:
        return "Associate a quote approved by the client"
    return "Associate an invoice with a recorded payment"


def _needs_mvp_link(step: dict) -> str | None:
    if _text(step, "mvpLink"):
        return None
    return "Provide the MVP preview link"


def _needs_approved_revisions(step: dict) -> str | None:
    if step.get("revisionStatus") == "approved":
        return None
    return "Revision status must be 'approved'"


def _needs_selected_type(step: dict) -> str | None:
    if (step.get("data") or {}).get("selectedType"):
        return None
    return "Select the website project type"


# ── StepKind ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StepKind:
    """Declarative description of one workflow step type."""

    kind_id: str
    title: str
    description: str
    predicate: Callable[[dict], str | None]
    data_defaults: dict | None = None
    has_files: bool = False
    reviewed: bool = False
    financial: bool = False
    revision: bool = False
    requires_assignee: bool = True
    extra: dict = field(default_factory=dict)

    def new_step(self, number, *, status: str = "locked", description: str | None = None,
                 concurrent: bool = False) -> dict:
        """Build a fresh step record of this kind."""
        step = {
            "id": self.kind_id,
            "number": number,
            "title": self.title,
            "description": description or self.description,
            "status": status,
            "assignedUserId": None,
            "assignedUserName": None,
            "taskId": None,
            "completedAt": None,
            "comments": [],
        }
        if self.data_defaults is not None:
            step["data"] = copy.deepcopy(self.data_defaults)
        if self.has_files:
            step["files"] = []
        if self.reviewed:
            step["reviewStatus"] = None
        if self.financial:
            step["quotes"] = []
            step["invoices"] = []
        if self.revision:
            step["revisionStatus"] = None
            step["revisionChecklist"] = []
        if concurrent:
            step["concurrent"] = True
        return step

    def missing(self, step: dict) -> str | None:
        """Return why ``step`` cannot be completed yet, or None if it can."""
        if self.requires_assignee and not step.get("assignedUserId"):
            return "Assign a user to this step"
        return self.predicate(step)

    def is_ready(self, step: dict) -> bool:
        return self.missing(step) is None

    def data_keys(self) -> set[str]:
        return set(self.data_defaults or {})


# ── Registry ─────────────────────────────────────────────────────────────────

_kinds: dict[str, StepKind] = {}


def _register(kind: StepKind) -> StepKind:
    if kind.kind_id in _kinds:
        raise ValueError(f"Duplicate workflow step kind: {kind.kind_id}")
    _kinds[kind.kind_id] = kind
    return kind


WEBSITE_TYPE = _register(StepKind(
    kind_id="website_type",
    title="Determine Website Project Type",
    description="Select the type of website project",
    predicate=_needs_selected_type,
    data_defaults={"selectedType": None},
    requires_assignee=False,
))
PROJECT_BRIEF = _register(StepKind(
    kind_id="project_brief",
    title="Gather Project Brief",
    description="Upload the project brief (PDF/Word)",
    predicate=_needs_active_file,
    has_files=True,
))
BRAND_GUIDELINES = _register(StepKind(
    kind_id="brand_guidelines",
    title="Gather Brand Guidelines",
    description="Upload brand guidelines document",
    predicate=_needs_active_file,
    has_files=True,
))
TECHNICAL_SCOPE = _register(StepKind(
    kind_id="technical_scope",
    title="Technical Scope",
    description="Generate with AI or upload document",
    predicate=_needs_scope,
    data_defaults={"scopeText": "", "scopeMode": "ai"},
    has_files=True,
))
TECHNICAL_REVIEW = _register(StepKind(
    kind_id="technical_review",
    title="Technical Review",
    description="Review and approve the technical scope",
    predicate=_needs_passed_review,
    reviewed=True,
))
FINANCIALS = _register(StepKind(
    kind_id="financials",
    title="Financials",
    description="Associate quotes and invoices",
    predicate=_needs_financials,
    financial=True,
))
UI_UX_DESIGN = _register(StepKind(
    kind_id="ui_ux_design",
    title="UI/UX Design",
    description="Provide Figma design link",
    predicate=_needs_passed_review,
    data_defaults={"figmaLink": ""},
    reviewed=True,
))
PROJECT_SCAFFOLDING = _register(StepKind(
    kind_id="project_scaffolding",
    title="Project Scaffolding",
    description="Define project schema",
    predicate=_needs_passed_review,
    data_defaults={"schemaText": ""},
    has_files=True,
    reviewed=True,
))
MVP_PRODUCTION = _register(StepKind(
    kind_id="mvp_production",
    title="MVP Production",
    description="Provide MVP preview link",
    predicate=_needs_mvp_link,
    data_defaults={"mvpLink": ""},
))
REVISIONS = _register(StepKind(
    kind_id="revisions",
    title="Revisions",
    description="Manage revision checklist and tasks",
    predicate=_needs_approved_revisions,
    revision=True,
))
PROJECT_COMPLETION = _register(StepKind(
    kind_id="project_completion",
    title="Project Completion",
    description="Upload project completion form",
    predicate=_needs_active_file,
    has_files=True,
))

# Steps that can run side by side once financials is done (custom subtype)
DESIGN_STEP_IDS = (UI_UX_DESIGN.kind_id, PROJECT_SCAFFOLDING.kind_id)


def kind_for(step_id: str) -> StepKind:
    """Return the registered kind for ``step_id``; KeyError when unknown."""
    try:
        return _kinds[step_id]
    except KeyError:
        raise KeyError(f"Unknown workflow step kind: {step_id!r}") from None


def is_known(step_id) -> bool:
    return step_id in _kinds


def registered_kinds() -> list[str]:
    return list(_kinds)
