"""
Workflow document migrations.

Stored documents carry ``schemaVersion`` (absent = 0). Each migration upgrades
a document from one version to the next and is registered with
``@register_migration(from_version)``. ``migrate_document`` runs every
pending migration in order and reports whether anything changed so the
caller can re-persist.

Every migration re-checks that the step it inserts is absent, so running the
pass over an already-upgraded document is a no-op.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable

from agencyhub.core.exceptions import ValidationError
from agencyhub.workflow import kinds
from agencyhub.workflow.catalog import CATALOG_VERSION

logger = logging.getLogger(__name__)

_migrations: dict[int, Callable[[dict], dict]] = {}


def register_migration(from_version: int):
    """Decorator to register an upgrade from ``from_version`` to ``from_version + 1``."""
    def decorator(fn):
        if from_version in _migrations:
            raise ValueError(f"Migration from schema version {from_version} already registered")
        _migrations[from_version] = fn
        return fn
    return decorator


def document_version(doc: dict) -> int:
    try:
        return int(doc.get("schemaVersion") or 0)
    except (TypeError, ValueError):
        return 0


def _index_of(steps: list[dict], step_id: str) -> int:
    for i, step in enumerate(steps):
        if step.get("id") == step_id:
            return i
    return -1


def _is_completed(step: dict) -> bool:
    return step.get("status") == "completed"


# ═════════════════════════════════════════════════════════════════════════════
# 0 → 1: Financials step after Technical Review
# ═════════════════════════════════════════════════════════════════════════════

@register_migration(0)
def add_financials_step(doc: dict) -> dict:
    steps = doc.get("steps") or []
    if not doc.get("projectSubtype") or _index_of(steps, "financials") != -1:
        return doc

    review_idx = _index_of(steps, "technical_review")
    if review_idx == -1:
        return doc

    status = "pending" if _is_completed(steps[review_idx]) else "locked"
    steps.insert(review_idx + 1, kinds.FINANCIALS.new_step(6, status=status))

    # Renumber everything after financials
    for offset, step in enumerate(steps[review_idx + 2:]):
        if step.get("concurrent"):
            step["number"] = "7a" if step.get("id") == "ui_ux_design" else "7b"
        else:
            step["number"] = 7 + offset

    doc["steps"] = steps
    logger.info("Workflow migration: inserted financials step (status=%s)", status)
    return doc


# ═════════════════════════════════════════════════════════════════════════════
# 1 → 2: MVP Production / Revisions / Project Completion suffix
# ═════════════════════════════════════════════════════════════════════════════

@register_migration(1)
def add_delivery_steps(doc: dict) -> dict:
    steps = doc.get("steps") or []
    if not doc.get("projectSubtype") or _index_of(steps, "mvp_production") != -1:
        return doc

    last_design = max(_index_of(steps, step_id) for step_id in kinds.DESIGN_STEP_IDS)
    if last_design == -1:
        return doc

    prior_done = all(_is_completed(s) for s in steps[:last_design + 1])
    # Covers members of the concurrent pair that sit after last_design
    pair_done = all(_is_completed(s) for s in steps if s.get("concurrent"))
    mvp_status = "pending" if prior_done and pair_done else "locked"

    anchor = steps[last_design]
    if anchor.get("concurrent"):
        next_num = 8
    elif isinstance(anchor.get("number"), int):
        next_num = anchor["number"] + 1
    else:
        next_num = 9

    suffix = [
        kinds.MVP_PRODUCTION.new_step(next_num, status=mvp_status),
        kinds.REVISIONS.new_step(next_num + 1),
        kinds.PROJECT_COMPLETION.new_step(next_num + 2),
    ]
    steps[last_design + 1:last_design + 1] = suffix
    doc["steps"] = steps
    logger.info("Workflow migration: appended delivery steps from #%s (mvp=%s)", next_num, mvp_status)
    return doc


# ── Runner ───────────────────────────────────────────────────────────────────

def migrate_document(doc: dict) -> tuple[dict, bool]:
    """Upgrade ``doc`` to CATALOG_VERSION.

    Returns (migrated_copy, changed). The input is not mutated.
    Raises ValidationError for a document newer than this server understands.
    """
    version = document_version(doc)
    if version > CATALOG_VERSION:
        raise ValidationError(
            f"Workflow schema version {version} is newer than supported ({CATALOG_VERSION})",
            details={"schemaVersion": version},
        )
    if version == CATALOG_VERSION:
        return doc, False

    migrated = copy.deepcopy(doc)
    while version < CATALOG_VERSION:
        fn = _migrations.get(version)
        if fn is None:
            raise RuntimeError(f"No workflow migration registered from schema version {version}")
        migrated = fn(migrated)
        version += 1
        migrated["schemaVersion"] = version
    return migrated, True
