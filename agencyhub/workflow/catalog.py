"""
Step catalog — the ordered step list for each website project subtype.

    build_steps("custom")                     → 6 shared + 7a/7b (concurrent) + 8..10
    build_steps("template", needs_figma=True) → 6 shared + 7, 8 + 9..11
    build_steps("template", needs_figma=False)→ 6 shared + 7 + 8..10
    build_steps("saas")                       → 6 shared + 7 + 8..10

Step 1 (website_type) is not part of the built list; it lives at the head of
every document from ``default_document()`` onwards.
"""

from __future__ import annotations

from agencyhub.workflow import kinds

CATALOG_VERSION = 2

SUBTYPES = {
    "custom": {
        "label": "Custom Website",
        "requires_name": False,
        "requires_figma_choice": False,
    },
    "template": {
        "label": "Template Website",
        "requires_name": True,
        "requires_figma_choice": True,
    },
    "saas": {
        "label": "SAAS Platform",
        "requires_name": True,
        "requires_figma_choice": False,
    },
}

_SCAFFOLDING_DESCRIPTIONS = {
    "custom": "Define project schema and structure",
    "template": "Define project schema",
    "saas": "Define SAAS schema and architecture",
}


def _shared_prefix() -> list[dict]:
    return [
        kinds.PROJECT_BRIEF.new_step(2),
        kinds.BRAND_GUIDELINES.new_step(3),
        kinds.TECHNICAL_SCOPE.new_step(4),
        kinds.TECHNICAL_REVIEW.new_step(5),
        kinds.FINANCIALS.new_step(6),
    ]


def _shared_suffix(start: int) -> list[dict]:
    return [
        kinds.MVP_PRODUCTION.new_step(start),
        kinds.REVISIONS.new_step(start + 1),
        kinds.PROJECT_COMPLETION.new_step(start + 2),
    ]


def build_steps(subtype: str, needs_figma: bool | None = None) -> list[dict]:
    """Return fresh (all locked) steps 2..N for ``subtype``.

    Raises ValueError for a subtype outside ``SUBTYPES``.
    """
    if subtype not in SUBTYPES:
        raise ValueError(f"Unknown project subtype: {subtype!r}")

    steps = _shared_prefix()
    scaffolding_desc = _SCAFFOLDING_DESCRIPTIONS[subtype]

    if subtype == "custom":
        steps.append(kinds.UI_UX_DESIGN.new_step("7a", concurrent=True))
        steps.append(kinds.PROJECT_SCAFFOLDING.new_step(
            "7b", description=scaffolding_desc, concurrent=True,
        ))
        suffix_start = 8
    elif subtype == "template" and needs_figma:
        steps.append(kinds.UI_UX_DESIGN.new_step(7))
        steps.append(kinds.PROJECT_SCAFFOLDING.new_step(8, description=scaffolding_desc))
        suffix_start = 9
    else:
        steps.append(kinds.PROJECT_SCAFFOLDING.new_step(7, description=scaffolding_desc))
        suffix_start = 8

    steps.extend(_shared_suffix(suffix_start))
    return steps


def default_document() -> dict:
    """A brand-new workflow: only step 1, waiting for the subtype choice."""
    return {
        "schemaVersion": CATALOG_VERSION,
        "projectSubtype": None,
        "subtypeName": "",
        "needsFigma": None,
        "steps": [kinds.WEBSITE_TYPE.new_step(1, status="pending")],
    }
