"""
Agency Hub
Website project workflow — pure document logic (no database access).

Submodules:
    - kinds: step-kind registry (payload shape + completion predicate per step id)
    - catalog: per-subtype ordered step templates and the default document
    - migrations: schemaVersion-keyed upgrade functions for stored documents
    - engine: reducers (document in → new document out) for every step action

A workflow document is the JSON blob stored in ``project_workflows``:

    {
        "schemaVersion": 2,
        "projectSubtype": "custom" | "template" | "saas" | null,
        "subtypeName": "",
        "needsFigma": true | false | null,
        "steps": [ {id, number, title, description, status, assignedUserId, ...}, ... ]
    }
"""
