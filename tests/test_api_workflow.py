"""
Agency Hub
Tests — website workflow API.

Covers:
    - Website-only guard + 404 for unknown projects
    - Default document (version 0, ETag), subtype selection
    - Assignment → workflow task creation / reassignment
    - Completion guard + file upload + task status mirroring
    - Optimistic concurrency (If-Match header / expected_version body)
    - Whole-document save + validation
    - Legacy document migration on load
    - Comments with mentions, step data, financial associations, revisions
    - Readiness view
"""

import io
import os

import pytest
from flask import current_app

from agencyhub.models import db as _db
from agencyhub.models.task import Task
from agencyhub.models.workflow import ProjectWorkflow, WorkflowStepMention
from agencyhub.utils.errors import E
from agencyhub.workflow import kinds


def _url(project, suffix=""):
    return f"/api/v1/projects/{project['id']}/workflow{suffix}"


def _step(body, step_id):
    return next(s for s in body["workflow"]["steps"] if s["id"] == step_id)


def _select(client, project, subtype="custom", **kw):
    payload = {"subtype": subtype}
    payload.update(kw)
    res = client.post(_url(project, "/subtype"), json=payload)
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def _assign(client, project, step_id, user, headers=None):
    res = client.post(
        _url(project, f"/steps/{step_id}/assign"),
        json={"user_id": user["id"]}, headers=headers or {},
    )
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def _upload(client, project, step_id, name="brief.pdf", headers=None, **form):
    data = {"file": (io.BytesIO(b"%PDF-1.4"), name)}
    data.update(form)
    return client.post(
        _url(project, f"/steps/{step_id}/files"),
        data=data, content_type="multipart/form-data", headers=headers or {},
    )


def _stored_files(project, step_id):
    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], "workflows", str(project["id"]), step_id)
    return os.listdir(folder) if os.path.isdir(folder) else []


@pytest.fixture()
def custom_workflow(client, website_project):
    _select(client, website_project, "custom")
    return website_project


# ═════════════════════════════════════════════════════════════════════════════
# LOAD / GUARDS
# ═════════════════════════════════════════════════════════════════════════════


class TestWorkflowLoad:
    def test_default_document(self, client, website_project):
        res = client.get(_url(website_project))
        assert res.status_code == 200
        assert res.headers["ETag"] == '"0"'
        body = res.get_json()
        assert body["version"] == 0
        assert body["progress"] == {"completed": 0, "total": 1, "percent": 0}
        assert [s["id"] for s in body["workflow"]["steps"]] == ["website_type"]
        assert ProjectWorkflow.query.count() == 0

    def test_non_website_project(self, client, company):
        project = client.post("/api/v1/projects", json={
            "name": "Brand book", "project_type": "branding", "company_id": company["id"],
        }).get_json()
        res = client.get(_url(project))
        assert res.status_code == 422
        assert res.get_json()["error"] == "Workflows are only available for Website projects"

    def test_unknown_project(self, client):
        res = client.get("/api/v1/projects/9999/workflow")
        assert res.status_code == 404
        assert res.get_json()["code"] == E.NOT_FOUND

    def test_legacy_document_migrated_on_load(self, client, website_project):
        first = kinds.WEBSITE_TYPE.new_step(1, status="completed")
        first["data"]["selectedType"] = "saas"
        legacy_steps = [first] + [
            kinds.PROJECT_BRIEF.new_step(2, status="completed"),
            kinds.BRAND_GUIDELINES.new_step(3, status="completed"),
            kinds.TECHNICAL_SCOPE.new_step(4, status="completed"),
            kinds.TECHNICAL_REVIEW.new_step(5, status="completed"),
            kinds.PROJECT_SCAFFOLDING.new_step(6),
        ]
        _db.session.add(ProjectWorkflow(
            project_id=website_project["id"],
            workflow_data={"projectSubtype": "saas", "steps": legacy_steps},
            version=3,
        ))
        _db.session.commit()

        res = client.get(_url(website_project))
        assert res.status_code == 200
        body = res.get_json()
        assert body["version"] == 4
        assert body["workflow"]["schemaVersion"] == 2
        ids = [s["id"] for s in body["workflow"]["steps"]]
        assert ids[5] == "financials"
        assert ids[-3:] == ["mvp_production", "revisions", "project_completion"]
        assert _step(body, "financials")["status"] == "pending"
        assert _step(body, "project_scaffolding")["number"] == 7

        # stored copy was upgraded, a second load is stable
        again = client.get(_url(website_project)).get_json()
        assert again["version"] == 4


class TestSubtype:
    def test_select_custom(self, client, website_project):
        body = _select(client, website_project, "custom")
        assert body["version"] == 1
        assert body["workflow"]["projectSubtype"] == "custom"
        assert len(body["workflow"]["steps"]) == 11
        assert body["progress"]["completed"] == 1
        assert _step(body, "project_brief")["status"] == "pending"

    def test_template_requires_name_and_figma(self, client, website_project):
        res = client.post(_url(website_project, "/subtype"), json={"subtype": "template"})
        assert res.status_code == 422
        assert res.get_json()["code"] == E.RULE_VIOLATION

        body = _select(client, website_project, "template", subtype_name="Dawn", needs_figma=False)
        assert "ui_ux_design" not in [s["id"] for s in body["workflow"]["steps"]]
        assert body["workflow"]["subtypeName"] == "Dawn"

    def test_subtype_required(self, client, website_project):
        assert client.post(_url(website_project, "/subtype"), json={}).status_code == 400

    def test_reselect_after_reset(self, client, custom_workflow):
        res = client.post(_url(custom_workflow, "/subtype"), json={"subtype": "saas", "subtype_name": "Portal"})
        assert res.status_code == 422

        client.post(_url(custom_workflow, "/steps/website_type/incomplete"))
        body = _select(client, custom_workflow, "saas", subtype_name="Portal")
        assert body["workflow"]["projectSubtype"] == "saas"


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGN / COMPLETE
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignAndComplete:
    def test_assign_creates_workflow_task(self, client, custom_workflow, user, auth_headers):
        body = _assign(client, custom_workflow, "project_brief", user, headers=auth_headers)
        step = _step(body, "project_brief")
        assert step["status"] == "in_progress"
        assert step["assignedUserName"] == "Dana Reyes"

        task = _db.session.get(Task, step["taskId"])
        assert task.name == "Workflow: Gather Project Brief"
        assert task.source == "workflow"
        assert task.project_id == custom_workflow["id"]
        assert task.assigned_user_id == user["id"]
        assert task.created_by_name == "Dana Reyes"

    def test_reassign_reuses_task(self, client, custom_workflow, user, other_user):
        first = _step(_assign(client, custom_workflow, "project_brief", user), "project_brief")
        second = _step(_assign(client, custom_workflow, "project_brief", other_user), "project_brief")
        assert second["taskId"] == first["taskId"]
        assert second["assignedUserName"] == "Sam Ito"
        assert Task.query.count() == 1
        assert _db.session.get(Task, second["taskId"]).assigned_user_name == "Sam Ito"

    def test_assign_unknown_user(self, client, custom_workflow):
        res = client.post(_url(custom_workflow, "/steps/project_brief/assign"), json={"user_id": 9999})
        assert res.status_code == 404
        assert Task.query.count() == 0

    def test_assign_requires_user_id(self, client, custom_workflow):
        assert client.post(_url(custom_workflow, "/steps/project_brief/assign"), json={}).status_code == 400

    def test_unknown_step(self, client, custom_workflow, user):
        res = client.post(_url(custom_workflow, "/steps/launch_party/assign"), json={"user_id": user["id"]})
        assert res.status_code == 404

    def test_complete_blocked_until_file_active(self, client, custom_workflow, user):
        _assign(client, custom_workflow, "project_brief", user)
        res = client.post(_url(custom_workflow, "/steps/project_brief/complete"))
        assert res.status_code == 422
        assert res.get_json()["error"] == "Upload a file and mark it active"

    def test_upload_then_complete(self, client, custom_workflow, user, auth_headers):
        _assign(client, custom_workflow, "project_brief", user)
        res = _upload(client, custom_workflow, "project_brief", headers=auth_headers)
        assert res.status_code == 201
        body = res.get_json()
        assert body["file"]["url"].startswith(f"/files/workflows/{custom_workflow['id']}/project_brief/")
        files = _step(body, "project_brief")["files"]
        assert files[0]["isActive"] is True
        assert files[0]["name"] == "brief.pdf"
        assert files[0]["uploadedBy"] == "Dana Reyes"

        body = client.post(_url(custom_workflow, "/steps/project_brief/complete")).get_json()
        step = _step(body, "project_brief")
        assert step["status"] == "completed"
        assert _step(body, "brand_guidelines")["status"] == "pending"
        assert _db.session.get(Task, step["taskId"]).status == "completed"

        body = client.post(_url(custom_workflow, "/steps/project_brief/incomplete")).get_json()
        assert _step(body, "brand_guidelines")["status"] == "locked"
        assert _db.session.get(Task, step["taskId"]).status == "in_progress"

    def test_upload_requires_file(self, client, custom_workflow):
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/files"),
            data={}, content_type="multipart/form-data",
        )
        assert res.status_code == 400

    def test_upload_to_step_without_files(self, client, custom_workflow):
        res = _upload(client, custom_workflow, "financials", name="q.pdf")
        assert res.status_code == 422
        assert _stored_files(custom_workflow, "financials") == []

    def test_stale_upload_leaves_no_file(self, client, custom_workflow):
        res = _upload(client, custom_workflow, "project_brief", name="late.pdf", expected_version=0)
        assert res.status_code == 409
        assert _stored_files(custom_workflow, "project_brief") == []

    def test_activate_and_delete_file(self, client, custom_workflow):
        _upload(client, custom_workflow, "project_brief", name="v1.pdf")
        _upload(client, custom_workflow, "project_brief", name="v2.pdf")

        body = client.post(_url(custom_workflow, "/steps/project_brief/files/0/activate")).get_json()
        assert [f["isActive"] for f in _step(body, "project_brief")["files"]] == [True, False]

        body = client.delete(_url(custom_workflow, "/steps/project_brief/files/0")).get_json()
        files = _step(body, "project_brief")["files"]
        assert [f["name"] for f in files] == ["v2.pdf"]
        assert files[0]["isActive"] is True

        assert client.delete(_url(custom_workflow, "/steps/project_brief/files/5")).status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# CONCURRENCY
# ═════════════════════════════════════════════════════════════════════════════


class TestOptimisticConcurrency:
    def test_stale_if_match_rejected(self, client, custom_workflow, user):
        res = client.get(_url(custom_workflow))
        etag = res.headers["ETag"]
        assert etag == '"1"'

        _assign(client, custom_workflow, "project_brief", user)

        res = client.post(
            _url(custom_workflow, "/steps/brand_guidelines/assign"),
            json={"user_id": user["id"]}, headers={"If-Match": etag},
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == E.CONFLICT_VERSION
        assert body["details"] == {"expected_version": 1, "current_version": 2}
        assert Task.query.count() == 1

    def test_matching_if_match_accepted(self, client, custom_workflow, user):
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/assign"),
            json={"user_id": user["id"]}, headers={"If-Match": 'W/"1"'},
        )
        assert res.status_code == 200
        assert res.headers["ETag"] == '"2"'

    def test_body_expected_version(self, client, custom_workflow):
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/comments"),
            json={"body": "hello", "expected_version": 0},
        )
        assert res.status_code == 409

    def test_wildcard_if_match(self, client, custom_workflow):
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/comments"),
            json={"body": "hello"}, headers={"If-Match": "*"},
        )
        assert res.status_code == 201

    def test_invalid_version(self, client, custom_workflow):
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/comments"),
            json={"body": "hello"}, headers={"If-Match": '"abc"'},
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == E.VALIDATION_INVALID


# ═════════════════════════════════════════════════════════════════════════════
# WHOLE-DOCUMENT SAVE
# ═════════════════════════════════════════════════════════════════════════════


class TestSaveDocument:
    def test_save_roundtrip(self, client, custom_workflow):
        body = client.get(_url(custom_workflow)).get_json()
        doc = body["workflow"]
        _step(body, "technical_scope")["data"]["scopeText"] = "Five templates"

        res = client.put(_url(custom_workflow), json={"workflow": doc, "expected_version": body["version"]})
        assert res.status_code == 200
        saved = res.get_json()
        assert saved["version"] == body["version"] + 1
        assert _step(saved, "technical_scope")["data"]["scopeText"] == "Five templates"

    def test_first_save_creates_row(self, client, website_project):
        body = client.get(_url(website_project)).get_json()
        res = client.put(_url(website_project), json={"workflow": body["workflow"]}, headers={"If-Match": '"0"'})
        assert res.status_code == 200
        assert res.get_json()["version"] == 1
        assert ProjectWorkflow.query.count() == 1

    def test_save_stale(self, client, custom_workflow):
        doc = client.get(_url(custom_workflow)).get_json()["workflow"]
        res = client.put(_url(custom_workflow), json={"workflow": doc, "expected_version": 7})
        assert res.status_code == 409

    def test_save_invalid_document(self, client, custom_workflow):
        res = client.put(_url(custom_workflow), json={
            "workflow": {"steps": [{"id": "launch_party", "status": "pending"}]},
        })
        assert res.status_code == 422

    def test_save_requires_workflow(self, client, custom_workflow):
        assert client.put(_url(custom_workflow), json={"steps": []}).status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# STEP PAYLOADS
# ═════════════════════════════════════════════════════════════════════════════


class TestStepPayloads:
    def test_comment_with_mention(self, client, custom_workflow, auth_headers, other_user):
        text = f"@[Sam Ito]({other_user['id']}) please review"
        res = client.post(
            _url(custom_workflow, "/steps/project_brief/comments"),
            json={"body": text}, headers=auth_headers,
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["comment"]["userName"] == "Dana Reyes"
        assert _step(body, "project_brief")["comments"][0]["body"] == text

        mention = WorkflowStepMention.query.one()
        assert mention.mentioned_user_id == str(other_user["id"])
        assert mention.step_id == "project_brief"
        assert mention.author_name == "Dana Reyes"

    def test_comment_body_required(self, client, custom_workflow):
        assert client.post(_url(custom_workflow, "/steps/project_brief/comments"), json={}).status_code == 400
        res = client.post(_url(custom_workflow, "/steps/project_brief/comments"), json={"body": "  "})
        assert res.status_code == 422

    def test_step_data(self, client, custom_workflow):
        res = client.patch(_url(custom_workflow, "/steps/technical_scope/data"), json={
            "key": "scopeText", "value": "Pages: home, shop",
        })
        assert res.status_code == 200
        assert _step(res.get_json(), "technical_scope")["data"]["scopeText"] == "Pages: home, shop"

        res = client.patch(_url(custom_workflow, "/steps/technical_scope/data"), json={"key": "budget", "value": 1})
        assert res.status_code == 422
        assert client.patch(_url(custom_workflow, "/steps/technical_scope/data"), json={"key": "x"}).status_code == 400

    def test_financial_associations_resolved(self, client, custom_workflow):
        quote = client.post("/api/v1/invoices", json={
            "client_name": "Northwind Bakery", "invoice_type": "quote", "project_id": custom_workflow["id"],
            "items": [{"description": "Site", "quantity": 1, "unit_price": 8000}], "tax_rate": 0,
        }).get_json()
        res = client.put(_url(custom_workflow, "/steps/financials/quotes"), json={
            "quotes": [{"invoiceId": quote["id"], "approvedByClient": True, "invoiceNumber": "forged"}],
        })
        assert res.status_code == 200
        stored = _step(res.get_json(), "financials")["quotes"][0]
        assert stored["invoiceNumber"] == quote["invoice_number"]
        assert stored["total"] == 8000.0
        assert stored["approvedByClient"] is True

    def test_financial_association_type_checked(self, client, custom_workflow):
        invoice = client.post("/api/v1/invoices", json={"client_name": "Northwind Bakery"}).get_json()
        res = client.put(_url(custom_workflow, "/steps/financials/quotes"), json={
            "quotes": [{"invoiceId": invoice["id"]}],
        })
        assert res.status_code == 422

        res = client.put(_url(custom_workflow, "/steps/financials/invoices"), json={
            "invoices": [{"invoiceId": 9999}],
        })
        assert res.status_code == 404

        res = client.put(_url(custom_workflow, "/steps/financials/invoices"), json={"invoices": "all"})
        assert res.status_code == 400

    def test_revisions(self, client, custom_workflow):
        res = client.put(_url(custom_workflow, "/steps/revisions/revision-status"), json={"status": "submitted"})
        assert _step(res.get_json(), "revisions")["revisionStatus"] == "submitted"

        res = client.put(_url(custom_workflow, "/steps/revisions/revision-status"), json={"status": "done"})
        assert res.status_code == 422

        res = client.put(_url(custom_workflow, "/steps/revisions/revision-checklist"), json={
            "items": [{"text": "Fix footer"}, {"text": ""}],
        })
        assert [i["text"] for i in _step(res.get_json(), "revisions")["revisionChecklist"]] == ["Fix footer"]

    def test_review_status(self, client, custom_workflow, user):
        _assign(client, custom_workflow, "technical_review", user)
        res = client.post(_url(custom_workflow, "/steps/technical_review/review"), json={
            "status": "lacks_information",
        })
        assert res.status_code == 200
        assert _step(res.get_json(), "technical_review")["reviewStatus"] == "lacks_information"
        assert client.post(_url(custom_workflow, "/steps/technical_review/review"), json={}).status_code == 400


class TestReadiness:
    def test_readiness(self, client, custom_workflow, user):
        _assign(client, custom_workflow, "project_brief", user)
        res = client.get(_url(custom_workflow, "/readiness"))
        assert res.status_code == 200
        assert res.headers["ETag"] == '"2"'
        rows = {r["id"]: r for r in res.get_json()["steps"]}
        assert rows["website_type"]["ready"] is True
        assert rows["project_brief"]["missing"] == "Upload a file and mark it active"
        assert rows["financials"]["missing"] == "Assign a user to this step"
