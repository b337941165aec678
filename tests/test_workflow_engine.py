"""
Agency Hub
Tests — workflow transition engine (pure reducers, no database).

Covers:
    - Subtype selection + validation
    - Assignment / completion / unlock (linear + concurrent fan-out/fan-in)
    - Mark incomplete re-locks later steps
    - Review statuses
    - File versions (active flag, delete re-activation)
    - Comments, step data, quotes/invoices, revision tracking
    - progress / readiness / validate_document
"""

import pytest

from agencyhub.core.exceptions import NotFoundError, ValidationError
from agencyhub.workflow import engine
from agencyhub.workflow.catalog import default_document

NOW = "2026-03-01T10:00:00+00:00"


def _step(doc, step_id):
    return engine.find_step(doc, step_id)[1]


def _status(doc, step_id):
    return _step(doc, step_id)["status"]


def _selected(subtype="custom", **kw):
    if subtype == "template":
        kw.setdefault("subtype_name", "Shopify Dawn")
        kw.setdefault("needs_figma", True)
    if subtype == "saas":
        kw.setdefault("subtype_name", "Booking Portal")
    return engine.select_subtype(default_document(), subtype, now=NOW, **kw)


def _assigned(doc, step_id, user_id=1):
    return engine.assign_user(doc, step_id, user_id, "Dana Reyes", task_id=100)


def _with_active_file(doc, step_id):
    return engine.add_file(doc, step_id, "doc.pdf", "/files/doc.pdf", now=NOW)


def _through_financials(subtype="custom", **kw):
    """Drive a document to the point where financials is completed."""
    doc = _selected(subtype, **kw)
    for sid in ("project_brief", "brand_guidelines"):
        doc = _with_active_file(_assigned(doc, sid), sid)
        doc = engine.complete_step(doc, sid, NOW)
    doc = _assigned(doc, "technical_scope")
    doc = engine.update_step_data(doc, "technical_scope", "scopeText", "10 pages")
    doc = engine.complete_step(doc, "technical_scope", NOW)
    doc = _assigned(doc, "technical_review")
    doc = engine.set_review_status(doc, "technical_review", "passed", NOW)
    doc = _assigned(doc, "financials")
    doc = engine.update_quotes(doc, "financials", [{"invoiceId": 1, "approvedByClient": True}])
    doc = engine.update_invoices(doc, "financials", [{"invoiceId": 2, "paymentStatus": "paid"}])
    return engine.complete_step(doc, "financials", NOW)


# ═════════════════════════════════════════════════════════════════════════════
# SUBTYPE
# ═════════════════════════════════════════════════════════════════════════════


class TestSelectSubtype:
    def test_custom_expands_document(self):
        doc = _selected("custom")
        assert doc["projectSubtype"] == "custom"
        assert doc["needsFigma"] is None
        assert len(doc["steps"]) == 11
        first = doc["steps"][0]
        assert first["status"] == "completed"
        assert first["completedAt"] == NOW
        assert first["data"]["selectedType"] == "custom"
        assert _status(doc, "project_brief") == "pending"
        assert _status(doc, "brand_guidelines") == "locked"

    def test_template_requires_name(self):
        with pytest.raises(ValidationError):
            engine.select_subtype(default_document(), "template", needs_figma=True)

    def test_template_requires_figma_choice(self):
        with pytest.raises(ValidationError):
            engine.select_subtype(default_document(), "template", "Dawn")

    def test_saas_requires_name(self):
        with pytest.raises(ValidationError):
            engine.select_subtype(default_document(), "saas", "  ")

    def test_unknown_subtype(self):
        with pytest.raises(ValidationError) as exc:
            engine.select_subtype(default_document(), "wordpress")
        assert "custom" in exc.value.details["allowed"]

    def test_cannot_select_twice(self):
        with pytest.raises(ValidationError):
            engine.select_subtype(_selected(), "saas", "Portal")

    def test_input_not_mutated(self):
        doc = default_document()
        engine.select_subtype(doc, "custom")
        assert len(doc["steps"]) == 1
        assert doc["steps"][0]["status"] == "pending"


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGN / COMPLETE
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignAndComplete:
    def test_assign_moves_pending_to_in_progress(self):
        doc = _assigned(_selected(), "project_brief", user_id=7)
        step = _step(doc, "project_brief")
        assert step["status"] == "in_progress"
        assert step["assignedUserId"] == "7"
        assert step["assignedUserName"] == "Dana Reyes"
        assert step["taskId"] == 100

    def test_assign_locked_step_keeps_it_locked(self):
        doc = _assigned(_selected(), "brand_guidelines")
        assert _status(doc, "brand_guidelines") == "locked"
        assert _step(doc, "brand_guidelines")["assignedUserId"] == "1"

    def test_assign_requires_user(self):
        with pytest.raises(ValidationError):
            engine.assign_user(_selected(), "project_brief", None, None)

    def test_unknown_step(self):
        with pytest.raises(NotFoundError):
            _assigned(_selected(), "launch_party")

    def test_complete_requires_assignee(self):
        doc = _with_active_file(_selected(), "project_brief")
        with pytest.raises(ValidationError, match="Assign a user"):
            engine.complete_step(doc, "project_brief")

    def test_complete_enforces_predicate(self):
        doc = _assigned(_selected(), "project_brief")
        with pytest.raises(ValidationError, match="Upload a file"):
            engine.complete_step(doc, "project_brief")

    def test_complete_without_enforcement(self):
        doc = _assigned(_selected(), "project_brief")
        doc = engine.complete_step(doc, "project_brief", NOW, enforce=False)
        assert _status(doc, "project_brief") == "completed"

    def test_complete_unlocks_next(self):
        doc = _with_active_file(_assigned(_selected(), "project_brief"), "project_brief")
        doc = engine.complete_step(doc, "project_brief", NOW)
        assert _step(doc, "project_brief")["completedAt"] == NOW
        assert _status(doc, "brand_guidelines") == "pending"
        assert _status(doc, "technical_scope") == "locked"

    def test_locked_step_cannot_complete(self):
        doc = _assigned(_selected(), "brand_guidelines")
        with pytest.raises(ValidationError, match="locked"):
            engine.complete_step(doc, "brand_guidelines")

    def test_already_completed(self):
        doc = _with_active_file(_assigned(_selected(), "project_brief"), "project_brief")
        doc = engine.complete_step(doc, "project_brief", NOW)
        with pytest.raises(ValidationError, match="already completed"):
            engine.complete_step(doc, "project_brief")

    def test_website_type_not_completable_directly(self):
        with pytest.raises(ValidationError):
            engine.complete_step(default_document(), "website_type")


class TestConcurrentGroup:
    def test_financials_unlocks_both_design_steps(self):
        doc = _through_financials("custom")
        assert _status(doc, "ui_ux_design") == "pending"
        assert _status(doc, "project_scaffolding") == "pending"
        assert _status(doc, "mvp_production") == "locked"

    def test_fan_in_waits_for_both(self):
        doc = _through_financials("custom")
        doc = _assigned(doc, "ui_ux_design")
        doc = engine.set_review_status(doc, "ui_ux_design", "passed", NOW)
        assert _status(doc, "ui_ux_design") == "completed"
        assert _status(doc, "mvp_production") == "locked"

        doc = _assigned(doc, "project_scaffolding")
        doc = engine.set_review_status(doc, "project_scaffolding", "passed", NOW)
        assert _status(doc, "mvp_production") == "pending"

    def test_template_with_figma_unlocks_both_design_steps(self):
        doc = _through_financials("template", needs_figma=True)
        assert _status(doc, "ui_ux_design") == "pending"
        assert _status(doc, "project_scaffolding") == "pending"
        assert _status(doc, "mvp_production") == "locked"

    def test_template_without_figma_is_linear(self):
        doc = _through_financials("template", needs_figma=False)
        assert _status(doc, "project_scaffolding") == "pending"
        assert _status(doc, "mvp_production") == "locked"


# ═════════════════════════════════════════════════════════════════════════════
# INCOMPLETE / REVIEW
# ═════════════════════════════════════════════════════════════════════════════


class TestMarkIncomplete:
    def test_relocks_later_steps_and_keeps_payloads(self):
        doc = _through_financials("saas")
        doc = engine.mark_incomplete(doc, "technical_scope")
        scope = _step(doc, "technical_scope")
        assert scope["status"] == "in_progress"
        assert scope["completedAt"] is None
        assert scope["data"]["scopeText"] == "10 pages"
        for sid in ("technical_review", "financials", "project_scaffolding"):
            assert _status(doc, sid) == "locked"
        assert _step(doc, "technical_review")["reviewStatus"] is None
        assert _step(doc, "financials")["quotes"]
        assert _status(doc, "project_brief") == "completed"

    def test_website_type_resets_document(self):
        doc = engine.mark_incomplete(_selected("custom"), "website_type")
        assert [s["id"] for s in doc["steps"]] == ["website_type"]
        assert doc["projectSubtype"] is None
        # subtype can be chosen again
        doc = engine.select_subtype(doc, "saas", "Portal")
        assert doc["projectSubtype"] == "saas"


class TestReview:
    def _at_review(self):
        doc = _selected("custom")
        for sid in ("project_brief", "brand_guidelines"):
            doc = _with_active_file(_assigned(doc, sid), sid)
            doc = engine.complete_step(doc, sid, NOW)
        doc = _assigned(doc, "technical_scope")
        doc = engine.update_step_data(doc, "technical_scope", "scopeText", "scope")
        doc = engine.complete_step(doc, "technical_scope", NOW)
        return _assigned(doc, "technical_review")

    def test_needs_improvement_does_not_complete(self):
        doc = engine.set_review_status(self._at_review(), "technical_review", "needs_improvement")
        step = _step(doc, "technical_review")
        assert step["reviewStatus"] == "needs_improvement"
        assert step["status"] == "in_progress"

    def test_passed_completes_and_unlocks(self):
        doc = engine.set_review_status(self._at_review(), "technical_review", "passed", NOW)
        assert _status(doc, "technical_review") == "completed"
        assert _status(doc, "financials") == "pending"

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            engine.set_review_status(self._at_review(), "technical_review", "great")

    def test_step_without_review(self):
        doc = _assigned(_selected(), "project_brief")
        with pytest.raises(ValidationError, match="no review"):
            engine.set_review_status(doc, "project_brief", "passed")


# ═════════════════════════════════════════════════════════════════════════════
# FILES / COMMENTS / PAYLOADS
# ═════════════════════════════════════════════════════════════════════════════


class TestFiles:
    def test_new_version_becomes_only_active(self):
        doc = _selected()
        doc = engine.add_file(doc, "project_brief", "v1.pdf", "/files/a", now=NOW, uploaded_by="Dana")
        doc = engine.add_file(doc, "project_brief", "v2.pdf", "/files/b", now=NOW)
        files = _step(doc, "project_brief")["files"]
        assert [f["version"] for f in files] == [1, 2]
        assert [f["isActive"] for f in files] == [False, True]
        assert files[0]["uploadedBy"] == "Dana"

    def test_set_active(self):
        doc = _selected()
        doc = engine.add_file(doc, "project_brief", "v1.pdf", "/files/a")
        doc = engine.add_file(doc, "project_brief", "v2.pdf", "/files/b")
        doc = engine.set_file_active(doc, "project_brief", 0)
        assert [f["isActive"] for f in _step(doc, "project_brief")["files"]] == [True, False]

    def test_delete_active_reactivates_last(self):
        doc = _selected()
        doc = engine.add_file(doc, "project_brief", "v1.pdf", "/files/a")
        doc = engine.add_file(doc, "project_brief", "v2.pdf", "/files/b")
        doc = engine.delete_file(doc, "project_brief", 1)
        files = _step(doc, "project_brief")["files"]
        assert len(files) == 1
        assert files[0]["isActive"] is True

    def test_index_out_of_range(self):
        with pytest.raises(ValidationError):
            engine.set_file_active(_selected(), "project_brief", 0)

    def test_step_without_files(self):
        with pytest.raises(ValidationError):
            engine.add_file(_selected(), "financials", "q.pdf", "/files/q")

    def test_version_keeps_growing_after_delete(self):
        doc = _selected()
        doc = engine.add_file(doc, "project_brief", "v1.pdf", "/files/a")
        doc = engine.add_file(doc, "project_brief", "v2.pdf", "/files/b")
        doc = engine.delete_file(doc, "project_brief", 0)
        doc = engine.add_file(doc, "project_brief", "v3.pdf", "/files/c")
        assert [f["version"] for f in _step(doc, "project_brief")["files"]] == [2, 3]


class TestCommentsAndData:
    def test_add_comment(self):
        doc, comment = engine.add_comment(_selected(), "project_brief", 3, "Sam Ito", "  Looks good  ")
        assert comment["body"] == "Looks good"
        assert comment["userId"] == "3"
        assert comment["id"]
        assert _step(doc, "project_brief")["comments"] == [comment]

    def test_empty_comment(self):
        with pytest.raises(ValidationError):
            engine.add_comment(_selected(), "project_brief", 3, "Sam", "   ")

    def test_comment_without_author(self):
        _, comment = engine.add_comment(_selected(), "project_brief", None, None, "hi")
        assert comment["userId"] is None
        assert comment["userName"] == "Unknown"

    def test_update_step_data_known_key(self):
        doc = engine.update_step_data(_selected(), "ui_ux_design", "figmaLink", "https://figma.com/f/1")
        assert _step(doc, "ui_ux_design")["data"]["figmaLink"] == "https://figma.com/f/1"

    def test_update_step_data_unknown_key(self):
        with pytest.raises(ValidationError) as exc:
            engine.update_step_data(_selected(), "technical_scope", "budget", 1)
        assert exc.value.details["allowed"] == ["scopeMode", "scopeText"]


class TestFinancialAssociations:
    def test_quotes_normalised(self):
        doc = engine.update_quotes(_selected(), "financials", [
            {"invoiceId": 5, "invoiceNumber": "QUO-0001", "total": 100.0, "approvedByClient": 1},
        ])
        quote = _step(doc, "financials")["quotes"][0]
        assert quote == {
            "invoiceId": 5, "invoiceNumber": "QUO-0001", "total": 100.0,
            "sentToClient": False, "approvedByClient": True, "revisions": [],
        }

    def test_invoice_default_payment_status(self):
        doc = engine.update_invoices(_selected(), "financials", [{"invoiceId": 9}])
        invoice = _step(doc, "financials")["invoices"][0]
        assert invoice["paymentStatus"] == "unpaid"
        assert invoice["paidAmount"] == 0
        assert invoice["revisions"] == []

    def test_invoice_keeps_revision_trail(self):
        trail = [{"total": 800.0, "changedAt": NOW, "note": "Removed blog module"}]
        doc = engine.update_invoices(_selected(), "financials", [
            {"invoiceId": 9, "paymentStatus": "partially_paid", "paidAmount": 400.0, "revisions": trail},
        ])
        invoice = _step(doc, "financials")["invoices"][0]
        assert invoice["revisions"] == trail
        assert invoice["paidAmount"] == 400.0

    def test_invalid_payment_status(self):
        with pytest.raises(ValidationError):
            engine.update_invoices(_selected(), "financials", [{"invoiceId": 9, "paymentStatus": "waived"}])

    def test_missing_invoice_id(self):
        with pytest.raises(ValidationError):
            engine.update_quotes(_selected(), "financials", [{"approvedByClient": True}])

    def test_non_financial_step(self):
        with pytest.raises(ValidationError):
            engine.update_quotes(_selected(), "revisions", [])


class TestRevisions:
    def test_revision_status(self):
        doc = engine.update_revision_status(_selected(), "revisions", "submitted")
        assert _step(doc, "revisions")["revisionStatus"] == "submitted"
        with pytest.raises(ValidationError):
            engine.update_revision_status(doc, "revisions", "done")

    def test_checklist_drops_blank_items(self):
        doc = engine.update_revision_checklist(_selected(), "revisions", [
            {"text": "Fix footer", "completed": True},
            {"text": "   "},
            {"id": "keep-me", "text": "Swap hero image"},
        ])
        items = _step(doc, "revisions")["revisionChecklist"]
        assert [i["text"] for i in items] == ["Fix footer", "Swap hero image"]
        assert items[0]["completed"] is True
        assert items[1]["id"] == "keep-me"

    def test_checklist_must_be_list(self):
        with pytest.raises(ValidationError):
            engine.update_revision_checklist(_selected(), "revisions", {"text": "x"})


# ═════════════════════════════════════════════════════════════════════════════
# VIEWS
# ═════════════════════════════════════════════════════════════════════════════


class TestViews:
    def test_progress(self):
        assert engine.progress(default_document()) == {"completed": 0, "total": 1, "percent": 0}
        doc = _through_financials("custom")
        assert engine.progress(doc) == {"completed": 6, "total": 11, "percent": 55}

    def test_progress_empty(self):
        assert engine.progress({"steps": []})["percent"] == 0

    def test_readiness(self):
        doc = _assigned(_selected(), "project_brief")
        rows = {r["id"]: r for r in engine.readiness(doc)}
        assert rows["website_type"]["ready"] is True
        assert rows["project_brief"]["ready"] is False
        assert rows["project_brief"]["missing"] == "Upload a file and mark it active"
        assert rows["brand_guidelines"]["missing"] == "Assign a user to this step"

    def test_validate_document_accepts_catalog_output(self):
        doc = _selected("custom")
        assert engine.validate_document(doc) is doc

    @pytest.mark.parametrize("bad", [
        None,
        {"steps": []},
        {"steps": [{"id": "launch_party", "status": "pending"}]},
        {"steps": [{"id": "website_type", "status": "done"}]},
        {"projectSubtype": "wordpress", "steps": [{"id": "website_type", "status": "pending"}]},
        {"steps": [{"id": "website_type", "status": "pending"}, {"id": "website_type", "status": "pending"}]},
    ])
    def test_validate_document_rejects(self, bad):
        with pytest.raises(ValidationError):
            engine.validate_document(bad)
