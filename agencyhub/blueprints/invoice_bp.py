"""
Invoice & quote blueprint, per-user invoice settings, financial summary
and exports.

Endpoints:
    GET    /api/v1/invoices                    ?type=&status=&project_id=&company_id=
    POST   /api/v1/invoices
    GET    /api/v1/invoices/<id>
    PUT    /api/v1/invoices/<id>               items list replaces items wholesale
    PATCH  /api/v1/invoices/<id>/status        {status}
    POST   /api/v1/invoices/<id>/convert       quote → unpaid invoice
    DELETE /api/v1/invoices/<id>               (admin)

    GET    /api/v1/invoice-settings            acting user's settings (defaults if none)
    PUT    /api/v1/invoice-settings

    GET    /api/v1/financials/summary          ?type=&status=&project_id=&company_id=&date_from=&date_to=
    GET    /api/v1/financials/export           same filters + format=xlsx|csv
"""

import logging
from datetime import date

from flask import Blueprint, Response, jsonify, request, send_file

from agencyhub.auth import current_user, require_role
from agencyhub.core.exceptions import NotFoundError, ValidationError
from agencyhub.models import db
from agencyhub.services import financial_service, invoice_service
from agencyhub.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

invoice_bp = Blueprint("invoice_bp", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@invoice_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({"error": str(error)}), 404


@invoice_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return jsonify({"error": str(error), "details": error.details}), 422


# ═════════════════════════════════════════════════════════════════════════
# Invoices & quotes
# ═════════════════════════════════════════════════════════════════════════


@invoice_bp.route("/invoices", methods=["GET"])
def list_invoices():
    invoices = invoice_service.list_invoices(request.args)
    return jsonify([i.to_dict(include_items=False) for i in invoices])


@invoice_bp.route("/invoices", methods=["POST"])
def create_invoice():
    data = request.get_json(silent=True) or {}
    if not str(data.get("client_name") or "").strip():
        return jsonify({"error": "client_name is required"}), 400
    if "items" in data and not isinstance(data["items"], list):
        return jsonify({"error": "items must be a list"}), 400

    invoice = invoice_service.create_invoice(data, user_id=_user_id())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(invoice.to_dict()), 201


@invoice_bp.route("/invoices/<int:invoice_id>", methods=["GET"])
def get_invoice(invoice_id):
    return jsonify(invoice_service.get_invoice(invoice_id).to_dict())


@invoice_bp.route("/invoices/<int:invoice_id>", methods=["PUT"])
def update_invoice(invoice_id):
    invoice = invoice_service.get_invoice(invoice_id)
    data = request.get_json(silent=True) or {}
    if "items" in data and not isinstance(data["items"], list):
        return jsonify({"error": "items must be a list"}), 400
    invoice_service.update_invoice(invoice, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(invoice.to_dict())


@invoice_bp.route("/invoices/<int:invoice_id>/status", methods=["PATCH"])
def set_invoice_status(invoice_id):
    invoice = invoice_service.get_invoice(invoice_id)
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400
    invoice_service.set_status(invoice, data["status"])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(invoice.to_dict())


@invoice_bp.route("/invoices/<int:invoice_id>/convert", methods=["POST"])
def convert_quote(invoice_id):
    quote = invoice_service.get_invoice(invoice_id)
    invoice = invoice_service.convert_quote(quote, user_id=_user_id())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"invoice": invoice.to_dict(), "quote": quote.to_dict(include_items=False)}), 201


@invoice_bp.route("/invoices/<int:invoice_id>", methods=["DELETE"])
@require_role("admin")
def delete_invoice(invoice_id):
    invoice = invoice_service.get_invoice(invoice_id)
    invoice_service.delete_invoice(invoice)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Invoice deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════


@invoice_bp.route("/invoice-settings", methods=["GET"])
def get_settings():
    return jsonify(invoice_service.get_settings(_user_id()).to_dict())


@invoice_bp.route("/invoice-settings", methods=["PUT"])
def put_settings():
    data = request.get_json(silent=True) or {}
    settings = invoice_service.upsert_settings(_user_id(), data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(settings.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Financials
# ═════════════════════════════════════════════════════════════════════════


@invoice_bp.route("/financials/summary", methods=["GET"])
def financial_summary():
    return jsonify(financial_service.financial_summary(request.args))


@invoice_bp.route("/financials/export", methods=["GET"])
def financial_export():
    fmt = request.args.get("format", "xlsx").lower()
    stamp = date.today().isoformat()

    if fmt == "csv":
        csv_text = financial_service.export_invoices_csv(request.args)
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=invoices_{stamp}.csv"},
        )
    if fmt != "xlsx":
        return jsonify({"error": "format must be xlsx or csv"}), 400

    buf = financial_service.export_invoices_xlsx(request.args)
    return send_file(
        buf,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"financials_{stamp}.xlsx",
    )


# ── Helpers ──────────────────────────────────────────────────────────────────


def _user_id():
    user = current_user()
    return user.id if user else None
