"""
Directory blueprint: users, companies and contacts.

Endpoints:
    GET    /api/v1/users
    POST   /api/v1/users
    GET    /api/v1/companies?q=
    POST   /api/v1/companies
    GET    /api/v1/companies/<id>
    PUT    /api/v1/companies/<id>
    DELETE /api/v1/companies/<id>              (admin)
    GET    /api/v1/companies/<id>/contacts
    GET    /api/v1/contacts?company_id=
    POST   /api/v1/contacts
    PUT    /api/v1/contacts/<id>
    DELETE /api/v1/contacts/<id>               (admin)
"""

import logging

from flask import Blueprint, jsonify, request

from agencyhub.auth import require_role
from agencyhub.blueprints import error_body
from agencyhub.models import db
from agencyhub.models.company import Company, Contact
from agencyhub.services import company_service
from agencyhub.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

company_bp = Blueprint("company_bp", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════════


@company_bp.route("/users", methods=["GET"])
def list_users():
    return jsonify([u.to_dict() for u in company_service.list_users()])


@company_bp.route("/users", methods=["POST"])
def create_user():
    data = request.get_json(silent=True) or {}
    user, err = company_service.create_user(data=data)
    if err:
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(user.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Companies
# ═════════════════════════════════════════════════════════════════════════


@company_bp.route("/companies", methods=["GET"])
def list_companies():
    companies = company_service.list_companies(q=request.args.get("q"))
    return jsonify([c.to_dict() for c in companies])


@company_bp.route("/companies", methods=["POST"])
def create_company():
    data = request.get_json(silent=True) or {}
    company, err = company_service.create_company(data=data)
    if err:
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Company created: %s", company.name)
    return jsonify(company.to_dict()), 201


@company_bp.route("/companies/<int:cid>", methods=["GET"])
def get_company(cid):
    company, err = get_or_404(Company, cid)
    if err:
        return err
    return jsonify(company.to_dict(include_contacts=True))


@company_bp.route("/companies/<int:cid>", methods=["PUT"])
def update_company(cid):
    company, err = get_or_404(Company, cid)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    company, svc_err = company_service.update_company(company=company, data=data)
    if svc_err:
        db.session.rollback()
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(company.to_dict())


@company_bp.route("/companies/<int:cid>", methods=["DELETE"])
@require_role("admin")
def delete_company(cid):
    company, err = get_or_404(Company, cid)
    if err:
        return err
    svc_err = company_service.delete_company(company=company)
    if svc_err:
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Company deleted"}), 200


@company_bp.route("/companies/<int:cid>/contacts", methods=["GET"])
def list_company_contacts(cid):
    _, err = get_or_404(Company, cid)
    if err:
        return err
    return jsonify([c.to_dict() for c in company_service.list_contacts(company_id=cid)])


# ═════════════════════════════════════════════════════════════════════════
# Contacts
# ═════════════════════════════════════════════════════════════════════════


@company_bp.route("/contacts", methods=["GET"])
def list_contacts():
    company_id = request.args.get("company_id", type=int)
    return jsonify([c.to_dict() for c in company_service.list_contacts(company_id=company_id)])


@company_bp.route("/contacts", methods=["POST"])
def create_contact():
    data = request.get_json(silent=True) or {}
    contact, err = company_service.create_contact(data=data)
    if err:
        return error_body(err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(contact.to_dict()), 201


@company_bp.route("/contacts/<int:contact_id>", methods=["PUT"])
def update_contact(contact_id):
    contact, err = get_or_404(Contact, contact_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    contact, svc_err = company_service.update_contact(contact=contact, data=data)
    if svc_err:
        db.session.rollback()
        return error_body(svc_err)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(contact.to_dict())


@company_bp.route("/contacts/<int:contact_id>", methods=["DELETE"])
@require_role("admin")
def delete_contact(contact_id):
    contact, err = get_or_404(Contact, contact_id)
    if err:
        return err
    db.session.delete(contact)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Contact deleted"}), 200
