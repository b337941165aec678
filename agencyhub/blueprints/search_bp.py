"""
Global search blueprint.

Endpoints:
    GET /api/v1/search?q=   companies, contacts, projects, invoices (max 8 each)
"""

from flask import Blueprint, jsonify, request

from agencyhub.services import search_service

search_bp = Blueprint("search_bp", __name__, url_prefix="/api/v1")


@search_bp.route("/search", methods=["GET"])
def search():
    return jsonify(search_service.search(request.args.get("q")))
