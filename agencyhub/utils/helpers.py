"""
Agency Hub
Request-parsing and persistence helpers shared by blueprints and services.

    get_or_404          (obj, None) | (None, (response, 404)), never aborts
    parse_date          ISO date / ISO datetime / DD.MM.YYYY, None when unparseable
    parse_float         lenient number coercion with a fallback
    db_commit_or_error  the one place route handlers commit
"""

import logging
import math
from datetime import date, datetime

from flask import jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agencyhub.models import db

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%d.%m.%Y",)


def get_or_404(model, pk, label=None):
    """Look ``pk`` up on ``model``.

        company, err = get_or_404(Company, cid)
        if err:
            return err
    """
    obj = db.session.get(model, pk)
    if obj is None:
        return None, (jsonify({"error": f"{label or model.__name__} not found"}), 404)
    return obj, None


def parse_date(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for parse in (date.fromisoformat, lambda s: datetime.fromisoformat(s).date()):
        try:
            return parse(text)
        except ValueError:
            continue
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_float(value, default=0.0):
    """Float from a JSON number or numeric string; ``default`` for blanks, bools, NaN and junk."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def db_commit_or_error():
    """Commit the session; on failure roll back and return an error response.

    IntegrityError   → 409
    other DB errors  → 500 (logged with traceback)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by a constraint: %s", exc.orig)
        return jsonify({"error": "Duplicate or constraint violation"}), 409
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        return jsonify({"error": "Database error"}), 500
    return None
