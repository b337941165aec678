"""
Agency Hub
AI Blueprint.

Endpoints:
    SCOPE        /api/ai/generate-scope                     POST  {projectId?, briefUrl?}
                 /api/v1/ai/generate-scope                  POST
    BRIEF        /api/v1/projects/generate-brief            POST  {companyName, projectName, ...}
    BRAND        /api/v1/projects/analyze-brand             POST  {pdfText?, pdfUrl?, companyName?}

    USAGE        /api/v1/ai/usage                           GET   ?project_id=&days=
                 /api/v1/ai/usage/logs                      GET   ?limit=&offset=
    PROMPTS      /api/v1/ai/prompts                         GET

The generation endpoints share one rate-limit bucket.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify, request

from agencyhub.ai.assistants import BrandAnalyst, BriefWriter, ScopeWriter
from agencyhub.ai.gateway import LLMGateway
from agencyhub.ai.prompt_registry import PromptRegistry
from agencyhub.blueprints import paginate_query
from agencyhub.models import db
from agencyhub.models.ai import AIUsageLog
from agencyhub.models.project import Project
from agencyhub.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

ai_bp = Blueprint("ai", __name__, url_prefix="/api")

# ── Rate limiting ─────────────────────────────────────────────────────────
from agencyhub import limiter  # noqa: E402

_ai_generate_limit = limiter.shared_limit("30/minute", scope="ai_generate")


# ── Lazy singletons stored on Flask app (test-isolation safe) ───────────────

def _get_gateway():
    if not hasattr(current_app, "_ai_gateway"):
        current_app._ai_gateway = LLMGateway()
    return current_app._ai_gateway


def _get_prompt_registry():
    if not hasattr(current_app, "_ai_prompt_registry"):
        current_app._ai_prompt_registry = PromptRegistry()
    return current_app._ai_prompt_registry


def _assistant(cls):
    return cls(
        gateway=_get_gateway(),
        prompt_registry=_get_prompt_registry(),
        model=current_app.config.get("AI_CHAT_MODEL"),
    )


def _project_id(raw):
    """Usage logs reference projects by FK; unknown ids are logged without one."""
    try:
        project = db.session.get(Project, int(raw))
    except (TypeError, ValueError):
        return None
    return project.id if project else None


def _finish(body: dict, status: int):
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(body), status


# ═════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════


@ai_bp.route("/ai/generate-scope", methods=["POST"])
@ai_bp.route("/v1/ai/generate-scope", methods=["POST"])
@_ai_generate_limit
def generate_scope():
    data = request.get_json(silent=True) or {}
    result = _assistant(ScopeWriter).generate(
        project_id=_project_id(data.get("projectId")),
        brief_url=data.get("briefUrl"),
    )
    return _finish({"scope": result["scope"], "questions": result["questions"]}, result["status"])


@ai_bp.route("/v1/projects/generate-brief", methods=["POST"])
@_ai_generate_limit
def generate_brief():
    data = request.get_json(silent=True) or {}
    result = _assistant(BriefWriter).generate(
        company_name=data.get("companyName"),
        project_name=data.get("projectName"),
        industry=data.get("industry"),
        project_type=data.get("projectType"),
        target_audience=data.get("targetAudience"),
        objectives=data.get("objectives"),
        existing_info=data.get("existingInfo"),
        project_id=_project_id(data.get("projectId")),
    )
    if result["error"]:
        return _finish({"error": result["error"]}, result["status"])
    return _finish({"brief": result["brief"]}, 200)


@ai_bp.route("/v1/projects/analyze-brand", methods=["POST"])
@_ai_generate_limit
def analyze_brand():
    data = request.get_json(silent=True) or {}
    result = _assistant(BrandAnalyst).analyze(
        pdf_text=data.get("pdfText"),
        pdf_url=data.get("pdfUrl"),
        company_name=data.get("companyName"),
        project_id=_project_id(data.get("projectId")),
    )
    if result["error"]:
        return _finish({"error": result["error"]}, result["status"])
    return _finish({"brandGuidelines": result["brandGuidelines"], "pdfUrl": result["pdfUrl"]}, 200)


# ═════════════════════════════════════════════════════════════════════════
# Usage & prompts
# ═════════════════════════════════════════════════════════════════════════


@ai_bp.route("/v1/ai/usage", methods=["GET"])
def usage_stats():
    """Get token usage statistics."""
    pid = request.args.get("project_id", type=int)
    days = request.args.get("days", 30, type=int)

    q = AIUsageLog.query
    if pid:
        q = q.filter(AIUsageLog.project_id == pid)
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    q = q.filter(AIUsageLog.created_at >= cutoff)

    logs = q.all()

    total_calls = len(logs)
    error_count = sum(1 for log in logs if not log.success)

    by_purpose = {}
    for log in logs:
        p = log.purpose or "other"
        if p not in by_purpose:
            by_purpose[p] = {"calls": 0, "tokens": 0, "cost": 0.0}
        by_purpose[p]["calls"] += 1
        by_purpose[p]["tokens"] += log.total_tokens or 0
        by_purpose[p]["cost"] += log.cost_usd or 0.0

    return jsonify({
        "period_days": days,
        "total_calls": total_calls,
        "total_tokens": sum(log.total_tokens or 0 for log in logs),
        "total_cost_usd": round(sum(log.cost_usd or 0.0 for log in logs), 4),
        "error_count": error_count,
        "error_rate": round(error_count / max(total_calls, 1) * 100, 1),
        "by_purpose": {k: {**v, "cost": round(v["cost"], 4)} for k, v in by_purpose.items()},
    })


@ai_bp.route("/v1/ai/usage/logs", methods=["GET"])
def usage_logs():
    query = AIUsageLog.query.order_by(AIUsageLog.created_at.desc(), AIUsageLog.id.desc())
    items, total = paginate_query(query, default_limit=50, max_limit=500)
    return jsonify({"items": [log.to_dict() for log in items], "total": total})


@ai_bp.route("/v1/ai/prompts", methods=["GET"])
def list_prompts():
    return jsonify(_get_prompt_registry().list_templates())
