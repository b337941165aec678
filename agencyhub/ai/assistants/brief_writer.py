"""
Agency Hub
Project Brief Writer - structured JSON brief from a handful of prompts.
"""

import json
import logging
import re

logger = logging.getLogger(__name__)

_FENCE_JSON = re.compile(r"```json\n?")
_FENCE = re.compile(r"```\n?")


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    if "```json" in raw:
        raw = _FENCE.sub("", _FENCE_JSON.sub("", raw))
    elif "```" in raw:
        raw = _FENCE.sub("", raw)
    return raw.strip()


def fallback_brief(raw: str, target_audience: str | None) -> dict:
    return {
        "executive_summary": raw[:500],
        "objectives": ["To be defined based on project requirements"],
        "target_audience": {
            "primary": target_audience or "To be defined",
            "secondary": "",
            "demographics": "",
            "psychographics": "",
        },
        "scope": {"deliverables": [], "in_scope": [], "out_of_scope": []},
        "key_messages": [],
        "success_metrics": [],
        "timeline_considerations": "",
        "budget_considerations": "",
        "stakeholders": [],
        "constraints": [],
        "inspiration": "",
    }


class BriefWriter:
    """Generates a project brief from company/project context."""

    def __init__(self, gateway=None, prompt_registry=None, model=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model

    def generate(self, *, company_name=None, project_name=None, industry=None,
                 project_type=None, target_audience=None, objectives=None,
                 existing_info=None, project_id=None) -> dict:
        """
        Returns:
            dict: brief, status, error
        """
        result = {"brief": None, "status": 200, "error": None}

        if not self.gateway or not self.gateway.has_provider(self.model):
            result.update(status=500, error="AI provider not configured for model " + str(self.model))
            return result

        messages = self.prompt_registry.render(
            "project_brief",
            company_name=company_name or "Not specified",
            project_name=project_name or "Not specified",
            industry=industry or "Not specified",
            project_type=project_type or "Not specified",
            target_audience=target_audience or "Not specified",
            objectives=objectives or "Not specified",
            existing_info=existing_info or "None provided",
        )

        try:
            llm_result = self.gateway.chat(
                messages,
                model=self.model,
                purpose="project_brief",
                project_id=project_id,
                temperature=0.7,
            )
        except Exception as e:
            logger.exception("Project brief generation failed")
            result.update(status=500, error=f"Failed to generate project brief: {e}")
            return result

        raw = llm_result.get("content") or ""
        try:
            result["brief"] = json.loads(strip_code_fences(raw))
        except (json.JSONDecodeError, TypeError):
            logger.warning("Brief response was not valid JSON; returning structured fallback")
            result["brief"] = fallback_brief(raw, target_audience)
        return result
