"""
Agency Hub
Technical Scope Writer.

Pipeline:
    1. Describe the uploaded brief (or its absence)
    2. Render the technical_scope template
    3. Call LLM -> plain-text scope with 10 sections
    4. Pull the CLARIFYING QUESTIONS section out as a list

The scope text is what the workflow's technical_scope step stores in
data.scopeText when the user accepts it.
"""

import logging
import re

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Unable to generate scope - AI not configured. Please enter the technical scope manually."
)
FAILED_MESSAGE = "Failed to generate scope. Please try again or enter manually."

BRIEF_PROVIDED = "A project brief document has been uploaded. Analyzing the requirements..."

_QUESTION_LINE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*(.+?)\s*$")


def parse_clarifying_questions(scope_text: str) -> list[str]:
    """Return the numbered/bulleted lines under the CLARIFYING QUESTIONS heading."""
    marker = re.search(r"CLARIFYING QUESTIONS[:\s]*\n", scope_text or "", re.IGNORECASE)
    if not marker:
        return []
    questions = []
    for line in scope_text[marker.end():].splitlines():
        match = _QUESTION_LINE.match(line)
        if match:
            questions.append(match.group(1))
    return questions


class ScopeWriter:
    """Generates a technical scope document for a website project."""

    def __init__(self, gateway=None, prompt_registry=None, model=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model

    def generate(self, project_id: int | None = None, brief_url: str | None = None) -> dict:
        """
        Returns:
            dict: scope, questions, status (HTTP status for the caller), error
        """
        result = {"scope": "", "questions": [], "status": 200, "error": None}

        if not self.gateway or not self.gateway.has_provider(self.model):
            result["scope"] = NOT_CONFIGURED_MESSAGE
            result["error"] = "not_configured"
            return result

        if brief_url:
            user_prompt = (
                "Based on the following project brief, generate a technical scope:\n\n"
                f"{BRIEF_PROVIDED}"
            )
        else:
            user_prompt = (
                "No project brief was provided. Generate a template technical scope for a "
                "website project and include questions that should be answered to complete it."
            )

        try:
            messages = self.prompt_registry.render("technical_scope", brief_section=user_prompt)
            llm_result = self.gateway.chat(
                messages,
                model=self.model,
                purpose="technical_scope",
                project_id=project_id,
                max_tokens=2000,
                temperature=0.7,
            )
        except Exception as e:
            logger.exception("AI scope generation failed for project %s", project_id)
            result.update(scope=FAILED_MESSAGE, status=500, error=str(e))
            return result

        content = (llm_result.get("content") or "").strip()
        result["scope"] = content
        result["questions"] = parse_clarifying_questions(content)
        return result
