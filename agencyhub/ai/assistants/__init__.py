"""
Agency Hub
AI Assistants package.

Assistants:
    - scope_writer: plain-text technical scope + clarifying questions
    - brief_writer: structured JSON project brief
    - brand_analyst: colours / typography / voice from brand guidelines
"""

from agencyhub.ai.assistants.brand_analyst import BrandAnalyst
from agencyhub.ai.assistants.brief_writer import BriefWriter, strip_code_fences
from agencyhub.ai.assistants.scope_writer import ScopeWriter, parse_clarifying_questions

__all__ = [
    "ScopeWriter",
    "BriefWriter",
    "BrandAnalyst",
    "parse_clarifying_questions",
    "strip_code_fences",
]
