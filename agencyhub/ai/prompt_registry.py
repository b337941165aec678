"""
Agency Hub
Prompt Registry.

Built-in prompt templates with:
    - {{variable}} rendering
    - Version tracking

Usage:
    from agencyhub.ai.prompt_registry import PromptRegistry
    registry = PromptRegistry()
    messages = registry.render("technical_scope", brief_section="No project brief was provided...")
"""

import logging
import re

logger = logging.getLogger(__name__)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Variables are replaced using {{variable_name}} syntax.

        Returns:
            List of message dicts: [{"role": "system", "content": "..."}, ...]
        """
        system_rendered = self._substitute(self.system, variables)
        user_rendered = self._substitute(self.user, variables)

        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        """Replace {{var}} placeholders with values."""
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """Registry of prompt templates keyed by name and version."""

    def __init__(self):
        self._templates: dict[str, dict[str, PromptTemplate]] = {}  # name → {version → template}
        for tpl in _DEFAULT_TEMPLATES:
            self.register(tpl)

    def register(self, template: PromptTemplate):
        """Add (or replace) a template."""
        self._templates.setdefault(template.name, {})[template.version] = template

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        """Get a prompt template by name and version."""
        return self._templates.get(name, {}).get(version)

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """
        Render a prompt template with variables.

        Raises:
            KeyError: If template not found.
        """
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} v{version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for versions in self._templates.values() for tpl in versions.values()]


# ── Built-in Default Templates ────────────────────────────────────────────────

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="technical_scope",
        version="v1",
        description="Plain-text technical scope for a website project",
        system=(
            "You are a senior technical project manager specializing in website development. "
            "Generate a comprehensive technical scope document as plain text (not JSON).\n\n"
            "Include these sections:\n"
            "1. PROJECT OVERVIEW\n"
            "2. TECHNICAL REQUIREMENTS\n"
            "3. FEATURES & FUNCTIONALITY\n"
            "4. TECHNOLOGY STACK RECOMMENDATIONS\n"
            "5. INTEGRATION REQUIREMENTS\n"
            "6. SECURITY CONSIDERATIONS\n"
            "7. PERFORMANCE REQUIREMENTS\n"
            "8. TIMELINE ESTIMATES\n"
            "9. ASSUMPTIONS & DEPENDENCIES\n"
            "10. OUT OF SCOPE ITEMS\n\n"
            "If information seems incomplete, add a \"CLARIFYING QUESTIONS\" section at the end.\n\n"
            "Output ONLY the scope document text, no JSON formatting."
        ),
        user="{{brief_section}}",
        metadata={"max_tokens": 2000, "temperature": 0.7},
    ),
    PromptTemplate(
        name="project_brief",
        version="v1",
        description="Structured JSON project brief",
        system=(
            "You are an expert project strategist and creative director. Generate comprehensive, "
            "professional project briefs that are clear, actionable, and inspiring. Output strict JSON only."
        ),
        user=(
            "Generate a detailed project brief based on the following information:\n\n"
            "Company: {{company_name}}\n"
            "Project Name: {{project_name}}\n"
            "Industry: {{industry}}\n"
            "Project Type: {{project_type}}\n"
            "Target Audience: {{target_audience}}\n"
            "Key Objectives: {{objectives}}\n"
            "Additional Context: {{existing_info}}\n\n"
            "Generate a comprehensive project brief. Output STRICT JSON only with this exact shape:\n\n"
            "{\n"
            '  "executive_summary": "A compelling 2-3 sentence overview of the project",\n'
            '  "objectives": ["Array of 3-5 clear, measurable objectives"],\n'
            '  "target_audience": {"primary": "", "secondary": "", "demographics": "", "psychographics": ""},\n'
            '  "scope": {"deliverables": [], "in_scope": [], "out_of_scope": []},\n'
            '  "key_messages": ["Array of 3-5 core messages or value propositions"],\n'
            '  "success_metrics": ["Array of measurable KPIs"],\n'
            '  "timeline_considerations": "General timeline guidance",\n'
            '  "budget_considerations": "Budget guidance or constraints",\n'
            '  "stakeholders": ["Key stakeholders involved"],\n'
            '  "constraints": ["Any constraints or limitations"],\n'
            '  "inspiration": "Creative direction or inspiration notes"\n'
            "}"
        ),
        metadata={"temperature": 0.7},
    ),
    PromptTemplate(
        name="brand_analysis",
        version="v1",
        description="Extract colours, typography and voice from brand guidelines",
        system=(
            "You are an expert brand strategist and designer. Analyze brand guidelines documents and "
            "extract key brand elements. Be precise about colors (provide exact hex codes when mentioned, "
            "or infer appropriate ones). Output strict JSON only."
        ),
        user=(
            "Analyze the following brand guidelines document and extract the brand elements.\n"
            "{{company_line}}\n\n"
            "Document content:\n{{document_text}}\n\n"
            "Extract and return a JSON object with this exact structure:\n\n"
            "{\n"
            '  "colors": {"primary": [{"name": "", "hex": "#HEXCODE", "usage": ""}], '
            '"secondary": [], "accent": [], "neutrals": []},\n'
            '  "typography": {"primary_font": {"name": "", "weights": [], "usage": ""}, '
            '"secondary_font": {"name": "", "weights": [], "usage": ""}, "special_fonts": []},\n'
            '  "tone_of_voice": {"personality": [], "do": [], "dont": [], "sample_phrases": []},\n'
            '  "logo_usage": {"clear_space": "", "minimum_size": "", "dont": []},\n'
            '  "imagery_style": {"description": "", "characteristics": []},\n'
            '  "brand_values": [],\n'
            '  "tagline": "",\n'
            '  "additional_notes": ""\n'
            "}\n\n"
            "If certain information is not available in the document, make reasonable professional "
            "inferences or leave those fields with placeholder values. Always provide hex codes for colors."
        ),
        metadata={"temperature": 0.5},
    ),
]
