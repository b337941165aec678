"""
Agency Hub
Brand Analyst - extracts colours, typography, tone of voice and logo rules
from a brand guidelines document.

The caller supplies either the extracted PDF text or the stored file URL;
with only a URL the model is asked to infer from a typical guideline layout.
"""

import copy
import json
import logging

from agencyhub.ai.assistants.brief_writer import strip_code_fences

logger = logging.getLogger(__name__)

URL_ONLY_TEXT = "PDF URL provided - please analyze based on common brand guidelines structure"

DEFAULT_GUIDELINES = {
    "colors": {
        "primary": [{"name": "Primary Blue", "hex": "#2563EB", "usage": "Main brand color"}],
        "secondary": [{"name": "Secondary Purple", "hex": "#7C3AED", "usage": "Accents and highlights"}],
        "accent": [{"name": "Accent Orange", "hex": "#F97316", "usage": "Call to actions"}],
        "neutrals": [
            {"name": "Dark Gray", "hex": "#1F2937", "usage": "Text"},
            {"name": "Light Gray", "hex": "#F3F4F6", "usage": "Backgrounds"},
        ],
    },
    "typography": {
        "primary_font": {"name": "Inter", "weights": ["Regular", "Medium", "Bold"], "usage": "All text"},
        "secondary_font": None,
        "special_fonts": [],
    },
    "tone_of_voice": {
        "personality": ["Professional", "Friendly", "Clear"],
        "do": ["Be concise", "Use active voice", "Be helpful"],
        "dont": ["Use jargon", "Be condescending"],
        "sample_phrases": [],
    },
    "logo_usage": {
        "clear_space": "Maintain clear space equal to the height of the logo mark",
        "minimum_size": "24px height minimum",
        "dont": ["Stretch or distort", "Change colors"],
    },
    "imagery_style": {
        "description": "Clean, modern, professional",
        "characteristics": ["High quality", "Well-lit", "Authentic"],
    },
    "brand_values": ["Quality", "Innovation", "Trust"],
    "tagline": "",
    "additional_notes": "Brand guidelines extracted from uploaded document",
}


class BrandAnalyst:
    """AI-assisted brand guideline extraction."""

    def __init__(self, gateway=None, prompt_registry=None, model=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model

    def analyze(self, pdf_text: str | None = None, pdf_url: str | None = None,
                company_name: str | None = None, project_id: int | None = None) -> dict:
        """
        Returns:
            dict: brandGuidelines, pdfUrl, status, error
        """
        result = {"brandGuidelines": None, "pdfUrl": pdf_url, "status": 200, "error": None}

        if not pdf_text and not pdf_url:
            result.update(status=400, error="Either pdfText or pdfUrl is required")
            return result

        if not self.gateway or not self.gateway.has_provider(self.model):
            result.update(status=500, error="AI provider not configured for model " + str(self.model))
            return result

        messages = self.prompt_registry.render(
            "brand_analysis",
            company_line=f"Company: {company_name}" if company_name else "",
            document_text=pdf_text or URL_ONLY_TEXT,
        )

        try:
            llm_result = self.gateway.chat(
                messages,
                model=self.model,
                purpose="brand_analysis",
                project_id=project_id,
                temperature=0.5,
            )
        except Exception as e:
            logger.exception("Brand guideline analysis failed")
            result.update(status=500, error=f"Failed to analyze brand guidelines: {e}")
            return result

        try:
            result["brandGuidelines"] = json.loads(strip_code_fences(llm_result.get("content") or ""))
        except (json.JSONDecodeError, TypeError):
            logger.warning("Brand analysis response was not valid JSON; using default palette")
            result["brandGuidelines"] = copy.deepcopy(DEFAULT_GUIDELINES)
        return result
