"""
Agency Hub
LLM Gateway.

One entry point for every model call the AI helpers make:
    - model name → provider (OpenAI, Anthropic, Gemini, local stub)
    - retries with capped exponential backoff
    - one AIUsageLog row per call, success or failure (flushed, never committed)

Usage:
    from agencyhub.ai.gateway import LLMGateway
    gw = LLMGateway()
    if gw.has_provider("gpt-4o-mini"):
        result = gw.chat(messages, model="gpt-4o-mini", purpose="technical_scope")
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod

from agencyhub.models import db
from agencyhub.models.ai import AIUsageLog, calculate_cost

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096


class LLMProvider(ABC):
    """A chat-completion backend.

    ``chat`` returns ``{content, prompt_tokens, completion_tokens, model}``.
    """

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        ...


def _split_system(messages: list) -> tuple[str, list]:
    """Pull the system prompt out for SDKs that take it as a separate argument."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    return system, [m for m in messages if m["role"] != "system"]


class _SDKProvider(LLMProvider):
    """Provider backed by a vendor SDK imported on first use."""

    env_key = ""
    package_hint = ""

    def __init__(self):
        self.api_key = os.getenv(self.env_key, "")
        self._client = None

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = self._make_client()
            except ImportError as exc:
                raise RuntimeError(
                    f"{self.package_hint} is not installed. Run: pip install {self.package_hint}"
                ) from exc
        return self._client

    @abstractmethod
    def _make_client(self):
        ...


class OpenAIProvider(_SDKProvider):
    env_key = "OPENAI_API_KEY"
    package_hint = "openai"

    def _make_client(self):
        import openai
        return openai.OpenAI(api_key=self.api_key)

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        params = {
            "model": model,
            "messages": messages,
            "temperature": kwargs.get("temperature", DEFAULT_TEMPERATURE),
        }
        if kwargs.get("max_tokens"):
            params["max_tokens"] = kwargs["max_tokens"]
        response = self.client.chat.completions.create(**params)
        return {
            "content": response.choices[0].message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


class AnthropicProvider(_SDKProvider):
    env_key = "ANTHROPIC_API_KEY"
    package_hint = "anthropic"

    def _make_client(self):
        import anthropic
        return anthropic.Anthropic(api_key=self.api_key)

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        system, turns = _split_system(messages)
        params = {
            "model": model,
            "messages": turns,
            "max_tokens": kwargs.get("max_tokens") or DEFAULT_MAX_TOKENS,
            "temperature": kwargs.get("temperature", DEFAULT_TEMPERATURE),
        }
        if system:
            params["system"] = system
        response = self.client.messages.create(**params)
        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


class GeminiProvider(_SDKProvider):
    """Google Gemini; key from https://aistudio.google.com/apikey"""

    env_key = "GEMINI_API_KEY"
    package_hint = "google-genai"

    def _make_client(self):
        from google import genai
        return genai.Client(api_key=self.api_key)

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        from google.genai import types

        client = self.client
        system, turns = _split_system(messages)
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in turns
        ]
        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", DEFAULT_TEMPERATURE),
            max_output_tokens=kwargs.get("max_tokens") or DEFAULT_MAX_TOKENS,
        )
        if system:
            config.system_instruction = system

        response = client.models.generate_content(model=model, contents=contents, config=config)
        usage = response.usage_metadata
        return {
            "content": response.text or "",
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
            "model": model,
        }


class LocalStubProvider(LLMProvider):
    """Deterministic canned answers keyed on prompt wording; no API key needed."""

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        system_msg = ""
        user_msg = ""
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            elif m["role"] == "user":
                user_msg = m["content"]

        content = self._generate_stub_response(system_msg, user_msg)
        return {
            "content": content,
            "prompt_tokens": len((system_msg + " " + user_msg).split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(system_msg: str, user_msg: str) -> str:
        lower = f"{system_msg}\n{user_msg}".lower()

        if "technical scope" in lower:
            return (
                "1. PROJECT OVERVIEW\nMarketing website with content management.\n\n"
                "2. TECHNICAL REQUIREMENTS\nResponsive layout, CMS-backed pages.\n\n"
                "3. FEATURES & FUNCTIONALITY\nHome, services, contact form, blog.\n\n"
                "4. TECHNOLOGY STACK RECOMMENDATIONS\nHeadless CMS with a static front end.\n\n"
                "5. INTEGRATION REQUIREMENTS\nCRM form capture, analytics.\n\n"
                "6. SECURITY CONSIDERATIONS\nHTTPS, form spam protection.\n\n"
                "7. PERFORMANCE REQUIREMENTS\nLCP under 2.5s on mobile.\n\n"
                "8. TIMELINE ESTIMATES\n6-8 weeks.\n\n"
                "9. ASSUMPTIONS & DEPENDENCIES\nClient supplies copy and imagery.\n\n"
                "10. OUT OF SCOPE ITEMS\nE-commerce, native apps.\n\n"
                "CLARIFYING QUESTIONS\n"
                "1. Which CMS does the client prefer?\n"
                "2. How many languages must the site support?\n"
            )

        if "brand" in lower:
            return json.dumps({
                "colors": {
                    "primary": [{"name": "Brand Navy", "hex": "#1E3A8A", "usage": "Headers"}],
                    "secondary": [{"name": "Sky", "hex": "#38BDF8", "usage": "Highlights"}],
                    "accent": [{"name": "Coral", "hex": "#FB7185", "usage": "Call to actions"}],
                    "neutrals": [{"name": "Slate", "hex": "#334155", "usage": "Text"}],
                },
                "typography": {
                    "primary_font": {"name": "Poppins", "weights": ["Regular", "Bold"], "usage": "Headings"},
                    "secondary_font": {"name": "Inter", "weights": ["Regular"], "usage": "Body text"},
                    "special_fonts": [],
                },
                "tone_of_voice": {
                    "personality": ["Confident", "Warm"],
                    "do": ["Be direct"],
                    "dont": ["Use jargon"],
                    "sample_phrases": [],
                },
                "logo_usage": {"clear_space": "1x mark height", "minimum_size": "24px", "dont": []},
                "imagery_style": {"description": "Bright and candid", "characteristics": []},
                "brand_values": ["Clarity", "Craft"],
                "tagline": "",
                "additional_notes": "",
            })

        if "brief" in lower:
            return json.dumps({
                "executive_summary": "A refreshed web presence that turns visitors into qualified leads.",
                "objectives": ["Increase enquiries by 30%", "Modernise the brand online"],
                "target_audience": {
                    "primary": "Small business owners",
                    "secondary": "Procurement managers",
                    "demographics": "25-55, regional",
                    "psychographics": "Value speed and clarity",
                },
                "scope": {
                    "deliverables": ["Website", "Style guide"],
                    "in_scope": ["Design", "Build", "Launch"],
                    "out_of_scope": ["Paid media"],
                },
                "key_messages": ["Fast, reliable, local"],
                "success_metrics": ["Monthly enquiries", "Bounce rate"],
                "timeline_considerations": "Launch within one quarter",
                "budget_considerations": "Fixed fee",
                "stakeholders": ["Marketing lead", "Founder"],
                "constraints": ["Existing logo must be kept"],
                "inspiration": "Clean editorial layouts",
            })

        return json.dumps({"response": "Analysis complete.", "confidence": 0.70})




def record_usage(*, provider, model, prompt_tokens=0, completion_tokens=0, cost_usd=0.0,
                 latency_ms=0, user="system", purpose="", project_id=None,
                 success=True, error_message=None) -> AIUsageLog:
    """Add an AIUsageLog row and flush; the route handler's commit keeps it."""
    log = AIUsageLog(
        provider=provider, model=model,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        cost_usd=cost_usd, latency_ms=latency_ms,
        user=user, purpose=purpose, project_id=project_id,
        success=success, error_message=error_message,
    )
    db.session.add(log)
    db.session.flush()
    return log


class LLMGateway:
    """Routes chat calls to a provider by model name.

    Real providers are registered only when their API key is set; the local
    stub is always there. ``has_provider`` answers for the real provider
    only, so callers can report "not configured" instead of silently getting
    stub output, while ``chat`` itself falls back to the stub.
    """

    PROVIDER_MAP = {
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        "local-stub": "local",
    }

    _KEYED_PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "gemini": GeminiProvider,
    }

    DEFAULT_CHAT_MODEL = os.getenv("AI_CHAT_MODEL", "gpt-4o-mini")

    def __init__(self):
        self._providers: dict[str, LLMProvider] = {"local": LocalStubProvider()}
        for name, cls in self._KEYED_PROVIDERS.items():
            if os.getenv(cls.env_key):
                self._providers[name] = cls()
        logger.debug("LLM providers available: %s", ", ".join(sorted(self._providers)))

    def has_provider(self, model: str | None) -> bool:
        return self.PROVIDER_MAP.get(model, "local") in self._providers

    def _resolve(self, model: str) -> tuple[LLMProvider, str]:
        name = self.PROVIDER_MAP.get(model, "local")
        if name not in self._providers:
            logger.warning("Provider '%s' has no API key; model '%s' answered by the local stub", name, model)
            name = "local"
        return self._providers[name], name

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        user: str = "system",
        project_id: int | None = None,
        max_retries: int = 3,
        **kwargs,
    ) -> dict:
        """
        Run a chat completion with retries and usage logging.

        Args:
            messages: [{"role", "content"}, ...]
            model: defaults to DEFAULT_CHAT_MODEL.
            purpose: usage-log tag, e.g. "technical_scope".
            user: who triggered the call.
            project_id: usage-log project (must exist; the caller checks).
            max_retries: attempts before giving up.
            **kwargs: temperature, max_tokens.

        Returns:
            Provider result plus cost_usd, latency_ms, provider.

        Raises:
            RuntimeError: every attempt failed (a failed usage row is logged first).
        """
        model = model or self.DEFAULT_CHAT_MODEL
        provider, provider_name = self._resolve(model)
        usage = {"provider": provider_name, "model": model, "user": user,
                 "purpose": purpose, "project_id": project_id}

        last_error = None
        for attempt in range(1, max_retries + 1):
            started = time.perf_counter()
            try:
                result = provider.chat(messages, model, **kwargs)
            except Exception as exc:
                last_error = exc
                logger.warning("LLM call %s attempt %d/%d failed: %s", purpose or model, attempt, max_retries, exc)
                if attempt < max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), 4))
                continue

            latency_ms = int((time.perf_counter() - started) * 1000)
            cost = calculate_cost(model, result["prompt_tokens"], result["completion_tokens"])
            record_usage(
                prompt_tokens=result["prompt_tokens"],
                completion_tokens=result["completion_tokens"],
                cost_usd=cost, latency_ms=latency_ms, **usage,
            )
            result.update(cost_usd=cost, latency_ms=latency_ms, provider=provider_name)
            return result

        record_usage(success=False, error_message=str(last_error), **usage)
        raise RuntimeError(f"LLM call failed after {max_retries} retries: {last_error}")
