"""
Agency Hub
AI module — generation helpers for website projects.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, cost tracking)
    - prompt_registry: built-in prompt templates ({{var}} rendering)
    - assistants: scope writer, brief writer, brand analyst
"""
