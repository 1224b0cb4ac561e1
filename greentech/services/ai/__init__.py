"""
AI Services
===========
Optional LLM-backed enrichment of the analytics narrative.
"""

from greentech.services.ai.insight_generator import InsightGenerator, parse_insight, strip_code_fences
from greentech.services.ai.llm_backends import LLMBackend, OpenAIBackend, create_backend

__all__ = [
    "InsightGenerator",
    "LLMBackend",
    "OpenAIBackend",
    "create_backend",
    "parse_insight",
    "strip_code_fences",
]
