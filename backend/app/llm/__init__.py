"""
LLM Extraction Package

Provider-agnostic structured extraction over pluggable backends:
  - OpenAI  (gpt-4o, gpt-4o-mini, gpt-4-turbo) via LangChain ChatOpenAI

Public API::

    from app.llm import ExtractionParams, default_provider_factory

    provider = default_provider_factory().create("openai", api_key)
    result = await provider.extract(ExtractionParams(prompt=..., schema=...))
    result.data, result.confidence, result.evidence, result.cost
"""

from app.llm.base import ExtractionParams, ExtractionProvider, ExtractionResult
from app.llm.factory import ProviderFactory, default_provider_factory

__all__ = [
    "ExtractionParams",
    "ExtractionProvider",
    "ExtractionResult",
    "ProviderFactory",
    "default_provider_factory",
]
