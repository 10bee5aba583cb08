"""
Extraction provider registry.

    provider name ──► constructor(api_key) ──► ExtractionProvider

Unknown names fail when the provider is BUILT (once per run, before any
document is touched), never in the middle of a document.
"""

from __future__ import annotations

import logging
from typing import Callable

from app.core.exceptions import UnsupportedProviderError
from app.llm.base import ExtractionProvider
from app.llm.openai_provider import OpenAIExtractionProvider

logger = logging.getLogger(__name__)

ProviderConstructor = Callable[[str], ExtractionProvider]


class ProviderFactory:

    def __init__(self) -> None:
        self._registry: dict[str, ProviderConstructor] = {}

    def register(self, name: str, constructor: ProviderConstructor) -> None:
        self._registry[name.lower()] = constructor

    @property
    def providers(self) -> list[str]:
        return sorted(self._registry)

    def create(self, name: str, api_key: str) -> ExtractionProvider:
        constructor = self._registry.get((name or "").lower())
        if constructor is None:
            raise UnsupportedProviderError(
                f"Unsupported extraction provider: {name!r} (available: {', '.join(self.providers)})"
            )
        logger.debug("ProviderFactory | building provider=%s", name)
        return constructor(api_key)


def default_provider_factory() -> ProviderFactory:
    factory = ProviderFactory()
    factory.register("openai", OpenAIExtractionProvider)
    return factory
