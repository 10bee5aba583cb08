"""
Model pricing catalogue and cost accounting.

Prices are public list prices, USD per 1 000 tokens. Update MODEL_PRICING
when rates change. Unknown models are billed at the cheapest tier
(gpt-4o-mini) rather than failing the extraction.
"""

from __future__ import annotations

import logging
import math

logger = logging.getLogger(__name__)

# (input_price_per_1k, output_price_per_1k)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o":        (0.0025,  0.0100),
    "gpt-4o-mini":   (0.00015, 0.0006),
    "gpt-4-turbo":   (0.0100,  0.0300),
    "gpt-3.5-turbo": (0.0005,  0.0015),
}

FALLBACK_MODEL = "gpt-4o-mini"


def get_pricing(model: str) -> tuple[float, float]:
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("Pricing | unknown model=%s, billing as %s", model, FALLBACK_MODEL)
        pricing = MODEL_PRICING[FALLBACK_MODEL]
    return pricing


def compute_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """USD cost of one call, rounded to 9 places to keep sums stable."""
    price_in, price_out = get_pricing(model)
    cost = (input_tokens / 1000.0 * price_in) + (output_tokens / 1000.0 * price_out)
    return round(cost, 9)


def estimate_tokens(text: str) -> int:
    """Rough token count (4 chars ≈ 1 token) for pre-flight estimates."""
    return math.ceil(len(text) / 4)
