"""
Run cost guardrail.

Checked by the orchestrator before every document's llm_extraction stage.
Once the accumulated run cost reaches max_cost_per_run, the current and
all remaining documents are skipped with category COST_LIMIT.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class GuardrailResult:
    exceeded:     bool
    current_cost: float
    max_cost:     Optional[float]
    message:      str = ""


def check_cost_guardrail(current_cost: float | Decimal, max_cost: Optional[float]) -> GuardrailResult:
    current = float(current_cost)
    if max_cost is None or current < max_cost:
        return GuardrailResult(exceeded=False, current_cost=current, max_cost=max_cost)
    return GuardrailResult(
        exceeded=True,
        current_cost=current,
        max_cost=max_cost,
        message=(
            f"Cost guardrail triggered: ${current:.4f} spent, limit is ${max_cost:.2f}. "
            "Remaining documents will be skipped."
        ),
    )
