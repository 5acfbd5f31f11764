"""Pricing calculator for roast requests.

Pure functions: the result depends only on the arguments (and the pricing
table passed in, defaulting to ``MODE_PRICING``). Amounts are ``Decimal``
quantized to cents.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Union

from roastmyapp.models.roast_request import FeedbackMode
from roastmyapp.services.errors import NegativeQuantity, TooManyQuestions, ValidationError

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModePricing:
    base_price: Decimal
    free_questions: int
    question_price: Decimal
    max_questions: int


MODE_PRICING: Dict[FeedbackMode, ModePricing] = {
    # General impression only, no questions
    FeedbackMode.FREE: ModePricing(
        base_price=Decimal("2.00"), free_questions=0, question_price=Decimal("0.00"), max_questions=0
    ),
    # Creator-written questions, 2 included
    FeedbackMode.TARGETED: ModePricing(
        base_price=Decimal("2.00"), free_questions=2, question_price=Decimal("0.25"), max_questions=20
    ),
    # Questions organised by focus area, 2 included
    FeedbackMode.STRUCTURED: ModePricing(
        base_price=Decimal("2.00"), free_questions=2, question_price=Decimal("0.20"), max_questions=20
    ),
}

URGENCY_SURCHARGE = Decimal("0.50")


@dataclass(frozen=True)
class PricingBreakdown:
    mode: FeedbackMode
    base_price: Decimal
    question_count: int
    free_questions: int
    billable_questions: int
    question_price: Decimal
    questions_cost: Decimal
    urgency_cost: Decimal
    per_roaster_total: Decimal
    roaster_count: int
    grand_total: Decimal
    is_urgent: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "base_price": self.base_price,
            "question_count": self.question_count,
            "free_questions": self.free_questions,
            "billable_questions": self.billable_questions,
            "question_price": self.question_price,
            "questions_cost": self.questions_cost,
            "urgency_cost": self.urgency_cost,
            "per_roaster_total": self.per_roaster_total,
            "roaster_count": self.roaster_count,
            "grand_total": self.grand_total,
            "is_urgent": self.is_urgent,
        }


def _coerce_mode(mode: Union[FeedbackMode, str]) -> FeedbackMode:
    if isinstance(mode, FeedbackMode):
        return mode
    try:
        return FeedbackMode(str(mode or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown feedback mode: {mode}", mode=mode)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_pricing(
    mode: Union[FeedbackMode, str],
    question_count: int,
    roaster_count: int,
    is_urgent: bool = False,
    pricing_table: Optional[Mapping[FeedbackMode, ModePricing]] = None,
) -> PricingBreakdown:
    """Compute per-roaster and total price for a roast request."""
    feedback_mode = _coerce_mode(mode)
    table = pricing_table or MODE_PRICING
    config = table[feedback_mode]

    if question_count < 0 or roaster_count < 0:
        raise NegativeQuantity(question_count=question_count, roaster_count=roaster_count)

    # FREE carries no questions whatever the form sent
    if feedback_mode == FeedbackMode.FREE:
        question_count = 0

    if question_count > config.max_questions:
        raise TooManyQuestions(
            f"Maximum {config.max_questions} questions allowed in {feedback_mode.value} mode",
            question_count=question_count,
            max_questions=config.max_questions,
        )

    billable_questions = max(0, question_count - config.free_questions)
    questions_cost = _money(config.question_price * billable_questions)
    urgency_cost = URGENCY_SURCHARGE if is_urgent else Decimal("0.00")
    per_roaster_total = _money(config.base_price + questions_cost + urgency_cost)
    grand_total = _money(per_roaster_total * roaster_count)

    return PricingBreakdown(
        mode=feedback_mode,
        base_price=_money(config.base_price),
        question_count=question_count,
        free_questions=min(config.free_questions, config.max_questions),
        billable_questions=billable_questions,
        question_price=_money(config.question_price),
        questions_cost=questions_cost,
        urgency_cost=_money(urgency_cost),
        per_roaster_total=per_roaster_total,
        roaster_count=roaster_count,
        grand_total=grand_total,
        is_urgent=bool(is_urgent),
    )


def format_pricing_breakdown(breakdown: PricingBreakdown) -> Dict[str, str]:
    """Human-readable labels for a pricing breakdown."""
    if breakdown.billable_questions > 0:
        questions_label = (
            f"Questions: {breakdown.billable_questions} x {breakdown.question_price}€ = {breakdown.questions_cost}€"
        )
    elif breakdown.question_count > 0:
        questions_label = f"Questions: {breakdown.question_count} included"
    else:
        questions_label = "Questions: none"

    return {
        "base_label": f"Base: {breakdown.base_price}€",
        "questions_label": questions_label,
        "urgency_label": f"Urgency: +{breakdown.urgency_cost}€" if breakdown.is_urgent else "",
        "per_roaster_label": f"Per roaster: {breakdown.per_roaster_total}€",
        "total_label": f"Total: {breakdown.grand_total}€",
    }


def max_questions_for_budget(
    mode: Union[FeedbackMode, str],
    budget_per_roaster: Decimal,
    pricing_table: Optional[Mapping[FeedbackMode, ModePricing]] = None,
) -> int:
    """Largest question count whose per-roaster price fits in the budget."""
    feedback_mode = _coerce_mode(mode)
    config = (pricing_table or MODE_PRICING)[feedback_mode]
    budget = Decimal(str(budget_per_roaster))
    if budget < config.base_price:
        return 0
    if config.question_price <= 0:
        return config.max_questions
    affordable_extra = int((budget - config.base_price) // config.question_price)
    return min(config.max_questions, config.free_questions + affordable_extra)
