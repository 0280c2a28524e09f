"""
Governance Value Objects
========================

Model pricing and window arithmetic for the cost/rate governor.

Prices are USD per one million tokens. Models missing from the table have
no price and are refused rather than treated as free.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

from helpdesk_intel.core import CostLimitExceededException

ONE_MILLION = Decimal(1_000_000)

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token prices for one model."""
    input_per_million: Decimal
    output_per_million: Decimal


def _price(input_price: str, output_price: str) -> ModelPricing:
    return ModelPricing(Decimal(input_price), Decimal(output_price))


MODEL_PRICING: Dict[str, ModelPricing] = {
    # Amazon Titan
    "amazon.titan-text-express-v1": _price("0.8", "3.2"),
    "amazon.titan-text-lite-v1": _price("0.3", "1.2"),
    "amazon.titan-embed-text-v1": _price("0.1", "0.1"),
    # AI21 Jurassic
    "ai21.j2-mid-v1": _price("1.25", "1.25"),
    "ai21.j2-ultra-v1": _price("3.75", "3.75"),
    # Meta Llama
    "meta.llama2-13b-chat-v1": _price("0.75", "0.75"),
    "meta.llama2-70b-chat-v1": _price("2.65", "2.65"),
    "meta.llama3-8b-instruct-v1:0": _price("0.6", "0.6"),
    "meta.llama3-70b-instruct-v1:0": _price("2.65", "2.65"),
    # Anthropic Claude 3
    "anthropic.claude-3-haiku-20240307-v1:0": _price("0.25", "1.25"),
    "anthropic.claude-3-sonnet-20240229-v1:0": _price("3.0", "15.0"),
    "anthropic.claude-3-opus-20240229-v1:0": _price("15.0", "75.0"),
}


class CostCalculator:
    """Dollar cost of a call from its token counts."""

    @staticmethod
    def pricing_for(model_id: str) -> Optional[ModelPricing]:
        return MODEL_PRICING.get(model_id)

    @classmethod
    def calculate(cls, model_id: str, input_tokens: int, output_tokens: int) -> Decimal:
        """
        cost = input/1e6 * input_price + output/1e6 * output_price

        Raises:
            CostLimitExceededException: If the model has no known price
        """
        pricing = cls.pricing_for(model_id)
        if pricing is None:
            raise CostLimitExceededException(
                f"No pricing for model '{model_id}'",
                limit="pricing",
                details={"model_id": model_id}
            )
        return (
            Decimal(input_tokens) / ONE_MILLION * pricing.input_per_million
            + Decimal(output_tokens) / ONE_MILLION * pricing.output_per_million
        )


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def start_of_next_month(moment: datetime) -> datetime:
    first = start_of_month(moment)
    return first.replace(year=first.year + first.month // 12, month=first.month % 12 + 1)
