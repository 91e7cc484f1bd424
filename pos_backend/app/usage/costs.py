"""Cost derivation for metered actions.

Rates are USD. AI model rates are per token; storage is per MB and converted
to a per-byte unit cost; email is per message. A model missing from the table
is billed at the cheapest known AI rate (``openai/gpt-4o-mini``).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Mapping, NamedTuple, Optional

from .models import UsageCategory, UsageCharge


class ModelRate(NamedTuple):
    prompt: Decimal
    completion: Decimal


_PER_THOUSAND = Decimal(1000)

AI_MODEL_RATES: Mapping[str, ModelRate] = {
    "openai/gpt-4o": ModelRate(
        prompt=Decimal("0.0025") / _PER_THOUSAND,
        completion=Decimal("0.01") / _PER_THOUSAND,
    ),
    "openai/gpt-4o-mini": ModelRate(
        prompt=Decimal("0.00015") / _PER_THOUSAND,
        completion=Decimal("0.0006") / _PER_THOUSAND,
    ),
}
FALLBACK_AI_MODEL = "openai/gpt-4o-mini"

STORAGE_RESOURCE = "s3/upload"
STORAGE_RATE_PER_MB = Decimal("0.000023")
BYTES_PER_MB = 1024 * 1024

EMAIL_RESOURCE = "ses/email"
EMAIL_RATE = Decimal("0.0001")


def resolve_model_rate(model: Optional[str]) -> tuple[str, ModelRate]:
    """Return the billed model name and its rate."""

    if model and model in AI_MODEL_RATES:
        return model, AI_MODEL_RATES[model]
    return FALLBACK_AI_MODEL, AI_MODEL_RATES[FALLBACK_AI_MODEL]


def ai_token_cost(
    model: Optional[str],
    prompt_tokens: int,
    completion_tokens: int,
    *,
    endpoint: Optional[str] = None,
) -> UsageCharge:
    """Blend prompt and completion rates into one per-token unit cost."""

    if prompt_tokens < 0 or completion_tokens < 0:
        raise ValueError("token counts must be non-negative")

    _, rate = resolve_model_rate(model)
    total_tokens = prompt_tokens + completion_tokens
    if total_tokens == 0:
        unit_cost = Decimal(0)
    else:
        unit_cost = (rate.prompt * prompt_tokens + rate.completion * completion_tokens) / total_tokens

    metadata: Dict[str, Any] = {
        "promptTokens": prompt_tokens,
        "completionTokens": completion_tokens,
    }
    if endpoint:
        metadata["endpoint"] = endpoint
    return UsageCharge(
        category=UsageCategory.AI_TOKENS.value,
        resource=model or FALLBACK_AI_MODEL,
        quantity=Decimal(total_tokens),
        unit="tokens",
        unit_cost=unit_cost,
        metadata=metadata,
    )


def storage_cost(size_bytes: int, *, file_key: Optional[str] = None) -> UsageCharge:
    if size_bytes < 0:
        raise ValueError("size_bytes must be non-negative")
    metadata: Dict[str, Any] = {"fileKey": file_key} if file_key else {}
    return UsageCharge(
        category=UsageCategory.STORAGE.value,
        resource=STORAGE_RESOURCE,
        quantity=Decimal(size_bytes),
        unit="bytes",
        unit_cost=STORAGE_RATE_PER_MB / BYTES_PER_MB,
        metadata=metadata,
    )


def email_cost(*, email_type: Optional[str] = None) -> UsageCharge:
    metadata: Dict[str, Any] = {"emailType": email_type} if email_type else {}
    return UsageCharge(
        category=UsageCategory.EMAIL.value,
        resource=EMAIL_RESOURCE,
        quantity=Decimal(1),
        unit="count",
        unit_cost=EMAIL_RATE,
        metadata=metadata,
    )
