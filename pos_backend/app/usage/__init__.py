"""Usage metering: cost derivation and the append-only ledger."""

from .costs import AI_MODEL_RATES, FALLBACK_AI_MODEL, ai_token_cost, email_cost, storage_cost
from .ledger import (
    check_budget,
    get_history,
    get_monthly_spend,
    get_monthly_spend_by_category,
    log_ai_usage,
    log_charge,
    log_email_usage,
    log_storage_usage,
    log_usage,
    month_start,
)
from .models import BudgetStatus, CategorySpend, UsageCategory, UsageCharge, UsageEvent

__all__ = [
    "AI_MODEL_RATES",
    "FALLBACK_AI_MODEL",
    "BudgetStatus",
    "CategorySpend",
    "UsageCategory",
    "UsageCharge",
    "UsageEvent",
    "ai_token_cost",
    "check_budget",
    "email_cost",
    "get_history",
    "get_monthly_spend",
    "get_monthly_spend_by_category",
    "log_ai_usage",
    "log_charge",
    "log_email_usage",
    "log_storage_usage",
    "log_usage",
    "month_start",
    "storage_cost",
]
