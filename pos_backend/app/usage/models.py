"""Domain models for metered usage events."""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InputInvalid

COST_QUANTUM = Decimal("0.000001")

Number = Union[int, float, Decimal, str]


def to_decimal(value: Number) -> Decimal:
    """Convert numeric input to ``Decimal`` without binary float artifacts.

    Input that is not a finite number raises :class:`InputInvalid`.
    """

    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(repr(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InputInvalid(f"Invalid numeric value: {value!r}") from exc
    if not result.is_finite():
        raise InputInvalid(f"Invalid numeric value: {value!r}")
    return result


def quantize_cost(value: Decimal) -> Decimal:
    """Round a cost to the six fractional digits stored in the ledger."""

    return value.quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def compute_total_cost(quantity: Number, unit_cost: Number) -> Decimal:
    return quantize_cost(to_decimal(quantity) * to_decimal(unit_cost))


class UsageCategory(str, Enum):
    """Known usage categories; other strings are accepted by the ledger."""

    AI_TOKENS = "ai_tokens"
    STORAGE = "storage"
    EMAIL = "email"


class UsageCharge(BaseModel):
    """Stateless description of a billable action prior to logging."""

    category: str
    resource: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def total_cost(self) -> Decimal:
        return compute_total_cost(self.quantity, self.unit_cost)


class UsageEvent(BaseModel):
    """Immutable ledger row."""

    id: int
    account_id: int = Field(alias="accountId")
    user_id: Optional[int] = Field(default=None, alias="userId")
    category: str
    resource: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal = Field(alias="unitCost")
    total_cost: Decimal = Field(alias="totalCost")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CategorySpend(BaseModel):
    category: str
    spend: Decimal

    model_config = ConfigDict(frozen=True)


class BudgetStatus(BaseModel):
    """Month-to-date spend for one category measured against a cap."""

    spend: Decimal
    remaining: Decimal
    within_budget: bool = Field(alias="withinBudget")

    model_config = ConfigDict(populate_by_name=True, frozen=True)
