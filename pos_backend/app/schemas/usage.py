from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..usage.models import BudgetStatus, CategorySpend, UsageEvent


class MonthlySpendResponse(BaseModel):
    account_id: int = Field(alias="accountId")
    spend: Decimal

    model_config = ConfigDict(populate_by_name=True)


class CategorySpendResponse(BaseModel):
    account_id: int = Field(alias="accountId")
    categories: List[CategorySpend]

    model_config = ConfigDict(populate_by_name=True)


class BudgetResponse(BaseModel):
    account_id: int = Field(alias="accountId")
    category: str
    cap: Decimal
    budget: BudgetStatus

    model_config = ConfigDict(populate_by_name=True)


class UsageHistoryResponse(BaseModel):
    events: List[UsageEvent]
    limit: int
    offset: int
