from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color_code: Optional[str] = Field(default=None, max_length=7)


class TransactionIn(BaseModel):
    description: str = Field(..., max_length=255)
    amount: Decimal
    type: TransactionType
    occurred_at: datetime
    notes: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None


class BudgetIn(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Decimal
    start_date: date
    end_date: date
    category_id: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    color_code: Optional[str]
    is_active: bool


class CategoryUsageOut(BaseModel):
    category: CategoryOut
    transaction_count: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    amount: Decimal
    type: TransactionType
    occurred_at: datetime
    notes: Optional[str]
    category_id: Optional[int]


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    amount: Decimal
    start_date: date
    end_date: date
    is_active: bool
    category_id: Optional[int]
