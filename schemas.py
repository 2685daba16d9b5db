from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import AccountType, CardType, PlanningStatus, TransactionType


class PlanningIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    due_date: date
    is_recurring: bool = False
    installments: Optional[int] = None


class PlanningUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    due_date: Optional[date] = None
    is_recurring: Optional[bool] = None


class PlanningOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    parent_planning_id: Optional[int]
    description: str
    amount_cents: int
    category: str
    due_date: date
    is_recurring: bool
    current_installment: int
    installments: int
    status: PlanningStatus
    transaction_id: Optional[int]
    consistency_issue: Optional[str] = None


class TransactionIn(BaseModel):
    type: TransactionType
    amount: float = Field(..., ge=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    due_date: date
    card_id: Optional[int] = None
    is_recurring: bool = False
    installments: Optional[int] = None


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    due_date: Optional[date] = None
    card_id: Optional[int] = None
    is_recurring: Optional[bool] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    card_id: Optional[int]
    type: TransactionType
    amount_cents: int
    description: str
    category: str
    due_date: date
    installments: Optional[int]
    current_installment: Optional[int]
    is_recurring: bool
    origin_planning_id: Optional[int]


class SummaryOut(BaseModel):
    total_income_cents: int
    total_expense_cents: int
    balance_cents: int
    by_category: dict[str, int]


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount: float = Field(..., ge=0)
    current_amount: float = Field(default=0, ge=0)
    target_date: date
    description: Optional[str] = Field(default=None, max_length=500)
    shared: bool = False


class GoalUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount: Optional[float] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)


class GoalAdjust(BaseModel):
    delta: float


class GoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    couple_id: Optional[int]
    name: str
    target_amount_cents: int
    current_amount_cents: int
    target_date: date
    description: Optional[str]
    percent: float
    remaining_cents: int
    days_remaining: int
    is_completed: bool
    is_overdue: bool


class CardIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CardType
    bank: str = Field(..., min_length=1, max_length=100)
    last_four: str = Field(..., pattern=r"^\d{4}$")
    limit: Optional[float] = Field(default=None, ge=0)
    current_balance: float = Field(default=0, ge=0)


class CardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    type: CardType
    bank: str
    last_four: str
    limit_cents: Optional[int]
    current_balance_cents: int
    available_limit_cents: Optional[int] = None


class AccountIn(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., min_length=1, max_length=40)
    account_type: AccountType
    balance: float = 0


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    bank_name: str
    account_number: str
    account_type: AccountType
    balance_cents: int


class CoupleIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


PlanningStatusFilter = Literal["all", "paid", "pending", "overdue"]
PlanningKindFilter = Literal["all", "recurring", "one-time"]
GoalStatusFilter = Literal["all", "active", "completed", "overdue"]
