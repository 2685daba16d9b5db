from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class CardType(str, Enum):
    credit = "credit"
    debit = "debit"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"


class PlanningStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    # Derived on read only, never stored.
    overdue = "overdue"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Couple(Base, TimestampMixin):
    __tablename__ = "couples"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)

    members: Mapped[list["Profile"]] = relationship(
        "Profile", back_populates="couple"
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    couple_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("couples.id", ondelete="SET NULL")
    )

    couple: Mapped[Optional["Couple"]] = relationship(
        "Couple", back_populates="members"
    )

    __table_args__ = (Index("ix_profiles_couple", "couple_id"),)


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_number: Mapped[str] = mapped_column(String(40), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_accounts_user", "user_id"),)


class Card(Base, TimestampMixin):
    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CardType] = mapped_column(SAEnum(CardType), nullable=False)
    bank: Mapped[str] = mapped_column(String(100), nullable=False)
    last_four: Mapped[str] = mapped_column(String(4), nullable=False)
    limit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    current_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    transactions: Mapped[list["LedgerTransaction"]] = relationship(
        "LedgerTransaction", back_populates="card"
    )

    __table_args__ = (
        Index("ix_cards_user", "user_id"),
        CheckConstraint(
            "limit_cents IS NULL OR limit_cents >= 0", name="ck_cards_limit_positive"
        ),
    )


class LedgerTransaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("cards.id", ondelete="SET NULL")
    )
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    installments: Mapped[Optional[int]] = mapped_column(Integer)
    current_installment: Mapped[Optional[int]] = mapped_column(Integer)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Planning entry settled by this transaction; kept consistent by the linker.
    origin_planning_id: Mapped[Optional[int]] = mapped_column(Integer)

    card: Mapped[Optional["Card"]] = relationship(
        "Card", back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("origin_planning_id", name="uq_txn_origin_planning"),
        Index("ix_transactions_user_date", "user_id", "due_date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "due_date"),
        Index("ix_transactions_card", "card_id"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class PlanningEntry(Base, TimestampMixin):
    __tablename__ = "plannings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # Null on the head installment; siblings point at the head.
    parent_planning_id: Mapped[Optional[int]] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_installment: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )
    installments: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[PlanningStatus] = mapped_column(
        SAEnum(PlanningStatus), nullable=False, default=PlanningStatus.pending
    )
    transaction_id: Mapped[Optional[int]] = mapped_column(Integer)

    linked_transaction: Mapped[Optional["LedgerTransaction"]] = relationship(
        "LedgerTransaction",
        primaryjoin="foreign(PlanningEntry.transaction_id) == LedgerTransaction.id",
        viewonly=True,
    )

    __table_args__ = (
        Index("ix_plannings_user_due", "user_id", "due_date"),
        Index("ix_plannings_parent", "parent_planning_id"),
        Index("ix_plannings_transaction", "transaction_id"),
        CheckConstraint("amount_cents >= 0", name="ck_plannings_amount_positive"),
        CheckConstraint("installments > 0", name="ck_plannings_installments_positive"),
        CheckConstraint(
            "current_installment > 0 AND current_installment <= installments",
            name="ck_plannings_installment_in_range",
        ),
    )

    @property
    def group_id(self) -> int:
        return self.parent_planning_id or self.id


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    couple_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("couples.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_goals_user", "user_id"),
        Index("ix_goals_couple", "couple_id"),
        CheckConstraint("target_amount_cents > 0", name="ck_goals_target_positive"),
        CheckConstraint(
            "current_amount_cents >= 0", name="ck_goals_current_non_negative"
        ),
    )
