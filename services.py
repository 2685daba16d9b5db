from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterator, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from calculations import (
    GoalProgress,
    GoalStats,
    Summary,
    aggregate_transactions,
    consistency_issue,
    goal_progress,
    goal_stats,
    reconcile_status,
)
from errors import ConsistencyError, NotFoundError, StoreError, ValidationError
from installments import expand_installments, local_today, to_cents
from membership import UserScope
from models import (
    Account,
    Card,
    CardType,
    Goal,
    LedgerTransaction,
    PlanningEntry,
    PlanningStatus,
    TransactionType,
)
from periods import Period
from schemas import (
    AccountIn,
    CardIn,
    CardOut,
    GoalIn,
    GoalOut,
    GoalUpdate,
    PlanningIn,
    PlanningOut,
    PlanningUpdate,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], date]


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"store_error: action={action} error={exc}")
        raise StoreError(f"{action} failed") from exc


def recompute_card_balance(session: Session, card: Card) -> None:
    """Roll a credit card's usage up from the expenses charged to it."""
    if card.type != CardType.credit:
        return
    used = int(
        session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.amount_cents), 0)).where(
                LedgerTransaction.card_id == card.id,
                LedgerTransaction.type == TransactionType.expense,
            )
        ).scalar_one()
        or 0
    )
    card.current_balance_cents = used


@dataclass
class PlanningFilters:
    status: str = "all"
    kind: str = "all"
    query: Optional[str] = None


class PlanningService:
    """Planning entries (bills and installments) and their ledger links."""

    def __init__(
        self, session: Session, scope: UserScope, today: Optional[Clock] = None
    ) -> None:
        self.session = session
        self.scope = scope
        self.today = today or local_today

    def _get_row(self, entry_id: int) -> PlanningEntry:
        entry = self.session.get(PlanningEntry, entry_id)
        if not entry or not self.scope.can_see(entry.user_id):
            raise NotFoundError("Planning entry not found")
        return entry

    def _origin_transaction(self, entry_id: int) -> Optional[LedgerTransaction]:
        return self.session.scalar(
            select(LedgerTransaction).where(
                LedgerTransaction.origin_planning_id == entry_id
            )
        )

    def to_out(self, entry: PlanningEntry, today: Optional[date] = None) -> PlanningOut:
        today = today or self.today()
        issue = consistency_issue(entry)
        if (
            issue is None
            and entry.transaction_id is not None
            and entry.linked_transaction is None
        ):
            issue = "linked transaction missing"
        if issue:
            logger.warning(f"planning_inconsistent: planning_id={entry.id} issue={issue}")
        out = PlanningOut.model_validate(entry)
        return out.model_copy(
            update={"status": reconcile_status(entry, today), "consistency_issue": issue}
        )

    def get(self, entry_id: int) -> PlanningOut:
        return self.to_out(self._get_row(entry_id))

    def list(self, filters: Optional[PlanningFilters] = None) -> list[PlanningOut]:
        filters = filters or PlanningFilters()
        stmt = (
            select(PlanningEntry)
            .options(joinedload(PlanningEntry.linked_transaction))
            .where(PlanningEntry.user_id.in_(self.scope.visible_user_ids))
            .order_by(PlanningEntry.due_date.asc(), PlanningEntry.id.asc())
        )
        if filters.kind == "recurring":
            stmt = stmt.where(PlanningEntry.is_recurring.is_(True))
        elif filters.kind == "one-time":
            stmt = stmt.where(PlanningEntry.is_recurring.is_(False))
        if filters.query:
            like = f"%{filters.query.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(PlanningEntry.description).like(like),
                    func.lower(PlanningEntry.category).like(like),
                )
            )

        today = self.today()
        entries = [self.to_out(entry, today) for entry in self.session.scalars(stmt)]
        if filters.status != "all":
            entries = [e for e in entries if e.status.value == filters.status]
        return entries

    def group(self, entry_id: int) -> list[PlanningOut]:
        """All installments threaded to the same head as ``entry_id``."""
        entry = self._get_row(entry_id)
        head_id = entry.group_id
        stmt = (
            select(PlanningEntry)
            .options(joinedload(PlanningEntry.linked_transaction))
            .where(
                PlanningEntry.user_id.in_(self.scope.visible_user_ids),
                or_(
                    PlanningEntry.id == head_id,
                    PlanningEntry.parent_planning_id == head_id,
                ),
            )
            .order_by(PlanningEntry.current_installment.asc(), PlanningEntry.id.asc())
        )
        today = self.today()
        return [self.to_out(e, today) for e in self.session.scalars(stmt)]

    def totals(self, filters: Optional[PlanningFilters] = None) -> dict[str, int]:
        totals = {status.value: 0 for status in PlanningStatus}
        for entry in self.list(filters):
            totals[entry.status.value] += entry.amount_cents
        return totals

    def create(self, data: PlanningIn) -> list[PlanningOut]:
        rows = expand_installments(
            data.amount,
            data.due_date,
            data.installments,
            {
                "user_id": self.scope.user_id,
                "description": data.description.strip(),
                "category": data.category.strip(),
                "is_recurring": data.is_recurring,
                "status": PlanningStatus.pending,
            },
        )
        with store_errors(self.session, "planning_create"):
            head = PlanningEntry(**rows[0])
            self.session.add(head)
            self.session.flush()
            siblings = [
                PlanningEntry(**row, parent_planning_id=head.id) for row in rows[1:]
            ]
            self.session.add_all(siblings)
            self.session.commit()
        logger.info(
            f"planning_created: head_id={head.id} installments={len(rows)} "
            f"user_id={self.scope.user_id}"
        )
        today = self.today()
        return [self.to_out(e, today) for e in [head, *siblings]]

    def update(self, entry_id: int, data: PlanningUpdate) -> PlanningOut:
        entry = self._get_row(entry_id)
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None
        }
        if "amount" in changes:
            entry.amount_cents = to_cents(changes.pop("amount"))
        for field, value in changes.items():
            setattr(entry, field, value.strip() if isinstance(value, str) else value)
        with store_errors(self.session, "planning_update"):
            self.session.commit()
        return self.to_out(entry)

    def delete(self, entry_id: int) -> None:
        entry = self._get_row(entry_id)
        if entry.transaction_id is not None:
            logger.warning(
                f"planning_deleted_with_transaction: planning_id={entry.id} "
                f"transaction_id={entry.transaction_id} transaction kept"
            )
        with store_errors(self.session, "planning_delete"):
            self.session.execute(
                update(LedgerTransaction)
                .where(LedgerTransaction.origin_planning_id == entry.id)
                .values(origin_planning_id=None)
            )
            self.session.delete(entry)
            self.session.commit()

    def mark_as_paid(self, entry_id: int) -> PlanningOut:
        entry = self._get_row(entry_id)
        if entry.status == PlanningStatus.paid:
            if entry.transaction_id is not None:
                logger.info(
                    f"planning_already_paid: planning_id={entry.id} "
                    f"transaction_id={entry.transaction_id}"
                )
                return self.to_out(entry)
            orphan = self._origin_transaction(entry.id)
            if orphan is None:
                logger.error(f"planning_paid_without_link: planning_id={entry.id}")
                raise ConsistencyError(
                    "Planning entry is paid but has no linked transaction",
                    planning_id=entry.id,
                )
            return self._link(entry, orphan)

        txn = self._origin_transaction(entry.id)
        if txn is not None:
            logger.warning(
                f"planning_orphan_adopted: planning_id={entry.id} transaction_id={txn.id}"
            )
            return self._link(entry, txn)

        txn = LedgerTransaction(
            user_id=entry.user_id,
            type=TransactionType.expense,
            amount_cents=entry.amount_cents,
            description=entry.description,
            category=entry.category,
            due_date=entry.due_date,
            is_recurring=entry.is_recurring,
            installments=entry.installments,
            current_installment=entry.current_installment,
            origin_planning_id=entry.id,
        )
        try:
            self.session.add(txn)
            self.session.commit()
        except IntegrityError:
            # Another writer settled this entry first.
            self.session.rollback()
            existing = self._origin_transaction(entry_id)
            if existing is None:
                raise StoreError("planning_pay_insert failed")
            return self._link(self._get_row(entry_id), existing)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"store_error: action=planning_pay_insert error={exc}")
            raise StoreError("planning_pay_insert failed") from exc
        return self._link(entry, txn)

    def _link(self, entry: PlanningEntry, txn: LedgerTransaction) -> PlanningOut:
        entry_id, txn_id = entry.id, txn.id
        try:
            entry.status = PlanningStatus.paid
            entry.transaction_id = txn_id
            self.session.commit()
            self.session.expire(entry, ["linked_transaction"])
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"planning_link_failed: planning_id={entry_id} transaction_id={txn_id} "
                f"error={exc}"
            )
            raise ConsistencyError(
                "Transaction was recorded but the planning entry was not updated; retry",
                planning_id=entry_id,
                transaction_id=txn_id,
            ) from exc
        logger.info(f"planning_paid: planning_id={entry_id} transaction_id={txn_id}")
        return self.to_out(entry)

    def reverse(self, entry_id: int) -> PlanningOut:
        entry = self._get_row(entry_id)
        if entry.status != PlanningStatus.paid and entry.transaction_id is None:
            logger.info(f"planning_already_pending: planning_id={entry.id}")
            return self.to_out(entry)

        linked_id = entry.transaction_id
        txn = None
        if linked_id is not None:
            txn = self.session.get(LedgerTransaction, linked_id)
        if txn is None:
            txn = self._origin_transaction(entry.id)

        txn_id = txn.id if txn is not None else None
        card_id = txn.card_id if txn is not None else None
        with store_errors(self.session, "planning_reverse"):
            if txn is not None:
                self.session.delete(txn)
            entry.status = PlanningStatus.pending
            entry.transaction_id = None
            self.session.flush()
            card = self.session.get(Card, card_id) if card_id is not None else None
            if card:
                recompute_card_balance(self.session, card)
            self.session.commit()
        self.session.expire(entry, ["linked_transaction"])

        if txn is None:
            logger.warning(
                f"planning_reverse_missing_transaction: planning_id={entry.id} "
                f"transaction_id={linked_id}"
            )
            raise NotFoundError(
                "Linked transaction not found; planning entry was reset to pending"
            )
        logger.info(f"planning_reversed: planning_id={entry.id} transaction_id={txn_id}")
        return self.to_out(entry)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    card_id: Optional[int] = None
    query: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, scope: UserScope) -> None:
        self.session = session
        self.scope = scope

    def _visible_card(self, card_id: Optional[int]) -> Optional[Card]:
        if card_id is None:
            return None
        card = self.session.get(Card, card_id)
        if not card or not self.scope.can_see(card.user_id):
            raise NotFoundError("Card not found")
        return card

    def get(self, transaction_id: int) -> LedgerTransaction:
        stmt = (
            select(LedgerTransaction)
            .options(joinedload(LedgerTransaction.card))
            .where(
                LedgerTransaction.id == transaction_id,
                LedgerTransaction.user_id.in_(self.scope.visible_user_ids),
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> list[LedgerTransaction]:
        card = self._visible_card(data.card_id)
        rows = expand_installments(
            data.amount,
            data.due_date,
            data.installments,
            {
                "user_id": self.scope.user_id,
                "type": data.type,
                "description": data.description.strip(),
                "category": data.category.strip(),
                "card_id": data.card_id,
                "is_recurring": data.is_recurring,
            },
        )
        if len(rows) == 1:
            rows[0].update(installments=None, current_installment=None)
        txns = [LedgerTransaction(**row) for row in rows]
        with store_errors(self.session, "transaction_create"):
            self.session.add_all(txns)
            self.session.flush()
            if card:
                recompute_card_balance(self.session, card)
            self.session.commit()
        logger.info(
            f"transaction_created: ids={[t.id for t in txns]} user_id={self.scope.user_id}"
        )
        return txns

    def update(self, transaction_id: int, data: TransactionUpdate) -> LedgerTransaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        touched_cards = {txn.card_id}
        if "card_id" in changes:
            self._visible_card(changes["card_id"])
            touched_cards.add(changes["card_id"])
        if changes.get("amount") is not None:
            txn.amount_cents = to_cents(changes.pop("amount"))
        changes.pop("amount", None)
        for field, value in changes.items():
            if value is None and field != "card_id":
                continue
            setattr(txn, field, value.strip() if isinstance(value, str) else value)
        with store_errors(self.session, "transaction_update"):
            self.session.flush()
            self._recompute_cards(touched_cards)
            self.session.commit()
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        linked = self.session.scalars(
            select(PlanningEntry).where(
                or_(
                    PlanningEntry.transaction_id == txn.id,
                    PlanningEntry.id == txn.origin_planning_id,
                )
            )
        ).all()
        card_id = txn.card_id
        with store_errors(self.session, "transaction_delete"):
            for entry in linked:
                if entry.transaction_id not in (None, txn.id):
                    continue
                entry.status = PlanningStatus.pending
                entry.transaction_id = None
                logger.info(
                    f"planning_unlinked: planning_id={entry.id} transaction_id={txn.id}"
                )
            self.session.delete(txn)
            self.session.flush()
            self._recompute_cards({card_id})
            self.session.commit()
        for entry in linked:
            self.session.expire(entry, ["linked_transaction"])

    def _recompute_cards(self, card_ids: set[Optional[int]]) -> None:
        for card_id in card_ids:
            if card_id is None:
                continue
            card = self.session.get(Card, card_id)
            if card:
                recompute_card_balance(self.session, card)

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
        limit: Optional[int] = None,
    ) -> list[LedgerTransaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(LedgerTransaction)
            .options(joinedload(LedgerTransaction.card))
            .where(LedgerTransaction.user_id.in_(self.scope.visible_user_ids))
            .order_by(LedgerTransaction.due_date.desc(), LedgerTransaction.id.desc())
        )
        if period:
            stmt = stmt.where(LedgerTransaction.due_date.between(period.start, period.end))
        if filters.type:
            stmt = stmt.where(LedgerTransaction.type == filters.type)
        if filters.category:
            stmt = stmt.where(LedgerTransaction.category == filters.category)
        if filters.card_id:
            stmt = stmt.where(LedgerTransaction.card_id == filters.card_id)
        if filters.query:
            like = f"%{filters.query.lower()}%"
            stmt = stmt.where(func.lower(LedgerTransaction.description).like(like))
        if limit:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 10) -> list[LedgerTransaction]:
        return self.list(limit=limit)

    def summary(
        self, period: Optional[Period] = None, filters: Optional[TransactionFilters] = None
    ) -> Summary:
        return aggregate_transactions(self.list(period, filters))


class CardService:
    def __init__(self, session: Session, scope: UserScope) -> None:
        self.session = session
        self.scope = scope

    def list(self) -> list[Card]:
        stmt = (
            select(Card)
            .where(Card.user_id.in_(self.scope.visible_user_ids))
            .order_by(Card.created_at.desc(), Card.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, card_id: int) -> Card:
        card = self.session.get(Card, card_id)
        if not card or not self.scope.can_see(card.user_id):
            raise NotFoundError("Card not found")
        return card

    def _apply(self, card: Card, data: CardIn) -> None:
        card.name = data.name.strip()
        card.type = data.type
        card.bank = data.bank.strip()
        card.last_four = data.last_four
        if data.type == CardType.credit:
            card.limit_cents = to_cents(data.limit) if data.limit is not None else None
            card.current_balance_cents = 0
            if card.id is not None:
                recompute_card_balance(self.session, card)
        else:
            card.limit_cents = None
            card.current_balance_cents = to_cents(data.current_balance)

    def create(self, data: CardIn) -> Card:
        card = Card(user_id=self.scope.user_id)
        self._apply(card, data)
        with store_errors(self.session, "card_create"):
            self.session.add(card)
            self.session.commit()
        return card

    def update(self, card_id: int, data: CardIn) -> Card:
        card = self.get(card_id)
        self._apply(card, data)
        with store_errors(self.session, "card_update"):
            self.session.commit()
        return card

    def delete(self, card_id: int) -> None:
        card = self.get(card_id)
        with store_errors(self.session, "card_delete"):
            self.session.execute(
                update(LedgerTransaction)
                .where(LedgerTransaction.card_id == card.id)
                .values(card_id=None)
            )
            self.session.delete(card)
            self.session.commit()

    def recompute_balance(self, card_id: int) -> Card:
        card = self.get(card_id)
        with store_errors(self.session, "card_recompute"):
            recompute_card_balance(self.session, card)
            self.session.commit()
        return card

    @staticmethod
    def available_limit_cents(card: Card) -> Optional[int]:
        if card.type != CardType.credit or card.limit_cents is None:
            return None
        return card.limit_cents - card.current_balance_cents

    def to_out(self, card: Card) -> CardOut:
        out = CardOut.model_validate(card)
        return out.model_copy(
            update={"available_limit_cents": self.available_limit_cents(card)}
        )


class AccountService:
    def __init__(self, session: Session, scope: UserScope) -> None:
        self.session = session
        self.scope = scope

    def list(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id.in_(self.scope.visible_user_ids))
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or not self.scope.can_see(account.user_id):
            raise NotFoundError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.scope.user_id,
            bank_name=data.bank_name.strip(),
            account_number=data.account_number.strip(),
            account_type=data.account_type,
            balance_cents=to_cents(data.balance, allow_negative=True),
        )
        with store_errors(self.session, "account_create"):
            self.session.add(account)
            self.session.commit()
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.bank_name = data.bank_name.strip()
        account.account_number = data.account_number.strip()
        account.account_type = data.account_type
        account.balance_cents = to_cents(data.balance, allow_negative=True)
        with store_errors(self.session, "account_update"):
            self.session.commit()
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        with store_errors(self.session, "account_delete"):
            self.session.delete(account)
            self.session.commit()

    def total_balance_cents(self) -> int:
        return sum(account.balance_cents for account in self.list())


class GoalService:
    def __init__(
        self, session: Session, scope: UserScope, today: Optional[Clock] = None
    ) -> None:
        self.session = session
        self.scope = scope
        self.today = today or local_today

    def _visible(self):
        clause = Goal.user_id.in_(self.scope.visible_user_ids)
        if self.scope.couple_id is not None:
            clause = or_(clause, Goal.couple_id == self.scope.couple_id)
        return clause

    def _can_see(self, goal: Goal) -> bool:
        if self.scope.can_see(goal.user_id):
            return True
        return self.scope.couple_id is not None and goal.couple_id == self.scope.couple_id

    def get(self, goal_id: int) -> Goal:
        goal = self.session.get(Goal, goal_id)
        if not goal or not self._can_see(goal):
            raise NotFoundError("Goal not found")
        return goal

    def list(self, status: str = "all", query: Optional[str] = None) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(self._visible())
            .order_by(Goal.created_at.desc(), Goal.id.desc())
        )
        if query:
            like = f"%{query.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Goal.name).like(like),
                    func.lower(func.coalesce(Goal.description, "")).like(like),
                )
            )
        goals = self.session.scalars(stmt).all()
        if status == "all":
            return goals
        today = self.today()
        selected = []
        for goal in goals:
            progress = goal_progress(goal, today)
            if status == "completed" and progress.is_completed:
                selected.append(goal)
            elif status == "overdue" and progress.is_overdue:
                selected.append(goal)
            elif status == "active" and not (progress.is_completed or progress.is_overdue):
                selected.append(goal)
        return selected

    def create(self, data: GoalIn) -> Goal:
        target = to_cents(data.target_amount)
        if target <= 0:
            raise ValidationError("Goal target must be greater than zero")
        if data.shared and self.scope.couple_id is None:
            raise ValidationError("Only users in a couple can create shared goals")
        goal = Goal(
            user_id=self.scope.user_id,
            couple_id=self.scope.couple_id if data.shared else None,
            name=data.name.strip(),
            target_amount_cents=target,
            current_amount_cents=to_cents(data.current_amount),
            target_date=data.target_date,
            description=data.description,
        )
        with store_errors(self.session, "goal_create"):
            self.session.add(goal)
            self.session.commit()
        return goal

    def update(self, goal_id: int, data: GoalUpdate) -> Goal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("target_amount") is not None:
            target = to_cents(changes["target_amount"])
            if target <= 0:
                raise ValidationError("Goal target must be greater than zero")
            goal.target_amount_cents = target
        if changes.get("name"):
            goal.name = changes["name"].strip()
        if changes.get("target_date"):
            goal.target_date = changes["target_date"]
        if "description" in changes:
            goal.description = changes["description"]
        with store_errors(self.session, "goal_update"):
            self.session.commit()
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        with store_errors(self.session, "goal_delete"):
            self.session.delete(goal)
            self.session.commit()

    def adjust_amount(self, goal_id: int, delta: float) -> Goal:
        goal = self.get(goal_id)
        delta_cents = to_cents(delta, allow_negative=True)
        goal.current_amount_cents = max(0, goal.current_amount_cents + delta_cents)
        with store_errors(self.session, "goal_adjust"):
            self.session.commit()
        logger.info(
            f"goal_adjusted: goal_id={goal.id} delta_cents={delta_cents} "
            f"current_cents={goal.current_amount_cents}"
        )
        return goal

    def progress(self, goal: Goal) -> GoalProgress:
        return goal_progress(goal, self.today())

    def stats(self) -> GoalStats:
        return goal_stats(self.list(), self.today())

    def to_out(self, goal: Goal) -> GoalOut:
        progress = self.progress(goal)
        return GoalOut(
            id=goal.id,
            user_id=goal.user_id,
            couple_id=goal.couple_id,
            name=goal.name,
            target_amount_cents=goal.target_amount_cents,
            current_amount_cents=goal.current_amount_cents,
            target_date=goal.target_date,
            description=goal.description,
            percent=progress.percent,
            remaining_cents=progress.remaining_cents,
            days_remaining=progress.days_remaining,
            is_completed=progress.is_completed,
            is_overdue=progress.is_overdue,
        )
