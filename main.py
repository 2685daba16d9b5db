import logging
from dataclasses import asdict
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from errors import capture
from installments import local_today
from membership import ProfileDirectory, UserScope, resolve_scope
from models import TransactionType
from periods import Period, resolve_period
from schemas import (
    AccountIn,
    AccountOut,
    CardIn,
    CoupleIn,
    GoalAdjust,
    GoalIn,
    GoalStatusFilter,
    GoalUpdate,
    PlanningIn,
    PlanningKindFilter,
    PlanningStatusFilter,
    PlanningUpdate,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    AccountService,
    CardService,
    GoalService,
    PlanningFilters,
    PlanningService,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shared Finances")

ERROR_STATUS = {
    "validation_error": 400,
    "not_found": 404,
    "consistency_error": 409,
    "store_error": 502,
}


def current_scope(
    x_user_id: int = Header(...), db: Session = Depends(get_db)
) -> UserScope:
    ProfileDirectory(db).ensure_profile(x_user_id)
    return resolve_scope(db, x_user_id)


def respond(fn: Callable[[], Any], status_code: int = 200) -> JSONResponse:
    outcome = capture(fn)
    if outcome.ok:
        return JSONResponse(
            {"ok": True, "data": jsonable_encoder(outcome.value)},
            status_code=status_code,
        )
    return JSONResponse(
        {"ok": False, "error": outcome.error, "code": outcome.code},
        status_code=ERROR_STATUS.get(outcome.code or "", 400),
    )


def period_from_request(request: Request) -> Optional[Period]:
    params = request.query_params
    if not params.get("period"):
        return None
    try:
        return resolve_period(
            params.get("period"),
            params.get("start"),
            params.get("end"),
            month=params.get("month"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def transaction_filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    txn_type = None
    if params.get("type"):
        try:
            txn_type = TransactionType(params["type"])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid type") from exc
    card_id = None
    if params.get("card"):
        try:
            card_id = int(params["card"])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid card") from exc
    return TransactionFilters(
        type=txn_type,
        category=params.get("category") or None,
        card_id=card_id,
        query=params.get("q") or None,
    )


@app.get("/api/me")
def me(scope: UserScope = Depends(current_scope)):
    return respond(
        lambda: {
            "user_id": scope.user_id,
            "couple_id": scope.couple_id,
            "visible_user_ids": sorted(scope.visible_user_ids),
        }
    )


@app.post("/api/couples")
def create_couple(
    data: CoupleIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        couple = ProfileDirectory(db).create_couple(scope.user_id, data.name)
        return {"id": couple.id, "name": couple.name}

    return respond(run, status_code=201)


@app.post("/api/couples/{couple_id}/join")
def join_couple(
    couple_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        profile = ProfileDirectory(db).join_couple(scope.user_id, couple_id)
        return {"user_id": profile.id, "couple_id": profile.couple_id}

    return respond(run)


@app.post("/api/couples/leave")
def leave_couple(
    scope: UserScope = Depends(current_scope), db: Session = Depends(get_db)
):
    return respond(lambda: ProfileDirectory(db).leave_couple(scope.user_id))


@app.get("/api/plannings")
def list_plannings(
    status: PlanningStatusFilter = "all",
    kind: PlanningKindFilter = "all",
    q: Optional[str] = None,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    filters = PlanningFilters(status=status, kind=kind, query=q)
    return respond(lambda: PlanningService(db, scope).list(filters))


@app.get("/api/plannings/totals")
def planning_totals(
    scope: UserScope = Depends(current_scope), db: Session = Depends(get_db)
):
    return respond(lambda: PlanningService(db, scope).totals())


@app.post("/api/plannings")
def create_planning(
    data: PlanningIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).create(data), status_code=201)


@app.get("/api/plannings/{planning_id}")
def get_planning(
    planning_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).get(planning_id))


@app.get("/api/plannings/{planning_id}/group")
def planning_group(
    planning_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).group(planning_id))


@app.patch("/api/plannings/{planning_id}")
def update_planning(
    planning_id: int,
    data: PlanningUpdate,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).update(planning_id, data))


@app.delete("/api/plannings/{planning_id}")
def delete_planning(
    planning_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).delete(planning_id))


@app.post("/api/plannings/{planning_id}/pay")
def pay_planning(
    planning_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).mark_as_paid(planning_id))


@app.post("/api/plannings/{planning_id}/reverse")
def reverse_planning(
    planning_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: PlanningService(db, scope).reverse(planning_id))


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    filters = transaction_filters_from_request(request)
    return respond(
        lambda: [
            TransactionOut.model_validate(txn)
            for txn in TransactionService(db, scope).list(period, filters)
        ]
    )


@app.get("/api/transactions/summary")
def transactions_summary(
    request: Request,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    filters = transaction_filters_from_request(request)
    return respond(
        lambda: SummaryOut(**asdict(TransactionService(db, scope).summary(period, filters)))
    )


@app.get("/api/transactions/recent")
def recent_transactions(
    limit: int = 10,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(
        lambda: [
            TransactionOut.model_validate(txn)
            for txn in TransactionService(db, scope).recent(limit=limit)
        ]
    )


@app.post("/api/transactions")
def create_transaction(
    data: TransactionIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(
        lambda: [
            TransactionOut.model_validate(txn)
            for txn in TransactionService(db, scope).create(data)
        ],
        status_code=201,
    )


@app.patch("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(
        lambda: TransactionOut.model_validate(
            TransactionService(db, scope).update(transaction_id, data)
        )
    )


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: TransactionService(db, scope).delete(transaction_id))


@app.get("/api/goals")
def list_goals(
    status: GoalStatusFilter = "all",
    q: Optional[str] = None,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = GoalService(db, scope)
        return [svc.to_out(goal) for goal in svc.list(status=status, query=q)]

    return respond(run)


@app.get("/api/goals/stats")
def goal_stats(
    scope: UserScope = Depends(current_scope), db: Session = Depends(get_db)
):
    return respond(lambda: asdict(GoalService(db, scope).stats()))


@app.post("/api/goals")
def create_goal(
    data: GoalIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = GoalService(db, scope)
        return svc.to_out(svc.create(data))

    return respond(run, status_code=201)


@app.get("/api/goals/{goal_id}")
def get_goal(
    goal_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = GoalService(db, scope)
        return svc.to_out(svc.get(goal_id))

    return respond(run)


@app.patch("/api/goals/{goal_id}")
def update_goal(
    goal_id: int,
    data: GoalUpdate,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = GoalService(db, scope)
        return svc.to_out(svc.update(goal_id, data))

    return respond(run)


@app.post("/api/goals/{goal_id}/adjust")
def adjust_goal(
    goal_id: int,
    data: GoalAdjust,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = GoalService(db, scope)
        return svc.to_out(svc.adjust_amount(goal_id, data.delta))

    return respond(run)


@app.delete("/api/goals/{goal_id}")
def delete_goal(
    goal_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: GoalService(db, scope).delete(goal_id))


@app.get("/api/cards")
def list_cards(
    scope: UserScope = Depends(current_scope), db: Session = Depends(get_db)
):
    def run():
        svc = CardService(db, scope)
        return [svc.to_out(card) for card in svc.list()]

    return respond(run)


@app.post("/api/cards")
def create_card(
    data: CardIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = CardService(db, scope)
        return svc.to_out(svc.create(data))

    return respond(run, status_code=201)


@app.put("/api/cards/{card_id}")
def update_card(
    card_id: int,
    data: CardIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = CardService(db, scope)
        return svc.to_out(svc.update(card_id, data))

    return respond(run)


@app.post("/api/cards/{card_id}/recompute")
def recompute_card(
    card_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    def run():
        svc = CardService(db, scope)
        return svc.to_out(svc.recompute_balance(card_id))

    return respond(run)


@app.delete("/api/cards/{card_id}")
def delete_card(
    card_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: CardService(db, scope).delete(card_id))


@app.get("/api/accounts")
def list_accounts(
    scope: UserScope = Depends(current_scope), db: Session = Depends(get_db)
):
    def run():
        svc = AccountService(db, scope)
        return {
            "accounts": [AccountOut.model_validate(a) for a in svc.list()],
            "total_balance_cents": svc.total_balance_cents(),
        }

    return respond(run)


@app.post("/api/accounts")
def create_account(
    data: AccountIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(
        lambda: AccountOut.model_validate(AccountService(db, scope).create(data)),
        status_code=201,
    )


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: int,
    data: AccountIn,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(
        lambda: AccountOut.model_validate(
            AccountService(db, scope).update(account_id, data)
        )
    )


@app.delete("/api/accounts/{account_id}")
def delete_account(
    account_id: int,
    scope: UserScope = Depends(current_scope),
    db: Session = Depends(get_db),
):
    return respond(lambda: AccountService(db, scope).delete(account_id))


@app.get("/api/health")
def health():
    return {"status": "ok", "today": local_today().isoformat()}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
