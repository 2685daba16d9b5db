from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError, ValidationError
from membership import MembershipResolver, ProfileDirectory, UserScope, resolve_scope
from schemas import CardIn, GoalIn, GoalUpdate, PlanningIn
from models import CardType
from services import CardService, GoalService, PlanningService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _couple(session: Session) -> int:
    directory = ProfileDirectory(session)
    couple = directory.create_couple(1, "Casa")
    directory.join_couple(2, couple.id)
    directory.ensure_profile(3, "Vizinho")
    return couple.id


def test_ungrouped_user_sees_only_self():
    session = make_session()
    ProfileDirectory(session).ensure_profile(1, "Ana")

    assert resolve_scope(session, 1).visible_user_ids == frozenset({1})
    assert MembershipResolver(ProfileDirectory(session)).visible_user_ids(99) == {99}


def test_grouped_users_share_visibility():
    session = make_session()
    couple_id = _couple(session)

    scope = resolve_scope(session, 2)
    assert scope.couple_id == couple_id
    assert scope.visible_user_ids == frozenset({1, 2})
    assert resolve_scope(session, 3).visible_user_ids == frozenset({3})


def test_group_membership_is_not_limited_to_two():
    session = make_session()
    couple_id = _couple(session)
    ProfileDirectory(session).join_couple(4, couple_id)

    assert resolve_scope(session, 1).visible_user_ids == frozenset({1, 2, 4})


def test_leaving_couple_restores_solo_scope():
    session = make_session()
    _couple(session)
    ProfileDirectory(session).leave_couple(2)

    assert resolve_scope(session, 2).visible_user_ids == frozenset({2})
    with pytest.raises(ValidationError):
        ProfileDirectory(session).leave_couple(2)


def test_fetches_never_leak_third_party_rows():
    session = make_session()
    _couple(session)
    for user_id in (1, 2, 3):
        scope = UserScope.solo(user_id)
        PlanningService(session, scope).create(
            PlanningIn(
                description=f"Conta {user_id}",
                amount=100,
                category="Casa",
                due_date=date(2025, 1, 10),
            )
        )
        CardService(session, scope).create(
            CardIn(name="Nubank", type=CardType.credit, bank="Nu", last_four="1234", limit=5000)
        )

    scope = resolve_scope(session, 1)
    plannings = PlanningService(session, scope, today=lambda: date(2025, 1, 1)).list()
    assert sorted(p.user_id for p in plannings) == [1, 2]
    assert sorted(c.user_id for c in CardService(session, scope).list()) == [1, 2]


def _goal_in(**overrides) -> GoalIn:
    data = dict(name="Viagem", target_amount=20000, target_date=date(2025, 12, 31))
    data.update(overrides)
    return GoalIn(**data)


def test_goal_with_zero_target_is_rejected():
    session = make_session()
    svc = GoalService(session, UserScope.solo(1))

    with pytest.raises(ValidationError):
        svc.create(_goal_in(target_amount=0))

    goal = svc.create(_goal_in())
    with pytest.raises(ValidationError):
        svc.update(goal.id, GoalUpdate(target_amount=0))


def test_adjust_amount_clamps_at_zero():
    session = make_session()
    svc = GoalService(session, UserScope.solo(1), today=lambda: date(2025, 3, 1))
    goal = svc.create(_goal_in(current_amount=100))

    goal = svc.adjust_amount(goal.id, 12400)
    assert goal.current_amount_cents == 1250000
    assert svc.progress(goal).percent == 62.5

    goal = svc.adjust_amount(goal.id, -50000)
    assert goal.current_amount_cents == 0


def test_goal_to_out_carries_progress():
    session = make_session()
    svc = GoalService(session, UserScope.solo(1), today=lambda: date(2026, 1, 1))
    goal = svc.create(_goal_in(current_amount=20000))

    out = svc.to_out(goal)
    assert out.is_completed is True
    assert out.is_overdue is False
    assert out.days_remaining == -1
    assert out.remaining_cents == 0


def test_shared_goal_visible_to_couple_and_listing_filters():
    session = make_session()
    _couple(session)
    owner = GoalService(session, resolve_scope(session, 1), today=lambda: date(2025, 6, 1))
    owner.create(_goal_in(shared=True))
    owner.create(_goal_in(name="Carro", target_date=date(2025, 1, 1)))

    partner = GoalService(session, resolve_scope(session, 2), today=lambda: date(2025, 6, 1))
    assert {g.name for g in partner.list()} == {"Viagem", "Carro"}
    assert [g.name for g in partner.list(status="overdue")] == ["Carro"]
    assert [g.name for g in partner.list(query="viag")] == ["Viagem"]
    assert partner.stats().overdue == 1

    stranger = GoalService(session, resolve_scope(session, 3))
    assert stranger.list() == []
    with pytest.raises(NotFoundError):
        stranger.get(1)


def test_shared_goal_requires_couple():
    session = make_session()
    with pytest.raises(ValidationError):
        GoalService(session, UserScope.solo(1)).create(_goal_in(shared=True))
