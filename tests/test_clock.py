import itertools

from lineage_sim.core.clock import advance_day, next_date
from lineage_sim.core.entity_factory import create_initial_state
from lineage_sim.core.interfaces import SimulationContext
from lineage_sim.data_access.models import GameOverReason, SimDate
from lineage_sim.utils.random_source import RandomSource
from tests.utils import fresh_config, make_character, make_state, scripted_context


def _seeded_context(seed: int) -> SimulationContext:
    counter = itertools.count(1)
    return SimulationContext(
        rng=RandomSource.seeded(seed),
        config=fresh_config(),
        new_id=lambda: f"id-{next(counter)}",
    )


def _run(seed: int, days: int, registry):
    ctx = _seeded_context(seed)
    state = create_initial_state(ctx, game_id="g", scenario="mila")
    for _ in range(days):
        state = advance_day(state, registry, ctx).state
    return state


def test_next_date_wraps_year():
    assert next_date(SimDate(day=360, year=2030), 360) == SimDate(day=1, year=2031)
    assert next_date(SimDate(day=12, year=2030), 360) == SimDate(day=13, year=2030)


def test_same_seed_gives_identical_history(registry):
    first = _run(7, 400, registry)
    second = _run(7, 400, registry)

    assert first.model_dump() == second.model_dump()
    assert first.current_date == SimDate(day=41, year=2025)


def test_game_over_state_is_returned_unchanged(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"), game_over_reason=GameOverReason.DEBT)

    result = advance_day(state, small_registry, ctx)

    assert result.state is state
    assert result.logs == []
    assert state.current_date == SimDate(day=15, year=2030)


def test_advance_does_not_mutate_input(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"), current_date=SimDate(day=1, year=2030))

    result = advance_day(state, small_registry, ctx)

    assert result.state is not state
    assert state.current_date == SimDate(day=1, year=2030)
    assert result.state.current_date == SimDate(day=2, year=2030)


def test_month_start_runs_settlement_before_daily_updates(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"), current_date=SimDate(day=31, year=2030))

    result = advance_day(state, small_registry, ctx)

    messages = [log.message for log in result.logs]
    assert result.new_month
    assert messages[:2] == ["monthly_settlement", "daily_updates"]
    assert messages[-1] == "scheduler"


def test_mid_month_skips_settlement(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"), current_date=SimDate(day=2, year=2030))

    result = advance_day(state, small_registry, ctx)

    assert not result.new_month
    assert "monthly_settlement" not in [log.message for log in result.logs]


def test_new_year_runs_yearly_pipeline(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"), current_date=SimDate(day=360, year=2030))

    result = advance_day(state, small_registry, ctx)

    messages = [log.message for log in result.logs]
    assert result.new_year
    assert "yearly_checks" in messages
    assert "milestones_scanned" in messages


def test_debt_at_new_year_stops_scheduling(small_registry):
    from lineage_sim.data_access.models import Loan

    ctx = scripted_context()
    state = make_state(
        make_character("a"), family_fund=10.0, current_date=SimDate(day=360, year=2030)
    )
    state.active_loans = [Loan(id="l1", amount=5000, due_date=SimDate(day=1, year=2031))]

    result = advance_day(state, small_registry, ctx)

    assert result.state.game_over_reason == GameOverReason.DEBT
    messages = [log.message for log in result.logs]
    assert "loan_default" in messages
    assert "scheduler" not in messages
