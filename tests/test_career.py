import pytest

from lineage_sim.data_access.models import (
    VOCATIONAL_DIPLOMA,
    CharacterStatus,
    PendingOptionsChoice,
    PendingPromotion,
    Stats,
)
from lineage_sim.logic_modules.career import (
    accept_promotion,
    choose_career,
    choose_underqualified,
    decline_promotion,
    generate_career_options,
    promotion_threshold,
)
from tests.utils import make_character, make_state, scripted_context


def _career_gate(character, **state_overrides):
    state = make_state(character, **state_overrides)
    state.pending_career_choice = PendingOptionsChoice(
        character_id=character.id,
        options=["job", "Technology", "Medicine", "Trade", "Astronaut", "internship", "vocational"],
    )
    return state


def test_matching_major_and_stats_start_without_penalty():
    ctx = scripted_context()
    engineer = make_character(
        "a", major="major_technology", stats=Stats(iq=130, eq=60, happiness=50)
    )
    state = _career_gate(engineer)

    log = choose_career(state, "Technology", ctx)

    assert log.message == "career_started"
    assert state.pending_career_choice is None
    assert engineer.status == CharacterStatus.WORKING
    assert engineer.career_track == "Technology"
    assert engineer.career_level == 0
    assert engineer.progression_penalty == 0.0
    assert state.game_log[-1].message_key == "log_found_job"


def test_matching_major_with_low_stats_opens_underqualified_gate():
    ctx = scripted_context()
    junior = make_character("a", major="major_technology", stats=Stats(iq=90, eq=60))
    state = _career_gate(junior)

    choose_career(state, "Technology", ctx)

    gate = state.pending_underqualified_choice
    assert gate is not None and gate.career_track_key == "Technology"
    assert junior.career_track is None

    choose_underqualified(state, False, ctx)

    # IQ 缺口 30/120，EQ 已达标
    assert junior.progression_penalty == pytest.approx(0.25)
    assert junior.status == CharacterStatus.WORKING
    assert state.pending_underqualified_choice is None


def test_underqualified_trainee_path():
    ctx = scripted_context()
    junior = make_character("a", major="major_technology", stats=Stats(iq=90, eq=60, skill=12))
    state = _career_gate(junior)
    choose_career(state, "Technology", ctx)

    choose_underqualified(state, True, ctx)

    assert junior.status == CharacterStatus.TRAINEE
    assert junior.trainee_for_career == "Technology"
    assert junior.career_track is None
    assert junior.stats.skill == 0
    assert state.game_log[-1].message_key == "log_became_trainee"


def test_mismatched_degree_gets_flat_penalty():
    ctx = scripted_context()
    artist = make_character("a", major="major_arts", stats=Stats(iq=130, eq=60))
    state = _career_gate(artist)

    choose_career(state, "Technology", ctx)

    assert artist.progression_penalty == pytest.approx(0.3)
    assert state.game_log[-1].message_key == "log_accepted_mismatched_job"


def test_no_degree_and_low_stats_penalty_combines_mismatch_and_deficit():
    ctx = scripted_context()
    applicant = make_character("a", stats=Stats(iq=60, eq=25))
    state = _career_gate(applicant)

    choose_career(state, "Technology", ctx)

    assert applicant.progression_penalty == pytest.approx(0.8)
    assert state.game_log[-1].message_key == "log_accepted_severely_underqualified_job"


def test_penalty_is_capped():
    ctx = scripted_context()
    applicant = make_character("a", stats=Stats(iq=0, eq=0))
    state = _career_gate(applicant)

    choose_career(state, "Medicine", ctx)

    assert applicant.progression_penalty == pytest.approx(0.9)


def test_track_without_requirements_is_clean():
    ctx = scripted_context()
    worker = make_character("a", stats=Stats(iq=50, eq=20), months_unemployed=7)
    state = _career_gate(worker)

    choose_career(state, "Trade", ctx)

    assert worker.progression_penalty == 0.0
    assert worker.months_unemployed == 0


def test_internship_and_vocational_options():
    ctx = scripted_context()
    intern = make_character("a")
    state = _career_gate(intern)

    choose_career(state, "internship", ctx)

    assert intern.status == CharacterStatus.INTERNSHIP
    assert intern.status_end_year == state.current_date.year + 1

    student = make_character("b")
    state = _career_gate(student, family_fund=50000.0)

    choose_career(state, "vocational", ctx)

    assert student.status == CharacterStatus.VOCATIONAL_TRAINING
    assert student.status_end_year == state.current_date.year + 3
    assert student.education == VOCATIONAL_DIPLOMA
    assert state.family_fund == 10000.0


def test_job_option_regenerates_options_and_keeps_gate():
    ctx = scripted_context()
    character = make_character("a", major="major_medicine")
    state = _career_gate(character)

    log = choose_career(state, "job", ctx)

    assert log.message == "career_options_regenerated"
    assert state.pending_career_choice.options[0] == "Medicine"


def test_unknown_option_is_ignored():
    ctx = scripted_context()
    state = _career_gate(make_character("a"))

    log = choose_career(state, "Astronaut", ctx)

    assert log.message == "career_unknown_option"
    assert state.pending_career_choice is not None


def test_option_that_was_not_offered_is_rejected():
    ctx = scripted_context()
    worker = make_character("a")
    state = make_state(worker)
    state.pending_career_choice = PendingOptionsChoice(character_id="a", options=["internship"])

    log = choose_career(state, "Unskilled", ctx)

    assert log.message == "career_option_not_offered"
    assert state.pending_career_choice.options == ["internship"]
    assert worker.status == CharacterStatus.IDLE
    assert worker.career_track is None
    assert state.game_log == []


def test_options_pin_major_track_first_and_cap_length():
    ctx = scripted_context(default=0.3)
    graduate = make_character("a", major="major_technology")

    options = generate_career_options(graduate, ctx)

    assert options[0] == "Technology"
    assert len(options) == 5
    assert len(set(options)) == 5


def test_options_without_degree_skip_major_tracks():
    ctx = scripted_context()

    options = generate_career_options(make_character("a"), ctx)

    assert set(options) == {"Unskilled", "Trade", "internship", "vocational"}


def test_promotion_threshold_multipliers():
    config = scripted_context().config
    track = config.catalog.career_ladder["Technology"]

    graduate = make_character("a", major="major_technology")
    assert promotion_threshold(graduate, track, 1) == 40

    graduate.progression_penalty = 0.25
    assert promotion_threshold(graduate, track, 1) == 50

    # 无学位且专业错配，两次 ×1.5
    self_taught = make_character("b")
    assert promotion_threshold(self_taught, track, 1) == pytest.approx(90)


def test_accept_promotion_raises_level_and_mood():
    ctx = scripted_context()
    worker = make_character(
        "a", career_track="Trade", status=CharacterStatus.WORKING, months_in_current_job_level=9
    )
    state = make_state(worker)
    state.pending_promotion = PendingPromotion(
        character_id="a", new_level=1, new_title_key="career_trade_2", career_track="Trade"
    )

    accept_promotion(state, ctx)

    assert worker.career_level == 1
    assert worker.stats.happiness == 80
    assert worker.stats.eq == 65
    assert worker.months_in_current_job_level == 0
    assert state.pending_promotion is None


def test_decline_promotion_only_clears_gate():
    ctx = scripted_context()
    worker = make_character("a", career_track="Trade", status=CharacterStatus.WORKING)
    state = make_state(worker)
    state.pending_promotion = PendingPromotion(
        character_id="a", new_level=1, new_title_key="career_trade_2"
    )

    log = decline_promotion(state, ctx)

    assert log.message == "promotion_declined"
    assert worker.career_level == 0
    assert state.pending_promotion is None


@pytest.mark.parametrize(
    "changes",
    [
        {"status": CharacterStatus.UNEMPLOYED, "career_track": None},
        {"status": CharacterStatus.RETIRED, "career_track": None},
        {"career_track": "Unskilled"},
    ],
)
def test_promotion_is_void_after_job_changes(changes):
    ctx = scripted_context()
    worker = make_character("a", career_track="Trade", status=CharacterStatus.WORKING)
    state = make_state(worker)
    state.pending_promotion = PendingPromotion(
        character_id="a", new_level=1, new_title_key="career_trade_2", career_track="Trade"
    )
    for field, value in changes.items():
        setattr(worker, field, value)

    log = accept_promotion(state, ctx)

    assert log.message == "promotion_stale"
    assert worker.career_level == 0
    assert worker.stats.happiness == 60
    assert state.pending_promotion is None
    assert state.game_log == []
