from lineage_sim.core.clock import advance_day
from lineage_sim.data_access.models import (
    CharacterStatus,
    EventRef,
    LifePhase,
    PendingCharacterChoice,
    PendingOptionsChoice,
    PendingSchoolChoice,
    SimDate,
    Stats,
)
from lineage_sim.logic_modules.life_stage import (
    abandon_university,
    choose_club,
    choose_major,
    choose_school,
    choose_university,
    kill_character,
    process_yearly_checks,
)
from tests.utils import make_character, make_state, scripted_context


def test_six_year_old_gets_single_school_gate(small_registry):
    ctx = scripted_context()
    kid = make_character("kid", age=6, phase=LifePhase.ELEMENTARY, status=CharacterStatus.IDLE)
    state = make_state(kid)

    process_yearly_checks(state, small_registry, ctx)
    log = process_yearly_checks(state, small_registry, ctx)

    assert len(state.pending_school_choice) == 1
    assert state.pending_school_choice[0].new_phase == LifePhase.ELEMENTARY
    assert log.message == "yearly_checks_deferred"


def test_school_gates_collected_for_all_entry_ages(small_registry):
    ctx = scripted_context()
    state = make_state(
        make_character("a", age=6),
        make_character("b", age=12, status=CharacterStatus.IN_EDUCATION),
        make_character("c", age=16, status=CharacterStatus.IN_EDUCATION),
        make_character("d", age=12, status=CharacterStatus.IDLE),
    )

    process_yearly_checks(state, small_registry, ctx)

    assert [(gate.character_id, gate.new_phase) for gate in state.pending_school_choice] == [
        ("a", LifePhase.ELEMENTARY),
        ("b", LifePhase.MIDDLE_SCHOOL),
        ("c", LifePhase.HIGH_SCHOOL),
    ]


def test_two_low_happiness_years_kill_and_queue_mourning(small_registry):
    ctx = scripted_context()
    victim = make_character("a", stats=Stats(iq=100, happiness=5, eq=50, health=80), low_happiness_years=1)
    survivor = make_character("b")
    state = make_state(victim, survivor, current_date=SimDate(day=360, year=2030))

    result = advance_day(state, small_registry, ctx)
    new_state = result.state

    dead = new_state.members["a"]
    mourner = new_state.members["b"]
    assert result.new_year
    assert not dead.is_alive
    assert dead.death_date == SimDate(day=1, year=2031)
    assert mourner.mourning_until_year == 2033
    mourning = small_registry.get_by_key("milestone_mourning")
    assert new_state.active_event == EventRef(
        character_id="b",
        event_id=mourning.id,
        replacements={"deceasedName": "A", "causeOfDeath": "death_cause_low_happiness"},
    )
    assert any(entry.message_key == "log_death_low_happiness" for entry in new_state.game_log)
    # 输入快照保持不变
    assert state.members["a"].is_alive


def test_single_low_year_only_counts(small_registry):
    ctx = scripted_context()
    character = make_character("a", stats=Stats(happiness=5, health=5))
    state = make_state(character)

    process_yearly_checks(state, small_registry, ctx)

    assert character.is_alive
    assert character.low_happiness_years == 1
    assert character.low_health_years == 1


def test_recovery_resets_low_counters(small_registry):
    ctx = scripted_context()
    character = make_character("a", low_happiness_years=1, low_health_years=1)
    state = make_state(character)

    process_yearly_checks(state, small_registry, ctx)

    assert character.low_happiness_years == 0
    assert character.low_health_years == 0


def test_kill_character_releases_gates_and_queue(small_registry):
    ctx = scripted_context()
    victim = make_character("a")
    other = make_character("b")
    state = make_state(victim, other)
    state.pending_career_choice = PendingOptionsChoice(character_id="a", options=["Trade"])
    state.pending_university_choice = [
        PendingCharacterChoice(character_id="a"),
        PendingCharacterChoice(character_id="b"),
    ]
    state.event_queue = [EventRef(character_id="a", event_id="whatever")]

    kill_character(state, victim, "death_cause_old_age", small_registry, ctx)

    assert state.pending_career_choice is None
    assert [gate.character_id for gate in state.pending_university_choice] == ["b"]
    assert [ref.character_id for ref in state.event_queue] == ["b"]
    assert other.mourning_until_year == state.current_date.year + 2


def test_retirement_at_sixty(small_registry):
    ctx = scripted_context()
    worker = make_character(
        "a", age=60, status=CharacterStatus.WORKING, career_track="Trade", career_level=2
    )
    state = make_state(worker)

    log = process_yearly_checks(state, small_registry, ctx)

    assert log.context["retired"] == 1
    assert worker.status == CharacterStatus.RETIRED
    assert worker.career_track is None
    assert state.game_log[-1].message_key == "log_retired"


def test_university_gate_at_nineteen(small_registry):
    ctx = scripted_context()
    student = make_character("a", age=19, phase=LifePhase.UNIVERSITY, status=CharacterStatus.IDLE)
    state = make_state(student)

    process_yearly_checks(state, small_registry, ctx)

    assert [gate.character_id for gate in state.pending_university_choice] == ["a"]


def test_finished_studies_open_university_or_career_gate(small_registry):
    ctx = scripted_context()
    graduate = make_character(
        "a", age=19, status=CharacterStatus.IN_EDUCATION, status_end_year=2030
    )
    alumni = make_character(
        "b", age=23, status=CharacterStatus.IN_EDUCATION, status_end_year=2030
    )
    intern = make_character(
        "c", age=24, status=CharacterStatus.INTERNSHIP, status_end_year=2029
    )
    state = make_state(graduate, alumni, intern)

    process_yearly_checks(state, small_registry, ctx)

    assert [gate.character_id for gate in state.pending_university_choice] == ["a"]
    assert state.pending_career_choice.character_id == "b"
    # 每年只打开一个职业决策门
    assert intern.status == CharacterStatus.IDLE
    assert intern.status_end_year is None


def test_yearly_checks_wait_for_active_event(small_registry):
    ctx = scripted_context()
    character = make_character("a", age=60, status=CharacterStatus.WORKING)
    state = make_state(character)
    state.active_event = EventRef(character_id="a", event_id="office_party")

    log = process_yearly_checks(state, small_registry, ctx)

    assert log.message == "yearly_checks_deferred"
    assert character.status == CharacterStatus.WORKING


def test_choose_private_elementary_school():
    ctx = scripted_context()
    kid = make_character("kid", age=6, phase=LifePhase.NEWBORN, stats=Stats(iq=90, eq=50))
    state = make_state(kid)
    state.pending_school_choice = [
        PendingSchoolChoice(character_id="kid", new_phase=LifePhase.ELEMENTARY)
    ]

    choose_school(state, "school_private", ctx)

    assert state.pending_school_choice == []
    assert kid.phase == LifePhase.ELEMENTARY
    assert kid.status == CharacterStatus.IN_EDUCATION
    assert kid.education == "school_private"
    assert kid.status_end_year is None
    assert kid.stats.iq == 100 and kid.stats.eq == 55
    assert state.family_fund == 80000
    assert state.pending_club_choice is None


def test_middle_school_opens_club_gate():
    ctx = scripted_context()
    kid = make_character("kid", age=12, phase=LifePhase.ELEMENTARY)
    state = make_state(kid)
    state.pending_school_choice = [
        PendingSchoolChoice(character_id="kid", new_phase=LifePhase.MIDDLE_SCHOOL)
    ]

    choose_school(state, "school_public", ctx)

    assert kid.status_end_year == state.current_date.year + 4
    club_gate = state.pending_club_choice
    assert club_gate is not None and club_gate.character_id == "kid"
    assert len(club_gate.options) == 4
    assert "club_debate" not in club_gate.options


def test_unknown_school_option_keeps_gate():
    ctx = scripted_context()
    state = make_state(make_character("kid", age=6))
    state.pending_school_choice = [
        PendingSchoolChoice(character_id="kid", new_phase=LifePhase.ELEMENTARY)
    ]

    log = choose_school(state, "school_on_the_moon", ctx)

    assert log.message == "school_unknown_option"
    assert len(state.pending_school_choice) == 1


def test_choose_club_applies_rounded_effects():
    ctx = scripted_context()
    kid = make_character("kid", age=12, stats=Stats(iq=99.6, eq=60))
    state = make_state(kid)
    state.pending_club_choice = PendingOptionsChoice(
        character_id="kid", options=["club_chess", "club_art"]
    )

    choose_club(state, "club_chess", ctx)

    assert kid.stats.iq == 103
    assert kid.stats.eq == 61
    assert kid.current_clubs == ["club_chess"]
    assert state.pending_club_choice is None


def test_skipping_club_clears_gate():
    ctx = scripted_context()
    state = make_state(make_character("kid", age=12))
    state.pending_club_choice = PendingOptionsChoice(character_id="kid", options=["club_chess"])

    log = choose_club(state, None, ctx)

    assert log.message == "club_skipped"
    assert state.pending_club_choice is None


def test_university_accept_offers_majors():
    ctx = scripted_context()
    state = make_state(make_character("a", age=19))
    state.pending_university_choice = [PendingCharacterChoice(character_id="a")]

    choose_university(state, True, ctx)

    assert state.pending_university_choice == []
    assert len(state.pending_major_choice.options) == 5


def test_university_decline_enters_workforce():
    ctx = scripted_context()
    student = make_character("a", age=19, phase=LifePhase.UNIVERSITY)
    state = make_state(student)
    state.pending_university_choice = [PendingCharacterChoice(character_id="a")]

    choose_university(state, False, ctx)

    assert student.phase == LifePhase.POST_GRADUATION
    assert state.pending_career_choice.character_id == "a"
    assert state.game_log[-1].message_key == "log_graduated_enter_workforce"


def test_choose_major_enrolls_and_charges():
    ctx = scripted_context()
    student = make_character("a", age=19, stats=Stats(iq=100, happiness=50))
    state = make_state(student)
    state.pending_major_choice = PendingOptionsChoice(character_id="a", options=["major_arts"])

    choose_major(state, "major_arts", ctx)

    assert state.pending_major_choice is None
    assert student.major == "major_arts"
    assert student.education == "University (major_arts)"
    assert student.status == CharacterStatus.IN_EDUCATION
    assert student.status_end_year == state.current_date.year + 4
    assert student.stats.iq == 105 and student.stats.happiness == 60
    assert state.family_fund == 20000


def test_major_skill_effects_are_skipped():
    ctx = scripted_context()
    student = make_character("a", age=19, stats=Stats(skill=3, happiness=50))
    state = make_state(student)
    state.pending_major_choice = PendingOptionsChoice(character_id="a", options=["major_culinary"])

    choose_major(state, "major_culinary", ctx)

    assert student.stats.skill == 3
    assert student.stats.happiness == 55


def test_unaffordable_major_keeps_gate_open():
    ctx = scripted_context()
    student = make_character("a", age=19)
    state = make_state(student, family_fund=1000.0)
    state.pending_major_choice = PendingOptionsChoice(character_id="a", options=["major_arts"])

    log = choose_major(state, "major_arts", ctx)

    assert log.message == "major_unaffordable"
    assert state.pending_major_choice is not None
    assert student.major is None
    assert state.game_log[-1].message_key == "log_major_unaffordable"


def test_abandon_university_opens_career_gate():
    ctx = scripted_context()
    student = make_character("a", age=19)
    state = make_state(student)
    state.pending_major_choice = PendingOptionsChoice(character_id="a", options=["major_arts"])

    abandon_university(state, ctx)

    assert state.pending_major_choice is None
    assert state.pending_career_choice.character_id == "a"
    assert state.game_log[-1].message_key == "log_abandon_university_for_work"


def test_major_that_was_not_offered_is_rejected():
    ctx = scripted_context()
    student = make_character("a", age=19)
    state = make_state(student)
    state.pending_major_choice = PendingOptionsChoice(character_id="a", options=["major_arts"])

    log = choose_major(state, "major_culinary", ctx)

    assert log.message == "major_option_not_offered"
    assert state.pending_major_choice.options == ["major_arts"]
    assert student.major is None
    assert state.family_fund == 100000


def test_club_that_was_not_offered_keeps_gate_open():
    ctx = scripted_context()
    kid = make_character("kid", age=12, stats=Stats(iq=100, eq=60))
    state = make_state(kid)
    state.pending_club_choice = PendingOptionsChoice(character_id="kid", options=["club_art"])

    log = choose_club(state, "club_chess", ctx)

    assert log.message == "club_option_not_offered"
    assert state.pending_club_choice is not None
    assert kid.current_clubs == []
    assert kid.stats.iq == 100
