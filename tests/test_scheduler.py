from lineage_sim.data_access.models import (
    EventRef,
    Gender,
    PendingCharacterChoice,
    RelationshipStatus,
    SimDate,
)
from lineage_sim.logic_modules.scheduler import (
    cooldown_days,
    drain_event_queue,
    is_event_eligible,
    process_scheduler,
    scan_milestones,
)
from tests.utils import make_character, make_state, scripted_context


def _open_state(*members, **overrides):
    overrides.setdefault("event_cooldown_until", None)
    return make_state(*members, **overrides)


def test_cooldown_depends_on_family_size():
    ctx = scripted_context()
    small = _open_state(*(make_character(f"c{i}") for i in range(3)))
    large = _open_state(*(make_character(f"c{i}") for i in range(4)))

    assert cooldown_days(small, ctx) == 120
    assert cooldown_days(large, ctx) == 180


def test_organic_event_sets_cooldown_and_counts(small_registry):
    ctx = scripted_context()
    worker = make_character("a")
    state = _open_state(worker)

    log = process_scheduler(state, small_registry, ctx, queue_was_empty=True)

    party = small_registry.get_by_key("office_party")
    assert state.active_event == EventRef(character_id="a", event_id=party.id)
    assert log.context["fired"] == party.id
    assert state.event_cooldown_until == SimDate(day=135, year=2030)
    assert worker.events_this_year == 1


def test_large_family_cooldown_is_longer(small_registry):
    ctx = scripted_context()
    state = _open_state(*(make_character(f"c{i}") for i in range(4)))

    process_scheduler(state, small_registry, ctx, queue_was_empty=True)

    assert state.event_cooldown_until == SimDate(day=195, year=2030)


def test_cooldown_blocks_organic_selection(small_registry):
    ctx = scripted_context()
    state = _open_state(make_character("a"), event_cooldown_until=SimDate(day=16, year=2030))

    process_scheduler(state, small_registry, ctx, queue_was_empty=True)

    assert state.active_event is None


def test_blocking_gate_or_busy_queue_blocks_organic_selection(small_registry):
    ctx = scripted_context()
    gated = _open_state(make_character("a"))
    gated.pending_university_choice = [PendingCharacterChoice(character_id="a")]

    process_scheduler(gated, small_registry, ctx, queue_was_empty=True)
    assert gated.active_event is None

    busy = _open_state(make_character("a"))
    process_scheduler(busy, small_registry, ctx, queue_was_empty=False)
    assert busy.active_event is None


def test_yearly_event_cap(small_registry):
    ctx = scripted_context()
    state = _open_state(make_character("a", events_this_year=2))

    log = process_scheduler(state, small_registry, ctx, queue_was_empty=True)

    assert state.active_event is None
    assert "fired" not in log.context


def test_queue_drains_oldest_first():
    state = make_state(make_character("a"), make_character("b"))
    first = EventRef(character_id="a", event_id="ev_first")
    second = EventRef(character_id="b", event_id="ev_second")
    state.event_queue = [first, second]

    assert drain_event_queue(state) == first
    assert state.event_queue == [second]
    assert drain_event_queue(state) is None


def test_queued_events_ignore_cooldown(small_registry):
    ctx = scripted_context()
    state = make_state(make_character("a"))
    state.event_queue = [EventRef(character_id="a", event_id="ev_queued")]

    log = process_scheduler(state, small_registry, ctx, queue_was_empty=False)

    assert state.active_event.event_id == "ev_queued"
    assert log.context["dequeued"] == "ev_queued"
    assert log.context["queue_length"] == 0


def test_milestones_and_completed_events_are_not_organic(small_registry):
    ctx = scripted_context()
    worker = make_character("a")
    state = make_state(worker)
    party = small_registry.get_by_key("office_party")
    mourning = small_registry.get_by_key("milestone_mourning")

    assert is_event_eligible(party, state, worker, ctx)
    assert not is_event_eligible(mourning, state, worker, ctx)

    worker.completed_one_time_events.append("office_party")
    assert not is_event_eligible(party, state, worker, ctx)


def test_scan_milestones_queues_marriage_once(registry):
    ctx = scripted_context([0.1])
    single = make_character("a", age=30, relationship_status=RelationshipStatus.SINGLE)
    state = make_state(single)

    assert scan_milestones(state, registry, ctx) == 1
    marriage = registry.get_by_key("milestone_marriage")
    assert state.event_queue == [EventRef(character_id="a", event_id=marriage.id)]

    # 已在队列中的里程碑不会重复排队
    assert scan_milestones(state, registry, ctx) == 0


def test_scan_milestones_respects_gates_and_completion(registry):
    ctx = scripted_context(default=0.0)
    single = make_character("a", age=30, gender=Gender.MALE)
    gated = make_state(single)
    gated.pending_university_choice = [PendingCharacterChoice(character_id="a")]

    assert scan_milestones(gated, registry, ctx) == 0

    marriage = registry.get_by_key("milestone_marriage")
    done = make_character("b", age=30, completed_one_time_events=[marriage.id])
    state = make_state(done)

    assert scan_milestones(state, registry, ctx) == 0
