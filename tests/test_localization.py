from lineage_sim.data_access.models import LifePhase
from lineage_sim.utils.localization import display_name, translate
from lineage_sim.utils.random_source import RandomSource
from tests.utils import ScriptedRandom, make_character


def test_translate_fills_placeholders():
    text = translate("log_birthday", "en", {"name": "Ada", "age": 7})

    assert text == "Ada turned 7."


def test_translate_falls_back_to_english_then_key():
    assert translate("log_birthday", "xx", {"name": "Ada", "age": 7}) == "Ada turned 7."
    assert translate("no_such_key", "en") == "no_such_key"


def test_translate_localizes_key_parameters():
    text = translate(
        "milestone_mourning_desc",
        "en",
        {"deceasedName": "Ada", "causeOfDeath": "death_cause_old_age"},
    )

    assert text == "Ada has passed away due to old age. How will the family say goodbye?"


def test_display_name_adjectives():
    adult = make_character("a", name="Ada")
    assert display_name(adult, "en") == "Ada"

    child = make_character("k", name="Kit", phase=LifePhase.ELEMENTARY)
    assert display_name(child, "en") == "Kit (innocent)"

    mourner = make_character("m", name="Max", mourning_until_year=2031)
    assert display_name(mourner, "en") == "Max (grieving)"

    dead = make_character("d", name="Dee", is_alive=False, mourning_until_year=2031)
    assert display_name(dead, "en") == "Dee"


def test_seeded_random_source_is_reproducible():
    first = RandomSource.seeded(3)
    second = RandomSource.seeded(3)

    assert [first.random() for _ in range(5)] == [second.random() for _ in range(5)]


def test_random_helpers_consume_one_draw_each():
    scripted = ScriptedRandom([0.0, 0.99, 0.5, 0.25, 0.3])
    rng = RandomSource(scripted)

    assert rng.randint(1, 6) == 1
    assert rng.randint(1, 6) == 6
    assert rng.uniform(10, 20) == 15
    assert rng.choice(["a", "b", "c", "d"]) == "b"
    assert rng.chance(0.5)
    assert scripted.calls == 5
    assert rng.randint(4, 4) == 4


def test_shuffle_returns_new_list():
    items = ["a", "b", "c"]
    rng = RandomSource(ScriptedRandom(default=0.0))

    shuffled = rng.shuffle(items)

    assert shuffled == ["b", "c", "a"]
    assert items == ["a", "b", "c"]
