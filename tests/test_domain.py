import random
from datetime import timedelta

import pytest

from pixelpets.actions import ActionKind, apply_action, gain_xp, level_progress
from pixelpets.decay import apply_offline_decay, elapsed_units, is_lost, offline_decay, tick_decay
from pixelpets.derived import Mood, mood, status
from pixelpets.errors import InsufficientFunds, NotHungry, TooTired
from pixelpets.models import StatVector, clamp

from helpers import NOW, make_pet


# ─── offline decay ─────────────────────────────────────────────────────
def test_elapsed_units_floors_whole_hours():
    assert elapsed_units(None, NOW) == 0
    assert elapsed_units(NOW - timedelta(minutes=59), NOW) == 0
    assert elapsed_units(NOW - timedelta(hours=3, minutes=40), NOW) == 3


def test_offline_decay_three_hours():
    out = offline_decay(StatVector(), 3)
    assert out.hunger == 47
    assert out.happiness == 49
    assert out.cleanliness == 48  # 50 - floor(2.4)
    assert out.energy == 50
    assert out.love == 49
    assert out.health == 50


def test_offline_decay_hurts_health_only_when_neglected():
    out = offline_decay(StatVector(hunger=10), 10)
    assert out.health == 48
    assert offline_decay(StatVector(hunger=60, cleanliness=60), 10).health == 50


def test_offline_decay_clamps_at_zero():
    out = offline_decay(StatVector(hunger=5, energy=1), 48)
    assert out.hunger == 0
    assert out.energy == 0


def test_apply_offline_decay_keeps_fractional_hour():
    pet = make_pet(last_updated=NOW - timedelta(hours=3, minutes=30))
    assert apply_offline_decay(pet, NOW) == 3
    assert pet.last_updated == NOW - timedelta(minutes=30)

    # reload inside the same hour bucket changes nothing
    before = pet.stats
    assert apply_offline_decay(pet, NOW + timedelta(minutes=20)) == 0
    assert pet.stats == before


def test_apply_offline_decay_first_load_only_stamps():
    pet = make_pet(last_updated=None)
    assert apply_offline_decay(pet, NOW) == 0
    assert pet.last_updated == NOW
    assert pet.stats == StatVector()


# ─── live ticks ────────────────────────────────────────────────────────
def test_tick_decay_fixed_decrements():
    out = tick_decay(StatVector())
    assert (out.hunger, out.cleanliness, out.energy, out.love, out.happiness) == (48, 48, 49, 49, 49)
    assert out.health == 50


def test_tick_decay_happiness_chance():
    rng = random.Random(7)
    assert tick_decay(StatVector(), happiness_chance=0.0, rng=rng).happiness == 50


def test_tick_decay_health_below_neglect_threshold():
    assert tick_decay(StatVector(cleanliness=14)).health == 49
    assert tick_decay(StatVector(cleanliness=15)).health == 50


def test_is_lost_needs_three_zeros():
    assert not is_lost(StatVector(hunger=0, energy=0))
    assert is_lost(StatVector(hunger=0, energy=0, love=0))


# ─── actions ───────────────────────────────────────────────────────────
def test_feed_costs_ten_and_adds_hunger():
    out = apply_action(ActionKind.FEED, StatVector(hunger=40), 100)
    assert out.stats.hunger == 70
    assert out.stats.happiness == 55
    assert out.stats.love == 55
    assert out.cost == 10
    assert out.category == "food"
    assert out.xp == 10


def test_feed_rejected_without_funds():
    with pytest.raises(InsufficientFunds) as exc:
        apply_action(ActionKind.FEED, StatVector(), 5)
    assert exc.value.reason == "insufficient funds"


def test_feed_rejected_when_full():
    with pytest.raises(NotHungry):
        apply_action(ActionKind.FEED, StatVector(hunger=100), 100)


def test_funds_checked_before_hunger():
    with pytest.raises(InsufficientFunds):
        apply_action(ActionKind.FEED, StatVector(hunger=100), 0)


def test_play_needs_energy():
    with pytest.raises(TooTired):
        apply_action(ActionKind.PLAY, StatVector(energy=10), 100)
    out = apply_action(ActionKind.PLAY, StatVector(energy=11), 100)
    assert out.stats.energy == 1
    assert out.stats.happiness == 70
    assert out.stats.hunger == 45


def test_vet_sets_health():
    out = apply_action(ActionKind.VET, StatVector(health=40, happiness=60), 100)
    assert out.stats.health == 100
    assert out.stats.happiness == 50
    assert out.cost == 50
    assert out.item == "Veterinary Care"


def test_rest_is_free():
    out = apply_action(ActionKind.REST, StatVector(energy=90, hunger=3), 0)
    assert out.stats.energy == 100
    assert out.stats.hunger == 0
    assert not out.charges
    assert out.xp == 0


def test_buy_toy_labels_expense_with_rarity():
    out = apply_action(ActionKind.BUY_TOY, StatVector(), 30, rng=random.Random(1))
    assert out.toy is not None
    assert out.item == f"[{out.toy.rarity.value}] {out.toy.name}"
    assert out.stats.happiness == 65
    assert out.charges


def test_level_up_refills_happiness_and_energy():
    out = apply_action(ActionKind.FEED, StatVector(happiness=20, energy=20), 100, xp=95, level=1)
    assert out.level == 2
    assert out.level_ups == 1
    assert out.xp == 5
    assert out.stats.happiness == 100
    assert out.stats.energy == 100


def test_gain_xp_rolls_over_several_levels():
    assert gain_xp(0, 1, 350) == (50, 3, 2)
    assert level_progress(50, 3) == pytest.approx(50 / 3)


def test_actions_keep_stats_in_range():
    vectors = [
        StatVector(hunger=0, happiness=0, energy=11, cleanliness=0, health=0, love=0),
        StatVector(hunger=99, happiness=100, energy=100, cleanliness=100, health=100, love=100),
    ]
    for stats in vectors:
        for kind in ActionKind:
            try:
                out = apply_action(kind, stats, 1000, rng=random.Random(3))
            except NotHungry:
                continue
            for value in out.stats.model_dump().values():
                assert 0 <= value <= 100


def test_clamp():
    assert clamp(-4) == 0
    assert clamp(130) == 100
    assert clamp(42) == 42


# ─── mood and status ───────────────────────────────────────────────────
def test_mood_alerts_win_over_average():
    assert mood(StatVector(health=10, happiness=100)) is Mood.SICK
    assert mood(StatVector(energy=5)) is Mood.SLEEPY
    assert mood(StatVector(hunger=5)) is Mood.DISTRESSED
    assert mood(StatVector(cleanliness=5)) is Mood.DIRTY


def test_mood_ladder():
    assert mood(StatVector()) is Mood.NEUTRAL
    full = StatVector(hunger=100, happiness=100, energy=100, cleanliness=100, health=100)
    assert mood(full) is Mood.EXCITED
    assert mood(full.with_values(happiness=80)) is Mood.VERY_HAPPY


def test_status_lines():
    assert status(StatVector(health=10)) == "Needs urgent medical attention!"
    assert status(StatVector(happiness=20, love=0, energy=25)) == "Needs care in several areas!"
    assert status(StatVector()) == "Doing okay, but could use some attention"
    perfect = StatVector(hunger=100, happiness=100, energy=100, cleanliness=100, health=100)
    assert status(perfect) == "Living the dream! Absolutely perfect!"
