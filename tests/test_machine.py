from __future__ import annotations

import pytest

from conftest import NOW, FixedRandom
from pocketpet.models.pet import MS_PER_HOUR, ActionKind, ActionLogEntry, GrowthStage, MachineState
from pocketpet.services.machine import (
    ACTION_LOG_LIMIT,
    ACTION_WINDOW_MS,
    Event,
    SideEffect,
    damping_factor,
    dispatch,
)

NEVER = FixedRandom(1.0)


def _install(store, pet):
    return store.mutate_selected(lambda _: pet)


def _log(action: ActionKind, *ages_ms: int):
    return [ActionLogEntry(action=action, at=NOW - age) for age in ages_ms]


def test_feed_applies_deltas_and_opens_windows(store, machine, make_pet) -> None:
    _install(store, make_pet())

    pet = machine.feed()

    assert pet.hunger == pytest.approx(88.0)
    assert pet.happiness == pytest.approx(62.0)
    assert pet.busy_until == NOW + 8000
    assert pet.cooldowns[ActionKind.FEED] == NOW + 60000
    assert pet.pet_state == MachineState.FEEDING
    assert pet.last_interaction_at == NOW
    assert store.selected() == pet


def test_action_on_cooldown_returns_same_record(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    machine.feed()
    clock.advance(20000)
    before = store.selected()

    after = machine.feed()

    assert after is before
    assert store.selected() is before


def test_rejected_event_does_not_write(store, machine, backend, make_pet) -> None:
    _install(store, make_pet())
    machine.feed()
    snapshot = dict(backend.data)

    machine.play()

    assert backend.data == snapshot


def test_busy_window_blocks_other_actions(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    machine.feed()

    clock.advance(1000)
    assert machine.play().pet_state == MachineState.FEEDING

    clock.advance(8000)
    pet = machine.play()
    assert pet.pet_state == MachineState.PLAYING
    assert pet.busy_until == clock() + 10000


def test_action_accepted_exactly_when_cooldown_expires(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    machine.feed()

    clock.advance(59999)
    assert machine.remaining_cooldown_ms(ActionKind.FEED) == 1
    assert ActionKind.FEED not in machine.status().available_actions

    clock.advance(1)
    pet = machine.feed()
    assert pet.cooldowns[ActionKind.FEED] == clock() + 60000


@pytest.mark.parametrize("repeats, factor", [(0, 1.0), (1, 0.7), (2, 0.4), (3, 0.2), (7, 0.2)])
def test_damping_factor_by_repeat_count(make_pet, repeats, factor) -> None:
    pet = make_pet(recent_actions=_log(ActionKind.FEED, *range(1000, 1000 * (repeats + 1), 1000)))
    assert damping_factor(pet, ActionKind.FEED, NOW) == factor


def test_damping_ignores_other_actions_and_old_entries(make_pet) -> None:
    pet = make_pet(recent_actions=_log(ActionKind.PLAY, 1000, 2000)
                   + _log(ActionKind.FEED, ACTION_WINDOW_MS, ACTION_WINDOW_MS + 5000))
    assert damping_factor(pet, ActionKind.FEED, NOW) == 1.0


def test_repeated_feed_gains_less(make_pet) -> None:
    pet = make_pet(hunger=50.0, recent_actions=_log(ActionKind.FEED, 120000, 240000))

    result = dispatch(pet, Event.FEED, NOW, NEVER).pet

    assert result.hunger == pytest.approx(50.0 + 18.0 * 0.4)
    assert result.happiness == pytest.approx(60.0 + 2.0 * 0.4)


def test_damping_spares_costs(make_pet) -> None:
    pet = make_pet(recent_actions=_log(ActionKind.PLAY, 100000, 200000, 300000))

    result = dispatch(pet, Event.PLAY, NOW, NEVER).pet

    assert result.hunger == pytest.approx(65.0)
    assert result.energy == pytest.approx(60.0)
    assert result.happiness == pytest.approx(60.0 + 15.0 * 0.2)


def test_scold_is_never_damped(make_pet) -> None:
    pet = make_pet(recent_actions=_log(ActionKind.SCOLD, 100000, 200000, 300000))

    result = dispatch(pet, Event.SCOLD, NOW, NEVER).pet

    assert result.happiness == pytest.approx(48.0)
    assert result.health == pytest.approx(90.0)
    assert result.pet_state == MachineState.SCOLDED


def test_action_log_is_bounded(make_pet) -> None:
    pet = make_pet(recent_actions=_log(ActionKind.PLAY, *range(1000, 31000, 1000)))

    result = dispatch(pet, Event.FEED, NOW, NEVER).pet

    assert len(result.recent_actions) == ACTION_LOG_LIMIT
    assert result.recent_actions[-1] == ActionLogEntry(action=ActionKind.FEED, at=NOW)


def test_dispatch_does_not_mutate_input(make_pet) -> None:
    pet = make_pet()
    before = pet.model_dump()

    dispatch(pet, Event.PLAY, NOW, NEVER)

    assert pet.model_dump() == before


def test_repeated_scolding_kills_and_death_is_terminal(store, machine, clock, make_pet) -> None:
    _install(store, make_pet(health=25.0))
    effects = []
    machine.subscribe(lambda effect, event, pet: effects.append(effect))

    assert machine.scold().health == pytest.approx(15.0)
    clock.advance(45000)
    assert machine.scold().health == pytest.approx(5.0, abs=0.1)
    clock.advance(45000)
    dead = machine.scold()

    assert dead.is_dead is True
    assert dead.health == 0.0
    assert dead.pet_state == MachineState.DEAD
    assert dead.dead_at == clock()
    assert effects[-2:] == [SideEffect.ACTION_APPLIED, SideEffect.DIED]

    clock.advance(60000)
    assert machine.feed() is dead
    assert machine.tick() is dead
    assert store.selected() is dead


def test_tick_returns_to_idle_when_busy_window_ends(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    effects = []
    machine.subscribe(lambda effect, event, pet: effects.append((effect, event)))
    machine.feed()

    clock.advance(4000)
    assert machine.tick().pet_state == MachineState.FEEDING

    clock.advance(4000)
    pet = machine.tick()
    assert pet.pet_state == MachineState.IDLE
    assert pet.last_updated == clock()
    assert (SideEffect.RETURNED_TO_IDLE, Event.TICK) in effects


def test_tick_advances_vitals(store, machine, clock, make_pet) -> None:
    _install(store, make_pet(hunger=80.0))
    clock.advance(MS_PER_HOUR)

    pet = machine.tick()

    assert pet.hunger == pytest.approx(72.0)
    assert pet.last_updated == NOW + MS_PER_HOUR


def test_stage_up_is_stamped_once(store, machine, clock, make_pet) -> None:
    _install(store, make_pet(age_hours=23.99))
    effects = []
    machine.subscribe(lambda effect, event, pet: effects.append(effect))

    clock.advance(60000)
    grown = machine.tick()

    assert grown.stage == GrowthStage.CHILD
    assert grown.last_stage_up_at == clock()
    assert grown.last_stage_up_stage == GrowthStage.CHILD
    assert effects.count(SideEffect.STAGE_UP) == 1

    clock.advance(60000)
    later = machine.tick()
    assert later.last_stage_up_at == grown.last_stage_up_at
    assert effects.count(SideEffect.STAGE_UP) == 1


def test_die_event(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    effects = []
    machine.subscribe(lambda effect, event, pet: effects.append((effect, event)))

    pet = machine.die()

    assert pet.is_dead is True
    assert pet.dead_at == NOW
    assert pet.pet_state == MachineState.DEAD
    assert effects == [(SideEffect.DIED, Event.DIE)]
    assert machine.die() is pet


def test_catch_up_death_preempts_action(store, machine, make_pet) -> None:
    _install(store, make_pet(hunger=5.0, energy=5.0, health=2.0, sick=True,
                             last_updated=NOW - 24 * MS_PER_HOUR,
                             last_interaction_at=NOW - 24 * MS_PER_HOUR))
    effects = []
    machine.subscribe(lambda effect, event, pet: effects.append(effect))

    pet = machine.feed()

    assert pet.is_dead is True
    assert SideEffect.ACTION_APPLIED not in effects
    assert effects == [SideEffect.DIED]
    assert ActionKind.FEED not in pet.cooldowns


def test_clean_clears_messes(store, machine, make_pet) -> None:
    _install(store, make_pet(mess_count=2, health=80.0))

    pet = machine.clean()

    assert pet.mess_count == 0
    assert pet.happiness == pytest.approx(65.0)
    assert pet.health == pytest.approx(83.0)
    assert pet.pet_state == MachineState.CLEANING


def test_perform_maps_action_kind_to_event(store, machine, make_pet) -> None:
    _install(store, make_pet())

    pet = machine.perform(ActionKind.SLEEP)

    assert pet.pet_state == MachineState.SLEEPING
    assert pet.energy == pytest.approx(95.0)
    assert pet.hunger == pytest.approx(67.0)


def test_status_reports_countdowns_and_available_actions(store, machine, clock, make_pet) -> None:
    _install(store, make_pet())
    machine.feed()
    clock.advance(1000)

    status = machine.status()
    assert status.busy_remaining_ms == 7000
    assert status.cooldown_remaining_ms[ActionKind.FEED] == 59000
    assert status.cooldown_remaining_ms[ActionKind.PLAY] == 0
    assert status.available_actions == []
    assert machine.remaining_busy_ms() == 7000

    clock.advance(8000)
    status = machine.status()
    assert status.pet_state == MachineState.IDLE
    assert status.busy_remaining_ms == 0
    assert ActionKind.FEED not in status.available_actions
    assert ActionKind.PLAY in status.available_actions


def test_unsubscribe_stops_notifications(store, machine, make_pet) -> None:
    _install(store, make_pet())
    calls = []
    unsubscribe = machine.subscribe(lambda effect, event, pet: calls.append(effect))

    unsubscribe()
    machine.feed()

    assert calls == []


def test_die_catches_up_before_freezing(store, machine, clock, make_pet) -> None:
    _install(store, make_pet(hunger=80.0))
    clock.advance(MS_PER_HOUR)

    pet = machine.die()

    assert pet.dead_at == pet.last_updated == NOW + MS_PER_HOUR
    assert pet.age_hours == pytest.approx(1.0)
    assert pet.hunger == pytest.approx(72.0)


def test_die_after_fatal_catch_up_reports_one_death(make_pet) -> None:
    pet = make_pet(hunger=5.0, energy=5.0, health=2.0, sick=True,
                   last_updated=NOW - 24 * MS_PER_HOUR,
                   last_interaction_at=NOW - 24 * MS_PER_HOUR)

    transition = dispatch(pet, Event.DIE, NOW, NEVER)

    assert transition.effects == [SideEffect.DIED]
    assert transition.pet.is_dead is True
    assert transition.pet.health == 0.0
    assert transition.pet.dead_at == transition.pet.last_updated
