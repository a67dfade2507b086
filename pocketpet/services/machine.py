# pocketpet/services/machine.py
"""Guarded action state machine.

The machine state lives on the record itself (``PetState.pet_state``), so the
whole machine is a pure function ``dispatch(pet, event, now)`` plus a table of
action specs. ``ActionMachine`` binds that function to a ``RosterStore`` and
reports side effects to listeners.

Rejected events are not errors: the record comes back unchanged.
"""
import enum
import random
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional

from pocketpet.models.pet import (
    BUSY_STATES,
    ActionKind,
    ActionLogEntry,
    MachineState,
    PetState,
    PetStatus,
    clamp,
)
from pocketpet.services.decay import catch_up, derive_sick
import structlog

log = structlog.get_logger(__name__)

ACTION_WINDOW_MS = 10 * 60 * 1000
ACTION_LOG_LIMIT = 24
DAMPING_FACTORS = (1.0, 0.7, 0.4, 0.2)


class Event(str, enum.Enum):
    FEED = "FEED"
    PLAY = "PLAY"
    SLEEP = "SLEEP"
    CLEAN = "CLEAN"
    HEAL = "HEAL"
    SCOLD = "SCOLD"
    DIE = "DIE"
    TICK = "TICK"


class SideEffect(str, enum.Enum):
    ACTION_APPLIED = "action_applied"
    RETURNED_TO_IDLE = "returned_to_idle"
    STAGE_UP = "stage_up"
    DIED = "died"


@dataclass(frozen=True)
class ActionSpec:
    kind: ActionKind
    busy_state: MachineState
    busy_ms: int
    cooldown_ms: int
    hunger: float = 0.0
    energy: float = 0.0
    happiness: float = 0.0
    health: float = 0.0
    damped: bool = True
    clears_mess: bool = False


ACTIONS: Dict[ActionKind, ActionSpec] = {
    ActionKind.FEED: ActionSpec(ActionKind.FEED, MachineState.FEEDING, 8000, 60000,
                                hunger=18.0, happiness=2.0),
    ActionKind.PLAY: ActionSpec(ActionKind.PLAY, MachineState.PLAYING, 10000, 90000,
                                hunger=-5.0, energy=-10.0, happiness=15.0),
    ActionKind.SLEEP: ActionSpec(ActionKind.SLEEP, MachineState.SLEEPING, 12000, 120000,
                                 hunger=-3.0, energy=25.0),
    ActionKind.CLEAN: ActionSpec(ActionKind.CLEAN, MachineState.CLEANING, 5000, 45000,
                                 happiness=5.0, health=3.0, clears_mess=True),
    ActionKind.HEAL: ActionSpec(ActionKind.HEAL, MachineState.HEALING, 8000, 180000,
                                happiness=-3.0, health=25.0),
    ActionKind.SCOLD: ActionSpec(ActionKind.SCOLD, MachineState.SCOLDED, 5000, 45000,
                                 happiness=-12.0, health=-10.0, damped=False),
}

EVENT_ACTIONS: Dict[Event, ActionKind] = {
    Event.FEED: ActionKind.FEED,
    Event.PLAY: ActionKind.PLAY,
    Event.SLEEP: ActionKind.SLEEP,
    Event.CLEAN: ActionKind.CLEAN,
    Event.HEAL: ActionKind.HEAL,
    Event.SCOLD: ActionKind.SCOLD,
}


class Transition(NamedTuple):
    pet: PetState
    effects: List[SideEffect]


def remaining_busy_ms(pet: PetState, now: int) -> int:
    return max(0, pet.busy_until - now)


def remaining_cooldown_ms(pet: PetState, action: ActionKind, now: int) -> int:
    return max(0, pet.cooldowns.get(action, 0) - now)


def can_act(pet: PetState, action: ActionKind, now: int) -> bool:
    if pet.is_dead:
        return False
    if now < pet.busy_until:
        return False
    return now >= pet.cooldowns.get(action, 0)


def _recent_log(pet: PetState, now: int) -> deque:
    """Entries inside the damping window, as a bounded ring."""
    return deque((entry for entry in pet.recent_actions if now - entry.at < ACTION_WINDOW_MS),
                 maxlen=ACTION_LOG_LIMIT)


def damping_factor(pet: PetState, action: ActionKind, now: int) -> float:
    repeats = sum(1 for entry in _recent_log(pet, now) if entry.action == action)
    return DAMPING_FACTORS[min(repeats, len(DAMPING_FACTORS) - 1)]


def _apply_action(pet: PetState, spec: ActionSpec, now: int) -> PetState:
    recent = _recent_log(pet, now)
    factor = damping_factor(pet, spec.kind, now) if spec.damped else 1.0

    def scaled(delta: float) -> float:
        # Only the reward is damped; costs are always paid in full.
        return delta * factor if delta > 0 else delta

    hunger = clamp(pet.hunger + scaled(spec.hunger))
    energy = clamp(pet.energy + scaled(spec.energy))
    happiness = clamp(pet.happiness + scaled(spec.happiness))
    health = clamp(pet.health + scaled(spec.health))

    recent.append(ActionLogEntry(action=spec.kind, at=now))
    cooldowns = dict(pet.cooldowns)
    cooldowns[spec.kind] = now + spec.cooldown_ms

    update = {
        "hunger": hunger,
        "energy": energy,
        "happiness": happiness,
        "health": health,
        "sick": derive_sick(hunger, energy, health),
        "busy_until": now + spec.busy_ms,
        "cooldowns": cooldowns,
        "recent_actions": list(recent),
        "last_interaction_at": now,
        "pet_state": spec.busy_state,
    }
    if spec.clears_mess:
        update["mess_count"] = 0
    if health <= 0:
        update.update(sick=True, is_dead=True, dead_at=now, pet_state=MachineState.DEAD)
    return pet.model_copy(update=update)


def _kill(pet: PetState, now: int, rng: Optional[random.Random]) -> PetState:
    caught = catch_up(pet, now, rng)
    if caught.is_dead:
        return caught
    return caught.model_copy(update={
        "is_dead": True,
        "dead_at": caught.last_updated,
        "pet_state": MachineState.DEAD,
    })


def _catch_up(pet: PetState, now: int, rng: Optional[random.Random], effects: List[SideEffect]) -> PetState:
    caught = catch_up(pet, now, rng)
    if caught is pet:
        return pet
    if caught.is_dead:
        effects.append(SideEffect.DIED)
        return caught
    if pet.pet_state in BUSY_STATES and caught.pet_state == MachineState.IDLE:
        effects.append(SideEffect.RETURNED_TO_IDLE)
    if caught.stage != pet.stage:
        caught = caught.model_copy(update={
            "last_stage_up_at": caught.last_updated,
            "last_stage_up_stage": caught.stage,
        })
        effects.append(SideEffect.STAGE_UP)
    return caught


def dispatch(pet: PetState, event: Event, now: int, rng: Optional[random.Random] = None) -> Transition:
    """Apply one event to ``pet`` at time ``now``.

    Dead is terminal: every event is rejected. ``TICK`` catches the record up
    and ends expired busy windows. Action events are guarded by busy window
    and per-action cooldown; an accepted action first catches the record up,
    then applies its deltas and opens its busy and cooldown windows.
    """
    if pet.is_dead:
        return Transition(pet, [])

    if event == Event.DIE:
        return Transition(_kill(pet, now, rng), [SideEffect.DIED])

    effects: List[SideEffect] = []
    if event == Event.TICK:
        return Transition(_catch_up(pet, now, rng, effects), effects)

    action = EVENT_ACTIONS[event]
    if not can_act(pet, action, now):
        log.debug("pet_action_rejected", pet_id=pet.id, action=action.value,
                  busy_ms=remaining_busy_ms(pet, now),
                  cooldown_ms=remaining_cooldown_ms(pet, action, now))
        return Transition(pet, [])

    caught = _catch_up(pet, now, rng, effects)
    if caught.is_dead:
        return Transition(caught, effects)

    acted = _apply_action(caught, ACTIONS[action], now)
    effects.append(SideEffect.ACTION_APPLIED)
    if acted.is_dead:
        effects.append(SideEffect.DIED)
    return Transition(acted, effects)


Listener = Callable[[SideEffect, Event, PetState], None]


class ActionMachine:
    """Posts events against the selected pet of a ``RosterStore``."""

    def __init__(self, store, clock: Optional[Callable[[], int]] = None,
                 rng: Optional[random.Random] = None):
        self._store = store
        self._clock = clock or store.clock
        self._rng = rng
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def send(self, event: Event) -> PetState:
        now = self._clock()
        effects: List[SideEffect] = []

        def updater(pet: PetState) -> PetState:
            transition = dispatch(pet, event, now, self._rng)
            effects.extend(transition.effects)
            return transition.pet

        pet = self._store.mutate_selected(updater)
        for effect in effects:
            self._report(effect, event, pet)
        return pet

    def _report(self, effect: SideEffect, event: Event, pet: PetState):
        if effect == SideEffect.ACTION_APPLIED:
            log.info("pet_action_applied", pet_id=pet.id, action=event.value.lower(),
                     hunger=round(pet.hunger, 1), happiness=round(pet.happiness, 1),
                     energy=round(pet.energy, 1), health=round(pet.health, 1))
        elif effect == SideEffect.STAGE_UP:
            log.info("pet_stage_advanced", pet_id=pet.id, stage=pet.stage.value)
        elif effect == SideEffect.DIED:
            log.warning("pet_died", pet_id=pet.id, name=pet.name, age_hours=round(pet.age_hours, 2))
        for listener in list(self._listeners):
            listener(effect, event, pet)

    def feed(self) -> PetState:
        return self.send(Event.FEED)

    def play(self) -> PetState:
        return self.send(Event.PLAY)

    def sleep(self) -> PetState:
        return self.send(Event.SLEEP)

    def clean(self) -> PetState:
        return self.send(Event.CLEAN)

    def heal(self) -> PetState:
        return self.send(Event.HEAL)

    def scold(self) -> PetState:
        return self.send(Event.SCOLD)

    def tick(self) -> PetState:
        return self.send(Event.TICK)

    def die(self) -> PetState:
        return self.send(Event.DIE)

    def perform(self, action: ActionKind) -> PetState:
        return self.send(Event(action.value.upper()))

    # Query surface

    def remaining_busy_ms(self) -> int:
        return remaining_busy_ms(self._store.selected(), self._clock())

    def remaining_cooldown_ms(self, action: ActionKind) -> int:
        return remaining_cooldown_ms(self._store.selected(), action, self._clock())

    def status(self) -> PetStatus:
        now = self._clock()
        pet = self._store.current()
        return PetStatus(
            id=pet.id,
            name=pet.name,
            hunger=pet.hunger,
            happiness=pet.happiness,
            energy=pet.energy,
            health=pet.health,
            sick=pet.sick,
            is_dead=pet.is_dead,
            stage=pet.stage,
            mess_count=pet.mess_count,
            pet_state=pet.pet_state,
            busy_remaining_ms=remaining_busy_ms(pet, now),
            cooldown_remaining_ms={action: remaining_cooldown_ms(pet, action, now) for action in ActionKind},
            available_actions=[action for action in ActionKind if can_act(pet, action, now)],
        )
