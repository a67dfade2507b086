# pocketpet/services/decay.py
"""Time-based decay of a pet's vitals.

``advance`` moves a record forward by an arbitrary span in one call. Every
effect is a closed-form function of the elapsed hours, so a one second UI
tick and a three day absence go through the same code. Mess generation is
the one stochastic part; it walks the span in bounded chunks so that small
and large steps over the same total time produce messes at the same rate.
"""
import math
import random
from typing import Dict, Optional

from pocketpet.models.pet import (
    BUSY_STATES,
    MAX_MESS,
    MS_PER_HOUR,
    MachineState,
    Personality,
    PetState,
    clamp,
    stage_for_age,
)

# Per-hour base rates
HUNGER_DECAY = 8.0
HAPPINESS_DECAY = 6.0
ENERGY_DECAY = 7.0

SICK_HAPPINESS_MULT = 1.2
PLAYING_ENERGY_MULT = 1.2

SLEEP_RECOVERY = 22.0
SLEEP_HUNGER_DECAY = 3.0

LOW_STAT_THRESHOLD = 20.0
HEALTH_LOSS = 5.0
HEALTH_REGEN = 2.0
HAPPY_REGEN_MULT = 1.2
HAPPY_THRESHOLD = 60.0
SICK_HEALTH_LOSS = 3.0

NEGLECT_GRACE_HOURS = 6.0
NEGLECT_RAMP_PER_HOUR = 0.05
MAX_NEGLECT_MULT = 1.5

MESS_TARGET_HOURS = 3.0
MESS_CHUNK_HOURS = 1.0
MESS_SPAWN_HAPPINESS_PENALTY = 3.0
MESS_HAPPINESS_PER_HOUR = 2.0
MESS_HEALTH_PER_HOUR = 1.0

DECAY_MODIFIERS: Dict[Personality, Dict[str, float]] = {
    Personality.CHEERFUL: {"hunger": 1.0, "happiness": 0.8, "energy": 1.0},
    Personality.LAZY: {"hunger": 0.9, "happiness": 1.0, "energy": 1.2},
    Personality.HYPER: {"hunger": 1.2, "happiness": 1.1, "energy": 1.3},
    Personality.MOODY: {"hunger": 1.0, "happiness": 1.3, "energy": 1.0},
    Personality.SHY: {"hunger": 0.9, "happiness": 1.1, "energy": 1.0},
}

# Scales the target interval between messes; lower means messier.
MESS_INTERVAL_MODIFIERS: Dict[Personality, float] = {
    Personality.CHEERFUL: 1.0,
    Personality.LAZY: 1.25,
    Personality.HYPER: 0.75,
    Personality.MOODY: 1.0,
    Personality.SHY: 1.1,
}


def logistic(x: float, k: float = 1.0, x0: float = 0.0) -> float:
    return 1.0 / (1.0 + math.exp(-k * (x - x0)))


def neglect_multiplier(state: PetState, end_ms: float) -> float:
    """1.0 within the grace period, then +5% per hour of neglect up to 1.5."""
    if state.last_interaction_at is None:
        return 1.0
    neglect_hours = (end_ms - state.last_interaction_at) / MS_PER_HOUR
    if neglect_hours <= NEGLECT_GRACE_HOURS:
        return 1.0
    return min(MAX_NEGLECT_MULT, 1.0 + (neglect_hours - NEGLECT_GRACE_HOURS) * NEGLECT_RAMP_PER_HOUR)


def derive_sick(hunger: float, energy: float, health: float) -> bool:
    return health < 40 or (hunger < 15 and energy < 15)


def _default_rng(state: PetState, elapsed_ms: float) -> random.Random:
    # Seeded from the input so advance() stays a function of its arguments.
    return random.Random(f"{state.id}:{state.last_updated}:{elapsed_ms}")


def _generate_messes(state: PetState, hours: float, hunger_consumed: float, rng: random.Random):
    """Walk the span in chunks, spawning messes and accruing their penalties.

    Returns ``(mess_count, last_poop_at, happiness_penalty, health_penalty)``.
    """
    mess_count = state.mess_count
    last_poop_at = state.last_poop_at if state.last_poop_at is not None else state.created_at
    target = MESS_TARGET_HOURS * MESS_INTERVAL_MODIFIERS[state.personality]
    digest = min(2.0, (hunger_consumed / hours) / HUNGER_DECAY)

    happiness_penalty = 0.0
    health_penalty = 0.0
    walked = 0.0
    while walked < hours:
        chunk = min(MESS_CHUNK_HOURS, hours - walked)
        happiness_penalty += MESS_HAPPINESS_PER_HOUR * mess_count * chunk
        health_penalty += MESS_HEALTH_PER_HOUR * mess_count * chunk
        walked += chunk
        if mess_count >= MAX_MESS:
            continue
        chunk_end = state.last_updated + walked * MS_PER_HOUR
        overdue = min(2.0, max(0.0, (chunk_end - last_poop_at) / MS_PER_HOUR) / target)
        rate = (0.6 * overdue + 0.4 * digest) / target
        if rng.random() < 1.0 - math.exp(-rate * chunk):
            mess_count += 1
            last_poop_at = int(round(chunk_end))
            happiness_penalty += MESS_SPAWN_HAPPINESS_PENALTY
    return mess_count, last_poop_at, happiness_penalty, health_penalty


def advance(state: PetState, elapsed_ms: float, rng: Optional[random.Random] = None) -> PetState:
    """Return ``state`` moved forward by ``elapsed_ms``. Never mutates the input."""
    if state.is_dead or elapsed_ms <= 0:
        return state

    hours = elapsed_ms / MS_PER_HOUR
    end_ms = state.last_updated + elapsed_ms
    m = DECAY_MODIFIERS[state.personality]
    neglect = neglect_multiplier(state, end_ms)

    hunger = state.hunger - HUNGER_DECAY * m["hunger"] * hours * neglect
    happiness = state.happiness - HAPPINESS_DECAY * m["happiness"] * hours * (
        SICK_HAPPINESS_MULT if state.sick else 1.0)
    if state.pet_state == MachineState.SLEEPING:
        factor = logistic((100.0 - state.energy) / 100.0, k=4.0, x0=0.2)
        energy = state.energy + SLEEP_RECOVERY * hours * factor
        hunger -= SLEEP_HUNGER_DECAY * hours
    else:
        energy = state.energy - ENERGY_DECAY * m["energy"] * hours * (
            PLAYING_ENERGY_MULT if state.pet_state == MachineState.PLAYING else 1.0)

    health = state.health
    if hunger < LOW_STAT_THRESHOLD or energy < LOW_STAT_THRESHOLD:
        health -= HEALTH_LOSS * hours * neglect
    else:
        health += HEALTH_REGEN * hours * (HAPPY_REGEN_MULT if state.happiness > HAPPY_THRESHOLD else 1.0)
    if state.sick:
        health -= SICK_HEALTH_LOSS * hours

    hunger_consumed = max(0.0, state.hunger - clamp(hunger))
    mess_count, last_poop_at, mess_happiness, mess_health = _generate_messes(
        state, hours, hunger_consumed, rng or _default_rng(state, elapsed_ms))
    happiness -= mess_happiness
    health -= mess_health

    hunger = clamp(hunger)
    happiness = clamp(happiness)
    energy = clamp(energy)
    health = clamp(health)

    last_updated = int(round(end_ms))
    age_hours = state.age_hours + hours
    update = {
        "hunger": hunger,
        "happiness": happiness,
        "energy": energy,
        "health": health,
        "sick": derive_sick(hunger, energy, health),
        "age_hours": age_hours,
        "last_updated": last_updated,
        "mess_count": mess_count,
        "last_poop_at": last_poop_at if mess_count != state.mess_count else state.last_poop_at,
    }
    if health <= 0:
        update.update(sick=True, is_dead=True, dead_at=last_updated, pet_state=MachineState.DEAD)
        return state.model_copy(update=update)

    update["stage"] = stage_for_age(age_hours)
    return state.model_copy(update=update)


def catch_up(state: PetState, now: int, rng: Optional[random.Random] = None) -> PetState:
    """Advance ``state`` to ``now``, ending any busy window that has expired.

    The span is split at ``busy_until`` so sleep recovery and play fatigue stop
    exactly when the busy window closes; the rest is advanced as Idle.
    """
    if state.is_dead:
        return state
    if state.pet_state in BUSY_STATES and state.busy_until <= now:
        if state.busy_until > state.last_updated:
            state = advance(state, state.busy_until - state.last_updated, rng)
            if state.is_dead:
                return state
        state = state.model_copy(update={"pet_state": MachineState.IDLE})
    return advance(state, now - state.last_updated, rng)
