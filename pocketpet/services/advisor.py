# pocketpet/services/advisor.py
"""Advisory signals derived from pet snapshots.

The advisor only reads. Whether anybody acts on a request is none of the
engine's business; the machine re-validates every action anyway.
"""
import enum
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pocketpet.models.pet import PetState, clamp
import structlog

log = structlog.get_logger(__name__)

RATE_LIMIT_MS = 15 * 60 * 1000  # at most one request per need every 15 minutes
CRYING_MIN_INTERVAL_MS = 5 * 60 * 1000
CRYING_MAX_INTERVAL_MS = 30 * 60 * 1000

HUNGER_THRESHOLD = 25.0
ENERGY_THRESHOLD = 20.0
HEALTH_THRESHOLD = 35.0
CRYING_THRESHOLD = 15.0

CRYING_REASONS = (
    "feeling very sad and lonely",
    "needing attention and care",
    "feeling neglected and upset",
    "wanting to be comforted",
)


class Need(str, enum.Enum):
    FEED = "FEED"
    SLEEP = "SLEEP"
    HEAL = "HEAL"
    CRYING = "CRYING"


@dataclass(frozen=True)
class Advisory:
    pet_id: str
    need: Need
    reason: str
    at: int


def crying_interval_ms(age_hours: float) -> float:
    """Younger pets cry more often: two minutes per hour of age, 5 to 30 minutes."""
    return clamp(age_hours * 2 * 60 * 1000, CRYING_MIN_INTERVAL_MS, CRYING_MAX_INTERVAL_MS)


class NeedsAdvisor:
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._last_sent: Dict[Tuple[str, Need], int] = {}

    def reset(self, pet_id: Optional[str] = None):
        if pet_id is None:
            self._last_sent.clear()
            return
        for key in [key for key in self._last_sent if key[0] == pet_id]:
            del self._last_sent[key]

    def _due(self, pet_id: str, need: Need, now: int, interval: float) -> bool:
        last = self._last_sent.get((pet_id, need))
        if last is not None and now - last < interval:
            return False
        self._last_sent[(pet_id, need)] = now
        return True

    def evaluate(self, pet: PetState, now: int) -> List[Advisory]:
        if pet.is_dead:
            return []
        advisories = []
        checks = (
            (Need.FEED, pet.hunger < HUNGER_THRESHOLD, "Hunger is low"),
            (Need.SLEEP, pet.energy < ENERGY_THRESHOLD, "Energy is low"),
            (Need.HEAL, pet.health < HEALTH_THRESHOLD, "Health is low"),
        )
        for need, triggered, reason in checks:
            if triggered and self._due(pet.id, need, now, RATE_LIMIT_MS):
                advisories.append(Advisory(pet.id, need, reason, now))

        if pet.happiness < CRYING_THRESHOLD and self._due(
                pet.id, Need.CRYING, now, crying_interval_ms(pet.age_hours)):
            advisories.append(Advisory(pet.id, Need.CRYING, self._rng.choice(CRYING_REASONS), now))

        for advisory in advisories:
            log.debug("pet_advisory", pet_id=pet.id, need=advisory.need.value, reason=advisory.reason)
        return advisories
