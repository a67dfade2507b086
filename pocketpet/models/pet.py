# pocketpet/models/pet.py
"""Pet data model.

Attributes are snake_case in Python; the persisted and HTTP shape uses
camelCase aliases (``lastUpdated``, ``busyUntil``, ``isDead``...). All
timestamps are integer epoch milliseconds.

Validation repairs rather than rejects: values that cannot be read are
dropped so the field default applies, vitals are clamped and the growth stage
is re-derived from ``age_hours``. A corrupted record should never stop a pet
from existing.
"""
import enum
import math
import random
import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

MS_PER_HOUR = 60 * 60 * 1000
VITALS = ("hunger", "happiness", "energy", "health")
MAX_MESS = 3
DEFAULT_NAME = "Pet"

_TIMESTAMP_FIELDS = frozenset({
    "created_at", "last_updated", "busy_until", "dead_at",
    "last_interaction_at", "last_stage_up_at", "last_poop_at",
})
_OPTIONAL_TIMESTAMP_FIELDS = frozenset({
    "dead_at", "last_interaction_at", "last_stage_up_at", "last_poop_at",
})


def now_ms() -> int:
    return int(time.time() * 1000)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class Personality(str, enum.Enum):
    CHEERFUL = "Cheerful"
    LAZY = "Lazy"
    HYPER = "Hyper"
    MOODY = "Moody"
    SHY = "Shy"


class GrowthStage(str, enum.Enum):
    BABY = "Baby"
    CHILD = "Child"
    TEEN = "Teen"
    ADULT = "Adult"
    ELDER = "Elder"


# Upper bounds (exclusive) in hours of age.
STAGE_THRESHOLDS = (
    (24.0, GrowthStage.BABY),
    (72.0, GrowthStage.CHILD),
    (168.0, GrowthStage.TEEN),
    (360.0, GrowthStage.ADULT),
)


def stage_for_age(age_hours: float) -> GrowthStage:
    for limit, stage in STAGE_THRESHOLDS:
        if age_hours < limit:
            return stage
    return GrowthStage.ELDER


class MachineState(str, enum.Enum):
    IDLE = "Idle"
    FEEDING = "Feeding"
    PLAYING = "Playing"
    SLEEPING = "Sleeping"
    CLEANING = "Cleaning"
    HEALING = "Healing"
    SCOLDED = "Scolded"
    DEAD = "Dead"


BUSY_STATES = frozenset({
    MachineState.FEEDING,
    MachineState.PLAYING,
    MachineState.SLEEPING,
    MachineState.CLEANING,
    MachineState.HEALING,
    MachineState.SCOLDED,
})


class ActionKind(str, enum.Enum):
    FEED = "feed"
    PLAY = "play"
    SLEEP = "sleep"
    CLEAN = "clean"
    HEAL = "heal"
    SCOLD = "scold"


def _as_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_enum(enum_cls, value: Any):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


class _PetModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Dna(_PetModel):
    """Cosmetic genome, drawn once at adoption and never changed."""

    model_config = ConfigDict(frozen=True)

    body_hue: int = Field(default=0, ge=0, le=360)
    eye: int = Field(default=1, ge=1, le=5)
    mouth: int = Field(default=1, ge=1, le=5)
    accessory: int = Field(default=0, ge=0, le=5)
    markings: int = Field(default=0, ge=0, le=5)

    @classmethod
    def random(cls, rng: Optional[random.Random] = None) -> "Dna":
        rng = rng or random.Random()
        return cls(
            body_hue=rng.randint(0, 360),
            eye=rng.randint(1, 5),
            mouth=rng.randint(1, 5),
            accessory=rng.randint(0, 5),
            markings=rng.randint(0, 5),
        )


class ActionLogEntry(_PetModel):
    action: ActionKind
    at: int


def _random_personality() -> Personality:
    return random.choice(list(Personality))


class PetState(_PetModel):
    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = DEFAULT_NAME
    dna: Dna = Field(default_factory=Dna.random)
    personality: Personality = Field(default_factory=_random_personality)
    created_at: int = Field(default_factory=now_ms)

    # Vitals, always within [0, 100]
    hunger: float = 70.0
    happiness: float = 60.0
    energy: float = 70.0
    health: float = 100.0

    # Clocks
    last_updated: int = Field(default_factory=now_ms)
    last_interaction_at: Optional[int] = None
    age_hours: float = 0.0

    # Lifecycle
    sick: bool = False
    is_dead: bool = False
    dead_at: Optional[int] = None
    stage: GrowthStage = GrowthStage.BABY

    # Action bookkeeping
    pet_state: MachineState = MachineState.IDLE
    busy_until: int = 0
    cooldowns: Dict[ActionKind, int] = Field(default_factory=dict)
    recent_actions: List[ActionLogEntry] = Field(default_factory=list)
    last_stage_up_at: Optional[int] = None
    last_stage_up_stage: Optional[GrowthStage] = None

    # Messes waiting to be cleaned
    mess_count: int = 0
    last_poop_at: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        names = {to_camel(name): name for name in cls.model_fields}
        cleaned: Dict[str, Any] = {}
        for key, value in data.items():
            name = names.get(key, key)
            if name not in cls.model_fields:
                continue
            repaired = _repair_field(name, value)
            if repaired is not _DROP:
                cleaned[name] = repaired
        return cleaned

    @model_validator(mode="after")
    def _derive(self) -> "PetState":
        self.stage = stage_for_age(self.age_hours)
        if self.is_dead:
            self.pet_state = MachineState.DEAD
        elif self.pet_state == MachineState.DEAD:
            self.pet_state = MachineState.IDLE
        return self

    def vitals(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in VITALS}


_DROP = object()


def _repair_field(name: str, value: Any) -> Any:
    if name in VITALS:
        number = _as_number(value)
        return _DROP if number is None else clamp(number)
    if name in _TIMESTAMP_FIELDS:
        if value is None:
            return None if name in _OPTIONAL_TIMESTAMP_FIELDS else _DROP
        number = _as_number(value)
        return _DROP if number is None or number < 0 else int(round(number))
    if name == "age_hours":
        number = _as_number(value)
        return _DROP if number is None else max(0.0, number)
    if name == "mess_count":
        number = _as_number(value)
        return _DROP if number is None else int(clamp(round(number), 0, MAX_MESS))
    if name in ("sick", "is_dead"):
        return value if isinstance(value, bool) else _DROP
    if name == "id":
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value).strip()
        return _DROP
    if name == "name":
        return value.strip() if isinstance(value, str) and value.strip() else _DROP
    if name == "dna":
        if isinstance(value, Dna):
            return value
        try:
            return Dna.model_validate(value)
        except ValidationError:
            return _DROP
    if name == "personality":
        member = _as_enum(Personality, value)
        return _DROP if member is None else member
    if name == "pet_state":
        member = _as_enum(MachineState, value)
        return _DROP if member is None else member
    if name in ("stage", "last_stage_up_stage"):
        member = _as_enum(GrowthStage, value)
        if member is None:
            return None if name == "last_stage_up_stage" else _DROP
        return member
    if name == "cooldowns":
        if not isinstance(value, dict):
            return _DROP
        cooldowns = {}
        for key, until in value.items():
            action = _as_enum(ActionKind, key)
            number = _as_number(until)
            if action is not None and number is not None:
                cooldowns[action] = int(round(number))
        return cooldowns
    if name == "recent_actions":
        if not isinstance(value, list):
            return _DROP
        entries = []
        for entry in value:
            if isinstance(entry, ActionLogEntry):
                entries.append(entry)
                continue
            if not isinstance(entry, dict):
                continue
            action = _as_enum(ActionKind, entry.get("action"))
            at = _as_number(entry.get("at"))
            if action is not None and at is not None:
                entries.append(ActionLogEntry(action=action, at=int(round(at))))
        return entries
    return value


class Roster(_PetModel):
    pets: List[PetState] = Field(default_factory=list)
    selected_id: Optional[str] = None

    def index_of(self, pet_id: Optional[str]) -> Optional[int]:
        for idx, pet in enumerate(self.pets):
            if pet.id == pet_id:
                return idx
        return None


class PetStatus(_PetModel):
    """Read-only snapshot for UI affordances (buttons, countdowns, bars)."""

    id: str
    name: str
    hunger: float
    happiness: float
    energy: float
    health: float
    sick: bool
    is_dead: bool
    stage: GrowthStage
    mess_count: int
    pet_state: MachineState
    busy_remaining_ms: int
    cooldown_remaining_ms: Dict[ActionKind, int]
    available_actions: List[ActionKind]


def create_pet_state(name: Optional[str] = None, *, now: Optional[int] = None,
                     rng: Optional[random.Random] = None) -> PetState:
    """Adopt a new pet with random DNA and personality and baseline vitals."""
    now = now_ms() if now is None else now
    rng = rng or random.Random()
    clean_name = name.strip() if name else ""
    return PetState(
        id=str(uuid.UUID(int=rng.getrandbits(128), version=4)),
        name=clean_name or f"Pet-{str(now)[-4:]}",
        dna=Dna.random(rng),
        personality=rng.choice(list(Personality)),
        created_at=now,
        last_updated=now,
        last_interaction_at=now,
    )
