# pocketpet/services/persistence.py
import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pocketpet.models.pet import PetState, Roster
from pocketpet.services.storage import StorageBackend
import structlog

log = structlog.get_logger(__name__)

ROSTER_KEY = "pets_v1"
SELECTED_KEY = "selected_id_v1"
LEGACY_KEY = "pet_state_v1"  # single-pet record, read only for migration


def _decode(raw: Optional[str], key: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        log.warning("Stored value is not valid JSON, ignoring it.", key=key, error=str(e))
        return None


def _repair_record(record: Any) -> Optional[PetState]:
    if not isinstance(record, dict):
        return None
    try:
        return PetState.model_validate(record)
    except ValidationError as e:
        # Only reachable when repair itself could not make sense of the record.
        log.error("Dropping unreadable pet record", error=str(e))
        return None


def migrate_legacy(record: Dict[str, Any]) -> Roster:
    """Wrap a legacy single-pet record into a one-element roster.

    A nameless legacy pet gets the default name. The legacy record itself is
    left for the caller to keep or ignore.
    """
    pet = PetState.model_validate(record)
    return Roster(pets=[pet], selected_id=pet.id)


class RosterPersistence:
    """Loads, saves and clears the roster on a key/value backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def load(self) -> Optional[Roster]:
        records = _decode(self.backend.get(ROSTER_KEY), ROSTER_KEY)
        if isinstance(records, list):
            pets: List[PetState] = []
            seen = set()
            for record in records:
                pet = _repair_record(record)
                if pet is None or pet.id in seen:
                    continue
                seen.add(pet.id)
                pets.append(pet)
            if len(pets) != len(records):
                log.warning("Repaired roster on load", stored=len(records), kept=len(pets))
            if pets:
                selected_id = self.backend.get(SELECTED_KEY)
                if selected_id not in seen:
                    selected_id = pets[0].id
                return Roster(pets=pets, selected_id=selected_id)

        legacy = _decode(self.backend.get(LEGACY_KEY), LEGACY_KEY)
        if isinstance(legacy, dict):
            roster = migrate_legacy(legacy)
            log.info("Migrated legacy pet record into roster", pet_id=roster.selected_id)
            return roster
        return None

    def save(self, roster: Roster) -> None:
        records = [pet.model_dump(mode="json", by_alias=True) for pet in roster.pets]
        values = {ROSTER_KEY: json.dumps(records)}
        if roster.selected_id is not None:
            values[SELECTED_KEY] = roster.selected_id
        self.backend.set_many(values)

    def clear(self) -> None:
        self.backend.delete(ROSTER_KEY)
        self.backend.delete(SELECTED_KEY)
