# pocketpet/services/roster_store.py
import random
from typing import Any, Callable, Dict, List, Optional

from pocketpet.models.pet import PetState, Roster, create_pet_state, now_ms
from pocketpet.services.decay import catch_up
from pocketpet.services.persistence import RosterPersistence
from pocketpet.services.transfer import export_payload, sanitize_import
import structlog

log = structlog.get_logger(__name__)


class RosterStore:
    """Owns the roster and the selected-pet pointer.

    ``mutate_selected`` is the single write path for the simulation: it applies
    a ``PetState -> PetState`` function to the selected record and persists the
    result. Reads through ``current`` catch the pet up to the clock without
    writing, so a long-untouched store is never more than one read stale.
    Dead records are frozen.
    """

    def __init__(self, persistence: RosterPersistence, *, clock: Callable[[], int] = now_ms,
                 rng: Optional[random.Random] = None):
        self._persistence = persistence
        self.clock = clock
        self._rng = rng or random.Random()

        roster = persistence.load()
        if roster is None or not roster.pets:
            first = create_pet_state(now=self.clock(), rng=self._rng)
            roster = Roster(pets=[first], selected_id=first.id)
            log.info("pet_created", pet_id=first.id, name=first.name,
                     personality=first.personality.value)
        elif roster.index_of(roster.selected_id) is None:
            roster = roster.model_copy(update={"selected_id": roster.pets[0].id})
        self._roster = roster
        self._save()

    def _save(self):
        self._persistence.save(self._roster)

    def _replace(self, pets: List[PetState], selected_id: Optional[str] = None):
        self._roster = Roster(pets=pets, selected_id=selected_id or self._roster.selected_id)
        self._save()

    @property
    def pets(self) -> List[PetState]:
        return list(self._roster.pets)

    @property
    def selected_id(self) -> str:
        return self._roster.selected_id

    def get(self, pet_id: str) -> Optional[PetState]:
        idx = self._roster.index_of(pet_id)
        return None if idx is None else self._roster.pets[idx]

    def selected(self) -> PetState:
        """The stored record, as last written."""
        return self._roster.pets[self._roster.index_of(self._roster.selected_id)]

    def current(self) -> PetState:
        """The selected pet caught up to the clock."""
        return catch_up(self.selected(), self.clock())

    def create_pet(self, name: Optional[str] = None) -> PetState:
        pet = create_pet_state(name, now=self.clock(), rng=self._rng)
        self._replace(self.pets + [pet], selected_id=pet.id)
        log.info("pet_created", pet_id=pet.id, name=pet.name, personality=pet.personality.value)
        return pet

    def select_pet(self, pet_id: str) -> bool:
        if self._roster.index_of(pet_id) is None:
            log.debug("pet_select_unknown_id", pet_id=pet_id)
            return False
        if pet_id != self._roster.selected_id:
            self._replace(self.pets, selected_id=pet_id)
            log.info("pet_selected", pet_id=pet_id)
        return True

    def rename_pet(self, pet_id: str, name: str) -> Optional[PetState]:
        idx = self._roster.index_of(pet_id)
        if idx is None:
            return None
        pet = self._roster.pets[idx]
        clean = name.strip() if isinstance(name, str) else ""
        if not clean or pet.is_dead or clean == pet.name:
            return pet
        pets = self.pets
        pets[idx] = pet.model_copy(update={"name": clean})
        self._replace(pets)
        log.info("pet_renamed", pet_id=pet_id, name=clean)
        return pets[idx]

    def mutate_selected(self, updater: Callable[[PetState], PetState]) -> PetState:
        idx = self._roster.index_of(self._roster.selected_id)
        pet = self._roster.pets[idx]
        if pet.is_dead:
            return pet
        updated = updater(pet)
        if updated is pet:
            return pet
        if updated.id != pet.id:
            updated = updated.model_copy(update={"id": pet.id})
        pets = self.pets
        pets[idx] = updated
        self._replace(pets)
        return updated

    def export_selected(self) -> Dict[str, Any]:
        return export_payload(self.current())

    def import_pet(self, payload: Any) -> PetState:
        """Merge an exported pet into the roster.

        The payload overwrites the selected pet, keeping its local id. When the
        selected pet is dead its record stays as it is and the import is added
        as a new pet instead.
        """
        now = self.clock()
        if self.selected().is_dead:
            local_id = create_pet_state(now=now, rng=self._rng).id
            pet = sanitize_import(payload, local_id=local_id, now=now)
            self._replace(self.pets + [pet], selected_id=pet.id)
        else:
            pet = sanitize_import(payload, local_id=self.selected_id, now=now)
            pet = self.mutate_selected(lambda _: pet)
        log.info("pet_imported", pet_id=pet.id, name=pet.name)
        return pet
