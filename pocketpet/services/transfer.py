# pocketpet/services/transfer.py
"""Export and import of a single pet as ``{"version": 1, "pet": {...}}``."""
from typing import Any, Dict

from pocketpet.core.exceptions import PetImportError
from pocketpet.models.pet import MachineState, PetState
from pocketpet.services.machine import ACTIONS
import structlog

log = structlog.get_logger(__name__)

EXPORT_VERSION = 1

_CLOCK_FIELDS = ("created_at", "last_updated", "last_interaction_at", "dead_at",
                 "last_stage_up_at", "last_poop_at")


def export_payload(pet: PetState) -> Dict[str, Any]:
    return {"version": EXPORT_VERSION, "pet": pet.model_dump(mode="json", by_alias=True)}


def sanitize_import(payload: Any, *, local_id: str, now: int) -> PetState:
    """Build a trustworthy record from an external payload.

    Vitals are re-clamped and unreadable fields defaulted by the model. On
    top of that the busy window is cleared, timestamps from the future are
    pulled back to ``now``, cooldowns are capped at their normal length and
    the id is always the local one.
    """
    if not isinstance(payload, dict):
        raise PetImportError("Import payload must be an object")
    record = payload.get("pet")
    if not isinstance(record, dict):
        raise PetImportError("Import payload has no 'pet' object")
    if payload.get("version") != EXPORT_VERSION:
        log.warning("pet_import_unexpected_version", version=payload.get("version"))

    pet = PetState.model_validate(record)

    update: Dict[str, Any] = {"id": local_id, "busy_until": 0}
    for name in _CLOCK_FIELDS:
        value = getattr(pet, name)
        if value is not None and value > now:
            update[name] = now
    created_at = update.get("created_at", pet.created_at)
    last_updated = update.get("last_updated", pet.last_updated)
    if created_at > last_updated:
        update["created_at"] = last_updated
    update["cooldowns"] = {
        action: min(until, now + ACTIONS[action].cooldown_ms)
        for action, until in pet.cooldowns.items()
        if until > now
    }
    update["recent_actions"] = [entry for entry in pet.recent_actions if entry.at <= now]
    if not pet.is_dead:
        update["pet_state"] = MachineState.IDLE
    return pet.model_copy(update=update)
