# pocketpet/api/v1/endpoints/pet_interactions.py
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel
from pocketpet.core.concurrency import StoreGate
from pocketpet.core.exceptions import PetImportError
from pocketpet.models.pet import ActionKind, PetState, PetStatus
from pocketpet.services.machine import ActionMachine
from pocketpet.services.roster_store import RosterStore

router = APIRouter()


class CreatePetRequest(BaseModel):
    name: Optional[str] = None


class RenamePetRequest(BaseModel):
    name: str


def get_store(request: Request) -> RosterStore:
    return request.app.state.store


def get_machine(request: Request) -> ActionMachine:
    return request.app.state.machine


def get_gate(request: Request) -> StoreGate:
    return request.app.state.gate


@router.post("/pets", response_model=PetState, status_code=201)
async def create_pet_endpoint(payload: Optional[CreatePetRequest] = None,
                              store: RosterStore = Depends(get_store),
                              gate: StoreGate = Depends(get_gate)):
    """Adopt a new pet and select it."""
    return await gate.run(store.create_pet, payload.name if payload else None)


@router.get("/pets", response_model=List[PetState])
async def list_pets_endpoint(store: RosterStore = Depends(get_store)):
    """All pets as stored, dead ones included."""
    return store.pets


@router.post("/pets/{pet_id}/select", response_model=PetState)
async def select_pet_endpoint(pet_id: str, store: RosterStore = Depends(get_store),
                              gate: StoreGate = Depends(get_gate)):
    if not await gate.run(store.select_pet, pet_id):
        raise HTTPException(status_code=404, detail="Pet not found")
    return store.current()


@router.patch("/pets/{pet_id}", response_model=PetState)
async def rename_pet_endpoint(pet_id: str, payload: RenamePetRequest,
                              store: RosterStore = Depends(get_store),
                              gate: StoreGate = Depends(get_gate)):
    pet = await gate.run(store.rename_pet, pet_id, payload.name)
    if pet is None:
        raise HTTPException(status_code=404, detail="Pet not found")
    return pet


@router.get("/pet", response_model=PetState)
async def get_current_pet_endpoint(store: RosterStore = Depends(get_store)):
    """The selected pet, caught up to now."""
    return store.current()


@router.get("/pet/status", response_model=PetStatus)
async def get_status_endpoint(machine: ActionMachine = Depends(get_machine)):
    return machine.status()


@router.post("/pet/actions/{action}", response_model=PetState)
async def perform_action_endpoint(action: ActionKind, machine: ActionMachine = Depends(get_machine),
                                  gate: StoreGate = Depends(get_gate)):
    """Post an action. A refused action is not an error; the pet simply comes back unchanged."""
    return await gate.run(machine.perform, action)


@router.get("/pet/export")
async def export_pet_endpoint(store: RosterStore = Depends(get_store)) -> Dict[str, Any]:
    return store.export_selected()


@router.post("/pet/import", response_model=PetState)
async def import_pet_endpoint(payload: Any = Body(...), store: RosterStore = Depends(get_store),
                              gate: StoreGate = Depends(get_gate)):
    try:
        return await gate.run(store.import_pet, payload)
    except PetImportError as e:
        raise HTTPException(status_code=422, detail=str(e))
