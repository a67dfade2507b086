# simulation/simulator.py
"""Balance simulator.

Runs scripted agents against the real engine on a simulated clock, so decay
rates, cooldowns and mess frequency can be judged over days of pet time in a
few seconds. Run from the repository root: ``python -m simulation.simulator``.
"""
import json
import random
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pocketpet.models.pet import MS_PER_HOUR, PetState
from pocketpet.services.machine import ActionMachine
from pocketpet.services.persistence import RosterPersistence
from pocketpet.services.roster_store import RosterStore
from pocketpet.services.storage import MemoryBackend
from simulation.agents import BaseAgent, NeglectfulAgent, NurturingAgent, RandomAgent
import structlog

log = structlog.get_logger(__name__)

START_MS = 1_700_000_000_000


class SimulatedClock:
    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


def _vitals(pet: PetState) -> Dict:
    return {
        "hunger": round(pet.hunger, 2),
        "happiness": round(pet.happiness, 2),
        "energy": round(pet.energy, 2),
        "health": round(pet.health, 2),
        "mess_count": pet.mess_count,
        "stage": pet.stage.value,
        "pet_state": pet.pet_state.value,
    }


def run_episode(agent: BaseAgent, pet_name: str, hours: float = 72.0, step_seconds: int = 60,
                seed: Optional[int] = None) -> List[Dict]:
    clock = SimulatedClock()
    rng = random.Random(seed)
    store = RosterStore(RosterPersistence(MemoryBackend()), clock=clock, rng=rng)
    store.rename_pet(store.selected_id, pet_name)
    machine = ActionMachine(store, rng=rng)

    log.info("Starting new simulation episode", pet_name=pet_name, agent_type=type(agent).__name__,
             hours=hours, step_seconds=step_seconds)

    episode_data = []
    max_steps = int(hours * 3600 / step_seconds)
    for step in range(max_steps):
        clock.advance(step_seconds * 1000)
        before = machine.tick()
        if before.is_dead:
            log.info("Pet is no longer alive, ending episode.", pet_name=pet_name, step=step)
            break

        action = agent.choose_action(before, machine.status(), clock())
        after = machine.perform(action) if action else before
        record = {
            "step": step,
            "at": clock(),
            "state": _vitals(before),
            "action": action.value if action else None,
            "applied": action is not None and after is not before,
            "next_state": _vitals(after),
            "is_done": after.is_dead,
        }
        episode_data.append(record)
        if after.is_dead:
            log.info("Pet reached terminal state", pet_name=pet_name, step=step)
            break

    final = store.selected()
    log.info("Episode finished.", pet_name=pet_name, total_steps=len(episode_data),
             survived=not final.is_dead, age_hours=round(final.age_hours, 2))
    return episode_data


def summarize_episode(episode_data: List[Dict]) -> Dict:
    """Survival, actions taken and messes produced over one episode."""
    if not episode_data:
        return {"steps": 0, "survived": False, "hours": 0.0, "actions": 0, "messes": 0}
    messes = 0
    previous = episode_data[0]["state"]["mess_count"]
    for record in episode_data:
        count = record["state"]["mess_count"]
        if count > previous:
            messes += count - previous
        previous = record["next_state"]["mess_count"]
    return {
        "steps": len(episode_data),
        "survived": not episode_data[-1]["is_done"],
        "hours": round((episode_data[-1]["at"] - episode_data[0]["at"]) / MS_PER_HOUR, 2),
        "actions": sum(1 for record in episode_data if record["applied"]),
        "messes": messes,
    }


def generate_synthetic_data(num_episodes: int, agent_type: str = "nurturing",
                            output_file_prefix: str = "synthetic_data", hours: float = 72.0) -> Optional[str]:
    all_episodes_data = []

    for i in range(num_episodes):
        pet_name = f"SimPet_{i + 1}"
        if agent_type == "nurturing":
            agent = NurturingAgent(agent_id=f"Nurturer_{i + 1}")
        elif agent_type == "random":
            agent = RandomAgent(agent_id=f"Randomizer_{i + 1}")
        elif agent_type == "neglectful":
            agent = NeglectfulAgent(agent_id=f"Neglecter_{i + 1}")
        else:
            log.error("Unknown agent type", agent_type=agent_type)
            return None

        episode_data = run_episode(agent, pet_name, hours=hours, seed=i)
        log.info("Episode summary", pet_name=pet_name, **summarize_episode(episode_data))
        all_episodes_data.extend(dict(record, pet_name=pet_name) for record in episode_data)

    stamp = datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')
    output_filename = f"{output_file_prefix}_{agent_type}_{num_episodes}_episodes_{stamp}.jsonl"
    with open(output_filename, 'w') as f:
        for record in all_episodes_data:
            f.write(json.dumps(record) + '\n')
    log.info("Synthetic data generated", output_file=output_filename, total_records=len(all_episodes_data))
    return output_filename


if __name__ == "__main__":
    from pocketpet.core.logging_config import setup_logging

    setup_logging(log_level_str="INFO")
    generate_synthetic_data(num_episodes=5, agent_type="nurturing", output_file_prefix="sim")
