# simulation/agents.py
from abc import ABC, abstractmethod
from typing import Optional
import random

from pocketpet.models.pet import ActionKind, PetState, PetStatus
from pocketpet.services.advisor import Need, NeedsAdvisor


class BaseAgent(ABC):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id

    @abstractmethod
    def choose_action(self, pet: PetState, status: PetStatus, now: int) -> Optional[ActionKind]:
        """
        Decides an action based on the pet's current state.
        Returns the action to post, or None to let time pass.
        The machine re-validates whatever is returned.
        """
        pass


class NurturingAgent(BaseAgent):
    """Acts on advisor requests first, then keeps things tidy."""

    _REQUESTS = {
        Need.FEED: ActionKind.FEED,
        Need.SLEEP: ActionKind.SLEEP,
        Need.HEAL: ActionKind.HEAL,
        Need.CRYING: ActionKind.PLAY,
    }

    def __init__(self, agent_id: str, advisor: Optional[NeedsAdvisor] = None):
        super().__init__(agent_id)
        self.advisor = advisor or NeedsAdvisor(rng=random.Random(agent_id))
        self._pending = []

    def choose_action(self, pet: PetState, status: PetStatus, now: int) -> Optional[ActionKind]:
        if status.is_dead:
            return None

        for advisory in self.advisor.evaluate(pet, now):
            action = self._REQUESTS[advisory.need]
            if action not in self._pending:
                self._pending.append(action)

        available = set(status.available_actions)
        for action in list(self._pending):
            if action in available:
                self._pending.remove(action)
                return action

        # Proactive care
        if status.mess_count > 0 and ActionKind.CLEAN in available:
            return ActionKind.CLEAN
        if status.hunger < 50 and ActionKind.FEED in available:
            return ActionKind.FEED
        if status.happiness < 50 and ActionKind.PLAY in available:
            return ActionKind.PLAY
        if status.energy < 40 and ActionKind.SLEEP in available:
            return ActionKind.SLEEP
        return None


class RandomAgent(BaseAgent):
    def __init__(self, agent_id: str, idle_probability: float = 0.7):
        super().__init__(agent_id)
        self.idle_probability = idle_probability
        self._rng = random.Random(agent_id)

    def choose_action(self, pet: PetState, status: PetStatus, now: int) -> Optional[ActionKind]:
        if status.is_dead or self._rng.random() < self.idle_probability:
            return None
        # Includes actions still on cooldown; the machine will refuse those.
        return self._rng.choice(list(ActionKind))


class NeglectfulAgent(BaseAgent):
    """Never does anything. Useful for measuring how long a pet survives alone."""

    def choose_action(self, pet: PetState, status: PetStatus, now: int) -> Optional[ActionKind]:
        return None
