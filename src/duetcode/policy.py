"""
Adaptive dispatcher: an epsilon-greedy tabular Q-learning policy.

Incoming requests are reduced to a coarse routing state by hashing their type
and primary text into a fixed range. For each state the policy keeps one value
per processing action and picks the best one most of the time, exploring a
random action with probability epsilon. Explicit user feedback arrives later as
a reward and is charged to the most recent `(state, action)` pair held in a
`PolicyMemory`.

By default a single `PolicyMemory` is shared by every connection, so a reward
sent by one client may be charged to a request issued by another. The server
can be configured to keep one memory per connection instead.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from .generation import GenerationMode

LOGGER = logging.getLogger(__name__)

DEFAULT_STATE_SPACE = 1000
_HASH_MASK = 0xFFFFFFFF


class RoutingAction(str, Enum):
    """
    Processing strategies the dispatcher can choose between.

    The declaration order is the action index used by the value table.
    """

    GENERATE = "generate"
    CORRECT = "autoCorrect"
    EXTEND = "fix_or_extend"
    COMMENT = "comment"
    CHAT = "chat"

    @property
    def mode(self) -> GenerationMode:
        return GenerationMode(self.value)


ACTIONS: Tuple[RoutingAction, ...] = tuple(RoutingAction)


def state_hash(message_type: str, text: str, size: int = DEFAULT_STATE_SPACE) -> int:
    """
    Maps a request onto the state space `[0, size)`.

    The hash is order sensitive (`h = h * 31 + ord(ch)` over 32 bits) and
    deliberately coarse; unrelated requests may share a state.
    """
    if size <= 0:
        raise ValueError("size must be positive")
    h = 0
    for ch in message_type + text:
        h = (h * 31 + ord(ch)) & _HASH_MASK
    return h % size


def reward_for(message_type: str, value: Optional[str] = None) -> float:
    """+1 for positive feedback, -1 for negative feedback, 0 otherwise."""
    if message_type != "feedback":
        return 0.0
    if value == "good":
        return 1.0
    if value == "bad":
        return -1.0
    return 0.0


@dataclass
class PolicyMemory:
    """Most recent `(state, action)` pair awaiting a reward."""

    last_state: Optional[int] = None
    last_action: Optional[int] = None

    def remember(self, state: int, action: int) -> None:
        self.last_state = state
        self.last_action = action

    def recall(self) -> Optional[Tuple[int, int]]:
        if self.last_state is None or self.last_action is None:
            return None
        return self.last_state, self.last_action


class ActionPolicy:
    """
    Epsilon-greedy policy over a dense `states x actions` value table.

    Attributes:
        num_states: Size of the routing state space.
        actions: The selectable actions, in index order.
        epsilon: Exploration probability.
        learning_rate: Step size of the temporal-difference update.
        discount_factor: Weight of the next state's best value.
    """

    def __init__(
        self,
        num_states: int = DEFAULT_STATE_SPACE,
        *,
        actions: Sequence[RoutingAction] = ACTIONS,
        epsilon: float = 0.1,
        learning_rate: float = 0.1,
        discount_factor: float = 0.9,
        rng: Optional[random.Random] = None,
    ) -> None:
        if num_states <= 0:
            raise ValueError("num_states must be positive")
        if not actions:
            raise ValueError("at least one action is required")
        if not 0.0 <= epsilon <= 1.0:
            raise ValueError("epsilon must be within [0, 1]")
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError("learning_rate must be within (0, 1]")
        if not 0.0 <= discount_factor < 1.0:
            raise ValueError("discount_factor must be within [0, 1)")
        self.num_states = num_states
        self.actions: Tuple[RoutingAction, ...] = tuple(actions)
        self.epsilon = epsilon
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self._rng = rng or random.Random()
        self._table: List[List[float]] = [[0.0] * len(self.actions) for _ in range(num_states)]

    @property
    def num_actions(self) -> int:
        return len(self.actions)

    def _check(self, state: int, action: Optional[int] = None) -> None:
        if not 0 <= state < self.num_states:
            raise IndexError(f"state {state} outside [0, {self.num_states})")
        if action is not None and not 0 <= action < self.num_actions:
            raise IndexError(f"action {action} outside [0, {self.num_actions})")

    def value(self, state: int, action: int) -> float:
        self._check(state, action)
        return self._table[state][action]

    def best_action(self, state: int) -> int:
        """Greedy choice; ties go to the lowest index."""
        self._check(state)
        row = self._table[state]
        best = 0
        for index in range(1, len(row)):
            if row[index] > row[best]:
                best = index
        return best

    def select_action(self, state: int) -> int:
        self._check(state)
        if self.epsilon > 0 and self._rng.random() < self.epsilon:
            action = self._rng.randrange(self.num_actions)
            LOGGER.debug("Exploring state=%d action=%s", state, self.actions[action].value)
            return action
        return self.best_action(state)

    def update(self, state: int, action: int, reward: float, next_state: int) -> float:
        """
        Applies `Q += lr * (reward + gamma * max Q[next] - Q)`.

        Returns:
            The updated value of `(state, action)`.
        """
        self._check(state, action)
        self._check(next_state)
        current = self._table[state][action]
        target = reward + self.discount_factor * max(self._table[next_state])
        updated = current + self.learning_rate * (target - current)
        self._table[state][action] = updated
        if reward:
            LOGGER.debug(
                "Policy update state=%d action=%s reward=%+.1f value=%.4f",
                state,
                self.actions[action].value,
                reward,
                updated,
            )
        return updated

    def ranked_actions(self, state: int, *, exclude: Iterable[int] = ()) -> List[int]:
        """Action indices sorted by value, best first, ties by index."""
        self._check(state)
        skipped = set(exclude)
        row = self._table[state]
        candidates = [index for index in range(self.num_actions) if index not in skipped]
        return sorted(candidates, key=lambda index: (-row[index], index))

    def snapshot(self) -> List[List[float]]:
        return [list(row) for row in self._table]


__all__ = [
    "ACTIONS",
    "ActionPolicy",
    "DEFAULT_STATE_SPACE",
    "PolicyMemory",
    "RoutingAction",
    "reward_for",
    "state_hash",
]
