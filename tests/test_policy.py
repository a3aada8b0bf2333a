from __future__ import annotations

import pytest

from duetcode.generation import GenerationMode
from duetcode.policy import (
    ACTIONS,
    ActionPolicy,
    PolicyMemory,
    RoutingAction,
    reward_for,
    state_hash,
)


class _FixedRandom:
    """Always explores and always picks the last action."""

    def random(self) -> float:
        return 0.0

    def randrange(self, n: int) -> int:
        return n - 1


def test_state_hash_is_deterministic_and_bounded() -> None:
    first = state_hash("prompt", "write a fibonacci function", 1000)
    second = state_hash("prompt", "write a fibonacci function", 1000)

    assert first == second
    assert 0 <= first < 1000
    assert all(0 <= state_hash("chatQuery", "q" * n, 7) < 7 for n in range(50))


def test_state_hash_is_order_sensitive() -> None:
    assert state_hash("prompt", "ab", 1000) != state_hash("prompt", "ba", 1000)


def test_state_hash_includes_message_type() -> None:
    assert state_hash("prompt", "x", 1000) != state_hash("aiHelp", "x", 1000)


def test_state_hash_rejects_empty_space() -> None:
    with pytest.raises(ValueError):
        state_hash("prompt", "x", 0)


def test_actions_map_to_generation_modes() -> None:
    assert len(ACTIONS) == 5
    assert ACTIONS[0] is RoutingAction.GENERATE
    assert RoutingAction.CORRECT.mode is GenerationMode.AUTO_CORRECT
    assert RoutingAction.CHAT.mode is GenerationMode.CHAT


def test_greedy_selection_breaks_ties_by_lowest_index() -> None:
    policy = ActionPolicy(10, epsilon=0.0)

    assert policy.select_action(3) == 0


def test_greedy_selection_returns_argmax() -> None:
    policy = ActionPolicy(10, epsilon=0.0)
    policy.update(4, 3, 1.0, 4)
    policy.update(4, 1, 0.5, 4)

    assert policy.select_action(4) == 3
    assert policy.best_action(4) == 3


def test_negative_reward_moves_choice_away() -> None:
    policy = ActionPolicy(10, epsilon=0.0)
    policy.update(2, 0, -1.0, 2)

    assert policy.select_action(2) == 1


def test_exploration_uses_random_action() -> None:
    policy = ActionPolicy(10, epsilon=1.0, rng=_FixedRandom())
    policy.update(1, 0, 1.0, 1)

    assert policy.select_action(1) == len(ACTIONS) - 1


def test_temporal_difference_update_value() -> None:
    policy = ActionPolicy(10, epsilon=0.0, learning_rate=0.5, discount_factor=0.5)
    policy.update(7, 2, 1.0, 7)  # next state max is 2 -> 0.5

    value = policy.update(1, 0, 0.0, 7)

    assert policy.value(7, 2) == pytest.approx(0.5)
    assert value == pytest.approx(0.5 * (0.0 + 0.5 * 0.5))


def test_repeated_positive_reward_converges_monotonically() -> None:
    policy = ActionPolicy(5, epsilon=0.0, learning_rate=0.1, discount_factor=0.9)
    limit = 1.0 / (1.0 - policy.discount_factor)

    previous = policy.value(0, 0)
    for _ in range(500):
        current = policy.update(0, 0, 1.0, 0)
        assert current > previous
        assert current < limit
        previous = current

    for _ in range(2000):
        policy.update(0, 0, 1.0, 0)
    assert policy.value(0, 0) == pytest.approx(limit, abs=1e-3)


def test_zero_reward_nudges_toward_next_state_value() -> None:
    policy = ActionPolicy(5, epsilon=0.0)
    policy.update(3, 1, 1.0, 3)

    value = policy.update(0, 0, 0.0, 3)

    assert value == pytest.approx(0.1 * 0.9 * policy.value(3, 1))


def test_ranked_actions_orders_by_value_and_excludes() -> None:
    policy = ActionPolicy(5, epsilon=0.0)
    policy.update(0, 4, 1.0, 1)
    policy.update(0, 2, 0.5, 1)
    policy.update(0, 0, -1.0, 1)

    assert policy.ranked_actions(0) == [4, 2, 1, 3, 0]
    assert policy.ranked_actions(0, exclude=[4]) == [2, 1, 3, 0]


def test_index_bounds_are_checked() -> None:
    policy = ActionPolicy(5)

    with pytest.raises(IndexError):
        policy.select_action(5)
    with pytest.raises(IndexError):
        policy.update(0, 9, 1.0, 0)
    with pytest.raises(IndexError):
        policy.update(0, 0, 1.0, -1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"epsilon": 1.5},
        {"learning_rate": 0.0},
        {"discount_factor": 1.0},
        {"actions": ()},
    ],
)
def test_invalid_hyperparameters_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        ActionPolicy(5, **kwargs)


def test_snapshot_is_a_copy() -> None:
    policy = ActionPolicy(2)
    table = policy.snapshot()
    table[0][0] = 42.0

    assert policy.value(0, 0) == 0.0


def test_reward_signal() -> None:
    assert reward_for("feedback", "good") == 1.0
    assert reward_for("feedback", "bad") == -1.0
    assert reward_for("prompt") == 0.0
    assert reward_for("prompt", "good") == 0.0


def test_policy_memory_recall() -> None:
    memory = PolicyMemory()
    assert memory.recall() is None

    memory.remember(12, 3)

    assert memory.recall() == (12, 3)
