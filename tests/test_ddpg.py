"""Tests for the ActorCriticLearner — coarse DDPG actor and critic."""

import numpy as np
import pytest

from ddpg_trader.errors import ShapeError, ShapeMismatchError
from ddpg_trader.networks import ActorCriticLearner


STATE_SIZE = 8


def make_learner(seed: int = 0, **kwargs) -> ActorCriticLearner:
    return ActorCriticLearner(
        STATE_SIZE,
        3,
        actor_hidden=(6, 4),
        critic_hidden=(6, 4),
        rng=np.random.default_rng(seed),
        **kwargs,
    )


def random_state(seed: int = 1) -> np.ndarray:
    return np.random.default_rng(seed).uniform(-1, 1, STATE_SIZE)


class TestConstruction:
    """Test learner creation and validation."""

    def test_layer_shapes(self):
        learner = make_learner()
        assert learner.actor_weights.shapes() == {
            "layer1": (6, STATE_SIZE), "layer2": (4, 6), "output": (3, 4)
        }
        assert learner.critic_weights.shapes() == {
            "stateLayer": (6, STATE_SIZE), "actionLayer": (6, 3), "hidden": (4, 12), "output": (1, 4)
        }

    def test_non_integer_size_rejected(self):
        with pytest.raises(ShapeError):
            ActorCriticLearner(8.0, 3)

    def test_non_positive_size_rejected(self):
        with pytest.raises(ShapeError):
            ActorCriticLearner(0, 3)


class TestActor:
    """Actor forward pass."""

    def test_output_length_and_range(self):
        learner = make_learner()
        for seed in range(20):
            action = learner.actor_forward(random_state(seed) * 10)
            assert action.shape == (3,)
            assert np.all(action >= -1.0) and np.all(action <= 1.0)

    def test_nested_state_is_flattened(self):
        learner = make_learner()
        state = random_state()
        np.testing.assert_array_equal(
            learner.actor_forward(state.reshape(2, 4)), learner.actor_forward(state)
        )

    def test_wrong_state_length(self):
        with pytest.raises(ShapeError):
            make_learner().actor_forward(np.ones(STATE_SIZE + 1))

    def test_nan_falls_back_to_zero_action(self):
        learner = make_learner()
        learner.actor_weights = learner.actor_weights.map(lambda w: np.full_like(w, np.nan))
        np.testing.assert_array_equal(learner.actor_forward(random_state()), np.zeros(3))


class TestCritic:
    """Critic forward pass and update."""

    def test_value_is_bounded_scalar(self):
        learner = make_learner()
        learner.critic_weights = learner.critic_weights.map(np.ones_like)
        value = learner.critic_forward(np.full(STATE_SIZE, 100.0), np.ones(3))
        assert isinstance(value, float)
        assert value == 10.0

    def test_wrong_action_length(self):
        with pytest.raises(ShapeError):
            make_learner().critic_forward(random_state(), np.ones(2))

    def test_nan_maps_to_zero(self):
        learner = make_learner()
        learner.critic_weights = learner.critic_weights.map(lambda w: np.full_like(w, np.nan))
        assert learner.critic_forward(random_state(), np.zeros(3)) == 0.0

    def test_update_shifts_every_weight_equally(self):
        learner = make_learner()
        before = learner.critic_weights.copy()
        learner.update_critic(0.5)
        for (_, old), (_, new) in zip(before.arrays(), learner.critic_weights.arrays()):
            np.testing.assert_allclose(new, np.clip(old + 0.001 * 0.5, -1, 1))

    def test_update_clips_td_error(self):
        learner = make_learner()
        before = learner.critic_weights.copy()
        learner.update_critic(50.0)
        np.testing.assert_allclose(
            learner.critic_weights.hidden, np.clip(before.hidden + 0.001, -1, 1)
        )

    def test_weights_stay_bounded(self):
        learner = make_learner(critic_learning_rate=1.0)
        for _ in range(5):
            learner.update_critic(1.0)
        for _, array in learner.critic_weights.arrays():
            assert array.max() <= 1.0

    def test_non_finite_td_error_skipped(self):
        learner = make_learner()
        before = learner.critic_weights.copy()
        learner.update_critic(float("nan"))
        assert learner.critic_weights.equals(before)


class TestActorUpdate:
    """Policy gradient and actor update."""

    def test_gradient_shape_and_range(self):
        grad = make_learner().get_actor_gradient(random_state())
        assert grad.shape == (3,)
        assert np.all(np.abs(grad) <= 1.0)

    def test_update_uses_first_component(self):
        learner = make_learner()
        before = learner.actor_weights.copy()
        learner.update_actor(np.array([0.5, -1.0, 1.0]))
        np.testing.assert_allclose(
            learner.actor_weights.layer2, np.clip(before.layer2 + 0.0001 * 0.5, -1, 1)
        )

    def test_empty_gradient(self):
        with pytest.raises(ShapeError):
            make_learner().update_actor([])


class TestTargetTracking:
    """Soft updates between learners."""

    def test_tau_one_copies(self):
        target, online = make_learner(0), make_learner(1)
        target.soft_update_from(online, 1.0)
        assert target.actor_weights.equals(online.actor_weights)
        assert target.critic_weights.equals(online.critic_weights)

    def test_copy_is_not_shared(self):
        target, online = make_learner(0), make_learner(1)
        target.soft_update_from(online, 1.0)
        online.update_actor([1.0])
        assert not target.actor_weights.equals(online.actor_weights)


class TestSerialization:
    """JSON checkpoints."""

    def test_json_layout(self):
        data = make_learner().to_json()
        assert data["stateSize"] == STATE_SIZE
        assert data["actionSize"] == 3
        assert set(data["actorWeights"]) == {"layer1", "layer2", "output"}
        assert set(data["criticWeights"]) == {"stateLayer", "actionLayer", "hidden", "output"}

    def test_round_trip(self):
        learner = make_learner()
        restored = ActorCriticLearner.from_json(learner.to_json())
        state = random_state()
        np.testing.assert_allclose(restored.actor_forward(state), learner.actor_forward(state))
        assert restored.actor_weights.equals(learner.actor_weights)
        assert restored.critic_weights.equals(learner.critic_weights)
        action = np.array([0.3, -0.2, 0.5])
        assert restored.critic_forward(state, action) == learner.critic_forward(state, action)

    def test_declared_state_size_mismatch(self):
        data = make_learner().to_json()
        data["stateSize"] = STATE_SIZE + 2
        with pytest.raises(ShapeMismatchError):
            ActorCriticLearner.from_json(data)

    def test_declared_action_size_mismatch(self):
        data = make_learner().to_json()
        data["actionSize"] = 4
        with pytest.raises(ShapeMismatchError):
            ActorCriticLearner.from_json(data)

    def test_non_integer_size(self):
        data = make_learner().to_json()
        data["stateSize"] = "8"
        with pytest.raises(ShapeError):
            ActorCriticLearner.from_json(data)
