"""Tests for named parameter sets and soft target updates."""

import numpy as np
import pytest

from ddpg_trader.errors import ShapeError
from ddpg_trader.networks import ActorWeights, CriticWeights, LSTMGradients, LSTMWeights, soft_update
from ddpg_trader.networks.params import init_matrix, sanitize


def actor(seed: int = 0) -> ActorWeights:
    return ActorWeights.initialize(8, 3, (6, 4), np.random.default_rng(seed))


class TestHelpers:
    """Initialisation and sanitising."""

    def test_init_matrix_scale(self):
        m = init_matrix(10, 30, np.random.default_rng(0))
        assert m.shape == (10, 30)
        assert np.abs(m).max() <= np.sqrt(2.0 / 40)

    def test_sanitize_unbounded(self):
        out = sanitize(np.array([np.nan, np.inf, -np.inf, 0.5]))
        np.testing.assert_array_equal(out, [0.0, 0.0, 0.0, 0.5])

    def test_sanitize_bounded(self):
        out = sanitize(np.array([np.nan, np.inf, -np.inf, 3.0]), bound=1.0)
        np.testing.assert_array_equal(out, [0.0, 1.0, -1.0, 1.0])


class TestParameterSet:
    """Copying, mapping and serialization."""

    def test_layers_listed_in_order(self):
        assert [spec.key for spec in CriticWeights.LAYERS] == [
            "stateLayer", "actionLayer", "hidden", "output"
        ]
        assert len(LSTMWeights.LAYERS) == 12

    def test_copy_is_independent(self):
        w = actor()
        c = w.copy()
        c.layer1[0, 0] = 99.0
        assert w.layer1[0, 0] != 99.0

    def test_map_applies_to_every_array(self):
        zeros = actor().map(np.zeros_like)
        assert all(not array.any() for _, array in zeros.arrays())

    def test_dict_uses_checkpoint_keys(self):
        critic = CriticWeights.initialize(8, 3, (6, 4), np.random.default_rng(0))
        assert set(critic.to_dict()) == {"stateLayer", "actionLayer", "hidden", "output"}

    def test_from_dict_missing_layer(self):
        data = actor().to_dict()
        del data["output"]
        with pytest.raises(ShapeError):
            ActorWeights.from_dict(data)

    def test_gradients_compatible_with_weights(self):
        w = LSTMWeights.initialize(5, 4, np.random.default_rng(0))
        g = LSTMGradients(**{spec.attr: array for spec, array in w.arrays()})
        w.check_compatible(g)


class TestSoftUpdate:
    """Exponential moving average of target weights."""

    def test_tau_one_is_exact_copy(self):
        target, source = actor(0), actor(1)
        updated = soft_update(target, source, 1.0)
        assert updated.equals(source)
        assert updated.layer1 is not source.layer1

    def test_tiny_tau_leaves_target_unchanged(self):
        target, source = actor(0), actor(1)
        updated = soft_update(target, source, 1e-12)
        for (_, before), (_, after) in zip(target.arrays(), updated.arrays()):
            np.testing.assert_allclose(after, before, atol=1e-10)

    def test_blend(self):
        target = actor(0).map(np.zeros_like)
        source = actor(0).map(np.ones_like)
        updated = soft_update(target, source, 0.25)
        np.testing.assert_allclose(updated.output, 0.25)

    @pytest.mark.parametrize("tau", [0.0, -0.1, 1.5])
    def test_tau_out_of_range(self, tau):
        with pytest.raises(ValueError):
            soft_update(actor(0), actor(1), tau)

    def test_shape_mismatch(self):
        other = ActorWeights.initialize(9, 3, (6, 4), np.random.default_rng(0))
        with pytest.raises(ShapeError):
            soft_update(actor(0), other, 0.5)
