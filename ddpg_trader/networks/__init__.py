"""
Neural Network Components for the LSTM-DDPG Trader

Hand-written numpy networks with analytic, coarse update rules:
- lstm: recurrent state encoder
- ddpg: actor-critic learner
- params: named parameter structures and soft target updates
"""

from .params import LayerSpec, ParameterSet, soft_update
from .lstm import ActivationCache, LSTMGradients, LSTMWeights, RecurrentEncoder
from .ddpg import ActorCriticLearner, ActorWeights, CriticWeights

__all__ = [
    "LayerSpec",
    "ParameterSet",
    "soft_update",
    "ActivationCache",
    "LSTMGradients",
    "LSTMWeights",
    "RecurrentEncoder",
    "ActorCriticLearner",
    "ActorWeights",
    "CriticWeights",
]
