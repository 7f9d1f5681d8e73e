"""
LSTM-DDPG Trader - Reinforcement Learning for Trade Parameters

Learns a continuous trading policy from historical OHLCV data:
- Position size and direction
- Stop-loss distance (as a multiple of the recent price range)
- Take-profit distance

A recurrent encoder compresses each lookback window into a hidden state,
an actor-critic pair learns from replayed experiences, and the reward comes
from simulating every proposed trade against the bars that follow it.
"""

__version__ = "1.0.0"
