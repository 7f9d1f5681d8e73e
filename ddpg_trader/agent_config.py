"""
Trading Agent Configuration & Status Models

Defines the hyperparameter schema for the LSTM-DDPG agent: network sizes,
data windows, replay and learning settings, exploration noise, reward
shaping bands and the training schedule.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal
from enum import Enum


OHLCV_FEATURES = ["open", "high", "low", "close", "volume"]


class TrainingPhase(str, Enum):
    """Phases of the epoch state machine"""
    IDLE = "idle"
    RUNNING = "running"
    VALIDATING = "validating"
    IMPROVED = "improved"
    NO_IMPROVEMENT = "no_improvement"
    EARLY_STOPPED = "early_stopped"
    DONE = "done"


class AgentConfig(BaseModel):
    """Configuration for a trading agent"""

    # Identity
    name: str = Field(..., description="Unique name for this agent profile")
    description: Optional[str] = Field(None, description="Human-readable description")

    # Architecture
    features: List[str] = Field(
        default_factory=lambda: list(OHLCV_FEATURES),
        min_length=1,
        description="Bar fields fed to the encoder, in order"
    )
    hidden_size: int = Field(
        default=64,
        ge=1,
        le=1024,
        description="Encoder hidden size (also the actor-critic state size)"
    )
    action_size: int = Field(
        default=3,
        ge=3,
        le=3,
        description="Action vector length: position size, stop-loss, take-profit"
    )

    # Data windows
    lookback: int = Field(
        default=20,
        ge=2,
        le=1000,
        description="Bars per state window"
    )
    bars_predicted: int = Field(
        default=5,
        ge=1,
        le=500,
        description="Bars a trade is held for before it is marked to market"
    )
    max_data_points: int = Field(
        default=2000,
        ge=10,
        description="Most recent bars kept from the loaded history"
    )

    # Experience replay
    buffer_size: int = Field(
        default=100000,
        ge=1,
        description="Replay buffer capacity"
    )
    batch_size: int = Field(
        default=1000,
        ge=1,
        description="Minibatch size; learning starts once the buffer holds this many"
    )

    # Learning
    gamma: float = Field(
        default=0.99,
        ge=0.0,
        le=1.0,
        description="Discount factor for bootstrapped targets"
    )
    tau: float = Field(
        default=0.001,
        gt=0.0,
        le=1.0,
        description="Soft update rate for target networks"
    )
    actor_learning_rate: float = Field(default=0.0001, gt=0.0, le=1.0)
    critic_learning_rate: float = Field(default=0.001, gt=0.0, le=1.0)
    encoder_learning_rate: float = Field(default=0.0001, gt=0.0, le=1.0)
    gradient_clip: float = Field(
        default=0.9,
        gt=0.0,
        description="Elementwise bound for encoder gradients"
    )

    # Exploration (Ornstein-Uhlenbeck style)
    noise_theta: float = Field(default=0.15, ge=0.0, le=1.0)
    noise_sigma: float = Field(default=0.2, ge=0.0, le=1.0)
    position_scale: float = Field(
        default=50.0,
        gt=0.0,
        description="Multiplier applied to the actor's raw position output"
    )

    # Reward shaping
    reward_scale: float = Field(
        default=10.0,
        gt=0.0,
        description="Price-change multiplier inside tanh"
    )
    stop_loss_band: List[float] = Field(
        default_factory=lambda: [0.03, 0.5],
        min_length=2,
        max_length=2,
        description="Healthy |stopLoss| distance band"
    )
    take_profit_band: List[float] = Field(
        default_factory=lambda: [0.05, 1.0],
        min_length=2,
        max_length=2,
        description="Healthy |takeProfit| distance band"
    )
    band_penalty: float = Field(default=-0.1, le=0.0)
    max_position_size: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="|positionSize| above this is penalised"
    )
    size_penalty: float = Field(default=-0.05, le=0.0)
    reward_min: float = Field(default=-1.0)
    reward_max: float = Field(default=2.0)

    # Schedule
    patience: int = Field(
        default=20,
        ge=1,
        description="Epochs without validation improvement before stopping"
    )
    checkpoint_every: int = Field(
        default=10,
        ge=1,
        description="Periodic checkpoint interval in epochs"
    )
    validation_steps: int = Field(
        default=100,
        ge=1,
        description="Noise-free rollouts per validation pass"
    )

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.reward_min >= self.reward_max:
            raise ValueError("reward_min must be lower than reward_max")
        if self.batch_size > self.buffer_size:
            raise ValueError("batch_size must not exceed buffer_size")
        for name in ("stop_loss_band", "take_profit_band"):
            low, high = getattr(self, name)
            if not 0 <= low < high:
                raise ValueError(f"{name} must satisfy 0 <= low < high")
        return self

    @property
    def input_size(self) -> int:
        return len(self.features)


class TrainingStatus(BaseModel):
    """Status of a training run"""
    name: str
    status: Literal["idle", "training", "trained", "failed"] = "idle"
    phase: TrainingPhase = TrainingPhase.IDLE
    epoch: int = 0
    best_reward: Optional[float] = None
    no_improvement_count: int = 0
    buffer_size: int = 0
    last_loss: Optional[float] = None

    class Config:
        use_enum_values = True


# Predefined agent profiles
PRESET_AGENT_CONFIGS = {
    "eurusd_daily": AgentConfig(
        name="eurusd_daily",
        description="Daily FX bars, 20-bar lookback, 5-bar trades",
    ),
    "conservative": AgentConfig(
        name="conservative",
        description="Tighter risk bands and a lower position size limit",
        stop_loss_band=[0.05, 0.3],
        take_profit_band=[0.1, 0.6],
        max_position_size=0.5,
        noise_sigma=0.1,
    ),
    "fast_debug": AgentConfig(
        name="fast_debug",
        description="Small networks and batches for quick smoke runs",
        hidden_size=8,
        lookback=5,
        bars_predicted=2,
        buffer_size=500,
        batch_size=16,
        patience=3,
        checkpoint_every=2,
        validation_steps=10,
    ),
}
