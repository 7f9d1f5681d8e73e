"""
Trainer for the LSTM-DDPG Trading Agent

Owns the online networks, their target copies and the replay buffer, and
drives them through epochs of exploration, learning, validation, early
stopping and checkpointing.
"""

import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from .agent_config import AgentConfig, TrainingPhase, TrainingStatus
from .config import settings
from .errors import CheckpointNotFoundError, ShapeMismatchError
from .market_data import MarketData
from .networks import ActorCriticLearner, RecurrentEncoder
from .networks.ddpg import Q_BOUND
from .replay_buffer import Experience, ReplayBuffer
from .rewards import RewardEvaluator, TradeAction
from .trading_env import TradeEnvironment

logger = logging.getLogger(__name__)


def sanitize_float(value: Optional[float]) -> Optional[float]:
    """
    Convert inf/nan to JSON-safe values.

    Args:
        value: A float value that might be inf, -inf, or nan

    Returns:
        None if value is inf/-inf/nan, otherwise the float value
    """
    if value is None:
        return None

    # Convert numpy types to Python float
    if isinstance(value, np.floating):
        value = float(value)

    if not math.isfinite(value):
        return None

    return value


class TradingAgentTrainer:
    """
    Trains one LSTM-DDPG agent on one price history.

    Args:
        config: Agent hyperparameters
        market_data: Windowed price history
        checkpoint_dir: Where checkpoints and metadata.json are written
        seed: Seed for weight initialisation, sampling and exploration
        progress_callback: Receives a dict after every epoch
        log_callback: Receives ``(message, level)`` for human-readable progress
    """

    def __init__(
        self,
        config: AgentConfig,
        market_data: MarketData,
        checkpoint_dir: Optional[Union[str, Path]] = None,
        seed: Optional[int] = None,
        progress_callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        log_callback: Optional[Callable[[str, str], None]] = None,
    ):
        self.config = config
        self.market_data = market_data
        self.checkpoint_dir = Path(checkpoint_dir or settings.checkpoint_dir)
        self.progress_callback = progress_callback
        self.log_callback = log_callback
        self.rng = np.random.default_rng(seed)

        self.encoder = self._build_encoder()
        self.learner = self._build_learner()
        self.target_encoder = self._build_encoder()
        self.target_learner = self._build_learner()
        self.update_target_networks(1.0)

        self.replay_buffer = ReplayBuffer(config.buffer_size, rng=self.rng)
        self.reward_evaluator = RewardEvaluator.from_config(config)
        self.env = TradeEnvironment(market_data, self.reward_evaluator)
        self.env.reset(seed=seed)

        self._status = TrainingStatus(name=config.name)

    def _build_encoder(self, weights=None) -> RecurrentEncoder:
        return RecurrentEncoder(
            self.config.input_size,
            self.config.hidden_size,
            gradient_clip=self.config.gradient_clip,
            rng=self.rng,
            weights=weights,
        )

    def _build_learner(self, actor_weights=None, critic_weights=None) -> ActorCriticLearner:
        return ActorCriticLearner(
            self.config.hidden_size,
            self.config.action_size,
            actor_learning_rate=self.config.actor_learning_rate,
            critic_learning_rate=self.config.critic_learning_rate,
            rng=self.rng,
            actor_weights=actor_weights,
            critic_weights=critic_weights,
        )

    def _log(self, message: str, level: str = "info"):
        getattr(logger, level if level != "success" else "info")(message)
        if self.log_callback:
            self.log_callback(message, level)

    @property
    def status(self) -> TrainingStatus:
        self._status.buffer_size = len(self.replay_buffer)
        return self._status

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def predict(self, state, add_noise: bool = False) -> TradeAction:
        """
        Encode a state window and choose an action.

        With ``add_noise`` the raw actor output is perturbed by
        ``-theta * a + sigma * U(-1, 1)`` and clipped to [-1, 1].

        Raises:
            ValueError: the state contains NaN
        """
        state = np.asarray(state, dtype=np.float64)
        if np.isnan(state).any():
            raise ValueError("Invalid state values detected")

        hidden, _, _ = self.encoder.encode(state)
        actions = self.learner.actor_forward(hidden)

        if add_noise:
            noise = (
                -self.config.noise_theta * actions
                + self.config.noise_sigma * self.rng.uniform(-1.0, 1.0, size=actions.shape)
            )
            actions = np.clip(actions + noise, -1.0, 1.0)

        return TradeAction.from_actor_output(actions, self.config.position_scale)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def _learn_from(self, experience: Experience) -> Optional[float]:
        next_hidden, _, _ = self.target_encoder.encode(experience.next_state)
        next_action = self.target_learner.actor_forward(next_hidden)
        next_q = float(np.clip(
            self.target_learner.critic_forward(next_hidden, next_action), -Q_BOUND, Q_BOUND
        ))
        target_q = experience.reward + (0.0 if experience.done else self.config.gamma * next_q)
        if not math.isfinite(target_q):
            logger.warning(f"Skipping experience with non-finite target Q {target_q}")
            return None

        hidden, _, cache = self.encoder.encode(experience.state)
        current_q = self.learner.critic_forward(hidden, experience.action)
        td_error = float(np.clip(target_q - current_q, -1.0, 1.0))

        self.learner.update_critic(td_error)
        actor_gradient = self.learner.get_actor_gradient(hidden)
        self.learner.update_actor(actor_gradient)

        gradients = self.encoder.backward(td_error, cache)
        self.encoder.update_weights(gradients, self.config.encoder_learning_rate)
        return abs(td_error)

    def train_step(self) -> float:
        """
        One learning step over a sampled minibatch.

        Returns:
            Mean absolute TD error over the minibatch
        """
        batch = self.replay_buffer.sample(self.config.batch_size)
        total_loss = 0.0
        for experience in batch:
            try:
                loss = self._learn_from(experience)
            except Exception as e:
                logger.warning(f"Skipping experience: {e}")
                continue
            if loss is not None:
                total_loss += loss

        self.update_target_networks(self.config.tau)
        return total_loss / len(batch)

    def update_target_networks(self, tau: Optional[float] = None) -> None:
        """Soft-update actor, critic and encoder targets; ``tau=1`` copies exactly."""
        tau = self.config.tau if tau is None else tau
        self.target_learner.soft_update_from(self.learner, tau)
        self.target_encoder.soft_update_from(self.encoder, tau)

    def _run_step(self) -> Tuple[float, Optional[float]]:
        state, _ = self.env.reset()
        action = self.predict(state, add_noise=True)
        next_state, reward, terminated, _, info = self.env.step(action)
        logger.debug(f"Index {info['index']}: {action} -> reward {reward:.4f}")

        if not math.isnan(reward):
            self.replay_buffer.add(state, action.as_array(), reward, next_state, terminated)

        loss = None
        if self.replay_buffer.is_ready(self.config.batch_size):
            loss = self.train_step()
        return reward, loss

    # ------------------------------------------------------------------
    # Validation and training schedule
    # ------------------------------------------------------------------

    def validate(self, steps: Optional[int] = None) -> float:
        """Mean reward of noise-free trades at random entry bars."""
        steps = self.config.validation_steps if steps is None else steps
        if steps < 1:
            raise ValueError(f"steps must be positive, got {steps}")
        total_reward = 0.0
        for _ in range(steps):
            state, _ = self.env.reset()
            action = self.predict(state, add_noise=False)
            _, reward, _, _, _ = self.env.step(action)
            if not math.isnan(reward):
                total_reward += reward
        return total_reward / steps

    def train(self, epochs: Optional[int] = None, steps_per_epoch: Optional[int] = None) -> Dict[str, Any]:
        """
        Run the epoch loop until ``epochs`` or early stopping.

        Returns:
            Summary with epochs run, best validation reward, early-stop flag
            and per-epoch history. The same summary is written to
            ``metadata.json`` in the checkpoint directory.
        """
        epochs = settings.default_epochs if epochs is None else epochs
        steps_per_epoch = settings.default_steps_per_epoch if steps_per_epoch is None else steps_per_epoch
        config = self.config

        status = self._status
        status.status = "training"
        best_reward = -math.inf
        no_improvement = 0
        early_stopped = False
        history: List[Dict[str, Any]] = []
        start_time = datetime.now()

        self._log(f"🚀 Training started for agent '{config.name}'")
        self._log(f"   Epochs: {epochs}, steps per epoch: {steps_per_epoch}, batch size: {config.batch_size}")

        for epoch in range(epochs):
            status.phase = TrainingPhase.RUNNING
            status.epoch = epoch + 1
            rewards: List[float] = []
            losses: List[float] = []

            for step in range(steps_per_epoch):
                try:
                    reward, loss = self._run_step()
                except Exception as e:
                    self._log(f"Error at epoch {epoch + 1}, step {step + 1}: {e}", "error")
                    continue
                if not math.isnan(reward):
                    rewards.append(reward)
                if loss is not None:
                    losses.append(loss)

            self.update_target_networks(config.tau)

            status.phase = TrainingPhase.VALIDATING
            validation_reward = self.validate()
            avg_reward = float(np.mean(rewards)) if rewards else 0.0
            avg_loss = float(np.mean(losses)) if losses else None
            status.last_loss = avg_loss

            if validation_reward > best_reward:
                old_best = best_reward
                status.phase = TrainingPhase.IMPROVED
                best_reward = validation_reward
                no_improvement = 0
                self.save_models("best_model")
                self._log(
                    f"🏆 New best validation reward: {best_reward:.4f} (was {old_best:.4f})", "success"
                )
            else:
                status.phase = TrainingPhase.NO_IMPROVEMENT
                no_improvement += 1

            status.best_reward = sanitize_float(best_reward)
            status.no_improvement_count = no_improvement

            epoch_record = {
                "epoch": epoch + 1,
                "avg_reward": avg_reward,
                "avg_loss": avg_loss,
                "validation_reward": validation_reward,
                "buffer_size": len(self.replay_buffer),
            }
            history.append(epoch_record)
            loss_text = f"{avg_loss:.4f}" if avg_loss is not None else "n/a"
            self._log(
                f"📊 Epoch {epoch + 1}/{epochs}: avg reward={avg_reward:.4f}, loss={loss_text}, "
                f"validation={validation_reward:.4f}, buffer={len(self.replay_buffer)}"
            )
            if self.progress_callback:
                self.progress_callback({
                    **epoch_record,
                    "total_epochs": epochs,
                    "best_reward": sanitize_float(best_reward),
                    "phase": TrainingPhase(status.phase).value,
                })

            if no_improvement >= config.patience:
                status.phase = TrainingPhase.EARLY_STOPPED
                early_stopped = True
                self._log(f"⏹️ Early stopping at epoch {epoch + 1}: no improvement for {no_improvement} epochs")
                break

            if (epoch + 1) % config.checkpoint_every == 0:
                self.save_models(f"models_epoch_{epoch + 1}")

        if not early_stopped:
            status.phase = TrainingPhase.DONE
        status.status = "trained"

        summary = {
            "agent_name": config.name,
            "epochs_run": len(history),
            "best_reward": sanitize_float(best_reward),
            "early_stopped": early_stopped,
            "training_duration_seconds": (datetime.now() - start_time).total_seconds(),
            "history": [
                {key: sanitize_float(value) if isinstance(value, float) else value
                 for key, value in record.items()}
                for record in history
            ],
        }
        self._write_metadata(summary)
        self._log(f"✅ Training completed after {len(history)} epochs")
        return summary

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _checkpoint_path(self, label: str) -> Path:
        return self.checkpoint_dir / f"{label}.json"

    def _write_metadata(self, summary: Dict[str, Any]) -> None:
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        metadata = {
            **summary,
            "config": self.config.model_dump(),
            "trained_at": datetime.now().isoformat(),
            "buffer_stats": self.replay_buffer.get_stats(),
        }
        with open(self.checkpoint_dir / "metadata.json", "w") as f:
            json.dump(metadata, f, indent=2)

    def save_models(self, label: str) -> Path:
        """Write the online encoder and actor-critic weights to ``<label>.json``."""
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        path = self._checkpoint_path(label)
        checkpoint = {
            "lstm": self.encoder.to_dict(),
            "ddpg": self.learner.to_json(),
        }
        with open(path, "w") as f:
            json.dump(checkpoint, f)
        logger.info(f"💾 Saved checkpoint {path}")
        return path

    def load_models(self, label: str) -> None:
        """
        Restore online networks from ``<label>.json`` and reset the targets to them.

        Raises:
            CheckpointNotFoundError: no checkpoint with that label
            ShapeMismatchError: stored shapes disagree with each other or the config
        """
        path = self._checkpoint_path(label)
        if not path.exists():
            raise CheckpointNotFoundError(f"Checkpoint not found: {path}")

        with open(path, "r") as f:
            checkpoint = json.load(f)
        if "lstm" not in checkpoint or "ddpg" not in checkpoint:
            raise ShapeMismatchError(f"Checkpoint {path} must contain 'lstm' and 'ddpg' sections")

        encoder = RecurrentEncoder.from_dict(checkpoint["lstm"], gradient_clip=self.config.gradient_clip)
        learner = ActorCriticLearner.from_json(
            checkpoint["ddpg"],
            actor_learning_rate=self.config.actor_learning_rate,
            critic_learning_rate=self.config.critic_learning_rate,
        )

        if encoder.hidden_size != learner.state_size:
            raise ShapeMismatchError(
                f"Encoder hidden size {encoder.hidden_size} != learner state size {learner.state_size}"
            )
        expected = (self.config.input_size, self.config.hidden_size, self.config.action_size)
        found = (encoder.input_size, encoder.hidden_size, learner.action_size)
        if found != expected:
            raise ShapeMismatchError(
                f"Checkpoint sizes (input, hidden, action)={found} do not match config {expected}"
            )

        self.encoder = encoder
        self.learner = learner
        self.target_encoder = self._build_encoder(weights=encoder.weights.copy())
        self.target_learner = self._build_learner(
            actor_weights=learner.actor_weights.copy(),
            critic_weights=learner.critic_weights.copy(),
        )
        logger.info(f"Loaded checkpoint {path}")
