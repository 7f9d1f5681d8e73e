"""
Configuration for the LSTM-DDPG Trader
"""
import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Service info
    service_name: str = "lstm-ddpg-trader"
    version: str = os.getenv("BUILD_VERSION", "1.0.0")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Data
    data_path: str = os.getenv("DATA_PATH", "./data/EURUSD_D1.json")

    # Model storage
    checkpoint_dir: str = os.getenv("CHECKPOINT_DIR", "./saved_models")

    # Training defaults
    default_epochs: int = int(os.getenv("DEFAULT_EPOCHS", "100"))
    default_steps_per_epoch: int = int(os.getenv("DEFAULT_STEPS_PER_EPOCH", "100"))
    default_agent: str = os.getenv("DEFAULT_AGENT", "eurusd_daily")

    # Reproducibility
    seed: Optional[int] = int(os.getenv("SEED")) if os.getenv("SEED") else None

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
