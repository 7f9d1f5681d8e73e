"""
Command-line entry point for the LSTM-DDPG Trader

Trains an agent on an OHLCV history, saves the final model and logs a short
run of trading decisions made by the trained agent.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .agent_config import PRESET_AGENT_CONFIGS
from .config import settings
from .market_data import MarketData, load_price_data
from .trainer import TradingAgentTrainer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lstm-ddpg-train",
        description="Train an LSTM-DDPG trading agent on OHLCV bars",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lstm-ddpg-train                                  # Defaults from environment / .env
  lstm-ddpg-train --data bars.csv --epochs 20      # Custom data, short run
  lstm-ddpg-train --preset fast_debug --steps 50   # Quick smoke run
        """
    )
    parser.add_argument(
        "--data",
        type=str,
        default=settings.data_path,
        help=f"OHLCV data file, .json or .csv (default: {settings.data_path})"
    )
    parser.add_argument(
        "--epochs",
        type=int,
        default=settings.default_epochs,
        help=f"Training epochs (default: {settings.default_epochs})"
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=settings.default_steps_per_epoch,
        help=f"Steps per epoch (default: {settings.default_steps_per_epoch})"
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=sorted(PRESET_AGENT_CONFIGS),
        default=settings.default_agent,
        help=f"Agent profile (default: {settings.default_agent})"
    )
    parser.add_argument(
        "--checkpoint-dir",
        type=str,
        default=settings.checkpoint_dir,
        help=f"Directory for checkpoints and metadata (default: {settings.checkpoint_dir})"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=settings.seed,
        help="Random seed"
    )
    parser.add_argument(
        "--demo-bars",
        type=int,
        default=72,
        help="Number of bars to show trading decisions for after training (default: 72)"
    )
    return parser


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_demo(trainer: TradingAgentTrainer, count: int) -> None:
    """Log noise-free decisions over consecutive bars from the start of the valid range."""
    market_data = trainer.market_data
    low, high = market_data.valid_index_range()
    for index in range(low, min(low + count, high)):
        action = trainer.predict(market_data.get_state(index))
        price_change = market_data.entry_price(index + 1) - market_data.entry_price(index)
        logger.info(
            f"Bar {index}: position={action.position_size:+.2f} "
            f"SL={action.stop_loss:+.3f} TP={action.take_profit:+.3f} | next bar change={price_change:+.5f}"
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(settings.log_level)

    config = PRESET_AGENT_CONFIGS[args.preset]
    logger.info(f"Starting {settings.service_name} v{settings.version} with agent '{config.name}'")

    try:
        df = load_price_data(args.data)
        market_data = MarketData.from_config(df, config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load price data: {e}")
        return 1

    trainer = TradingAgentTrainer(
        config,
        market_data,
        checkpoint_dir=args.checkpoint_dir,
        seed=args.seed,
    )
    summary = trainer.train(epochs=args.epochs, steps_per_epoch=args.steps)
    logger.info(
        f"Training finished: {summary['epochs_run']} epochs, best validation reward "
        f"{summary['best_reward']}, early stopped: {summary['early_stopped']}"
    )

    path = trainer.save_models("final_model")
    logger.info(f"Final model written to {path}")

    if args.demo_bars > 0:
        run_demo(trainer, args.demo_bars)
    return 0


if __name__ == "__main__":
    sys.exit(main())
