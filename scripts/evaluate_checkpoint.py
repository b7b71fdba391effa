#!/usr/bin/env python3
"""Evaluate a training checkpoint on a dataset file.

Loads either a specific epoch directory or the best epoch under a
checkpoint root (highest validation accuracy in its sidecar), runs
batched prediction and prints loss/accuracy.

Usage::

    # Best epoch under a checkpoint root
    python scripts/evaluate_checkpoint.py \\
        --checkpoint-dir outputs/checkpoints \\
        --data /data/patches_test.pt

    # A specific epoch, with a non-default input geometry
    python scripts/evaluate_checkpoint.py \\
        --epoch-dir outputs/checkpoints/3 \\
        --data /data/patches_test.npz \\
        --channels 3 --height 64 --width 64
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.table import Table

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from lenet_training.data import load_tensors  # noqa: E402
from lenet_training.errors import CheckpointError  # noqa: E402
from lenet_training.evaluation import evaluate  # noqa: E402
from lenet_training.inference import LeNetPredictor  # noqa: E402
from lenet_training.io import find_best_checkpoint  # noqa: E402
from lenet_training.parallel import WorkerPool  # noqa: E402
from lenet_training.types import FeatureShape  # noqa: E402


def print_results(result: dict[str, object]) -> None:
    """Print evaluation metrics as a rich table."""
    console = Console()
    table = Table(title="Checkpoint Evaluation")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in result.items():
        table.add_row(key, f"{value:.4f}" if isinstance(value, float) else str(value))
    console.print(table)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.split("\n")[0])
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--checkpoint-dir",
        type=Path,
        help="Checkpoint root; the best epoch is selected automatically",
    )
    group.add_argument("--epoch-dir", type=Path, help="A single epoch directory")
    parser.add_argument(
        "--data", type=Path, required=True, help="Dataset file (.pt or .npz)"
    )
    parser.add_argument("--channels", type=int, default=3)
    parser.add_argument("--height", type=int, default=256)
    parser.add_argument("--width", type=int, default=256)
    parser.add_argument("--batch-size", type=int, default=64)
    parser.add_argument("--num-workers", type=int, default=4)
    parser.add_argument(
        "--output", type=Path, default=None, help="Optional JSON summary path"
    )
    args = parser.parse_args()

    if args.checkpoint_dir is not None:
        try:
            epoch_dir, recorded = find_best_checkpoint(args.checkpoint_dir)
        except CheckpointError as e:
            logger.error(str(e))
            sys.exit(1)
        logger.info(f"Best checkpoint: {epoch_dir} (val_accuracy={recorded})")
    else:
        epoch_dir = args.epoch_dir

    X, Y = load_tensors(args.data)
    predictor = LeNetPredictor.from_checkpoint(
        epoch_dir,
        FeatureShape(args.channels, args.height, args.width),
        batch_size=args.batch_size,
        pool=WorkerPool(num_workers=args.num_workers, progress=True),
    )
    loss, accuracy = evaluate(predictor.predict(X), Y)

    result: dict[str, object] = {
        "checkpoint": str(epoch_dir),
        "num_examples": X.shape[0],
        "loss": loss,
        "accuracy": accuracy,
    }
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(result, indent=2))
        logger.info(f"Summary saved to {args.output}")

    print_results(result)


if __name__ == "__main__":
    main()
