"""Forward-only inference."""

from lenet_training.inference.predictor import LeNetPredictor, predict

__all__ = ["LeNetPredictor", "predict"]
