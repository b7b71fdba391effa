"""Dataset helpers: synthetic data, tensor files and splits."""

from lenet_training.data.arrays import load_tensors, save_tensors, split_train_val
from lenet_training.data.synthetic import generate_dummy_data

__all__ = [
    "generate_dummy_data",
    "load_tensors",
    "save_tensors",
    "split_train_val",
]
