"""Distributed mini-batch SGD training of a LeNet-style CNN."""

__version__ = "0.0.1"
